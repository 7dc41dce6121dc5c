"""
Test ticket state machine transitions and timestamp invariants
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from psa_engine.config import NoteType
from psa_engine.core import InvalidTransitionException
from psa_engine.tickets.domain import TicketStateMachine, TicketStatus
from conftest import (
    DEFAULT_POLICY_ID,
    ESCALATION_QUEUE_ID,
    PRIORITY_CRITICAL,
    PRIORITY_LOW,
    STATUS_CLOSED,
    STATUS_IN_PROGRESS,
    STATUS_NEW,
    T0,
)


@pytest.fixture
def machine(tenant_config, clock):
    return TicketStateMachine(tenant_config, clock)


class TestApplyStatus:

    def test_closing_sets_resolved_and_closed(self, machine, make_ticket, clock):
        ticket = make_ticket()
        clock.advance(minutes=30)

        closed = machine.apply_status(ticket, STATUS_CLOSED)

        assert closed.status == STATUS_CLOSED
        assert closed.closed_at == T0 + timedelta(minutes=30)
        assert closed.resolved_at == closed.closed_at
        assert closed.updated_at == clock.now

    def test_closing_keeps_existing_resolved_at(self, machine, make_ticket, clock):
        ticket = make_ticket(resolved_at=T0 + timedelta(minutes=5))
        clock.advance(minutes=30)

        closed = machine.apply_status(ticket, STATUS_CLOSED)

        assert closed.resolved_at == T0 + timedelta(minutes=5)
        assert closed.resolved_at <= closed.closed_at

    def test_reopen_never_clears_timestamps(self, machine, make_ticket, clock):
        ticket = make_ticket()
        clock.advance(minutes=10)
        closed = machine.apply_status(ticket, STATUS_CLOSED)

        clock.advance(minutes=10)
        reopened = machine.apply_status(closed, STATUS_IN_PROGRESS)

        assert reopened.status == STATUS_IN_PROGRESS
        assert reopened.closed_at == closed.closed_at
        assert reopened.resolved_at == closed.resolved_at

    def test_reclosing_keeps_first_close(self, machine, make_ticket, clock):
        ticket = make_ticket()
        clock.advance(minutes=10)
        closed = machine.apply_status(ticket, STATUS_CLOSED)
        clock.advance(minutes=10)
        reopened = machine.apply_status(closed, STATUS_NEW)
        clock.advance(minutes=10)

        reclosed = machine.apply_status(reopened, STATUS_CLOSED)

        assert reclosed.closed_at == closed.closed_at
        assert reclosed.resolved_at == closed.resolved_at

    def test_same_status_is_noop(self, machine, make_ticket, clock):
        ticket = make_ticket()
        clock.advance(minutes=5)
        assert machine.apply_status(ticket, STATUS_NEW) is ticket

    def test_unconfigured_status_rejected(self, machine, make_ticket):
        rogue = TicketStatus(id=DEFAULT_POLICY_ID, name="Limbo")
        with pytest.raises(InvalidTransitionException):
            machine.apply_status(make_ticket(), rogue)

    def test_input_snapshot_untouched(self, machine, make_ticket, clock):
        ticket = make_ticket(tags={"vip"})
        clock.advance(minutes=1)
        closed = machine.apply_status(ticket, STATUS_CLOSED)

        assert ticket.closed_at is None
        assert closed.tags == {"vip"}
        assert closed.tags is not ticket.tags


class TestApplyPriority:

    def test_recomputes_due_dates_from_created_at(self, machine, make_ticket, clock):
        ticket = machine.initialize_sla(make_ticket())
        assert ticket.resolution_due == T0 + timedelta(minutes=240)

        clock.advance(minutes=20)
        escalated = machine.apply_priority(ticket, PRIORITY_CRITICAL)

        assert escalated.priority == PRIORITY_CRITICAL
        assert escalated.first_response_due == T0 + timedelta(minutes=15)
        assert escalated.resolution_due == T0 + timedelta(hours=1)

    def test_lowering_priority_extends_due(self, machine, make_ticket):
        ticket = machine.initialize_sla(make_ticket())
        lowered = machine.apply_priority(ticket, PRIORITY_LOW)
        assert lowered.resolution_due == T0 + timedelta(minutes=480)

    def test_same_priority_is_noop(self, machine, make_ticket):
        ticket = machine.initialize_sla(make_ticket())
        assert machine.apply_priority(ticket, ticket.priority) is ticket

    def test_diff_carries_sla_fields(self, machine, make_ticket):
        ticket = machine.initialize_sla(make_ticket())
        patch = ticket.diff(machine.apply_priority(ticket, PRIORITY_CRITICAL))

        assert patch["priority_id"] == PRIORITY_CRITICAL.id
        assert patch["resolution_due"] == T0 + timedelta(hours=1)
        assert patch["sla_due_date"] == patch["resolution_due"]


class TestInitializeSla:

    def test_uses_default_policy(self, machine, make_ticket):
        ticket = machine.initialize_sla(make_ticket())
        assert ticket.sla_id == DEFAULT_POLICY_ID
        assert ticket.first_response_due == T0 + timedelta(minutes=60)

    def test_without_policy_leaves_dates_unset(self, tenant_config, clock, make_ticket):
        config = tenant_config.model_copy(update={"sla_policies": []})
        ticket = TicketStateMachine(config, clock).initialize_sla(make_ticket())

        assert ticket.sla_id is None
        assert ticket.first_response_due is None
        assert ticket.resolution_due is None


class TestAssignmentAndQueue:

    def test_assign_and_unassign(self, machine, make_ticket):
        ticket = make_ticket()
        user = uuid4()

        assigned = machine.assign(ticket, user)
        assert assigned.assigned_to_id == user
        assert machine.assign(assigned, user) is assigned
        assert machine.assign(assigned, None).assigned_to_id is None

    def test_set_queue(self, machine, make_ticket):
        ticket = make_ticket()
        moved = machine.set_queue(ticket, ESCALATION_QUEUE_ID)
        assert ticket.diff(moved).keys() == {"queue_id"}

    def test_update_details_rejects_lifecycle_fields(self, machine, make_ticket):
        with pytest.raises(InvalidTransitionException):
            machine.update_details(make_ticket(), closed_at=T0)

    def test_update_details(self, machine, make_ticket):
        ticket = make_ticket()
        updated = machine.update_details(ticket, title="Printer fixed", tags=["hardware"])
        assert updated.title == "Printer fixed"
        assert updated.tags == {"hardware"}


class TestRecordNote:

    def test_public_note_sets_first_response(self, machine, make_ticket, clock):
        ticket = make_ticket()
        clock.advance(minutes=12)

        responded = machine.record_note(ticket, NoteType.PUBLIC)
        assert responded.first_response_at == T0 + timedelta(minutes=12)

    def test_first_response_set_once(self, machine, make_ticket, clock):
        ticket = make_ticket(first_response_at=T0 + timedelta(minutes=3))
        clock.advance(minutes=12)
        assert machine.record_note(ticket, NoteType.PUBLIC) is ticket

    @pytest.mark.parametrize("note_type", [NoteType.INTERNAL, NoteType.RESOLUTION, NoteType.TIME_ENTRY])
    def test_non_public_notes_ignored(self, machine, make_ticket, note_type):
        ticket = make_ticket()
        assert machine.record_note(ticket, note_type) is ticket
