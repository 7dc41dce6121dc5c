"""
Ticket State Machine
=====================

Governs status, priority, assignment and queue changes of a ticket and the
one-way timestamp invariants that go with them.

Any status may follow any status; the machine only enforces side effects:
- entering a closed status stamps closed_at and, if missing, resolved_at
- re-opening never clears closed_at/resolved_at
- a priority change recomputes SLA due-dates
- the first public note stamps first_response_at

Operations are pure: they return a new snapshot and never perform I/O.
Persisting the resulting patch is the caller's job.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from psa_engine.config import NoteType
from psa_engine.core import InvalidTransitionException
from psa_engine.sla.domain.value_objects import SLACalculator
from psa_engine.tickets.domain.entities import Ticket, TicketPriority, TicketStatus
from psa_engine.tickets.domain.value_objects import TenantConfiguration

Clock = Callable[[], datetime]

_DETAIL_FIELDS = {"title", "description", "is_billable", "tags", "custom_fields"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TicketStateMachine:
    """Lifecycle rules for one tenant's tickets."""

    def __init__(self, config: TenantConfiguration, clock: Optional[Clock] = None):
        self._config = config
        self._clock = clock or utc_now

    @property
    def config(self) -> TenantConfiguration:
        return self._config

    def _evolve(self, ticket: Ticket, **changes) -> Ticket:
        """Copy the ticket with changes applied, stamping updated_at."""
        changes.setdefault("updated_at", max(self._clock(), ticket.updated_at))
        changes.setdefault("tags", set(ticket.tags))
        changes.setdefault("custom_fields", dict(ticket.custom_fields))
        return replace(ticket, **changes)

    def _sla_fields(self, ticket: Ticket, priority: TicketPriority, sla_id: Optional[UUID]) -> dict:
        """Due-date fields for a ticket under the given priority and policy."""
        policy = self._config.get_sla_policy(sla_id)
        due_dates = SLACalculator.calculate_due_dates(ticket.created_at, policy, priority)
        if due_dates is None:
            return {
                "sla_id": sla_id,
                "first_response_due": None,
                "resolution_due": None,
            }
        return {
            "sla_id": policy.id,
            "first_response_due": due_dates.first_response_due,
            "resolution_due": due_dates.resolution_due,
        }

    # ========== Operations ==========

    def initialize_sla(self, ticket: Ticket) -> Ticket:
        """Compute initial due-dates for a newly created ticket."""
        fields = self._sla_fields(ticket, ticket.priority, ticket.sla_id)
        return replace(ticket, **fields)

    def apply_status(self, ticket: Ticket, new_status: TicketStatus) -> Ticket:
        """
        Move the ticket to ``new_status``.

        Closing implies resolving: both timestamps are stamped with the same
        instant when unset. Timestamps already set are never changed.
        """
        if self._config.get_status(new_status.id) is None:
            raise InvalidTransitionException(
                f"Status '{new_status.name}' is not configured for this tenant",
                {"status_id": str(new_status.id), "ticket_id": str(ticket.id)}
            )
        if new_status.id == ticket.status.id:
            return ticket

        now = max(self._clock(), ticket.created_at)
        changes = {"status": new_status, "updated_at": now}

        if new_status.is_closed:
            closed_at = ticket.closed_at or now
            changes["closed_at"] = closed_at
            if ticket.resolved_at is None:
                changes["resolved_at"] = min(now, closed_at)

        return self._evolve(ticket, **changes)

    def apply_priority(self, ticket: Ticket, new_priority: TicketPriority) -> Ticket:
        """Change priority and recompute SLA due-dates from created_at."""
        if self._config.get_priority(new_priority.id) is None:
            raise InvalidTransitionException(
                f"Priority '{new_priority.name}' is not configured for this tenant",
                {"priority_id": str(new_priority.id), "ticket_id": str(ticket.id)}
            )
        if new_priority.id == ticket.priority.id:
            return ticket

        return self._evolve(
            ticket,
            priority=new_priority,
            **self._sla_fields(ticket, new_priority, ticket.sla_id)
        )

    def apply_sla_policy(self, ticket: Ticket, policy_id: Optional[UUID]) -> Ticket:
        """Switch the ticket to another policy (None -> tenant default) and recompute."""
        if policy_id is not None and self._config.get_sla_policy(policy_id) is None:
            raise InvalidTransitionException(
                "SLA policy is not configured for this tenant",
                {"sla_id": str(policy_id), "ticket_id": str(ticket.id)}
            )
        fields = self._sla_fields(ticket, ticket.priority, policy_id)
        if all(getattr(ticket, name) == value for name, value in fields.items()):
            return ticket
        return self._evolve(ticket, **fields)

    def assign(self, ticket: Ticket, assignee_id: Optional[UUID]) -> Ticket:
        """Assign to a user; None unassigns."""
        if ticket.assigned_to_id == assignee_id:
            return ticket
        return self._evolve(ticket, assigned_to_id=assignee_id)

    def set_queue(self, ticket: Ticket, queue_id: UUID) -> Ticket:
        if ticket.queue_id == queue_id:
            return ticket
        return self._evolve(ticket, queue_id=queue_id)

    def set_team(self, ticket: Ticket, team_id: Optional[UUID]) -> Ticket:
        if ticket.team_id == team_id:
            return ticket
        return self._evolve(ticket, team_id=team_id)

    def update_details(self, ticket: Ticket, **details) -> Ticket:
        """
        Change descriptive fields that carry no lifecycle rules.

        Accepts title, description, is_billable, tags and custom_fields.
        """
        unknown = set(details) - _DETAIL_FIELDS
        if unknown:
            raise InvalidTransitionException(
                f"Fields {sorted(unknown)} cannot be changed directly",
                {"ticket_id": str(ticket.id)}
            )
        if "tags" in details:
            details["tags"] = set(details["tags"])
        changed = {k: v for k, v in details.items() if getattr(ticket, k) != v}
        if not changed:
            return ticket
        return self._evolve(ticket, **changed)

    def record_note(self, ticket: Ticket, note_type: NoteType) -> Ticket:
        """
        Account for a new note.

        Only public notes count as first response; internal, resolution and
        time-entry notes leave first_response_at alone.
        """
        if note_type != NoteType.PUBLIC or ticket.first_response_at is not None:
            return ticket
        now = max(self._clock(), ticket.created_at)
        return self._evolve(ticket, first_response_at=now, updated_at=now)
