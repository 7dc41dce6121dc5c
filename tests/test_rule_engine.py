"""
Test the automation rule engine
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from psa_engine.automation.application import RuleEngine
from psa_engine.config import AutomationTrigger, NoteType
from psa_engine.core import ResourceNotFoundException
from conftest import (
    ESCALATION_QUEUE_ID,
    InMemoryTicketRepository,
    PRIORITY_CRITICAL,
    PRIORITY_LOW,
    STATUS_CLOSED,
    T0,
    TENANT_ID,
)

ON_CREATE = AutomationTrigger.ON_CREATE


def assign(user_id):
    return {"action_type": "assign_to", "params": {"user_id": str(user_id)}}


def note(content, note_type="internal"):
    return {"action_type": "add_note", "params": {"content": content, "note_type": note_type}}


def priority_is(name):
    return {"field": "priority", "operator": "equals", "value": name}


class TestMatching:

    @pytest.mark.asyncio
    async def test_assigns_only_critical_tickets(self, engine, ticket_repo, make_ticket, make_rule):
        on_call = uuid4()
        make_rule(conditions=[priority_is("critical")], actions=[assign(on_call)])
        critical = ticket_repo.add(make_ticket(priority=PRIORITY_CRITICAL))
        low = ticket_repo.add(make_ticket(priority=PRIORITY_LOW))

        await engine.process(ON_CREATE, TENANT_ID, critical.id)
        await engine.process(ON_CREATE, TENANT_ID, low.id)

        assert ticket_repo.tickets[critical.id].assigned_to_id == on_call
        assert ticket_repo.tickets[low.id].assigned_to_id is None

    @pytest.mark.asyncio
    async def test_only_rules_for_the_trigger_run(self, engine, ticket_repo, make_ticket, make_rule):
        make_rule(trigger=AutomationTrigger.ON_UPDATE, actions=[assign(uuid4())])
        make_rule(actions=[assign(uuid4())], is_active=False)
        ticket = ticket_repo.add(make_ticket())

        result = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert result.rules_evaluated == 0
        assert ticket_repo.patches == []

    @pytest.mark.asyncio
    async def test_malformed_condition_never_matches(self, engine, ticket_repo, make_ticket, make_rule):
        make_rule(conditions=["priority == critical"], actions=[assign(uuid4())])
        ticket = ticket_repo.add(make_ticket(priority=PRIORITY_CRITICAL))

        result = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert result.rules_matched == 0
        assert ticket_repo.tickets[ticket.id].assigned_to_id is None

    @pytest.mark.asyncio
    async def test_missing_ticket(self, engine):
        with pytest.raises(ResourceNotFoundException):
            await engine.process(ON_CREATE, TENANT_ID, uuid4())


class TestOrdering:

    @pytest.mark.asyncio
    async def test_cascading_rules_see_earlier_mutations(self, engine, ticket_repo, make_ticket, make_rule):
        make_rule(
            name="escalate",
            conditions=[priority_is("critical")],
            actions=[{"action_type": "set_queue", "params": {"queue_id": str(ESCALATION_QUEUE_ID)}}],
            priority=20,
        )
        make_rule(
            name="upgrade",
            actions=[{"action_type": "set_priority", "params": {"priority_id": str(PRIORITY_CRITICAL.id)}}],
            priority=10,
        )
        ticket = ticket_repo.add(make_ticket())

        result = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        stored = ticket_repo.tickets[ticket.id]
        assert stored.priority == PRIORITY_CRITICAL
        assert stored.queue_id == ESCALATION_QUEUE_ID
        assert result.rules_matched == 2

    @pytest.mark.asyncio
    async def test_ties_keep_insertion_order(self, engine, ticket_repo, make_ticket, make_rule):
        make_rule(actions=[note("first")], priority=5)
        make_rule(actions=[note("second")], priority=5)
        make_rule(actions=[note("zeroth")], priority=1)
        ticket = ticket_repo.add(make_ticket())

        await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert [n.content for n in ticket_repo.notes] == ["zeroth", "first", "second"]


class TestRunStatistics:

    @pytest.mark.asyncio
    async def test_matched_rule_counts_run(self, engine, ticket_repo, rule_repo, make_ticket, make_rule, clock):
        rule = make_rule(conditions=[priority_is("medium")])
        skipped = make_rule(conditions=[priority_is("critical")])
        ticket = ticket_repo.add(make_ticket())
        clock.advance(minutes=3)

        await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert rule_repo.get(rule.id).run_count == 1
        assert rule_repo.get(rule.id).last_run_at == T0 + timedelta(minutes=3)
        assert rule_repo.get(skipped.id).run_count == 0
        assert rule_repo.get(skipped.id).last_run_at is None

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, engine, ticket_repo, rule_repo, make_ticket, make_rule):
        user = uuid4()
        rule = make_rule(actions=[assign(user)])
        ticket = ticket_repo.add(make_ticket())

        await engine.process(ON_CREATE, TENANT_ID, ticket.id)
        snapshot = ticket_repo.tickets[ticket.id]
        writes = len(ticket_repo.patches)

        second = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert ticket_repo.tickets[ticket.id] == snapshot
        assert len(ticket_repo.patches) == writes
        assert second.mutations_persisted == 0
        assert rule_repo.get(rule.id).run_count == 2


class TestActions:

    @pytest.mark.asyncio
    async def test_malformed_action_skips_only_itself(self, engine, ticket_repo, make_ticket, make_rule):
        make_rule(actions=[
            {"action_type": "assign_to", "params": {"user_id": "not-a-uuid"}},
            {"action_type": "set_queue", "params": {"queue_id": str(ESCALATION_QUEUE_ID)}},
            {"action_type": "call_the_president"},
        ])
        ticket = ticket_repo.add(make_ticket())

        result = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert ticket_repo.tickets[ticket.id].queue_id == ESCALATION_QUEUE_ID
        assert result.actions_executed == 1
        assert result.actions_skipped == 2

    @pytest.mark.asyncio
    async def test_unconfigured_status_skipped(self, engine, ticket_repo, make_ticket, make_rule):
        make_rule(actions=[
            {"action_type": "set_status", "params": {"status_id": str(uuid4())}},
            note("still runs"),
        ])
        ticket = ticket_repo.add(make_ticket())

        result = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert result.actions_skipped == 1
        assert [n.content for n in ticket_repo.notes] == ["still runs"]

    @pytest.mark.asyncio
    async def test_closing_action_stamps_timestamps(self, engine, ticket_repo, make_ticket, make_rule, clock):
        make_rule(actions=[{"action_type": "set_status", "params": {"status_id": str(STATUS_CLOSED.id)}}])
        ticket = ticket_repo.add(make_ticket())
        clock.advance(hours=1)

        await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        stored = ticket_repo.tickets[ticket.id]
        assert stored.closed_at == T0 + timedelta(hours=1)
        assert stored.resolved_at == stored.closed_at

    @pytest.mark.asyncio
    async def test_system_note(self, engine, ticket_repo, make_ticket, make_rule, clock):
        make_rule(actions=[note("We are on it", "public")])
        ticket = ticket_repo.add(make_ticket())
        clock.advance(minutes=1)

        await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        [added] = ticket_repo.notes
        assert added.is_system
        assert added.note_type == NoteType.PUBLIC
        assert ticket_repo.tickets[ticket.id].first_response_at == T0 + timedelta(minutes=1)


class TestSideEffects:

    @pytest.mark.asyncio
    async def test_buffered_until_pass_ends(self, engine, ticket_repo, sink, make_ticket, make_rule):
        make_rule(actions=[
            {"action_type": "send_notification", "params": {"message": "Critical ticket"}},
            {"action_type": "webhook", "params": {"url": "https://hooks.example.com/psa"}},
        ])
        ticket = ticket_repo.add(make_ticket())

        result = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert result.side_effects_queued == 2
        assert [e.kind for e in sink.effects] == ["notification", "webhook"]
        assert sink.effects[0].template_params()["message"] == "Critical ticket"
        assert sink.effects[1].webhook_body()["event"] == "on_create"

    @pytest.mark.asyncio
    async def test_flushed_when_pass_aborts(self, engine, ticket_repo, sink, make_ticket, make_rule):
        make_rule(actions=[
            {"action_type": "send_notification"},
            {"action_type": "set_queue", "params": {"queue_id": str(ESCALATION_QUEUE_ID)}},
        ])
        ticket = ticket_repo.add(make_ticket())
        ticket_repo.fail_updates = True

        with pytest.raises(RuntimeError):
            await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert len(sink.effects) == 1


class ReentrantTicketRepository(InMemoryTicketRepository):
    """Starts a nested pass from inside a write, like a careless trigger hook would."""

    def __init__(self, config_provider, nested_ticket_id=None):
        super().__init__(config_provider)
        self.engine = None
        self.nested_ticket_id = nested_ticket_id
        self.nested_results = []

    async def update_ticket_fields(self, tenant_id, ticket_id, patch):
        await super().update_ticket_fields(tenant_id, ticket_id, patch)
        target = self.nested_ticket_id or ticket_id
        self.nested_results.append(
            await self.engine.process(AutomationTrigger.ON_UPDATE, tenant_id, target)
        )


class TestReentrancy:

    def build(self, config_provider, rule_repo, sink, clock, nested_ticket_id=None, depth=1):
        repo = ReentrantTicketRepository(config_provider, nested_ticket_id)
        engine = RuleEngine(repo, rule_repo, config_provider, sink, clock=clock, max_pass_depth=depth)
        repo.engine = engine
        return repo, engine

    @pytest.mark.asyncio
    async def test_same_ticket_pass_suppressed(self, config_provider, rule_repo, sink, clock, make_ticket, make_rule):
        repo, engine = self.build(config_provider, rule_repo, sink, clock, depth=3)
        make_rule(actions=[assign(uuid4())])
        make_rule(trigger=AutomationTrigger.ON_UPDATE, actions=[note("loop")])
        ticket = repo.add(make_ticket())

        result = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert result.mutations_persisted == 1
        assert [r.suppressed for r in repo.nested_results] == [True]
        assert repo.notes == []

    @pytest.mark.asyncio
    async def test_depth_limit(self, config_provider, rule_repo, sink, clock, make_ticket, make_rule):
        other = make_ticket()
        repo, engine = self.build(config_provider, rule_repo, sink, clock, nested_ticket_id=other.id)
        repo.add(other)
        make_rule(actions=[assign(uuid4())])
        ticket = repo.add(make_ticket())

        await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert [r.suppressed for r in repo.nested_results] == [True]

    @pytest.mark.asyncio
    async def test_guard_released_after_pass(self, engine, ticket_repo, make_ticket, make_rule):
        make_rule(actions=[note("hello")])
        ticket = ticket_repo.add(make_ticket())

        first = await engine.process(ON_CREATE, TENANT_ID, ticket.id)
        second = await engine.process(ON_CREATE, TENANT_ID, ticket.id)

        assert not first.suppressed
        assert not second.suppressed
        assert len(ticket_repo.notes) == 2
