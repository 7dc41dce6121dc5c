"""
Pytest configuration and fixtures

In-memory implementations of the repository/provider interfaces plus a
controllable clock, so engine behavior can be tested without a database.
"""
import copy
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

import pytest

from psa_engine.automation.application import (
    IRuleRepository,
    ISideEffectSink,
    RuleEngine,
    SideEffectRequest,
)
from psa_engine.automation.domain import AutomationRule
from psa_engine.config import AutomationTrigger
from psa_engine.core import ConfigurationException
from psa_engine.sla.domain import SlaPolicy, SlaTarget
from psa_engine.tickets.application import ITenantConfigProvider, ITicketRepository, TicketService
from psa_engine.tickets.domain import (
    TenantConfiguration,
    Ticket,
    TicketNote,
    TicketPriority,
    TicketStatus,
)

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

TENANT_ID = UUID("6f1c2a8e-1d3b-4c5e-9f70-0a1b2c3d4e5f")
DEFAULT_QUEUE_ID = UUID("0c9a7e51-3b2f-4d8c-a1e6-5f4d3c2b1a09")
ESCALATION_QUEUE_ID = UUID("0c9a7e51-3b2f-4d8c-a1e6-5f4d3c2b1a10")
COMPANY_ID = UUID("5a5a5a5a-0000-4000-8000-000000000001")

STATUS_NEW = TicketStatus(id=UUID("11111111-0000-4000-8000-000000000001"), name="New", is_default=True)
STATUS_IN_PROGRESS = TicketStatus(id=UUID("11111111-0000-4000-8000-000000000002"), name="In Progress")
STATUS_CLOSED = TicketStatus(id=UUID("11111111-0000-4000-8000-000000000004"), name="Closed", is_closed=True)

PRIORITY_CRITICAL = TicketPriority(id=UUID("22222222-0000-4000-8000-000000000001"), name="critical")
PRIORITY_HIGH = TicketPriority(id=UUID("22222222-0000-4000-8000-000000000002"), name="high")
PRIORITY_MEDIUM = TicketPriority(id=UUID("22222222-0000-4000-8000-000000000003"), name="medium", is_default=True)
PRIORITY_LOW = TicketPriority(id=UUID("22222222-0000-4000-8000-000000000004"), name="low")

DEFAULT_POLICY_ID = UUID("33333333-0000-4000-8000-000000000001")


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryConfigProvider(ITenantConfigProvider):
    def __init__(self, *configs: TenantConfiguration):
        self.configs = {config.tenant_id: config for config in configs}

    def get_config(self, tenant_id: UUID) -> TenantConfiguration:
        if tenant_id not in self.configs:
            raise ConfigurationException("No configuration for tenant", {"tenant_id": str(tenant_id)})
        return self.configs[tenant_id]

    def list_tenants(self) -> List[UUID]:
        return list(self.configs)


class InMemoryTicketRepository(ITicketRepository):
    """Applies patches the way the SQL repository does, recording each write."""

    def __init__(self, config_provider: ITenantConfigProvider):
        self._config_provider = config_provider
        self.tickets: Dict[UUID, Ticket] = {}
        self.notes: List[TicketNote] = []
        self.patches: List[Dict[str, Any]] = []
        self._counter = 0
        self.fail_updates = False
        self.page_requests: List[Optional[Tuple[datetime, UUID]]] = []

    def add(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = ticket
        return ticket

    async def get_ticket(self, tenant_id: UUID, ticket_id: UUID) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        if ticket is None or ticket.tenant_id != tenant_id:
            return None
        return ticket

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        return self.add(ticket)

    async def update_ticket_fields(self, tenant_id: UUID, ticket_id: UUID, patch: Dict[str, Any]) -> None:
        if self.fail_updates:
            raise RuntimeError("database unavailable")
        config = self._config_provider.get_config(tenant_id)
        changes: Dict[str, Any] = {}
        for name, value in patch.items():
            if name == "status_id":
                changes["status"] = config.get_status(value)
            elif name == "priority_id":
                changes["priority"] = config.get_priority(value)
            elif name == "sla_due_date":
                continue
            else:
                changes[name] = value
        self.tickets[ticket_id] = replace(self.tickets[ticket_id], **changes)
        self.patches.append(dict(patch))

    async def append_note(self, tenant_id: UUID, ticket_id: UUID, note: TicketNote) -> TicketNote:
        self.notes.append(note)
        return note

    async def list_open_tickets(
        self,
        tenant_id: UUID,
        limit: int = 500,
        after: Optional[Tuple[datetime, UUID]] = None
    ) -> List[Ticket]:
        self.page_requests.append(after)
        open_tickets = sorted(
            (t for t in self.tickets.values() if t.tenant_id == tenant_id and not t.is_closed),
            key=lambda t: (t.created_at, t.id),
        )
        if after is not None:
            open_tickets = [t for t in open_tickets if (t.created_at, t.id) > after]
        return open_tickets[:limit]

    async def next_ticket_number(self, tenant_id: UUID) -> str:
        self._counter += 1
        return f"T{self._counter:06d}"


class InMemoryRuleRepository(IRuleRepository):
    """Hands out copies so run statistics are only changed via record_rule_run."""

    def __init__(self):
        self.rules: List[AutomationRule] = []

    def add(self, rule: AutomationRule) -> AutomationRule:
        self.rules.append(rule)
        return rule

    def get(self, rule_id: UUID) -> AutomationRule:
        return next(r for r in self.rules if r.id == rule_id)

    async def list_active_rules(self, tenant_id: UUID, trigger: AutomationTrigger) -> List[AutomationRule]:
        return [
            copy.copy(r) for r in self.rules
            if r.tenant_id == tenant_id and r.trigger_type == trigger and r.is_active
        ]

    async def record_rule_run(self, rule_id: UUID, ran_at: datetime) -> None:
        self.get(rule_id).mark_run(ran_at)


class RecordingSideEffectSink(ISideEffectSink):
    def __init__(self):
        self.effects: List[SideEffectRequest] = []

    def enqueue(self, effect: SideEffectRequest) -> bool:
        self.effects.append(effect)
        return True


# ========== Fixtures ==========

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def default_policy() -> SlaPolicy:
    """60 minute response / 240 minute resolution for medium, scaled by priority."""
    return SlaPolicy(
        id=DEFAULT_POLICY_ID,
        tenant_id=TENANT_ID,
        name="Standard",
        is_default=True,
        base_first_response_minutes=60,
        base_resolution_minutes=240,
        targets=[
            SlaTarget(priority_id=PRIORITY_CRITICAL.id, first_response_hours=0.25, resolution_hours=1),
        ],
    )


@pytest.fixture
def tenant_config(default_policy) -> TenantConfiguration:
    return TenantConfiguration(
        tenant_id=TENANT_ID,
        statuses=[STATUS_NEW, STATUS_IN_PROGRESS, STATUS_CLOSED],
        priorities=[PRIORITY_CRITICAL, PRIORITY_HIGH, PRIORITY_MEDIUM, PRIORITY_LOW],
        default_queue_id=DEFAULT_QUEUE_ID,
        sla_policies=[default_policy],
    )


@pytest.fixture
def config_provider(tenant_config) -> InMemoryConfigProvider:
    return InMemoryConfigProvider(tenant_config)


@pytest.fixture
def ticket_repo(config_provider) -> InMemoryTicketRepository:
    return InMemoryTicketRepository(config_provider)


@pytest.fixture
def rule_repo() -> InMemoryRuleRepository:
    return InMemoryRuleRepository()


@pytest.fixture
def sink() -> RecordingSideEffectSink:
    return RecordingSideEffectSink()


@pytest.fixture
def engine(ticket_repo, rule_repo, config_provider, sink, clock) -> RuleEngine:
    return RuleEngine(ticket_repo, rule_repo, config_provider, sink, clock=clock, max_pass_depth=1)


@pytest.fixture
def ticket_service(ticket_repo, config_provider, engine, clock) -> TicketService:
    return TicketService(ticket_repo, config_provider, engine, clock=clock)


@pytest.fixture
def make_ticket(clock):
    """Factory for ticket snapshots created at the clock's current time."""

    def _make(**overrides) -> Ticket:
        fields = dict(
            id=uuid4(),
            tenant_id=TENANT_ID,
            ticket_number="T000001",
            title="Printer on fire",
            status=STATUS_NEW,
            priority=PRIORITY_MEDIUM,
            queue_id=DEFAULT_QUEUE_ID,
            company_id=COMPANY_ID,
            created_at=clock.now,
            updated_at=clock.now,
        )
        fields.update(overrides)
        return Ticket(**fields)

    return _make


@pytest.fixture
def make_rule(rule_repo):
    """Factory that builds a rule from raw payloads and registers it."""

    def _make(
        trigger: AutomationTrigger = AutomationTrigger.ON_CREATE,
        conditions: Any = None,
        actions: Any = None,
        priority: int = 100,
        name: str = "rule",
        is_active: bool = True,
    ) -> AutomationRule:
        rule = AutomationRule.from_payload(
            id=uuid4(),
            tenant_id=TENANT_ID,
            name=name,
            trigger_type=trigger.value,
            conditions=conditions or [],
            actions=actions or [],
            priority=priority,
            is_active=is_active,
        )
        return rule_repo.add(rule)

    return _make
