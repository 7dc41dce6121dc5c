"""
Ticket Domain Entities
=======================

Pure Python domain entities for the ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Set
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from psa_engine.config import NoteType, TicketSource


class TicketStatus(BaseModel):
    """Tenant-configured status. Statuses form an open set, each flagged closed or open."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    is_closed: bool = False
    is_default: bool = False
    sort_order: int = 0


class TicketPriority(BaseModel):
    """Tenant-configured priority."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    sla_multiplier: Optional[float] = Field(default=None, gt=0)
    is_default: bool = False
    sort_order: int = 0


# Persisted column for every field a patch may carry
PATCHABLE_FIELDS = (
    "status_id", "priority_id", "queue_id", "team_id", "assigned_to_id",
    "sla_id", "first_response_due", "resolution_due", "sla_due_date",
    "first_response_at", "resolved_at", "closed_at",
    "is_billable", "tags", "custom_fields", "title", "description",
    "updated_at",
)


@dataclass
class Ticket:
    """
    Ticket aggregate.

    Mutated only through TicketStateMachine, which returns new snapshots.
    first_response_at, resolved_at and closed_at are set at most once and
    never cleared.
    """

    # Identity
    id: UUID
    tenant_id: UUID
    ticket_number: str
    title: str

    # Lifecycle
    status: TicketStatus
    priority: TicketPriority
    queue_id: UUID
    company_id: UUID

    # Timestamps
    created_at: datetime
    updated_at: datetime

    source: TicketSource = TicketSource.PORTAL
    description: Optional[str] = None
    contact_id: Optional[UUID] = None
    assigned_to_id: Optional[UUID] = None
    team_id: Optional[UUID] = None

    # SLA linkage
    sla_id: Optional[UUID] = None
    first_response_due: Optional[datetime] = None
    resolution_due: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    is_billable: bool = True
    tags: Set[str] = field(default_factory=set)
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    created_by_id: Optional[UUID] = None

    def __post_init__(self):
        """Validate timestamp ordering."""
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

        if self.first_response_at and self.first_response_at < self.created_at:
            raise ValueError("first_response_at cannot be before created_at")

        if self.resolved_at and self.resolved_at < self.created_at:
            raise ValueError("resolved_at cannot be before created_at")

        if self.resolved_at and self.closed_at and self.resolved_at > self.closed_at:
            raise ValueError("resolved_at cannot be after closed_at")

    @property
    def status_id(self) -> UUID:
        return self.status.id

    @property
    def priority_id(self) -> UUID:
        return self.priority.id

    @property
    def sla_due_date(self) -> Optional[datetime]:
        """Resolution due-date under its legacy column name."""
        return self.resolution_due

    @property
    def is_closed(self) -> bool:
        return self.status.is_closed

    def persisted_values(self) -> Dict[str, Any]:
        """Column values for every patchable field."""
        return {name: getattr(self, name) for name in PATCHABLE_FIELDS}

    def diff(self, updated: "Ticket") -> Dict[str, Any]:
        """
        Field-level patch turning this snapshot into ``updated``.

        An empty dict means nothing changed and no write is needed.
        """
        before = self.persisted_values()
        after = updated.persisted_values()
        return {name: value for name, value in after.items() if before[name] != value}


@dataclass
class TicketNote:
    """A note on a ticket. created_by_id None marks a system-authored note."""

    ticket_id: UUID
    tenant_id: UUID
    note_type: NoteType
    content: str
    created_at: datetime
    created_by_id: Optional[UUID] = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_system(self) -> bool:
        return self.created_by_id is None
