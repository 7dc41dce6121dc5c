"""
Ticket Infrastructure Models
=============================

SQLAlchemy ORM models for the ticket module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from psa_engine.config import NoteType, TicketSource
from psa_engine.infrastructure.database import Base


class TicketModel(Base):
    """
    Database model for the Ticket aggregate.

    Status and priority are stored by id; the repository resolves them
    against the tenant configuration on load.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    ticket_number: Mapped[str] = mapped_column(String(20), nullable=False)

    # Content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Classification
    status_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    priority_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    queue_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    source: Mapped[TicketSource] = mapped_column(String(20), nullable=False, default=TicketSource.PORTAL)

    # Relationships
    company_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    contact_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    assigned_to_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    team_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    # SLA tracking
    sla_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    sla_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_response_due: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_due: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    # Billing and metadata
    is_billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    custom_fields: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Audit
    created_by_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("tenant_id", "ticket_number", name="uq_tickets_tenant_number"),
        Index("idx_tickets_sweep", "tenant_id", "created_at", "id"),
    )


class TicketNoteModel(Base):
    """
    Database model for ticket notes.

    Maps to the 'ticket_notes' table. created_by_id is NULL for notes
    written by automation.
    """
    __tablename__ = "ticket_notes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    note_type: Mapped[NoteType] = mapped_column(String(20), nullable=False, default=NoteType.INTERNAL)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_by_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class TicketSequenceModel(Base):
    """Per-tenant counter backing human-readable ticket numbers."""
    __tablename__ = "ticket_sequences"

    tenant_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
