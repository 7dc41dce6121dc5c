"""
Ticket Application DTOs
========================

Data Transfer Objects for the ticket create/update/note flows.

These Pydantic models validate what the surrounding service layer hands to
TicketService. Following YAGNI - only what's needed.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from psa_engine.config import NoteType, TicketSource


class TicketCreateDTO(BaseModel):
    """DTO for creating a ticket. Omitted priority/queue fall back to tenant defaults."""
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    company_id: UUID
    priority_id: Optional[UUID] = None
    queue_id: Optional[UUID] = None
    source: TicketSource = TicketSource.PORTAL
    contact_id: Optional[UUID] = None
    assigned_to_id: Optional[UUID] = None
    team_id: Optional[UUID] = None
    sla_id: Optional[UUID] = None
    is_billable: bool = True
    tags: List[str] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)


class TicketUpdateDTO(BaseModel):
    """
    DTO for updating a ticket.

    Only fields explicitly present are applied; passing description,
    assigned_to_id or team_id as null clears them.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status_id: Optional[UUID] = None
    priority_id: Optional[UUID] = None
    queue_id: Optional[UUID] = None
    assigned_to_id: Optional[UUID] = None
    team_id: Optional[UUID] = None
    sla_id: Optional[UUID] = None
    is_billable: Optional[bool] = None
    tags: Optional[List[str]] = None
    custom_fields: Optional[Dict[str, Any]] = None


class NoteCreateDTO(BaseModel):
    """DTO for adding a note."""
    note_type: NoteType = NoteType.INTERNAL
    content: str = Field(..., min_length=1)
