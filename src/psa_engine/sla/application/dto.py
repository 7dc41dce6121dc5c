"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA evaluation sweeps.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class TicketEvaluationFailure(BaseModel):
    """A ticket whose sweep passes raised."""
    ticket_id: UUID
    error: str


class SLASweepResult(BaseModel):
    """Summary of one tenant (or all-tenant) SLA sweep."""
    tenant_id: Optional[UUID] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    tickets_evaluated: int = 0
    warnings: int = 0
    breaches: int = 0
    passes_run: int = 0
    failures: List[TicketEvaluationFailure] = Field(default_factory=list)

    def merge(self, other: "SLASweepResult") -> None:
        """Fold a per-tenant result into an aggregate."""
        self.tickets_evaluated += other.tickets_evaluated
        self.warnings += other.warnings
        self.breaches += other.breaches
        self.passes_run += other.passes_run
        self.failures.extend(other.failures)
