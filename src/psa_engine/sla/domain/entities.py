"""
SLA Domain Entities
====================

SLA policies and their per-priority targets, plus the derived SLA report.

Policies are tenant configuration: they are loaded and validated once
(pydantic) and consumed read-only by the calculator and state machine.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from psa_engine.config import SLAStatus


class SlaTarget(BaseModel):
    """
    Time allowance for one priority within a policy.

    Accepts either minute-based or hour-based values; hours are converted to
    whole minutes on load.
    """
    priority_id: UUID
    first_response_minutes: Optional[int] = Field(default=None, ge=0)
    resolution_minutes: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def convert_hours(cls, data):
        """Map first_response_hours/resolution_hours onto minute fields."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for prefix in ("first_response", "resolution"):
            hours = data.pop(f"{prefix}_hours", None)
            if hours is not None and data.get(f"{prefix}_minutes") is None:
                data[f"{prefix}_minutes"] = int(float(hours) * 60)
        return data


class SlaPolicy(BaseModel):
    """
    Tenant-scoped SLA policy.

    Effective resolution window = target minutes for the ticket's priority,
    or, when the policy has no target for that priority, base minutes x
    priority multiplier.
    """
    id: UUID
    tenant_id: Optional[UUID] = None
    name: str
    is_default: bool = False
    business_hours_only: bool = Field(
        default=False,
        description="Declared only; due-dates are computed in calendar time"
    )
    targets: List[SlaTarget] = Field(default_factory=list)
    base_first_response_minutes: Optional[int] = Field(default=None, ge=0)
    base_resolution_minutes: Optional[int] = Field(default=None, ge=0)

    def target_for(self, priority_id: UUID) -> Optional[SlaTarget]:
        """Return the explicit target for a priority, if any."""
        for target in self.targets:
            if target.priority_id == priority_id:
                return target
        return None

    @property
    def has_base_targets(self) -> bool:
        return self.base_first_response_minutes is not None or self.base_resolution_minutes is not None


@dataclass(frozen=True)
class SlaDueDates:
    """Contractual due-dates computed for a ticket."""
    first_response_due: Optional[datetime]
    resolution_due: Optional[datetime]


@dataclass(frozen=True)
class SlaReport:
    """
    Derived SLA view of a ticket at a point in time.

    Computed on read; never persisted.
    """
    ticket_id: UUID
    evaluated_at: datetime
    first_response_due: Optional[datetime]
    resolution_due: Optional[datetime]
    response_status: SLAStatus
    resolution_status: SLAStatus

    @property
    def overall_status(self) -> SLAStatus:
        """Most urgent of the two clocks."""
        statuses = (self.response_status, self.resolution_status)
        for candidate in (SLAStatus.BREACHED, SLAStatus.WARNING, SLAStatus.ON_TRACK):
            if candidate in statuses:
                return candidate
        if SLAStatus.MET in statuses:
            return SLAStatus.MET
        return SLAStatus.NONE

    @property
    def is_any_breached(self) -> bool:
        return SLAStatus.BREACHED in (self.response_status, self.resolution_status)

    def to_dict(self) -> dict:
        """Convert to dictionary for notifications and logs."""
        return {
            "ticket_id": str(self.ticket_id),
            "evaluated_at": self.evaluated_at.isoformat(),
            "response": {
                "due": self.first_response_due.isoformat() if self.first_response_due else None,
                "status": self.response_status.value,
            },
            "resolution": {
                "due": self.resolution_due.isoformat() if self.resolution_due else None,
                "status": self.resolution_status.value,
            },
            "overall": self.overall_status.value,
        }
