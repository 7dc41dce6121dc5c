"""
Ticket Value Objects
=====================

Per-tenant ticketing configuration.

The configuration is passed explicitly into every core operation; there is
no process-wide default tenant.
"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from psa_engine.core import ConfigurationException
from psa_engine.sla.domain.entities import SlaPolicy
from psa_engine.tickets.domain.entities import TicketPriority, TicketStatus


class TenantConfiguration(BaseModel):
    """
    Statuses, priorities, default queue and SLA policies of one tenant.

    This is a value object - replaced wholesale on reload, never mutated.
    """
    tenant_id: UUID
    statuses: List[TicketStatus] = Field(default_factory=list)
    priorities: List[TicketPriority] = Field(default_factory=list)
    default_queue_id: Optional[UUID] = None
    sla_policies: List[SlaPolicy] = Field(default_factory=list)

    @field_validator("sla_policies")
    @classmethod
    def validate_single_default_policy(cls, v: List[SlaPolicy]) -> List[SlaPolicy]:
        """At most one policy per tenant may be the default."""
        defaults = [p.name for p in v if p.is_default]
        if len(defaults) > 1:
            raise ValueError(f"only one default SLA policy allowed, found {defaults}")
        return v

    @field_validator("statuses", "priorities")
    @classmethod
    def validate_single_default(cls, v):
        defaults = [item.name for item in v if item.is_default]
        if len(defaults) > 1:
            raise ValueError(f"only one default allowed, found {defaults}")
        return v

    @field_validator("statuses")
    @classmethod
    def validate_default_status_open(cls, v: List[TicketStatus]) -> List[TicketStatus]:
        """New tickets start in the default status, so it cannot be a closed one."""
        closed = [s.name for s in v if s.is_default and s.is_closed]
        if closed:
            raise ValueError(f"default status must not be closed, found {closed}")
        return v

    # ---------- lookups ----------

    def get_status(self, status_id: UUID) -> Optional[TicketStatus]:
        return next((s for s in self.statuses if s.id == status_id), None)

    def get_priority(self, priority_id: UUID) -> Optional[TicketPriority]:
        return next((p for p in self.priorities if p.id == priority_id), None)

    def get_sla_policy(self, policy_id: Optional[UUID] = None) -> Optional[SlaPolicy]:
        """
        Resolve a policy by id, or the tenant default when no id is given.

        Returns None when the tenant has no applicable policy; SLA is then
        simply not tracked for the ticket.
        """
        if policy_id is not None:
            return next((p for p in self.sla_policies if p.id == policy_id), None)
        return next((p for p in self.sla_policies if p.is_default), None)

    # ---------- defaults required by ticket creation ----------

    @property
    def default_status(self) -> TicketStatus:
        status = next((s for s in self.statuses if s.is_default), None)
        if status is None:
            raise ConfigurationException(
                "No default ticket status configured",
                {"tenant_id": str(self.tenant_id)}
            )
        return status

    @property
    def default_priority(self) -> TicketPriority:
        priority = next((p for p in self.priorities if p.is_default), None)
        if priority is None:
            raise ConfigurationException(
                "No default priority configured",
                {"tenant_id": str(self.tenant_id)}
            )
        return priority

    @property
    def default_queue(self) -> UUID:
        if self.default_queue_id is None:
            raise ConfigurationException(
                "No default queue configured",
                {"tenant_id": str(self.tenant_id)}
            )
        return self.default_queue_id
