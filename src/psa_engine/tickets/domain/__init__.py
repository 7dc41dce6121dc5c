"""
Ticket Domain Layer
===================

Contains:
- Entities: Ticket, TicketNote, TicketStatus, TicketPriority
- Value Objects: TenantConfiguration
- Domain Services: TicketStateMachine

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from psa_engine.tickets.domain.entities import (
    PATCHABLE_FIELDS,
    Ticket,
    TicketNote,
    TicketPriority,
    TicketStatus,
)
from psa_engine.tickets.domain.value_objects import TenantConfiguration
from psa_engine.tickets.domain.state_machine import TicketStateMachine, utc_now

__all__ = [
    # Entities
    "Ticket",
    "TicketNote",
    "TicketStatus",
    "TicketPriority",
    "PATCHABLE_FIELDS",
    # Value Objects
    "TenantConfiguration",
    # Domain Services
    "TicketStateMachine",
    "utc_now",
]
