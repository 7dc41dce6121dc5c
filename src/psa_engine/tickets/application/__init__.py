"""
Ticket Application Layer
========================

Contains:
- DTOs: TicketCreateDTO, TicketUpdateDTO, NoteCreateDTO
- Interfaces: ITicketRepository, ITenantConfigProvider, IAutomationRunner
- Services: TicketService
"""

from psa_engine.tickets.application.dto import NoteCreateDTO, TicketCreateDTO, TicketUpdateDTO
from psa_engine.tickets.application.services import (
    IAutomationRunner,
    ITenantConfigProvider,
    ITicketRepository,
    TicketService,
)

__all__ = [
    "TicketCreateDTO",
    "TicketUpdateDTO",
    "NoteCreateDTO",
    "ITicketRepository",
    "ITenantConfigProvider",
    "IAutomationRunner",
    "TicketService",
]
