"""
Ticket Infrastructure Layer
============================

Contains:
- Models: TicketModel, TicketNoteModel, TicketSequenceModel
- Repositories: SQLAlchemyTicketRepository
- External: TenantConfigManager (YAML + watchdog)
"""

from psa_engine.tickets.infrastructure.external import TenantConfigManager, parse_tenant_configs
from psa_engine.tickets.infrastructure.repositories import SQLAlchemyTicketRepository

__all__ = [
    "SQLAlchemyTicketRepository",
    "TenantConfigManager",
    "parse_tenant_configs",
]
