"""
SLA Application Layer
=====================

Contains:
- DTOs: SLASweepResult, TicketEvaluationFailure
- Services: SLAEvaluationService
"""

from psa_engine.sla.application.dto import SLASweepResult, TicketEvaluationFailure
from psa_engine.sla.application.services import SLAEvaluationService

__all__ = [
    "SLASweepResult",
    "TicketEvaluationFailure",
    "SLAEvaluationService",
]
