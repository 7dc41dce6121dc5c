"""
SLA Domain Layer
================

Domain layer for SLA policies and classification.

Contains:
- Entities: SlaPolicy, SlaTarget, SlaDueDates, SlaReport
- Value Objects & Services: SLACalculator (pure due-date and status logic)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from psa_engine.sla.domain.entities import SlaDueDates, SlaPolicy, SlaReport, SlaTarget
from psa_engine.sla.domain.value_objects import DEFAULT_WARNING_THRESHOLD, SLACalculator

__all__ = [
    # Entities
    "SlaTarget",
    "SlaPolicy",
    "SlaDueDates",
    "SlaReport",
    # Value Objects & Services
    "SLACalculator",
    "DEFAULT_WARNING_THRESHOLD",
]
