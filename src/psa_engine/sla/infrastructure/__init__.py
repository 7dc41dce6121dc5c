"""
SLA Infrastructure Layer
=========================

Contains:
- External: SLAScheduler (APScheduler)
"""

from psa_engine.sla.infrastructure.external import SLAScheduler

__all__ = ["SLAScheduler"]
