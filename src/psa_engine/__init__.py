"""
PSA Engine
==========

Ticket lifecycle, SLA and automation engine for a professional-services
automation platform.

Bounded contexts:
- tickets: Ticket aggregate and lifecycle state machine
- sla: SLA policies, due-date calculation and breach/warning classification
- automation: Tenant-defined trigger -> conditions -> actions rules
"""

__version__ = "1.0.0"
