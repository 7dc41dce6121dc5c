"""
SLA Module
==========

Bounded context for service level agreements.

Responsibilities:
- Calculate first-response and resolution due-dates from a tenant policy
- Classify tickets as on_track / warning / breached / met
- Sweep open tickets and raise SLA warning/breach automation triggers
"""
