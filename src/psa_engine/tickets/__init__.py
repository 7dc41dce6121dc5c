"""
Tickets Module
==============

Bounded context for the ticket aggregate and its lifecycle.

Responsibilities:
- Status/priority/assignment/queue transitions with timestamp invariants
- Ticket create/update/note flows that raise automation triggers
- Tenant ticketing configuration (statuses, priorities, queues, SLA policies)
"""
