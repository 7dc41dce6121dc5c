"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (tickets, SLA,
automation).

DO NOT add ticket, SLA or automation business logic to the shared kernel.
"""
