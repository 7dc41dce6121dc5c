"""
Automation Module
=================

Bounded context for tenant-defined ticket automation.

Responsibilities:
- Decode stored rules into typed conditions and actions
- Evaluate conditions against the current ticket snapshot
- Execute matched rules' actions in priority order, one pass per trigger
- Hand notifications and webhooks to a non-blocking dispatcher
"""
