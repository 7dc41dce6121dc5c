"""
Automation Infrastructure Layer
================================

Contains:
- Models: AutomationRuleModel
- Repositories: SQLAlchemyRuleRepository
- External: NotificationClient, WebhookClient, SideEffectDispatcher
"""

from psa_engine.automation.infrastructure.external import (
    CircuitBreaker,
    NotificationClient,
    SideEffectDispatcher,
    WebhookClient,
)
from psa_engine.automation.infrastructure.repositories import SQLAlchemyRuleRepository

__all__ = [
    "SQLAlchemyRuleRepository",
    "CircuitBreaker",
    "NotificationClient",
    "WebhookClient",
    "SideEffectDispatcher",
]
