"""
Automation Application Layer
============================

Contains:
- DTOs: SideEffectRequest, AutomationPassResult
- Interfaces: IRuleRepository, ISideEffectSink, INotifier, IWebhookInvoker
- Services: RuleEngine
"""

from psa_engine.automation.application.dto import AutomationPassResult, SideEffectRequest
from psa_engine.automation.application.services import (
    INotifier,
    IRuleRepository,
    ISideEffectSink,
    IWebhookInvoker,
    RuleEngine,
)

__all__ = [
    "SideEffectRequest",
    "AutomationPassResult",
    "IRuleRepository",
    "ISideEffectSink",
    "INotifier",
    "IWebhookInvoker",
    "RuleEngine",
]
