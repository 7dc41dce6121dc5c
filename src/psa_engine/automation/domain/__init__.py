"""
Automation Domain Layer
=======================

Contains:
- Entities: AutomationRule, AutomationCondition and the typed action variants
- Decoding: raw JSON rule payloads -> typed conditions/actions
- Domain Services: ConditionEvaluator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from psa_engine.automation.domain.entities import (
    AddNoteAction,
    AssignToAction,
    AutomationAction,
    AutomationCondition,
    AutomationRule,
    Condition,
    MalformedAction,
    MalformedCondition,
    SendNotificationAction,
    SetPriorityAction,
    SetQueueAction,
    SetStatusAction,
    SIDE_EFFECT_ACTIONS,
    UnknownAction,
    WebhookAction,
    decode_action,
    decode_actions,
    decode_condition,
    decode_conditions,
)
from psa_engine.automation.domain.conditions import ConditionEvaluator, FIELD_RESOLVERS, OPERATORS

__all__ = [
    # Entities
    "AutomationRule",
    "AutomationCondition",
    "MalformedCondition",
    "Condition",
    "AutomationAction",
    "SetStatusAction",
    "SetPriorityAction",
    "AssignToAction",
    "SetQueueAction",
    "AddNoteAction",
    "SendNotificationAction",
    "WebhookAction",
    "UnknownAction",
    "MalformedAction",
    "SIDE_EFFECT_ACTIONS",
    # Decoding
    "decode_action",
    "decode_actions",
    "decode_condition",
    "decode_conditions",
    # Domain Services
    "ConditionEvaluator",
    "FIELD_RESOLVERS",
    "OPERATORS",
]
