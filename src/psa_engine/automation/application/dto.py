"""
Automation Application DTOs
============================

Data Transfer Objects for automation passes and deferred side effects.
"""

from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from psa_engine.automation.domain import SendNotificationAction, WebhookAction
from psa_engine.config import AutomationTrigger


class SideEffectRequest(BaseModel):
    """
    An external call produced by a matched rule.

    Carries a snapshot of the ticket as the rule saw it, so the call can be
    made later, outside the mutation path.
    """
    kind: Literal["notification", "webhook"]
    tenant_id: UUID
    ticket_id: UUID
    rule_id: UUID
    rule_name: str
    trigger: AutomationTrigger
    action: Union[SendNotificationAction, WebhookAction]
    ticket_context: Dict[str, Any] = Field(default_factory=dict)
    requested_at: datetime

    def template_params(self) -> Dict[str, Any]:
        """Parameters handed to INotifier.notify."""
        params = {
            **self.ticket_context,
            "rule_name": self.rule_name,
            "trigger": self.trigger.value,
        }
        if isinstance(self.action, SendNotificationAction):
            params["template"] = self.action.template
            params["message"] = self.action.message
            params["recipients"] = list(self.action.recipients)
        return params

    def webhook_body(self) -> Dict[str, Any]:
        """JSON body for a webhook action: configured payload plus event envelope."""
        payload = dict(self.action.payload) if isinstance(self.action, WebhookAction) else {}
        payload.setdefault("event", self.trigger.value)
        payload.setdefault("rule_id", str(self.rule_id))
        payload.setdefault("ticket", self.ticket_context)
        return payload


class AutomationPassResult(BaseModel):
    """Outcome of one RuleEngine.process call."""
    trigger: AutomationTrigger
    tenant_id: UUID
    ticket_id: UUID
    suppressed: bool = False
    rules_evaluated: int = 0
    rules_matched: int = 0
    actions_executed: int = 0
    actions_skipped: int = 0
    mutations_persisted: int = 0
    side_effects_queued: int = 0
    error: Optional[str] = None
