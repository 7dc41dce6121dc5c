"""
Automation Domain Entities
===========================

Tenant-defined automation rules: trigger -> conditions -> actions.

Rules are stored with untyped JSON condition/action payloads. They are
decoded once, when a rule is loaded, into closed typed variants:
- each action kind has its own pydantic model with typed parameters
- unknown action kinds decode to UnknownAction
- parameters that fail validation decode to MalformedAction
- condition entries that are not {field, operator, value} objects decode
  to MalformedCondition

Unknown and malformed variants are kept (not dropped) so the engine can log
them at execution time and tests can assert on them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from psa_engine.config import ActionType, AutomationTrigger, NoteType
from psa_engine.core import MalformedRuleException


# ========== Conditions ==========

class AutomationCondition(BaseModel):
    """
    One condition: ``field`` ``operator`` ``value``.

    Field and operator are kept as free strings; the evaluator rejects
    anything outside its allow-lists at evaluation time.
    """
    model_config = ConfigDict(frozen=True)

    field: str
    operator: str
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def normalize_value(cls, v: Any) -> str:
        """Compare everything as strings: booleans as true/false, null as empty."""
        if v is None:
            return ""
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (str, int, float)):
            return str(v)
        if isinstance(v, UUID):
            return str(v)
        raise ValueError(f"unsupported condition value type: {type(v).__name__}")


@dataclass(frozen=True)
class MalformedCondition:
    """A condition payload that could not be decoded. Never matches."""
    raw: Any
    error: str


Condition = Union[AutomationCondition, MalformedCondition]


def decode_condition(raw: Any) -> Condition:
    """Decode one raw condition entry."""
    if not isinstance(raw, dict):
        return MalformedCondition(raw=raw, error="condition must be an object")
    try:
        return AutomationCondition.model_validate(raw)
    except ValidationError as e:
        return MalformedCondition(raw=raw, error=str(e))


def decode_conditions(raw: Any) -> List[Condition]:
    """Decode a rule's condition list. None/empty means unconditional."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        return [MalformedCondition(raw=raw, error="conditions must be a list")]
    return [decode_condition(item) for item in raw]


# ========== Actions ==========

class _ActionParams(BaseModel):
    """Base for typed action parameters."""
    model_config = ConfigDict(frozen=True, extra="ignore")


class SetStatusAction(_ActionParams):
    action_type: Literal["set_status"] = "set_status"
    status_id: UUID


class SetPriorityAction(_ActionParams):
    action_type: Literal["set_priority"] = "set_priority"
    priority_id: UUID


class AssignToAction(_ActionParams):
    action_type: Literal["assign_to"] = "assign_to"
    user_id: UUID


class SetQueueAction(_ActionParams):
    action_type: Literal["set_queue"] = "set_queue"
    queue_id: UUID


class AddNoteAction(_ActionParams):
    action_type: Literal["add_note"] = "add_note"
    content: str = Field(min_length=1)
    note_type: NoteType = NoteType.INTERNAL


class SendNotificationAction(_ActionParams):
    action_type: Literal["send_notification"] = "send_notification"
    template: str = "automation"
    message: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)


class WebhookAction(_ActionParams):
    action_type: Literal["webhook"] = "webhook"
    url: str = Field(pattern=r"^https?://")
    method: Literal["POST", "PUT", "PATCH"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


@dataclass(frozen=True)
class UnknownAction:
    """An action kind this engine does not implement. Executes as a no-op."""
    action_type: str
    params: Dict[str, Any]


@dataclass(frozen=True)
class MalformedAction:
    """A known action kind whose parameters failed validation. Executes as a no-op."""
    action_type: str
    params: Any
    error: str


AutomationAction = Union[
    SetStatusAction,
    SetPriorityAction,
    AssignToAction,
    SetQueueAction,
    AddNoteAction,
    SendNotificationAction,
    WebhookAction,
    UnknownAction,
    MalformedAction,
]

# Fire-and-forget calls routed through the side-effect dispatcher
SIDE_EFFECT_ACTIONS = (SendNotificationAction, WebhookAction)

_ACTION_MODELS = {
    ActionType.SET_STATUS.value: SetStatusAction,
    ActionType.SET_PRIORITY.value: SetPriorityAction,
    ActionType.ASSIGN_TO.value: AssignToAction,
    ActionType.SET_QUEUE.value: SetQueueAction,
    ActionType.ADD_NOTE.value: AddNoteAction,
    ActionType.SEND_NOTIFICATION.value: SendNotificationAction,
    ActionType.WEBHOOK.value: WebhookAction,
}


def decode_action(raw: Any) -> AutomationAction:
    """
    Decode one raw action ``{"action_type": ..., "params": {...}}``.

    Never raises: anything that cannot be interpreted becomes UnknownAction
    or MalformedAction.
    """
    if not isinstance(raw, dict):
        return MalformedAction(action_type="", params=raw, error="action must be an object")

    action_type = raw.get("action_type")
    params = raw.get("params")
    if params is None:
        params = {}

    if not isinstance(action_type, str):
        return MalformedAction(action_type=str(action_type), params=params, error="missing action_type")

    model = _ACTION_MODELS.get(action_type)
    if model is None:
        return UnknownAction(action_type=action_type, params=params if isinstance(params, dict) else {})

    if not isinstance(params, dict):
        return MalformedAction(action_type=action_type, params=params, error="params must be an object")

    try:
        return model.model_validate({k: v for k, v in params.items() if k != "action_type"})
    except ValidationError as e:
        return MalformedAction(action_type=action_type, params=params, error=str(e))


def decode_actions(raw: Any) -> List[AutomationAction]:
    """Decode a rule's action list."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        return [MalformedAction(action_type="", params=raw, error="actions must be a list")]
    return [decode_action(item) for item in raw]


# ========== Rule ==========

@dataclass
class AutomationRule:
    """
    Tenant automation rule.

    Within a trigger type rules run by ascending ``priority``; ties keep the
    order the repository returned them in (insertion order).
    """

    id: UUID
    tenant_id: UUID
    name: str
    trigger_type: AutomationTrigger
    priority: int = 0
    is_active: bool = True
    conditions: List[Condition] = field(default_factory=list)
    actions: List[AutomationAction] = field(default_factory=list)
    description: Optional[str] = None
    last_run_at: Optional[datetime] = None
    run_count: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_payload(
        cls,
        *,
        id: UUID,
        tenant_id: UUID,
        name: str,
        trigger_type: str,
        conditions: Any,
        actions: Any,
        priority: int = 0,
        is_active: bool = True,
        description: Optional[str] = None,
        last_run_at: Optional[datetime] = None,
        run_count: int = 0,
        created_at: Optional[datetime] = None,
    ) -> "AutomationRule":
        """
        Build a rule from stored JSON payloads, decoding them once.

        Raises:
            MalformedRuleException: trigger_type is not a known trigger
        """
        try:
            trigger = AutomationTrigger(trigger_type)
        except ValueError as e:
            raise MalformedRuleException(
                str(id),
                f"Unknown trigger type: {trigger_type!r}",
                {"rule_id": str(id), "tenant_id": str(tenant_id)}
            ) from e

        return cls(
            id=id,
            tenant_id=tenant_id,
            name=name,
            trigger_type=trigger,
            priority=priority,
            is_active=is_active,
            conditions=decode_conditions(conditions),
            actions=decode_actions(actions),
            description=description,
            last_run_at=last_run_at,
            run_count=run_count,
            created_at=created_at,
        )

    @property
    def is_unconditional(self) -> bool:
        return not self.conditions

    @property
    def has_malformed_parts(self) -> bool:
        return any(isinstance(c, MalformedCondition) for c in self.conditions) or any(
            isinstance(a, (MalformedAction, UnknownAction)) for a in self.actions
        )

    def mark_run(self, timestamp: datetime) -> None:
        """Mirror of the stored run statistics update."""
        self.run_count += 1
        self.last_run_at = timestamp
