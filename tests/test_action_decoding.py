"""
Test decoding of stored rule payloads into typed actions
"""
from datetime import datetime
from uuid import uuid4

import pytest

from psa_engine.automation.domain import (
    AddNoteAction,
    AssignToAction,
    AutomationRule,
    MalformedAction,
    SendNotificationAction,
    SetPriorityAction,
    SetStatusAction,
    UnknownAction,
    WebhookAction,
    decode_action,
    decode_actions,
)
from psa_engine.config import ActionType, AutomationTrigger, NoteType
from psa_engine.core import MalformedRuleException
from conftest import TENANT_ID


class TestKnownActions:

    @pytest.mark.parametrize("action_type", list(ActionType))
    def test_every_action_type_is_decoded(self, action_type):
        action = decode_action({"action_type": action_type.value, "params": {}})
        assert not isinstance(action, UnknownAction)
        assert action.action_type == action_type.value

    def test_set_status(self):
        status_id = uuid4()
        action = decode_action({"action_type": "set_status", "params": {"status_id": str(status_id)}})
        assert action == SetStatusAction(status_id=status_id)

    def test_set_priority(self):
        priority_id = uuid4()
        action = decode_action({"action_type": "set_priority", "params": {"priority_id": str(priority_id)}})
        assert isinstance(action, SetPriorityAction)
        assert action.priority_id == priority_id

    def test_assign_to(self):
        user_id = uuid4()
        action = decode_action({"action_type": "assign_to", "params": {"user_id": str(user_id)}})
        assert isinstance(action, AssignToAction)

    def test_add_note_defaults_to_internal(self):
        action = decode_action({"action_type": "add_note", "params": {"content": "Escalated"}})
        assert isinstance(action, AddNoteAction)
        assert action.note_type == NoteType.INTERNAL

    def test_send_notification_without_params(self):
        action = decode_action({"action_type": "send_notification"})
        assert isinstance(action, SendNotificationAction)
        assert action.template == "automation"

    def test_webhook_method_normalized(self):
        action = decode_action({
            "action_type": "webhook",
            "params": {"url": "https://hooks.example.com/t", "method": "put"},
        })
        assert isinstance(action, WebhookAction)
        assert action.method == "PUT"

    def test_extra_params_ignored(self):
        action = decode_action({
            "action_type": "set_status",
            "params": {"status_id": str(uuid4()), "reason": "legacy"},
        })
        assert isinstance(action, SetStatusAction)


class TestBrokenActions:

    def test_unknown_type(self):
        action = decode_action({"action_type": "send_sms", "params": {"to": "+100"}})
        assert action == UnknownAction(action_type="send_sms", params={"to": "+100"})

    @pytest.mark.parametrize("raw", [
        {"action_type": "set_status", "params": {"status_id": "not-a-uuid"}},
        {"action_type": "set_status", "params": {}},
        {"action_type": "add_note", "params": {"content": ""}},
        {"action_type": "webhook", "params": {"url": "ftp://example.com"}},
        {"action_type": "webhook", "params": {"url": "https://example.com", "method": "DELETE"}},
        {"action_type": "assign_to", "params": "user-1"},
        {"params": {"status_id": "x"}},
        "set_status",
    ])
    def test_malformed(self, raw):
        assert isinstance(decode_action(raw), MalformedAction)

    def test_list_keeps_position(self):
        actions = decode_actions([
            {"action_type": "assign_to", "params": {"user_id": "oops"}},
            {"action_type": "add_note", "params": {"content": "ok"}},
        ])
        assert isinstance(actions[0], MalformedAction)
        assert isinstance(actions[1], AddNoteAction)

    def test_non_list_payload(self):
        actions = decode_actions({"action_type": "add_note"})
        assert len(actions) == 1
        assert isinstance(actions[0], MalformedAction)


class TestRuleFromPayload:

    def test_decodes_once(self):
        rule = AutomationRule.from_payload(
            id=uuid4(),
            tenant_id=TENANT_ID,
            name="Escalate critical",
            trigger_type="on_create",
            conditions=[{"field": "priority", "operator": "equals", "value": "critical"}],
            actions=[{"action_type": "assign_to", "params": {"user_id": str(uuid4())}}],
        )
        assert rule.trigger_type == AutomationTrigger.ON_CREATE
        assert isinstance(rule.actions[0], AssignToAction)
        assert not rule.has_malformed_parts
        assert not rule.is_unconditional

    def test_flags_malformed_parts(self):
        rule = AutomationRule.from_payload(
            id=uuid4(),
            tenant_id=TENANT_ID,
            name="Broken",
            trigger_type="on_schedule",
            conditions=None,
            actions=[{"action_type": "teleport"}],
        )
        assert rule.trigger_type == AutomationTrigger.SCHEDULED
        assert rule.is_unconditional
        assert rule.has_malformed_parts

    def test_unknown_trigger(self):
        with pytest.raises(MalformedRuleException):
            AutomationRule.from_payload(
                id=uuid4(),
                tenant_id=TENANT_ID,
                name="Aging",
                trigger_type="on_aging",
                conditions=[],
                actions=[],
            )

    def test_mark_run(self):
        rule = AutomationRule(id=uuid4(), tenant_id=TENANT_ID, name="r", trigger_type=AutomationTrigger.ON_UPDATE)
        rule_time = datetime(2024, 1, 1)
        rule.mark_run(rule_time)
        assert rule.run_count == 1
        assert rule.last_run_at == rule_time
