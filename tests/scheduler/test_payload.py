"""Tests for TriggerPayload reading current and legacy shapes."""

import pytest

from tenantloop.scheduler.models import PAYLOAD_VERSION, RecurringTrigger, TriggerPayload

TENANT_A = "11111111-1111-1111-1111-111111111111"


class TestTriggerPayload:

    def test_current_shape(self):
        payload = TriggerPayload(
            tenant_id=TENANT_A,
            conversation_id="chat-1",
            instruction="Send a fee reminder",
            owning_entity_id="fee:1",
            reply_target="https://gateway.example/reply",
            metadata={"feeId": "1"},
        )
        stored = payload.to_dict()
        assert stored["version"] == PAYLOAD_VERSION
        assert stored["tenantId"] == TENANT_A
        assert "timezone" not in stored
        assert TriggerPayload.from_dict(stored) == payload

    def test_legacy_shape(self):
        legacy = {
            "userPrompt": "Send a fee reminder for fee_id=9 and chat_id=chat-7",
            "id": "chat-7",
            "userId": "user-7",
            "tenantId": TENANT_A,
            "callbackUrl": "https://gateway.example/cb",
            "metadata": {"feeId": "9", "chatId": "chat-7"},
        }
        payload = TriggerPayload.from_dict(legacy)
        assert payload.version == 1
        assert payload.conversation_id == "chat-7"
        assert payload.instruction.startswith("Send a fee reminder")
        assert payload.reply_target == "https://gateway.example/cb"
        assert payload.owning_entity_id == "9"

    def test_missing_tenant_refused(self):
        with pytest.raises(ValueError):
            TriggerPayload.from_dict({"conversationId": "chat-1", "instruction": "x"})

    def test_missing_conversation_refused(self):
        with pytest.raises(ValueError):
            TriggerPayload.from_dict({"tenantId": TENANT_A, "instruction": "x"})


class TestRecurringTrigger:

    def test_from_row(self):
        row = {
            "id": 5,
            "tenant_id": TENANT_A,
            "owning_entity_id": "fee:1",
            "schedule_expr": "0 9 5 * *",
            "job_name": "trg_x",
            "payload": {"tenantId": TENANT_A, "conversationId": "chat-1", "instruction": "go"},
            "timezone": "UTC",
        }
        trigger = RecurringTrigger.from_row(row)
        assert trigger.id == "5"
        assert trigger.payload.instruction == "go"
        assert trigger.to_dict()["schedule"] == "0 9 5 * *"
