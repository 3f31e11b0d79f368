"""
Tests for the document, notification, scheduling and prompt tools

Tests cover:
- Documents: store, parse preview, emailed summary with and without connector
- Notifications: preference upsert, recipient fallback, missing body
- Scheduling primitives: entity ids closed over tenant and conversation
- system_prompt_update
"""

import json
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from tenantloop.connectors.automation import AutomationConnector, ConnectorResult
from tenantloop.scheduler.models import RecurringTrigger, TriggerPayload
from tenantloop.tools import build_default_registry
from tenantloop.tools.models import ToolContext

TENANT_A = "11111111-1111-1111-1111-111111111111"
DOC_ID = "44444444-4444-4444-4444-444444444444"


def _services(connector=None):
    services = MagicMock()
    services.connector = connector or AutomationConnector()
    services.notifications.get = AsyncMock(return_value=None)
    return services


def _surface(services, timezone_name=None, conversation_id="chat-1"):
    context = ToolContext(
        tenant_id=TENANT_A,
        conversation_id=conversation_id,
        principal_id="user-1",
        services=services,
        reply_target="https://gateway.example/reply",
        timezone=timezone_name,
    )
    return build_default_registry().bind(context)


def _result(outcome):
    return json.loads(outcome.content)["result"]


def _mail_connector(result=None):
    connector = MagicMock()
    connector.available = True
    connector.send_email = AsyncMock(return_value=result or ConnectorResult(True, "sent"))
    return connector


class TestDocuments:
    """Tests for docs_* tools"""

    @pytest.mark.asyncio
    async def test_store(self):
        services = _services()
        services.documents.store = AsyncMock(return_value={"id": DOC_ID})

        outcome = await _surface(services).invoke(
            "docs_store", {"doc_type": "invoice", "source_kind": "text", "source_value": "Total 30"},
        )

        assert _result(outcome)["document_id"] == DOC_ID
        services.documents.store.assert_awaited_once_with(
            TENANT_A, "chat-1", "invoice", "text", "Total 30",
        )

    @pytest.mark.asyncio
    async def test_parse_preview(self):
        services = _services()
        services.documents.get = AsyncMock(return_value={
            "id": DOC_ID, "doc_type": "contract", "source_kind": "text", "source_value": "x" * 250,
        })
        services.documents.set_parsed = AsyncMock()

        outcome = await _surface(services).invoke("docs_parse", {"document_id": DOC_ID})

        parsed = _result(outcome)["parsed"]
        assert parsed["content_preview"] == "x" * 200 + "..."
        assert parsed["fields"] == {"content_length": 250, "source_type": "text"}
        assert services.documents.set_parsed.call_args.args[:2] == (TENANT_A, DOC_ID)

    @pytest.mark.asyncio
    async def test_parse_missing(self):
        services = _services()
        services.documents.get = AsyncMock(return_value=None)

        outcome = await _surface(services).invoke("docs_parse", {"document_id": DOC_ID})

        assert outcome.error_type == "ToolExecutionError"

    @pytest.mark.asyncio
    async def test_parse_rejects_non_uuid(self):
        outcome = await _surface(_services()).invoke("docs_parse", {"document_id": "1; DROP"})
        assert outcome.error_type == "ValidationError"

    @pytest.mark.asyncio
    async def test_email_summary_without_connector(self):
        services = _services()
        services.documents.get = AsyncMock(return_value={
            "id": DOC_ID, "doc_type": "invoice", "source_kind": "url",
            "source_value": "https://files.example/inv.pdf", "parsed": None,
        })

        outcome = await _surface(services).invoke(
            "docs_email_summary", {"document_id": DOC_ID, "to": "a@example.com"},
        )

        result = _result(outcome)
        assert result["sent"] is False
        assert result["skipped"] == "automation connector not available"
        assert "Original URL: https://files.example/inv.pdf" in result["summary"]

    @pytest.mark.asyncio
    async def test_email_summary_uses_settings(self):
        connector = _mail_connector()
        services = _services(connector)
        services.documents.get = AsyncMock(return_value={
            "id": DOC_ID, "doc_type": "invoice", "source_kind": "text", "source_value": "Total 30",
            "parsed": {"summary": "This is a invoice document", "fields": {"content_length": 8}},
        })
        services.notifications.get = AsyncMock(return_value={"email": "owner@example.com"})

        outcome = await _surface(services).invoke("docs_email_summary", {"document_id": DOC_ID})

        assert _result(outcome)["sent"] is True
        to, subject = connector.send_email.call_args.args
        assert to == "owner@example.com"
        assert subject == "Document Summary: invoice"
        assert "Content: Total 30" in connector.send_email.call_args.kwargs["body"]

    @pytest.mark.asyncio
    async def test_email_summary_needs_recipient(self):
        services = _services()
        services.documents.get = AsyncMock(return_value={
            "id": DOC_ID, "doc_type": "invoice", "source_kind": "text", "source_value": "x",
        })

        outcome = await _surface(services).invoke("docs_email_summary", {"document_id": DOC_ID})

        assert outcome.error_type == "ToolExecutionError"


class TestNotifications:
    """Tests for notifications_* tools"""

    @pytest.mark.asyncio
    async def test_set_prefs(self):
        services = _services()
        services.notifications.upsert = AsyncMock(return_value={
            "email": "a@example.com",
            "email_enabled": True,
            "calendar_provider": "google",
            "default_reminder_minutes": 60,
        })

        outcome = await _surface(services).invoke(
            "notifications_set_email_prefs",
            {"email": "a@example.com", "calendar_provider": "google"},
        )

        assert _result(outcome)["calendar_provider"] == "google"
        assert services.notifications.upsert.call_args.args == (TENANT_A, "chat-1", "a@example.com")

    @pytest.mark.asyncio
    async def test_set_prefs_invalid_email(self):
        outcome = await _surface(_services()).invoke(
            "notifications_set_email_prefs", {"email": "not-an-address"},
        )
        assert outcome.error_type == "ValidationError"

    @pytest.mark.asyncio
    async def test_send_requires_body(self):
        outcome = await _surface(_services()).invoke(
            "notifications_send_email", {"subject": "Hi", "to": "a@example.com"},
        )
        assert outcome.error_type == "ToolExecutionError"

    @pytest.mark.asyncio
    async def test_send_disabled_settings(self):
        services = _services(_mail_connector())
        services.notifications.get = AsyncMock(
            return_value={"email": "a@example.com", "email_enabled": False},
        )

        outcome = await _surface(services).invoke(
            "notifications_send_email", {"subject": "Hi", "text": "Hello"},
        )

        assert outcome.error_type == "ToolExecutionError"
        services.connector.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_failure_reported(self):
        connector = _mail_connector(ConnectorResult(False, "mailbox full"))
        outcome = await _surface(_services(connector)).invoke(
            "notifications_send_email", {"subject": "Hi", "to": "a@example.com", "html": "<b>x</b>"},
        )

        assert json.loads(outcome.content)["error"]["message"] == "Failed to send email: mailbox full"


class TestSchedulingTools:
    """Tests for schedule / unschedule / schedules_list"""

    @pytest.mark.asyncio
    async def test_schedule_registers_under_bound_tenant(self):
        services = _services()
        services.scheduler.register = AsyncMock(return_value="trg_x")

        outcome = await _surface(services, "Europe/Berlin").invoke(
            "schedule",
            {"name": "weekly-report", "cron_expression": "0 8 * * 1", "instruction": "Summarise fees"},
        )

        assert _result(outcome) == {
            "name": "weekly-report",
            "job_name": "trg_x",
            "schedule": "0 8 * * 1",
            "timezone": "Europe/Berlin",
        }
        tenant, entity, expr, payload = services.scheduler.register.call_args.args
        assert (tenant, entity, expr) == (TENANT_A, "schedule:chat-1:weekly-report", "0 8 * * 1")
        assert payload.tenant_id == TENANT_A
        assert payload.instruction == "Summarise fees"

    @pytest.mark.asyncio
    async def test_schedule_name_pattern(self):
        outcome = await _surface(_services()).invoke(
            "schedule", {"name": "a b", "cron_expression": "* * * * *", "instruction": "x"},
        )
        assert outcome.error_type == "ValidationError"

    @pytest.mark.asyncio
    async def test_invalid_cron_is_observation(self):
        from tenantloop.errors import InvalidSchedule

        services = _services()
        services.scheduler.register = AsyncMock(side_effect=InvalidSchedule("Expected 5 cron fields"))

        outcome = await _surface(services).invoke(
            "schedule", {"name": "daily", "cron_expression": "daily", "instruction": "x"},
        )

        assert outcome.error_type == "InvalidSchedule"

    @pytest.mark.asyncio
    async def test_unschedule(self):
        services = _services()
        services.scheduler.cancel_for_entity = AsyncMock()

        await _surface(services).invoke("unschedule", {"name": "daily"})

        services.scheduler.cancel_for_entity.assert_awaited_once_with(TENANT_A, "schedule:chat-1:daily")

    @pytest.mark.asyncio
    async def test_list_filters_conversation(self):
        def trigger(conversation_id, name):
            return RecurringTrigger(
                id="1",
                tenant_id=TENANT_A,
                owning_entity_id=f"schedule:{conversation_id}:{name}",
                schedule_expr="0 8 * * 1",
                job_name=f"trg_{name}",
                payload=TriggerPayload(TENANT_A, conversation_id, "x"),
                created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            )

        services = _services()
        services.scheduler.list_for_tenant = AsyncMock(return_value=[
            trigger("chat-1", "mine"), trigger("chat-2", "other"),
        ])

        outcome = await _surface(services).invoke("schedules_list", {})

        assert [s["job_name"] for s in _result(outcome)["schedules"]] == ["trg_mine"]

    @pytest.mark.asyncio
    async def test_same_name_in_two_conversations(self):
        triggers = {}

        async def register(tenant_id, entity_id, expr, payload, **kwargs):
            triggers[(tenant_id, entity_id)] = RecurringTrigger(
                id=str(len(triggers)),
                tenant_id=tenant_id,
                owning_entity_id=entity_id,
                schedule_expr=expr,
                job_name=f"trg_{len(triggers)}",
                payload=payload,
                created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            )
            return triggers[(tenant_id, entity_id)].job_name

        async def cancel_for_entity(tenant_id, entity_id):
            triggers.pop((tenant_id, entity_id), None)

        async def list_for_tenant(tenant_id):
            return [t for (tenant, _), t in triggers.items() if tenant == tenant_id]

        services = _services()
        services.scheduler.register = AsyncMock(side_effect=register)
        services.scheduler.cancel_for_entity = AsyncMock(side_effect=cancel_for_entity)
        services.scheduler.list_for_tenant = AsyncMock(side_effect=list_for_tenant)
        args = {"name": "daily", "cron_expression": "0 9 * * *", "instruction": "x"}
        chat_1 = _surface(services, conversation_id="chat-1")
        chat_2 = _surface(services, conversation_id="chat-2")

        await chat_1.invoke("schedule", args)
        await chat_2.invoke("schedule", args)
        await chat_2.invoke("unschedule", {"name": "daily"})

        remaining = _result(await chat_1.invoke("schedules_list", {}))["schedules"]
        assert [s["owning_entity_id"] for s in remaining] == ["schedule:chat-1:daily"]
        assert _result(await chat_2.invoke("schedules_list", {}))["schedules"] == []


class TestSystemPromptUpdate:

    @pytest.mark.asyncio
    async def test_new_version(self):
        services = _services()
        services.prompts.set_active = AsyncMock(return_value=3)

        outcome = await _surface(services).invoke(
            "system_prompt_update", {"content": "Be brief.", "description": "shorter"},
        )

        assert _result(outcome) == {"version": 3}
        services.prompts.set_active.assert_awaited_once_with(
            TENANT_A, "chat-1", "Be brief.", description="shorter",
        )
