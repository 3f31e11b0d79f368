"""
Tests for ToolRegistry and BoundToolSurface

Tests cover:
- Registration and schema listing
- invoke() never raises: every failure becomes an error payload
- Tools always receive the bound tenant
- Result size capping
"""

import asyncio
import json

import pytest
from typing import Annotated
from unittest.mock import MagicMock

from tenantloop.errors import CrossTenantViolation, ToolExecutionError
from tenantloop.tools import ToolRegistry, build_default_registry, tool
from tenantloop.tools.models import ToolContext
from tenantloop.tools.registry import cap_tool_result

TENANT_A = "11111111-1111-1111-1111-111111111111"


@tool
async def echo_tenant(word: Annotated[str, "Any word"], *, context: ToolContext):
    """Echo the bound tenant."""
    return {"tenant": context.tenant_id, "conversation": context.conversation_id, "word": word}


@tool
async def domain_failure(*, context: ToolContext):
    """Fails with a domain error."""
    raise ToolExecutionError("Fee 42 not found")


@tool
async def isolation_breach(*, context: ToolContext):
    """Fails with a cross-tenant error."""
    raise CrossTenantViolation("row owned by another tenant")


@tool
async def crashes(*, context: ToolContext):
    """Fails with a programming error."""
    return {}["missing"]


@tool
async def slow(*, context: ToolContext):
    """Never finishes in time."""
    await asyncio.sleep(5)


def _context():
    return ToolContext(
        tenant_id=TENANT_A,
        conversation_id="chat-1",
        principal_id="user-1",
        services=MagicMock(),
    )


def _surface(timeout=1.0):
    registry = ToolRegistry([echo_tenant, domain_failure, isolation_breach, crashes, slow])
    return registry.bind(_context(), timeout=timeout)


class TestRegistry:

    def test_duplicate_name_refused(self):
        registry = ToolRegistry([echo_tenant])
        with pytest.raises(ValueError):
            registry.register(echo_tenant)

    def test_schemas_in_registration_order(self):
        names = [s["function"]["name"] for s in _surface().schemas()]
        assert names == ["echo_tenant", "domain_failure", "isolation_breach", "crashes", "slow"]

    def test_default_registry_complete(self):
        assert set(build_default_registry().names) == {
            "execute_sql",
            "get_distinct_column_values",
            "fees_create",
            "fees_list_active",
            "fees_cancel",
            "docs_store",
            "docs_parse",
            "docs_email_summary",
            "notifications_set_email_prefs",
            "notifications_send_email",
            "calendar_create_event_for_fee",
            "calendar_cancel_event_for_fee",
            "schedule",
            "unschedule",
            "schedules_list",
            "system_prompt_update",
        }


class TestInvoke:
    """Tests for BoundToolSurface.invoke"""

    @pytest.mark.asyncio
    async def test_success_uses_bound_context(self):
        outcome = await _surface().invoke("echo_tenant", {"word": "hi"})
        assert outcome.ok
        payload = json.loads(outcome.content)
        assert payload == {
            "ok": True,
            "result": {"tenant": TENANT_A, "conversation": "chat-1", "word": "hi"},
        }

    @pytest.mark.asyncio
    async def test_json_string_arguments(self):
        outcome = await _surface().invoke("echo_tenant", '{"word": "hi"}')
        assert outcome.ok

    @pytest.mark.asyncio
    async def test_engine_supplied_tenant_refused(self):
        outcome = await _surface().invoke(
            "echo_tenant",
            {"word": "hi", "tenant_id": "22222222-2222-2222-2222-222222222222"},
        )
        assert not outcome.ok
        assert outcome.error_type == "ValidationError"

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        outcome = await _surface().invoke("drop_everything", {})
        assert not outcome.ok
        assert json.loads(outcome.content)["error"]["type"] == "UnknownTool"

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        outcome = await _surface().invoke("echo_tenant", "{not json")
        assert outcome.error_type == "ValidationError"

    @pytest.mark.asyncio
    async def test_domain_error_payload(self):
        outcome = await _surface().invoke("domain_failure", {})
        assert json.loads(outcome.content) == {
            "ok": False,
            "error": {"type": "ToolExecutionError", "message": "Fee 42 not found"},
        }

    @pytest.mark.asyncio
    async def test_cross_tenant_violation_payload(self):
        outcome = await _surface().invoke("isolation_breach", {})
        assert outcome.error_type == "CrossTenantViolation"

    @pytest.mark.asyncio
    async def test_unexpected_exception_contained(self):
        outcome = await _surface().invoke("crashes", {})
        assert outcome.error_type == "ToolExecutionError"
        assert "KeyError" in json.loads(outcome.content)["error"]["message"]

    @pytest.mark.asyncio
    async def test_timeout(self):
        outcome = await _surface(timeout=0.05).invoke("slow", {})
        assert outcome.error_type == "Timeout"


class TestCapToolResult:

    def test_short_passthrough(self):
        assert cap_tool_result("abc", limit=10) == "abc"

    def test_truncated(self):
        capped = cap_tool_result("x" * 50, limit=10)
        assert capped.startswith("x" * 10)
        assert capped.endswith("[truncated - result exceeded size limit]")
