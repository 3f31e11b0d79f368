"""
Tests for the orchestration loop

Tests cover:
- Resolution failure drops the request silently
- Tool calls run against the resolved tenant, results feed the next step
- Step ceiling bounds generation calls
- Persistence failure still delivers
- Unhandled errors deliver the fixed apology
- Scheduled tasks are presented with a prefix
"""

import json
from datetime import datetime, timezone

import pytest
from typing import Annotated
from unittest.mock import AsyncMock, MagicMock

from tenantloop.constants import APOLOGY_REPLY, STEP_LIMIT_REPLY
from tenantloop.llm.base import LLMResponse, ToolCall
from tenantloop.memory.assembler import ConversationContext
from tenantloop.models import InboundRequest, MessageRole, StoredMessage
from tenantloop.orchestrator import Orchestrator, ReactLoopConfig
from tenantloop.orchestrator.prompts import build_system_prompt, render_relevant_context
from tenantloop.tenancy.resolver import TenantResolver
from tenantloop.tools import ToolRegistry, tool
from tenantloop.tools.models import ToolContext

TENANT_A = "11111111-1111-1111-1111-111111111111"


@tool
async def whoami(*, context: ToolContext):
    """Report the bound tenant."""
    return {"tenant": context.tenant_id}


@tool
async def note(text: Annotated[str, "Note text"], *, context: ToolContext):
    """Store a note."""
    return {"stored": text}


def _request(**kwargs):
    kwargs.setdefault("text", "What tenant am I?")
    kwargs.setdefault("external_chat_id", "chat-1")
    kwargs.setdefault("external_user_id", "user-1")
    kwargs.setdefault("tenant_context", TENANT_A)
    kwargs.setdefault("reply_target", "https://gateway.example/reply")
    kwargs.setdefault("metadata", {"messageId": "m-1"})
    return InboundRequest(**kwargs)


def _stored(content, role=MessageRole.USER, minutes=0):
    return StoredMessage(
        id=f"id-{content}",
        tenant_id=TENANT_A,
        conversation_id="chat-1",
        author_principal_id="user-1",
        role=role,
        content=content,
        created_at=datetime(2026, 1, 1, 0, minutes, tzinfo=timezone.utc),
    )


def _make_orchestrator(responses, context=None, max_turns=4):
    memory = MagicMock()
    memory.assemble = AsyncMock(return_value=context or ConversationContext())
    memory.embed = AsyncMock(return_value=None)

    conversations = MagicMock()
    conversations.ensure = AsyncMock()
    messages = MagicMock()
    messages.append = AsyncMock(return_value=["1", "2"])
    prompts = MagicMock()
    prompts.get_active = AsyncMock(return_value=None)

    llm = MagicMock()
    llm.chat_completion = AsyncMock(side_effect=responses)
    delivery = MagicMock()
    delivery.send = AsyncMock(return_value=True)

    orchestrator = Orchestrator(
        resolver=TenantResolver(),
        memory=memory,
        conversations=conversations,
        messages=messages,
        prompts=prompts,
        tools=ToolRegistry([whoami, note]),
        tool_services=MagicMock(),
        llm_client=llm,
        delivery=delivery,
        config=ReactLoopConfig(max_turns=max_turns),
    )
    return orchestrator, llm, messages, delivery


class TestResolution:

    @pytest.mark.asyncio
    async def test_unresolvable_request_is_dropped(self):
        orchestrator, llm, messages, delivery = _make_orchestrator([])

        result = await orchestrator.handle_inbound(_request(tenant_context=None))

        assert result is None
        llm.chat_completion.assert_not_called()
        messages.append.assert_not_called()
        delivery.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_tenant_is_dropped(self):
        orchestrator, llm, _, delivery = _make_orchestrator([])

        assert await orchestrator.handle_inbound(_request(tenant_context="acme")) is None
        delivery.send.assert_not_called()


class TestLoop:
    """Tests for the generate / tool-call cycle"""

    @pytest.mark.asyncio
    async def test_plain_reply(self):
        orchestrator, llm, messages, delivery = _make_orchestrator([
            LLMResponse(content="Hello!"),
        ])

        result = await orchestrator.handle_inbound(_request())

        assert result.response == "Hello!"
        assert result.turns == 1
        assert result.persisted and result.delivered
        reply, target = delivery.send.call_args.args
        assert target == "https://gateway.example/reply"
        assert reply.rendered_reply == "Hello!"
        assert reply.recipient["tenantId"] == TENANT_A
        assert reply.correlation == {"messageId": "m-1"}

    @pytest.mark.asyncio
    async def test_tool_result_fed_back(self):
        orchestrator, llm, _, _ = _make_orchestrator([
            LLMResponse(content="", tool_calls=[ToolCall(id="c1", name="whoami", arguments={})]),
            LLMResponse(content="You are tenant A."),
        ])

        result = await orchestrator.handle_inbound(_request())

        assert result.response == "You are tenant A."
        assert [c.name for c in result.tool_calls] == ["whoami"]
        second_call_messages = llm.chat_completion.call_args_list[1].kwargs["messages"]
        tool_message = second_call_messages[-1]
        assert tool_message["role"] == "tool"
        assert tool_message["tool_call_id"] == "c1"
        assert json.loads(tool_message["content"])["result"] == {"tenant": TENANT_A}
        assert second_call_messages[-2]["tool_calls"][0]["function"]["name"] == "whoami"

    @pytest.mark.asyncio
    async def test_tool_error_is_observation(self):
        orchestrator, llm, _, _ = _make_orchestrator([
            LLMResponse(content="", tool_calls=[ToolCall(id="c1", name="note", arguments={})]),
            LLMResponse(content="Which note?"),
        ])

        result = await orchestrator.handle_inbound(_request())

        assert result.response == "Which note?"
        assert result.tool_calls[0].success is False
        assert result.tool_calls[0].error_type == "ValidationError"

    @pytest.mark.asyncio
    async def test_step_ceiling(self):
        looping = LLMResponse(content="", tool_calls=[ToolCall(id="c", name="whoami", arguments={})])
        orchestrator, llm, messages, delivery = _make_orchestrator([looping] * 10, max_turns=3)

        result = await orchestrator.handle_inbound(_request())

        assert llm.chat_completion.await_count == 3
        assert result.hit_step_limit
        assert result.response == STEP_LIMIT_REPLY
        assert result.delivered

    @pytest.mark.asyncio
    async def test_step_ceiling_delivers_last_text(self):
        responses = [
            LLMResponse(
                content=f"Still checking ({i})",
                tool_calls=[ToolCall(id=f"c{i}", name="whoami", arguments={})],
            )
            for i in range(10)
        ]
        orchestrator, llm, _, delivery = _make_orchestrator(responses, max_turns=3)

        result = await orchestrator.handle_inbound(_request())

        assert llm.chat_completion.await_count == 3
        assert result.hit_step_limit
        assert result.response == "Still checking (2)"
        reply, _ = delivery.send.call_args.args
        assert reply.rendered_reply == "Still checking (2)"

    @pytest.mark.asyncio
    async def test_persists_inbound_and_reply(self):
        orchestrator, _, messages, _ = _make_orchestrator([LLMResponse(content="Hi")])
        request = _request(text="hello")

        await orchestrator.handle_inbound(request)

        tenant, conversation, rows = messages.append.call_args.args
        assert (tenant, conversation) == (TENANT_A, "chat-1")
        assert [(m.role, m.content) for m in rows] == [
            (MessageRole.USER, "hello"),
            (MessageRole.ASSISTANT, "Hi"),
        ]
        assert rows[0].created_at == request.received_at


class TestFailures:
    """Failure handling around persistence and generation"""

    @pytest.mark.asyncio
    async def test_persist_failure_still_delivers(self):
        orchestrator, _, messages, delivery = _make_orchestrator([LLMResponse(content="Hi")])
        messages.append.side_effect = RuntimeError("db down")

        result = await orchestrator.handle_inbound(_request())

        assert result.persisted is False
        assert result.delivered is True
        assert delivery.send.call_args.args[0].rendered_reply == "Hi"

    @pytest.mark.asyncio
    async def test_engine_failure_delivers_apology(self):
        orchestrator, _, messages, delivery = _make_orchestrator(RuntimeError("provider down"))

        result = await orchestrator.handle_inbound(_request())

        assert result.response == APOLOGY_REPLY
        assert "RuntimeError" in result.error
        assert delivery.send.call_args.args[0].rendered_reply == APOLOGY_REPLY
        messages.append.assert_not_called()

    @pytest.mark.asyncio
    async def test_delivery_exception_contained(self):
        orchestrator, _, _, delivery = _make_orchestrator([LLMResponse(content="Hi")])
        delivery.send.side_effect = RuntimeError("socket closed")

        result = await orchestrator.handle_inbound(_request())

        assert result.delivered is False
        assert result.error is None


class TestPresentation:
    """How context and scheduled tasks reach the engine"""

    @pytest.mark.asyncio
    async def test_scheduled_task_prefixed(self):
        orchestrator, llm, messages, _ = _make_orchestrator([LLMResponse(content="Reminder sent")])
        request = _request(
            text="Send a fee reminder",
            actor_role=MessageRole.SYSTEM_TASK,
            external_user_id="system",
        )

        await orchestrator.handle_inbound(request)

        sent = llm.chat_completion.call_args.kwargs["messages"]
        assert sent[-1] == {"role": "user", "content": "[Scheduled task] Send a fee reminder"}
        stored = messages.append.call_args.args[2][0]
        assert stored.role == MessageRole.SYSTEM_TASK
        assert stored.content == "Send a fee reminder"

    @pytest.mark.asyncio
    async def test_history_and_relevant_context(self):
        context = ConversationContext(
            chronological=[
                _stored("earlier question", minutes=1),
                _stored("earlier answer", role=MessageRole.ASSISTANT, minutes=2),
                _stored("old reminder", role=MessageRole.SYSTEM_TASK, minutes=3),
            ],
            relevant=[_stored("water bill is 30 USD")],
        )
        orchestrator, llm, _, _ = _make_orchestrator([LLMResponse(content="ok")], context=context)

        await orchestrator.handle_inbound(_request(text="how much is water?"))

        sent = llm.chat_completion.call_args.kwargs["messages"]
        assert sent[0]["role"] == "system"
        assert sent[1] == {
            "role": "system",
            "content": "Here are some relevant previous conversations:\n"
                       "user: water bill is 30 USD\n---\n",
        }
        assert sent[2] == {"role": "user", "content": "earlier question"}
        assert sent[3] == {"role": "assistant", "content": "earlier answer"}
        assert sent[4] == {"role": "user", "content": "[Scheduled task] old reminder"}
        assert sent[5] == {"role": "user", "content": "how much is water?"}


class TestSystemPrompt:

    def test_default_includes_timezone(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        prompt = build_system_prompt(timezone_name="Asia/Tokyo", now=now)
        assert "User timezone: Asia/Tokyo" in prompt
        assert "2026-03-01 21:00:00" in prompt

    def test_active_prompt_replaces_default(self):
        prompt = build_system_prompt(active_prompt="You are a pirate.")
        assert prompt.startswith("You are a pirate.")
        assert "User timezone: UTC" in prompt

    def test_unknown_timezone_falls_back(self):
        assert "User timezone: UTC" in build_system_prompt(timezone_name="Nowhere/Land")

    def test_relevant_context_format(self):
        rendered = render_relevant_context([_stored("a"), _stored("b", role=MessageRole.ASSISTANT)])
        assert rendered == "Here are some relevant previous conversations:\nuser: a\nassistant: b\n---\n"
