"""
TenantLoop Orchestrator - bounded tool-calling loop per inbound request.

States:
    ResolveTenant -> LoadContext -> Generate -> (ToolCall -> ApplyTool -> Generate)*
    -> Persist -> Deliver

- ResolveTenant fails closed: nothing is persisted or delivered.
- Generate calls the engine once per step; the loop stops at the first
  response without tool calls or at ``max_turns``, whichever comes first.
- ApplyTool failures are observations, not faults: the Tool Surface turns
  them into JSON payloads the engine sees on its next step.
- Persist appends the inbound message and the final reply; a failure is
  logged and swallowed so Deliver still runs.
- Deliver is one best-effort call; there is no retry.

Any other exception is caught once at the top, logged, and replaced by a
fixed apology that is delivered with the request fields already known.

Each request gets its own Tool Surface binding and message list; nothing
mutable is shared between concurrent requests.

Example:
    orchestrator = Orchestrator(
        resolver=TenantResolver(),
        memory=MemoryAssembler(messages, embedder),
        ...
    )
    await orchestrator.handle_inbound(request)
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

from ..constants import APOLOGY_REPLY, SCHEDULED_TASK_PREFIX, STEP_LIMIT_REPLY
from ..errors import TenantResolutionError
from ..memory.assembler import ConversationContext, MemoryAssembler
from ..models import InboundRequest, MessageRole, NewMessage, OutboundReply, StoredMessage
from ..protocols import DeliveryProtocol, LLMClientProtocol
from ..repositories.conversations import ConversationRepository, MessageRepository, PromptRepository
from ..tenancy.resolver import TenantResolver
from ..tools.models import ToolContext, ToolServices
from ..tools.registry import BoundToolSurface, ToolRegistry, cap_tool_result
from .prompts import build_system_prompt, render_relevant_context
from .react_config import ReactLoopConfig, ToolCallRecord, TurnResult

logger = logging.getLogger(__name__)

ASSISTANT_PRINCIPAL = "assistant"


class Orchestrator:
    """
    Runs one inbound request end to end.

    Args:
        resolver: Tenant Resolver.
        memory: Memory Assembler.
        conversations: Conversation rows (created on first persist).
        messages: Message log.
        prompts: Active prompt lookup.
        tools: Tool registry, bound per request.
        tool_services: Shared dependencies handed to bound tools.
        llm_client: Generation engine.
        delivery: Outbound delivery collaborator.
        config: Loop limits.
        system_prompt: Deployment-wide default prompt.
    """

    def __init__(
        self,
        resolver: TenantResolver,
        memory: MemoryAssembler,
        conversations: ConversationRepository,
        messages: MessageRepository,
        prompts: PromptRepository,
        tools: ToolRegistry,
        tool_services: ToolServices,
        llm_client: LLMClientProtocol,
        delivery: DeliveryProtocol,
        config: Optional[ReactLoopConfig] = None,
        system_prompt: Optional[str] = None,
    ):
        self._resolver = resolver
        self._memory = memory
        self._conversations = conversations
        self._messages = messages
        self._prompts = prompts
        self._tools = tools
        self._tool_services = tool_services
        self._llm = llm_client
        self._delivery = delivery
        self._config = config or ReactLoopConfig()
        self._system_prompt = system_prompt

    @property
    def config(self) -> ReactLoopConfig:
        return self._config

    # ==========================================================================
    # ENTRY POINTS
    # ==========================================================================

    async def handle_inbound(self, request: InboundRequest) -> Optional[TurnResult]:
        """Resolve the tenant, then run the loop. Returns None when resolution fails."""
        try:
            tenant_id = self._resolver.resolve(request)
        except TenantResolutionError as e:
            logger.warning(f"[Loop] Request dropped, tenant resolution failed: {type(e).__name__}")
            return None
        return await self.run(request, tenant_id)

    async def run(self, request: InboundRequest, tenant_id: str) -> TurnResult:
        """Run the loop for a request whose tenant is already resolved."""
        started = time.monotonic()
        result = TurnResult(tenant_id=tenant_id, conversation_id=request.external_chat_id)
        try:
            await self._run(request, tenant_id, result)
        except Exception as e:
            logger.exception(
                f"[Loop] Unhandled error tenant={tenant_id}: {type(e).__name__}: {e}"
            )
            result.error = f"{type(e).__name__}: {e}"
            result.response = APOLOGY_REPLY
            result.delivered = await self._deliver(request, tenant_id, APOLOGY_REPLY)
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"[Loop] Done tenant={tenant_id} turns={result.turns} "
            f"tools={len(result.tool_calls)} persisted={result.persisted} "
            f"delivered={result.delivered} duration_ms={result.duration_ms}"
        )
        return result

    # ==========================================================================
    # LOOP
    # ==========================================================================

    async def _run(self, request: InboundRequest, tenant_id: str, result: TurnResult) -> None:
        conversation_id = request.external_chat_id
        context = await self._memory.assemble(
            tenant_id,
            conversation_id,
            request.text,
            recency_limit=self._config.recency_limit,
            relevance_limit=self._config.relevance_limit,
        )
        active_prompt = await self._prompts.get_active(tenant_id, conversation_id)
        messages = self._build_llm_messages(request, active_prompt, context)

        surface = self._bind_tools(request, tenant_id)
        schemas = surface.schemas()

        final_text = ""
        last_text = ""
        for turn in range(1, self._config.max_turns + 1):
            response = await self._llm.chat_completion(messages=messages, tools=schemas)
            result.turns = turn
            text = (getattr(response, "content", None) or "").strip()
            if text:
                last_text = text

            tool_calls = getattr(response, "tool_calls", None)
            if not tool_calls:
                final_text = text
                break

            messages.append(self._assistant_message_from_response(response))
            for tool_call in tool_calls:
                outcome = await surface.invoke(tool_call.name, tool_call.arguments)
                content = cap_tool_result(outcome.content, self._config.max_tool_result_chars)
                result.tool_calls.append(ToolCallRecord(
                    name=tool_call.name,
                    duration_ms=outcome.duration_ms,
                    success=outcome.ok,
                    error_type=outcome.error_type,
                    result_chars=len(outcome.content),
                ))
                messages.append(self._build_tool_result_message(tool_call.id, content))
        else:
            result.hit_step_limit = True
            logger.warning(
                f"[Loop] Step ceiling {self._config.max_turns} reached tenant={tenant_id}"
            )

        reply = final_text or last_text or STEP_LIMIT_REPLY
        result.response = reply
        result.persisted = await self._persist(request, tenant_id, reply, context)
        result.delivered = await self._deliver(request, tenant_id, reply)

    def _bind_tools(self, request: InboundRequest, tenant_id: str) -> BoundToolSurface:
        tool_context = ToolContext(
            tenant_id=tenant_id,
            conversation_id=request.external_chat_id,
            principal_id=request.external_user_id,
            services=self._tool_services,
            reply_target=request.reply_target,
            timezone=request.timezone,
            metadata=dict(request.metadata),
        )
        return self._tools.bind(tool_context, timeout=self._config.tool_execution_timeout)

    # ==========================================================================
    # MESSAGE BUILDING
    # ==========================================================================

    def _build_llm_messages(
        self,
        request: InboundRequest,
        active_prompt: Optional[str],
        context: ConversationContext,
    ) -> List[Dict[str, Any]]:
        """System prompt, relevant recall, chronological history, current message."""
        messages: List[Dict[str, Any]] = [{
            "role": "system",
            "content": build_system_prompt(
                active_prompt=active_prompt,
                base_prompt=self._system_prompt,
                timezone_name=request.timezone,
            ),
        }]
        if context.relevant:
            messages.append({
                "role": "system",
                "content": render_relevant_context(context.relevant),
            })
        messages.extend(self._history_message(m) for m in context.chronological)
        messages.append({
            "role": "user",
            "content": self._present(request.actor_role, request.text),
        })
        return messages

    @staticmethod
    def _present(role: MessageRole, content: str) -> str:
        if role == MessageRole.SYSTEM_TASK:
            return f"{SCHEDULED_TASK_PREFIX} {content}"
        return content

    def _history_message(self, message: StoredMessage) -> Dict[str, Any]:
        if message.role == MessageRole.SYSTEM_TASK:
            return {"role": "user", "content": self._present(message.role, message.content)}
        return {"role": message.role.value, "content": message.content}

    def _build_tool_result_message(self, tool_call_id: str, content: str) -> Dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": tool_call_id,
            "content": content,
        }

    @staticmethod
    def _assistant_message_from_response(response: Any) -> Dict[str, Any]:
        """Convert LLMResponse to dict for the messages list."""
        msg: Dict[str, Any] = {
            "role": "assistant",
            "content": getattr(response, "content", None) or None,
        }
        tool_calls = getattr(response, "tool_calls", None)
        if tool_calls:
            msg["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.name,
                        "arguments": json.dumps(tc.arguments) if isinstance(tc.arguments, dict) else tc.arguments,
                    },
                }
                for tc in tool_calls
            ]
        return msg

    # ==========================================================================
    # PERSIST / DELIVER
    # ==========================================================================

    async def _persist(
        self,
        request: InboundRequest,
        tenant_id: str,
        reply: str,
        context: ConversationContext,
    ) -> bool:
        """Append the inbound message and the reply. Never raises."""
        conversation_id = request.external_chat_id
        try:
            await self._conversations.ensure(tenant_id, conversation_id, request.external_user_id)
            reply_embedding = await self._memory.embed(reply)
            await self._messages.append(tenant_id, conversation_id, [
                NewMessage(
                    author_principal_id=request.external_user_id,
                    role=request.actor_role,
                    content=request.text,
                    embedding=context.query_embedding,
                    created_at=request.received_at,
                ),
                NewMessage(
                    author_principal_id=ASSISTANT_PRINCIPAL,
                    role=MessageRole.ASSISTANT,
                    content=reply,
                    embedding=reply_embedding,
                ),
            ])
            return True
        except Exception as e:
            logger.error(
                f"[Loop] Persist failed tenant={tenant_id}, delivering anyway: "
                f"{type(e).__name__}: {e}"
            )
            return False

    async def _deliver(self, request: InboundRequest, tenant_id: str, text: str) -> bool:
        """Single best-effort delivery. Never raises."""
        reply = OutboundReply(
            rendered_reply=text,
            recipient={
                "chatId": request.external_chat_id,
                "userId": request.external_user_id,
                "tenantId": tenant_id,
            },
            correlation=dict(request.metadata),
        )
        try:
            return bool(await self._delivery.send(reply, request.reply_target))
        except Exception as e:
            logger.error(f"[Loop] Delivery failed tenant={tenant_id}: {type(e).__name__}: {e}")
            return False
