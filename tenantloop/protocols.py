"""
TenantLoop Protocols - Interfaces of the external collaborators

The Orchestration Loop and Tool Surface depend only on these contracts, so
the generation engine, embedding service, outbound gateway and automation
connector can be swapped (or faked in tests) without touching the loop.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .models import OutboundReply


@runtime_checkable
class LLMClientProtocol(Protocol):
    """
    Generation engine.

    Receives the system prompt as the first message, the conversation turns
    and OpenAI-format tool schemas; answers with text and/or tool calls.
    Tool results are passed back as ordinary ``tool`` role turns.
    """

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs: Any,
    ) -> Any:
        ...


@runtime_checkable
class EmbedderProtocol(Protocol):
    """Produces the embedding vector used for relevance recall."""

    async def embed(self, text: str) -> List[float]:
        ...


@runtime_checkable
class DeliveryProtocol(Protocol):
    """
    Outbound delivery gateway.

    Fire-and-forget: returns True when the gateway accepted the reply. Must
    not raise for transport failures.
    """

    async def send(self, reply: OutboundReply, target: Optional[str]) -> bool:
        ...


@runtime_checkable
class AutomationConnectorProtocol(Protocol):
    """
    Email/calendar side effects.

    ``call`` never raises for an unreachable or unconfigured connector; the
    returned result reports ``unavailable`` instead.
    """

    @property
    def available(self) -> bool:
        ...

    async def call(self, action: str, arguments: Dict[str, Any]) -> Any:
        ...
