"""
TenantLoop LiteLLM Client - Generation engine and embeddings via litellm

Supports every provider litellm routes to:
- OpenAI, Azure OpenAI
- Anthropic
- Google Gemini
- Ollama (local models)
- DashScope (OpenAI-compatible mode)
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import litellm

from ..errors import CollaboratorUnavailable
from .base import (
    BaseLLMClient,
    LLMConfig,
    LLMResponse,
    StopReason,
    ToolCall,
    Usage,
)

logger = logging.getLogger(__name__)

# Provider -> default environment variable for API key
_PROVIDER_ENV_VARS: Dict[str, Optional[str]] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "dashscope": "DASHSCOPE_API_KEY",
    "gemini": "GOOGLE_API_KEY",
    "ollama": None,
}

_PREFIXED_PROVIDERS = {"anthropic", "azure", "gemini", "ollama"}

_STOP_REASONS = {
    "stop": StopReason.END_TURN,
    "end_turn": StopReason.END_TURN,
    "length": StopReason.MAX_TOKENS,
    "max_tokens": StopReason.MAX_TOKENS,
    "tool_calls": StopReason.TOOL_USE,
    "tool_use": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "content_filter": StopReason.CONTENT_FILTER,
    "stop_sequence": StopReason.STOP_SEQUENCE,
}


def build_litellm_model_string(provider: str, model: str) -> str:
    """Map provider + model to the litellm model string.

    litellm uses prefixed model strings to route to the correct provider.
    See https://docs.litellm.ai/docs/providers
    """
    provider = provider.lower()
    if provider == "openai":
        return model
    if provider in _PREFIXED_PROVIDERS:
        return f"{provider}/{model}"
    if provider == "dashscope":
        return f"openai/{model}"
    return model


def _connection_kwargs(provider: str, config: LLMConfig) -> Dict[str, Any]:
    """api_base / api_key for litellm, falling back to the provider env var."""
    kwargs: Dict[str, Any] = {}
    api_key = config.api_key
    if not api_key:
        env_var = _PROVIDER_ENV_VARS.get(provider)
        if env_var:
            api_key = os.environ.get(env_var)
    if config.base_url:
        kwargs["api_base"] = config.base_url
    if api_key:
        kwargs["api_key"] = api_key
    return kwargs


class LiteLLMClient(BaseLLMClient):
    """
    Generation engine client powered by litellm.

    Example:
        config = LLMConfig(model="gpt-4o-mini", api_key="sk-xxx")
        client = LiteLLMClient(config=config, provider_name="openai")
        response = await client.chat_completion([
            {"role": "user", "content": "Hello!"}
        ])
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        provider_name: str = "openai",
        **kwargs,
    ):
        super().__init__(config, **kwargs)
        self.provider = provider_name.lower()
        self._litellm_model = build_litellm_model_string(self.provider, self.config.model)
        self._base_kwargs = _connection_kwargs(self.provider, self.config)
        logger.info(
            f"LiteLLMClient initialized: provider={self.provider}, "
            f"litellm_model={self._litellm_model}"
        )

    async def _call_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ) -> LLMResponse:
        """Make a non-streaming call via litellm.acompletion."""
        params: Dict[str, Any] = {
            "model": self._litellm_model,
            "messages": messages,
            "temperature": kwargs.get("temperature", self.config.temperature),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "timeout": self.config.timeout,
            "num_retries": self.config.max_retries,
            **self.config.extra,
            **self._base_kwargs,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = kwargs.get("tool_choice", "auto")

        logger.info(
            f"[LLM] model={self._litellm_model}, tools={len(tools) if tools else 0}, "
            f"messages={len(messages)}"
        )

        try:
            response = await litellm.acompletion(**params)
        except Exception as exc:
            raise CollaboratorUnavailable(f"Generation engine call failed: {exc}") from exc

        choice = response.choices[0]
        message = choice.message

        tool_calls = None
        if message.tool_calls:
            tool_calls = []
            for tc in message.tool_calls:
                arguments = tc.function.arguments
                if isinstance(arguments, str):
                    # Left as text when malformed; argument validation reports it.
                    try:
                        arguments = json.loads(arguments) if arguments else {}
                    except json.JSONDecodeError:
                        pass
                tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, arguments=arguments))

        usage = None
        if getattr(response, "usage", None):
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return LLMResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            stop_reason=_STOP_REASONS.get(choice.finish_reason or "stop", StopReason.END_TURN),
            usage=usage,
            model=getattr(response, "model", self.config.model),
        )


class LiteLLMEmbedder:
    """Text embeddings via litellm.aembedding."""

    def __init__(self, config: LLMConfig, provider_name: str = "openai"):
        self.config = config
        self.provider = provider_name.lower()
        self._litellm_model = build_litellm_model_string(self.provider, config.model)
        self._base_kwargs = _connection_kwargs(self.provider, config)

    async def embed(self, text: str) -> List[float]:
        try:
            response = await litellm.aembedding(
                model=self._litellm_model,
                input=[text],
                timeout=self.config.timeout,
                **self._base_kwargs,
            )
        except Exception as exc:
            raise CollaboratorUnavailable(f"Embedding call failed: {exc}") from exc
        item = response.data[0]
        vector = item["embedding"] if isinstance(item, dict) else item.embedding
        return [float(v) for v in vector]
