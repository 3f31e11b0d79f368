"""
Tool Surface - the fixed set of tools, bound per request to one tenant.

``ToolRegistry`` holds the tool definitions. ``ToolRegistry.bind(context)``
closes them over a resolved (tenant, conversation) and returns a
``BoundToolSurface`` whose ``invoke`` never raises: every outcome, including
bad arguments, timeouts and domain failures, comes back as a JSON payload
the generation engine can read:

    {"ok": true, "result": ...}
    {"ok": false, "error": {"type": "...", "message": "..."}}
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..errors import CrossTenantViolation, TenantLoopError
from .models import ArgsError, Tool, ToolContext

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30
MAX_TOOL_RESULT_CHARS = 100_000


@dataclass
class ToolOutcome:
    """Serialized result of one tool call."""
    name: str
    content: str
    ok: bool
    duration_ms: int = 0
    error_type: Optional[str] = None


def success_payload(result: Any) -> str:
    return json.dumps({"ok": True, "result": result}, default=str, ensure_ascii=False)


def error_payload(error_type: str, message: str) -> str:
    return json.dumps(
        {"ok": False, "error": {"type": error_type, "message": message}},
        default=str,
        ensure_ascii=False,
    )


def cap_tool_result(result_text: str, limit: int = MAX_TOOL_RESULT_CHARS) -> str:
    """Hard cap on tool result size to protect the context window."""
    if len(result_text) <= limit:
        return result_text
    cut = limit
    newline_pos = result_text.rfind("\n", int(cut * 0.8), cut)
    if newline_pos > 0:
        cut = newline_pos
    logger.warning(f"[Tools] Tool result truncated: {len(result_text)} -> {cut} chars")
    return result_text[:cut] + "\n\n[truncated - result exceeded size limit]"


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: Dict[str, Tool] = {}
        for t in tools:
            self.register(t)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def bind(
        self,
        context: ToolContext,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
    ) -> "BoundToolSurface":
        return BoundToolSurface(self, context, timeout)


class BoundToolSurface:
    """The registry closed over one request's tenant and conversation."""

    def __init__(self, registry: ToolRegistry, context: ToolContext, timeout: float):
        self._registry = registry
        self._context = context
        self._timeout = timeout

    @property
    def context(self) -> ToolContext:
        return self._context

    def schemas(self) -> List[Dict[str, Any]]:
        return [self._registry.get(n).to_openai_schema() for n in self._registry.names]

    async def invoke(self, name: str, arguments: Any) -> ToolOutcome:
        started = time.monotonic()
        outcome = await self._invoke(name, arguments)
        outcome.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"[Tools] tenant={self._context.tenant_id} tool={name} "
            f"ok={outcome.ok} duration_ms={outcome.duration_ms}"
        )
        return outcome

    async def _invoke(self, name: str, arguments: Any) -> ToolOutcome:
        tool = self._registry.get(name)
        if tool is None:
            return self._error(name, "UnknownTool", f"Tool '{name}' not found")

        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                return self._error(
                    name, "ValidationError",
                    f"Failed to parse arguments for tool '{name}': {e}. "
                    "Please retry with valid JSON arguments.",
                )

        validated = tool.validate(arguments)
        if isinstance(validated, ArgsError):
            return self._error(name, "ValidationError", validated.message)

        try:
            result = await asyncio.wait_for(
                tool.executor(**validated.values, context=self._context),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return self._error(name, "Timeout", f"Tool '{name}' timed out after {self._timeout}s")
        except CrossTenantViolation as e:
            logger.critical(f"[Tools] Isolation breach blocked in {name} tenant={self._context.tenant_id}")
            return self._error(name, type(e).__name__, str(e))
        except TenantLoopError as e:
            payload = e.to_payload()
            return self._error(name, payload["type"], payload["message"])
        except Exception as e:
            logger.exception(f"[Tools] {name} failed")
            return self._error(name, "ToolExecutionError", f"{type(e).__name__}: {e}")

        return ToolOutcome(name=name, content=cap_tool_result(success_payload(result)), ok=True)

    @staticmethod
    def _error(name: str, error_type: str, message: str) -> ToolOutcome:
        return ToolOutcome(
            name=name,
            content=error_payload(error_type, message),
            ok=False,
            error_type=error_type,
        )
