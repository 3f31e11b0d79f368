"""Orchestration loop configuration and result dataclasses."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..constants import (
    DEFAULT_CANDIDATE_POOL,
    DEFAULT_RECENCY_LIMIT,
    DEFAULT_RELEVANCE_LIMIT,
)


@dataclass
class ReactLoopConfig:
    """All loop configuration centralized in one place."""

    # Loop control
    max_turns: int = 8
    """Step ceiling: generation calls per request."""

    # Tool execution
    tool_execution_timeout: int = 30
    """Tool timeout in seconds."""
    max_tool_result_chars: int = 100_000
    """Single tool result hard character limit."""

    # Context window
    recency_limit: int = DEFAULT_RECENCY_LIMIT
    relevance_limit: int = DEFAULT_RELEVANCE_LIMIT
    candidate_pool: int = DEFAULT_CANDIDATE_POOL

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ReactLoopConfig":
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        config = cls(**known)
        if config.max_turns < 1:
            raise ValueError("orchestrator.max_turns must be at least 1")
        return config


@dataclass
class ToolCallRecord:
    """Per-call telemetry for a single tool invocation."""

    name: str
    duration_ms: int = 0
    success: bool = True
    error_type: Optional[str] = None
    result_chars: int = 0


@dataclass
class TurnResult:
    """What one pass of the loop did for one inbound request."""

    tenant_id: str
    conversation_id: str
    response: str = ""
    turns: int = 0
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    hit_step_limit: bool = False
    persisted: bool = False
    delivered: bool = False
    error: Optional[str] = None
    duration_ms: int = 0
