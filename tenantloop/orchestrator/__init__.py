"""Orchestration loop."""

from .orchestrator import Orchestrator
from .prompts import build_system_prompt
from .react_config import ReactLoopConfig, ToolCallRecord, TurnResult

__all__ = [
    "Orchestrator",
    "ReactLoopConfig",
    "ToolCallRecord",
    "TurnResult",
    "build_system_prompt",
]
