"""System prompt sections for the orchestration loop.

Each section is a function returning a string; ``build_system_prompt``
composes them. A conversation's active prompt replaces the default
preamble, the runtime context section is always appended.
"""

from datetime import datetime, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..constants import RELEVANT_CONTEXT_FOOTER, RELEVANT_CONTEXT_HEADER
from ..models import StoredMessage


def render_preamble() -> str:
    return (
        "You are a helpful AI assistant with persistent memory. "
        "You are concise and friendly."
    )


def render_tool_usage() -> str:
    return (
        "You have access to tools for storing and querying your own tables, "
        "managing recurring fees and documents, sending notifications and "
        "scheduling recurring tasks. Use them when appropriate to help with "
        "long-term needs. Tool results are JSON: when \"ok\" is false, read the "
        "error and correct the call or ask the user for what is missing."
    )


def render_runtime_context(tz: Optional[str], now: Optional[datetime] = None) -> str:
    tz_name = tz or "UTC"
    try:
        tzinfo = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz_name, tzinfo = "UTC", timezone.utc
    local = (now or datetime.now(timezone.utc)).astimezone(tzinfo)
    return (
        "[Context]\n"
        f"User timezone: {tz_name}\n"
        f"Current time: {local.strftime('%Y-%m-%d %H:%M:%S %Z')}"
    )


def build_system_prompt(
    *,
    active_prompt: Optional[str] = None,
    base_prompt: Optional[str] = None,
    timezone_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Build the full system prompt.

    Args:
        active_prompt: The conversation's active prompt, used verbatim.
        base_prompt: Deployment-wide default replacing the built-in preamble.
        timezone_name: Caller's IANA timezone.
    """
    if active_prompt:
        sections = [active_prompt]
    else:
        sections = [base_prompt or render_preamble(), render_tool_usage()]
    sections.append(render_runtime_context(timezone_name, now))
    return "\n\n".join(sections)


def render_relevant_context(messages: List[StoredMessage]) -> str:
    lines = "\n".join(f"{m.role.value}: {m.content}" for m in messages)
    return RELEVANT_CONTEXT_HEADER + lines + RELEVANT_CONTEXT_FOOTER
