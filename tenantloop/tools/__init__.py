"""Tool Surface: tenant-closed operations exposed to the generation engine."""

from .calendar_events import calendar_cancel_event_for_fee, calendar_create_event_for_fee
from .decorator import FORBIDDEN_PARAMETERS, tool
from .documents import docs_email_summary, docs_parse, docs_store
from .fees import fees_cancel, fees_create, fees_list_active
from .models import ArgsError, Tool, ToolContext, ToolServices, ValidatedArgs
from .notifications import notifications_send_email, notifications_set_email_prefs
from .prompts import system_prompt_update
from .registry import BoundToolSurface, ToolOutcome, ToolRegistry
from .scheduling import schedule, schedules_list, unschedule
from .sql import execute_sql, get_distinct_column_values

DEFAULT_TOOLS = (
    execute_sql,
    get_distinct_column_values,
    fees_create,
    fees_list_active,
    fees_cancel,
    docs_store,
    docs_parse,
    docs_email_summary,
    notifications_set_email_prefs,
    notifications_send_email,
    calendar_create_event_for_fee,
    calendar_cancel_event_for_fee,
    schedule,
    unschedule,
    schedules_list,
    system_prompt_update,
)


def build_default_registry() -> ToolRegistry:
    return ToolRegistry(DEFAULT_TOOLS)


__all__ = [
    "DEFAULT_TOOLS",
    "FORBIDDEN_PARAMETERS",
    "ArgsError",
    "BoundToolSurface",
    "Tool",
    "ToolContext",
    "ToolOutcome",
    "ToolRegistry",
    "ToolServices",
    "ValidatedArgs",
    "build_default_registry",
    "tool",
]
