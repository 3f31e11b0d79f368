"""Tenant-closed scheduling primitives.

The engine names a schedule; the owning entity id is derived from that name
and the caller's conversation inside the caller's tenant, so neither another
tenant nor another conversation can address the trigger by reusing the name.
"""

from typing import Annotated, Any, Dict, Optional

from pydantic import Field

from ..scheduler.models import TriggerPayload
from .decorator import tool
from .models import ToolContext

NAME_PATTERN = r"^[A-Za-z0-9_\-]{1,64}$"


def schedule_entity_id(conversation_id: str, name: str) -> str:
    # NAME_PATTERN excludes ":", so the name is always the last segment.
    return f"schedule:{conversation_id}:{name}"


@tool(category="scheduling")
async def schedule(
    name: Annotated[str, Field(pattern=NAME_PATTERN), "Short name for this schedule"],
    cron_expression: Annotated[str, "Five-field cron expression, e.g. '0 8 * * 1'"],
    instruction: Annotated[str, Field(min_length=1), "What to do each time the schedule fires"],
    timezone: Annotated[Optional[str], "IANA timezone (defaults to the caller's)"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Create or replace a recurring task that runs an instruction on a cron schedule."""
    tz = timezone or context.timezone
    payload = TriggerPayload(
        tenant_id=context.tenant_id,
        conversation_id=context.conversation_id,
        instruction=instruction,
        reply_target=context.reply_target,
        timezone=tz,
        metadata={"scheduleName": name},
    )
    job_name = await context.services.scheduler.register(
        context.tenant_id,
        schedule_entity_id(context.conversation_id, name),
        cron_expression,
        payload,
        timezone=tz,
    )
    return {
        "name": name,
        "job_name": job_name,
        "schedule": cron_expression,
        "timezone": tz or "UTC",
    }


@tool(category="scheduling")
async def unschedule(
    name: Annotated[str, Field(pattern=NAME_PATTERN), "Name of the schedule to remove"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Remove a recurring task created with schedule."""
    await context.services.scheduler.cancel_for_entity(
        context.tenant_id, schedule_entity_id(context.conversation_id, name),
    )
    return {"name": name, "removed": True}


@tool(category="scheduling")
async def schedules_list(*, context: ToolContext) -> Dict[str, Any]:
    """List the recurring tasks of the current conversation."""
    triggers = await context.services.scheduler.list_for_tenant(context.tenant_id)
    return {
        "schedules": [
            t.to_dict()
            for t in triggers
            if t.payload.conversation_id == context.conversation_id
        ],
    }
