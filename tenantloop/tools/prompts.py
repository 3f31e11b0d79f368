"""Per-conversation system prompt management."""

from typing import Annotated, Any, Dict, Optional

from pydantic import Field

from .decorator import tool
from .models import ToolContext


@tool(category="prompts")
async def system_prompt_update(
    content: Annotated[str, Field(min_length=1), "Full text of the new system prompt"],
    description: Annotated[Optional[str], "Why the prompt changed"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Replace the active system prompt of this conversation with a new version."""
    version = await context.services.prompts.set_active(
        context.tenant_id, context.conversation_id, content, description=description,
    )
    return {"version": version}
