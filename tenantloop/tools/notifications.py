"""Notification preferences and ad-hoc email."""

from typing import Annotated, Any, Dict, Literal, Optional

from pydantic import Field

from ..errors import ToolExecutionError
from .decorator import tool
from .models import ToolContext


@tool(category="notifications")
async def notifications_set_email_prefs(
    email: Annotated[str, Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"), "Address for notifications"],
    email_enabled: Annotated[bool, "Whether email notifications are enabled"] = True,
    calendar_provider: Annotated[Optional[Literal["google", "outlook"]], "Preferred calendar provider"] = None,
    default_reminder_minutes: Annotated[int, Field(ge=1), "Reminder lead time in minutes"] = 60,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Set email notification preferences for the current conversation."""
    settings = await context.services.notifications.upsert(
        context.tenant_id,
        context.conversation_id,
        email,
        email_enabled=email_enabled,
        calendar_provider=calendar_provider,
        default_reminder_minutes=default_reminder_minutes,
    )
    return {
        "email": settings["email"],
        "email_enabled": settings["email_enabled"],
        "calendar_provider": settings["calendar_provider"],
        "default_reminder_minutes": settings["default_reminder_minutes"],
    }


@tool(category="notifications")
async def notifications_send_email(
    subject: Annotated[str, Field(min_length=1), "Email subject"],
    to: Annotated[Optional[str], "Recipient (defaults to the conversation's notification email)"] = None,
    text: Annotated[Optional[str], "Plain-text body"] = None,
    html: Annotated[Optional[str], "HTML body"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Send an email through the automation connector."""
    if not text and not html:
        raise ToolExecutionError("Provide a text or html body")
    recipient = to
    if not recipient:
        settings = await context.services.notifications.get(
            context.tenant_id, context.conversation_id,
        )
        if not settings or not settings.get("email"):
            raise ToolExecutionError("No recipient given and no notification email is set")
        if not settings.get("email_enabled"):
            raise ToolExecutionError("Email notifications are disabled for this conversation")
        recipient = settings["email"]

    result = await context.services.connector.send_email(recipient, subject, body=text, html=html)
    if result.unavailable:
        return {"sent": False, "skipped": result.message}
    if not result.success:
        raise ToolExecutionError(f"Failed to send email: {result.message}")
    return {"sent": True, "to": recipient, "message": result.message}
