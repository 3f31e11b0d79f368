"""Recurring fee reminders.

Creating a fee stores the row, registers a monthly RecurringTrigger at 09:00
on the due day, and, when the conversation has email notifications set up
and the automation connector is reachable, sends a confirmation email and
creates a matching calendar event. Email and calendar are optional extras:
their absence is reported in the confirmation, never as a failure.
"""

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import Field

from ..errors import NotFound, SchedulerError, ToolExecutionError
from ..scheduler.models import TriggerPayload
from .calendar_events import cancel_fee_event, create_fee_event
from .decorator import tool
from .models import ToolContext

logger = logging.getLogger(__name__)

FeeType = Literal["electricity", "management", "water", "other"]


def fee_entity_id(fee_id: str) -> str:
    return f"fee:{fee_id}"


def fee_schedule(due_day: int) -> str:
    return f"0 9 {due_day} * *"


def _describe(fee: Dict[str, Any]) -> str:
    text = f"{fee['fee_type']} (day {fee['due_day']})"
    if fee.get("amount") is not None:
        text += f" - {fee.get('currency') or 'USD'} {fee['amount']}"
    if fee.get("note"):
        text += f" ({fee['note']})"
    return text


async def _confirm_by_email(context: ToolContext, fee: Dict[str, Any]) -> Dict[str, Any]:
    """Send the confirmation email and calendar event when possible."""
    outcome: Dict[str, Any] = {"email_sent": False, "calendar_event_created": False}
    settings = await context.services.notifications.get(context.tenant_id, context.conversation_id)
    if not settings or not settings.get("email") or not settings.get("email_enabled"):
        outcome["skipped"] = "email notifications are not enabled for this conversation"
        return outcome

    connector = context.services.connector
    if not connector.available:
        outcome["skipped"] = "automation connector not available"
        return outcome

    body = (
        f"Your {fee['fee_type']} fee reminder has been set up successfully.\n\n"
        f"Details:\n- Due day: {fee['due_day']} of each month\n- Time: 9:00 AM"
    )
    if fee.get("amount") is not None:
        body += f"\n- Amount: {fee.get('currency') or 'USD'} {fee['amount']}"
    if fee.get("note"):
        body += f"\n- Note: {fee['note']}"

    email = await connector.send_email(
        settings["email"],
        f"Fee Reminder Set: {fee['fee_type']} on day {fee['due_day']}",
        body=body,
    )
    if not email.success:
        outcome["skipped"] = email.message
        return outcome
    outcome["email_sent"] = True

    event = await create_fee_event(context, fee, provider=settings.get("calendar_provider"))
    outcome["calendar_event_created"] = bool(event.success and event.external_reference_id)
    if not outcome["calendar_event_created"]:
        outcome["skipped"] = f"calendar event not created: {event.message}"
    return outcome


@tool(category="fees")
async def fees_create(
    fee_type: Annotated[FeeType, "Type of fee"],
    due_day: Annotated[int, Field(ge=1, le=31), "Day of the month the fee is due"],
    amount: Annotated[Optional[float], "Fee amount"] = None,
    currency: Annotated[str, "Currency code"] = "USD",
    note: Annotated[Optional[str], "Free-form note"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Create a monthly fee reminder that fires at 9:00 on the due day."""
    services = context.services
    fee = await services.fees.create(
        context.tenant_id, context.conversation_id, fee_type, due_day,
        amount=amount, currency=currency, note=note,
    )
    fee_id = str(fee["id"])

    payload = TriggerPayload(
        tenant_id=context.tenant_id,
        conversation_id=context.conversation_id,
        instruction=(
            f"Send a fee reminder for fee_id={fee_id} and chat_id={context.conversation_id}"
        ),
        reply_target=context.reply_target,
        timezone=context.timezone,
        metadata={
            "feeId": fee_id,
            "chatId": context.conversation_id,
            "originalUserMessage": "scheduled_fee_reminder",
        },
    )
    try:
        job_name = await services.scheduler.register(
            context.tenant_id,
            fee_entity_id(fee_id),
            fee_schedule(due_day),
            payload,
            timezone=context.timezone,
        )
    except SchedulerError as e:
        await services.fees.deactivate(context.tenant_id, fee_id)
        raise ToolExecutionError(f"Fee reminder could not be scheduled: {e}")

    confirmation = await _confirm_by_email(context, fee)
    message = f"{fee_type} fee reminder created for day {due_day} of each month"
    if amount is not None:
        message += f" ({currency} {amount})"
    if note:
        message += f" - {note}"
    if confirmation["email_sent"]:
        message += ". Confirmation email sent"
    if confirmation["calendar_event_created"]:
        message += ". Calendar event created"
    if confirmation.get("skipped"):
        message += f". Email/calendar confirmation skipped: {confirmation['skipped']}"

    return {
        "fee_id": fee_id,
        "job_name": job_name,
        "schedule": fee_schedule(due_day),
        "message": message,
        **confirmation,
    }


@tool(category="fees")
async def fees_list_active(*, context: ToolContext) -> Dict[str, Any]:
    """List all active fee reminders for the current conversation."""
    fees = await context.services.fees.list_active(context.tenant_id, context.conversation_id)
    if not fees:
        return {"fees": [], "message": "No active fee reminders found."}
    return {
        "fees": [
            {
                "id": str(f["id"]),
                "fee_type": f["fee_type"],
                "due_day": f["due_day"],
                "amount": f.get("amount"),
                "currency": f.get("currency"),
                "note": f.get("note"),
            }
            for f in fees
        ],
        "message": "Active fee reminders:\n" + "\n".join(f"- {_describe(f)}" for f in fees),
    }


@tool(category="fees")
async def fees_cancel(
    fee_type: Annotated[FeeType, "Type of fee to cancel"],
    due_day: Annotated[int, Field(ge=1, le=31), "Due day of the fee to cancel"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Cancel an active fee reminder by fee type and due day."""
    services = context.services
    fees = await services.fees.find_active(
        context.tenant_id, context.conversation_id, fee_type, due_day,
    )
    if not fees:
        return {"cancelled": 0, "message": f"No active {fee_type} fee found for day {due_day}."}

    notes: List[str] = []
    for fee in fees:
        fee_id = str(fee["id"])
        await services.fees.deactivate(context.tenant_id, fee_id)
        try:
            await services.scheduler.cancel_for_entity(context.tenant_id, fee_entity_id(fee_id))
        except NotFound:
            logger.info(f"[Fees] No trigger registered for fee {fee_id}")
        try:
            event = await cancel_fee_event(context, fee_id)
        except ToolExecutionError as e:
            notes.append(str(e))
            continue
        if event.get("skipped"):
            notes.append(f"calendar event kept: {event['skipped']}")

    message = f"{fee_type} fee reminder for day {due_day} has been cancelled."
    if notes:
        message += " " + "; ".join(notes)
    return {"cancelled": len(fees), "message": message}
