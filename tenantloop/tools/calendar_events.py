"""Calendar events for recurring fees, via the automation connector."""

import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field

from ..connectors.automation import ConnectorResult
from ..errors import ToolExecutionError
from .decorator import tool
from .models import ToolContext

logger = logging.getLogger(__name__)

REMINDER_HOUR = 9
EVENT_DURATION = timedelta(hours=1)

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"


def _tzinfo(tz: Optional[str]):
    if not tz:
        return timezone.utc
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def next_fee_occurrence(due_day: int, tz: Optional[str] = None, now: Optional[datetime] = None) -> datetime:
    """Next 09:00 local on ``due_day``, clamped to the month's last day."""
    tzinfo = _tzinfo(tz)
    now = (now or datetime.now(timezone.utc)).astimezone(tzinfo)
    year, month = now.year, now.month
    for _ in range(2):
        day = min(due_day, calendar.monthrange(year, month)[1])
        candidate = datetime(year, month, day, REMINDER_HOUR, tzinfo=tzinfo)
        if candidate >= now:
            return candidate
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return candidate


def fee_title(fee: Dict[str, Any]) -> str:
    title = f"{fee['fee_type']} fee due"
    if fee.get("amount") is not None:
        title += f" ({fee.get('currency') or 'USD'} {fee['amount']})"
    return title


async def create_fee_event(
    context: ToolContext,
    fee: Dict[str, Any],
    title: Optional[str] = None,
    provider: Optional[str] = None,
) -> ConnectorResult:
    """Create the monthly event for ``fee`` and record its external id."""
    start = next_fee_occurrence(int(fee["due_day"]), context.timezone)
    description = f"{fee['fee_type']} fee payment reminder"
    if fee.get("amount") is not None:
        description += f" for {fee.get('currency') or 'USD'} {fee['amount']}"

    result = await context.services.connector.create_calendar_event(
        title=title or fee_title(fee),
        start_time=start.isoformat(),
        end_time=(start + EVENT_DURATION).isoformat(),
        description=description,
        recurrence=f"FREQ=MONTHLY;BYMONTHDAY={fee['due_day']}",
    )
    if result.success and result.external_reference_id:
        await context.services.fee_calendar.record(
            context.tenant_id,
            context.conversation_id,
            str(fee["id"]),
            result.external_reference_id,
            provider=provider,
        )
    return result


async def _load_fee(context: ToolContext, fee_id: str) -> Dict[str, Any]:
    fee = await context.services.fees.get(context.tenant_id, context.conversation_id, fee_id)
    if fee is None:
        raise ToolExecutionError(f"Fee {fee_id} not found")
    return fee


@tool(category="calendar")
async def calendar_create_event_for_fee(
    fee_id: Annotated[str, Field(pattern=UUID_PATTERN), "ID of the fee"],
    title: Annotated[Optional[str], "Event title (defaults to the fee type and amount)"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Create a monthly calendar event for an existing fee."""
    fee = await _load_fee(context, fee_id)
    settings = await context.services.notifications.get(context.tenant_id, context.conversation_id)
    provider = settings.get("calendar_provider") if settings else None

    result = await create_fee_event(context, fee, title=title, provider=provider)
    if result.unavailable:
        return {"created": False, "skipped": result.message}
    if not result.success:
        raise ToolExecutionError(f"Failed to create calendar event: {result.message}")
    return {"created": True, "event_id": result.external_reference_id, "message": result.message}


@tool(category="calendar")
async def calendar_cancel_event_for_fee(
    fee_id: Annotated[str, Field(pattern=UUID_PATTERN), "ID of the fee"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Delete the calendar event previously created for a fee."""
    await _load_fee(context, fee_id)
    return await cancel_fee_event(context, fee_id)


async def cancel_fee_event(context: ToolContext, fee_id: str) -> Dict[str, Any]:
    """Delete the fee's external event if one is recorded."""
    record = await context.services.fee_calendar.get(context.tenant_id, fee_id)
    if record is None:
        return {"deleted": False, "message": "No calendar event recorded for this fee"}

    result = await context.services.connector.delete_calendar_event(record["external_event_id"])
    if result.unavailable:
        return {"deleted": False, "skipped": result.message}
    if not result.success:
        raise ToolExecutionError(f"Failed to delete calendar event: {result.message}")
    await context.services.fee_calendar.remove(context.tenant_id, fee_id)
    return {"deleted": True, "message": result.message}
