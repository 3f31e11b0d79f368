"""Cron expression validation, next-run computation and job naming."""

import hashlib
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from croniter import croniter

from ..errors import InvalidSchedule

logger = logging.getLogger(__name__)

JOB_NAME_PREFIX = "trg_"
JOB_NAME_HASH_CHARS = 40


def now_ms() -> int:
    """Current time in milliseconds."""
    return int(time.time() * 1000)


def derive_job_name(tenant_id: str, owning_entity_id: str) -> str:
    """Deterministic, collision-resistant timer name for (tenant, entity).

    The registry is process-global, so the name must be unique across all
    tenants. Hashing the pair avoids the ambiguity of stripping characters
    from free-form entity ids.
    """
    digest = hashlib.sha256(f"{tenant_id}:{owning_entity_id}".encode("utf-8")).hexdigest()
    return JOB_NAME_PREFIX + digest[:JOB_NAME_HASH_CHARS]


def _resolve_timezone(tz: Optional[str]):
    if not tz:
        return None
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidSchedule(f"Unknown timezone: {tz}")


def validate_schedule(expr: str, tz: Optional[str] = None) -> None:
    """Raise InvalidSchedule unless ``expr`` is a 5-field cron expression."""
    if not expr or not isinstance(expr, str):
        raise InvalidSchedule("Schedule expression is empty")
    if len(expr.split()) != 5:
        raise InvalidSchedule(f"Expected 5 cron fields, got: '{expr}'")
    if not croniter.is_valid(expr):
        raise InvalidSchedule(f"Invalid cron expression: '{expr}'")
    _resolve_timezone(tz)


def compute_next_run_ms(expr: str, tz: Optional[str], now_ms_val: int) -> Optional[int]:
    """Next fire time in ms after ``now_ms_val``, evaluated in ``tz``."""
    try:
        tzinfo = _resolve_timezone(tz)
        now_dt = datetime.fromtimestamp(now_ms_val / 1000, tz=timezone.utc)
        if tzinfo:
            now_dt = now_dt.astimezone(tzinfo)
        next_dt = croniter(expr, now_dt).get_next(datetime)
        next_ms = int(next_dt.timestamp() * 1000)

        # croniter can return the current second; step past it
        if next_ms <= now_ms_val:
            later = datetime.fromtimestamp((now_ms_val // 1000 + 1), tz=timezone.utc)
            if tzinfo:
                later = later.astimezone(tzinfo)
            next_ms = int(croniter(expr, later).get_next(datetime).timestamp() * 1000)
        return next_ms
    except Exception as e:
        logger.warning(f"Cron schedule computation failed for '{expr}': {e}")
        return None
