"""Recurring trigger scheduling."""

from .models import PAYLOAD_VERSION, RecurringTrigger, TriggerPayload
from .schedule import compute_next_run_ms, derive_job_name, validate_schedule
from .service import Scheduler, build_system_request
from .store import TriggerStore
from .timers import (
    InProcessTimerRegistry,
    PgCronTimerRegistry,
    TimerRegistry,
    TimerSpec,
    build_timer_registry,
)

__all__ = [
    "PAYLOAD_VERSION",
    "RecurringTrigger",
    "TriggerPayload",
    "compute_next_run_ms",
    "derive_job_name",
    "validate_schedule",
    "Scheduler",
    "build_system_request",
    "TriggerStore",
    "InProcessTimerRegistry",
    "PgCronTimerRegistry",
    "TimerRegistry",
    "TimerSpec",
    "build_timer_registry",
]
