"""
Timer registries - the process-global runtime that makes triggers fire.

Two backends behind one interface:

- InProcessTimerRegistry: an asyncio timer loop. Sleeps until the next
  job is due (capped at 60s), fires every due job concurrently, and can be
  woken early when jobs change. Timers live in memory and are reloaded from
  ``recurring_triggers`` at start-up.
- PgCronTimerRegistry: ``pg_cron`` jobs that call back into
  ``POST /scheduled`` through ``pg_net``. The fire path runs in whichever
  process receives the HTTP call.

``install`` replaces an existing timer of the same name, so installing
twice leaves exactly one timer. ``remove`` reports whether a timer existed.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from ..db.gateway import DataGateway
from ..errors import SchedulerError
from .schedule import compute_next_run_ms, now_ms

logger = logging.getLogger(__name__)

FireCallback = Callable[[str], Awaitable[None]]

# Maximum sleep interval before checking again
MAX_SLEEP_S = 60.0

# Minimum sleep to avoid busy-spin
MIN_SLEEP_S = 0.1


@dataclass
class TimerSpec:
    job_name: str
    schedule_expr: str
    timezone: Optional[str] = None


class TimerRegistry:
    """Interface shared by the timer backends."""

    async def start(self, on_fire: FireCallback, timers: Iterable[TimerSpec] = ()) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError

    async def install(self, spec: TimerSpec) -> None:
        raise NotImplementedError

    async def remove(self, job_name: str) -> bool:
        raise NotImplementedError

    async def exists(self, job_name: str) -> bool:
        raise NotImplementedError


@dataclass
class _Timer:
    spec: TimerSpec
    next_run_at_ms: Optional[int]
    running: bool = False


class InProcessTimerRegistry(TimerRegistry):
    """asyncio timer loop keyed by job name.

    Mutations are plain dict operations with no await in between, so each
    install/remove is atomic with respect to the loop and other callers.
    """

    def __init__(self):
        self._timers: Dict[str, _Timer] = {}
        self._on_fire: Optional[FireCallback] = None
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()

    @property
    def job_names(self) -> List[str]:
        return sorted(self._timers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, on_fire: FireCallback, timers: Iterable[TimerSpec] = ()) -> None:
        if self._running:
            return
        self._on_fire = on_fire
        for spec in timers:
            self._put(spec)
        self._running = True
        self._loop_task = asyncio.create_task(self._timer_loop())
        logger.info(f"[Timers] In-process timer loop started ({len(self._timers)} timers loaded)")

    async def stop(self) -> None:
        self._running = False
        self._wake.set()
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("[Timers] In-process timer loop stopped")

    # ------------------------------------------------------------------
    # Registry operations
    # ------------------------------------------------------------------

    def _put(self, spec: TimerSpec) -> None:
        next_run = compute_next_run_ms(spec.schedule_expr, spec.timezone, now_ms())
        if next_run is None:
            raise SchedulerError(f"Cannot compute next run for {spec.job_name}")
        self._timers[spec.job_name] = _Timer(spec=spec, next_run_at_ms=next_run)

    async def install(self, spec: TimerSpec) -> None:
        self._put(spec)
        self._wake.set()

    async def remove(self, job_name: str) -> bool:
        removed = self._timers.pop(job_name, None) is not None
        if removed:
            self._wake.set()
        return removed

    async def exists(self, job_name: str) -> bool:
        return job_name in self._timers

    def next_run_at_ms(self, job_name: str) -> Optional[int]:
        timer = self._timers.get(job_name)
        return timer.next_run_at_ms if timer else None

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    def _next_due(self) -> Optional[int]:
        due = [t.next_run_at_ms for t in self._timers.values() if t.next_run_at_ms is not None]
        return min(due) if due else None

    async def _timer_loop(self) -> None:
        while self._running:
            try:
                await self._tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[Timers] Timer tick error: {e}")
                await asyncio.sleep(1)

    async def _tick(self) -> None:
        next_due = self._next_due()
        if next_due is not None:
            sleep_s = max(MIN_SLEEP_S, min((next_due - now_ms()) / 1000, MAX_SLEEP_S))
        else:
            sleep_s = MAX_SLEEP_S

        self._wake.clear()
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=sleep_s)
        except asyncio.TimeoutError:
            pass

        if not self._running:
            return
        await self.fire_due()

    async def fire_due(self) -> int:
        """Fire every timer whose next run has passed. Returns how many fired."""
        now = now_ms()
        due: List[_Timer] = []
        for timer in self._timers.values():
            if timer.running or timer.next_run_at_ms is None:
                continue
            if timer.next_run_at_ms <= now:
                due.append(timer)
        if not due:
            return 0

        logger.info(f"[Timers] Firing {len(due)} due timer(s)")
        for timer in due:
            timer.running = True
            timer.next_run_at_ms = compute_next_run_ms(
                timer.spec.schedule_expr, timer.spec.timezone, now,
            )
        await asyncio.gather(*[self._safe_fire(timer) for timer in due])
        return len(due)

    async def _safe_fire(self, timer: _Timer) -> None:
        try:
            if self._on_fire is not None:
                await self._on_fire(timer.spec.job_name)
        except Exception as e:
            logger.error(f"[Timers] Timer {timer.spec.job_name} fire error: {e}")
        finally:
            timer.running = False


class PgCronTimerRegistry(TimerRegistry):
    """pg_cron jobs posting ``{"jobName": ...}`` to the re-entry URL.

    pg_cron evaluates schedules in the database server's timezone (GMT by
    default); a trigger's own timezone is kept only in its bookkeeping row.
    """

    def __init__(
        self,
        gateway: DataGateway,
        reentry_url: str,
        service_key: Optional[str] = None,
    ):
        if not reentry_url:
            raise SchedulerError("pg_cron timer registry requires scheduler.reentry_url")
        self._gateway = gateway
        self._reentry_url = reentry_url
        self._service_key = service_key

    async def start(self, on_fire: FireCallback, timers: Iterable[TimerSpec] = ()) -> None:
        # Fires arrive over HTTP; existing pg_cron jobs survive restarts.
        logger.info("[Timers] Using pg_cron timer registry")

    async def stop(self) -> None:
        return None

    def _headers(self) -> str:
        headers = {"Content-Type": "application/json"}
        if self._service_key:
            headers["X-Service-Key"] = self._service_key
        return json.dumps(headers)

    async def install(self, spec: TimerSpec) -> None:
        if spec.timezone and spec.timezone != "UTC":
            logger.warning(
                f"[Timers] pg_cron evaluates {spec.job_name} in server time, not {spec.timezone}"
            )
        await self._gateway.privileged.fetch(
            "scheduler.timer",
            "SELECT cron.schedule($1, $2, format("
            "'SELECT net.http_post(url := %L, body := %L::jsonb, headers := %L::jsonb)', "
            "$3::text, $4::text, $5::text)) AS jobid",
            spec.job_name,
            spec.schedule_expr,
            self._reentry_url,
            json.dumps({"jobName": spec.job_name}),
            self._headers(),
        )

    async def remove(self, job_name: str) -> bool:
        rows = await self._gateway.privileged.fetch(
            "scheduler.timer",
            "SELECT cron.unschedule(jobid) AS removed FROM cron.job WHERE jobname = $1",
            job_name,
        )
        return bool(rows)

    async def exists(self, job_name: str) -> bool:
        row = await self._gateway.privileged.fetchrow(
            "scheduler.timer",
            "SELECT jobid FROM cron.job WHERE jobname = $1",
            job_name,
        )
        return row is not None


def build_timer_registry(
    config: Optional[Dict],
    gateway: DataGateway,
    service_key: Optional[str] = None,
) -> TimerRegistry:
    """Timer backend named by the ``scheduler`` config section."""
    config = config or {}
    backend = config.get("backend", "inprocess")
    if backend == "inprocess":
        return InProcessTimerRegistry()
    if backend == "pg_cron":
        return PgCronTimerRegistry(gateway, config.get("reentry_url", ""), service_key)
    raise SchedulerError(f"Unknown scheduler backend: {backend}")
