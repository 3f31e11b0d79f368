"""
Scheduler - registers, cancels and fires recurring tenant-owned triggers.

Registration keys every trigger by (tenant, owning entity). The job name is
derived from that pair, so registering the same entity again replaces its
schedule instead of adding a second timer.

On fire there is no caller session: the bookkeeping row is looked up by job
name and the stored payload, which always carries the tenant id, becomes a
``system_task`` InboundRequest handed to the fire handler (normally the
Orchestration Loop).
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from ..errors import CrossTenantViolation, NameCollision, NotFound, SchedulerError
from ..models import SYSTEM_PRINCIPAL, InboundRequest, MessageRole
from .models import RecurringTrigger, TriggerPayload
from .schedule import derive_job_name, validate_schedule
from .store import TriggerStore
from .timers import TimerRegistry, TimerSpec

logger = logging.getLogger(__name__)

FireHandler = Callable[[InboundRequest], Awaitable[object]]

INSTALL_ATTEMPTS = 3
INSTALL_RETRY_BASE_DELAY = 0.5


class Scheduler:
    """
    Recurring trigger management.

    Args:
        store: Bookkeeping rows (privileged lane for cross-tenant lookups).
        timers: Timer registry backend.
        install_attempts: Bounded retries for timer installation.
        retry_base_delay: Back-off base in seconds between attempts.
    """

    def __init__(
        self,
        store: TriggerStore,
        timers: TimerRegistry,
        install_attempts: int = INSTALL_ATTEMPTS,
        retry_base_delay: float = INSTALL_RETRY_BASE_DELAY,
    ):
        self._store = store
        self._timers = timers
        self._install_attempts = max(1, install_attempts)
        self._retry_base_delay = retry_base_delay
        self._fire_handler: Optional[FireHandler] = None

    @property
    def timers(self) -> TimerRegistry:
        return self._timers

    def set_fire_handler(self, handler: FireHandler) -> None:
        """Set the callback that runs a fired trigger's synthesized request."""
        self._fire_handler = handler

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        triggers = await self._store.list_all()
        specs = [
            TimerSpec(t.job_name, t.schedule_expr, t.timezone) for t in triggers
        ]
        await self._timers.start(self.fire, specs)
        logger.info(f"[Scheduler] Started with {len(specs)} recurring trigger(s)")

    async def stop(self) -> None:
        await self._timers.stop()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(
        self,
        tenant_id: str,
        owning_entity_id: str,
        schedule_expr: str,
        payload: TriggerPayload,
        timezone: Optional[str] = None,
    ) -> str:
        """Create or replace the trigger for (tenant, entity). Returns its job name.

        Raises:
            InvalidSchedule: ``schedule_expr`` or ``timezone`` is invalid.
            NameCollision: The derived name belongs to a different pair.
            CrossTenantViolation: ``payload`` names another tenant.
            SchedulerError: The timer could not be installed.
        """
        validate_schedule(schedule_expr, timezone)
        if str(payload.tenant_id).lower() != str(tenant_id).lower():
            raise CrossTenantViolation("Trigger payload names a different tenant")
        payload.owning_entity_id = owning_entity_id
        if timezone and not payload.timezone:
            payload.timezone = timezone

        job_name = derive_job_name(tenant_id, owning_entity_id)
        existing = await self._store.get_by_job_name(job_name)
        if existing and (
            existing.tenant_id != str(tenant_id).lower()
            or existing.owning_entity_id != owning_entity_id
        ):
            raise NameCollision(f"Job name {job_name} is owned by another trigger")

        trigger, inserted = await self._store.upsert(
            tenant_id, owning_entity_id, schedule_expr, timezone, job_name, payload,
        )
        try:
            await self._install_with_retry(TimerSpec(job_name, schedule_expr, timezone))
        except SchedulerError:
            if inserted:
                await self._store.delete(job_name, trigger.tenant_id)
            raise

        logger.info(
            f"[Scheduler] Registered {job_name} tenant={trigger.tenant_id} "
            f"schedule='{schedule_expr}' tz={timezone or 'UTC'}"
        )
        return job_name

    async def _install_with_retry(self, spec: TimerSpec) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, self._install_attempts + 1):
            try:
                await self._timers.install(spec)
                return
            except Exception as e:
                last_error = e
                logger.warning(
                    f"[Scheduler] Timer install for {spec.job_name} failed "
                    f"(attempt {attempt}/{self._install_attempts}): {e}"
                )
                if attempt < self._install_attempts:
                    await asyncio.sleep(self._retry_base_delay * (2 ** (attempt - 1)))
        raise SchedulerError(f"Could not install timer {spec.job_name}: {last_error}")

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self, job_name: str, tenant_id: Optional[str] = None) -> None:
        """Remove the timer and its bookkeeping row.

        When ``tenant_id`` is given, a trigger owned by another tenant is
        reported as NotFound. A timer already gone is not an error.
        """
        trigger = await self._store.get_by_job_name(job_name)
        if trigger is None:
            raise NotFound(f"No recurring trigger named {job_name}")
        if tenant_id is not None and trigger.tenant_id != str(tenant_id).lower():
            raise NotFound(f"No recurring trigger named {job_name}")

        removed = await self._timers.remove(job_name)
        if not removed:
            logger.info(f"[Scheduler] Timer {job_name} already absent; removing row only")
        await self._store.delete(job_name, trigger.tenant_id)
        logger.info(f"[Scheduler] Cancelled {job_name} tenant={trigger.tenant_id}")

    async def cancel_for_entity(self, tenant_id: str, owning_entity_id: str) -> None:
        await self.cancel(derive_job_name(tenant_id, owning_entity_id), tenant_id=tenant_id)

    async def list_for_tenant(self, tenant_id: str) -> List[RecurringTrigger]:
        return await self._store.list_for_tenant(tenant_id)

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    async def fire(self, job_name: str) -> bool:
        """Re-enter the Orchestration Loop for one fired timer.

        Returns False when the fire was dropped (no row, or a payload whose
        tenant does not match the row).
        """
        trigger = await self._store.get_by_job_name(job_name)
        if trigger is None:
            logger.warning(f"[Scheduler] Dropping fire for unknown trigger {job_name}")
            await self._timers.remove(job_name)
            return False

        payload = trigger.payload
        if str(payload.tenant_id).lower() != trigger.tenant_id:
            logger.critical(
                f"[Scheduler] Trigger {job_name} payload tenant does not match its row; dropped"
            )
            return False

        if self._fire_handler is None:
            logger.error(f"[Scheduler] No fire handler set; {job_name} dropped")
            return False

        request = build_system_request(payload)
        logger.info(f"[Scheduler] Firing {job_name} tenant={trigger.tenant_id}")
        await self._fire_handler(request)
        return True


def build_system_request(payload: TriggerPayload) -> InboundRequest:
    """Synthesized request for a fired trigger, with explicit tenant context."""
    metadata = dict(payload.metadata)
    if payload.owning_entity_id:
        metadata.setdefault("owningEntityId", payload.owning_entity_id)
    return InboundRequest(
        text=payload.instruction,
        external_chat_id=payload.conversation_id,
        external_user_id=SYSTEM_PRINCIPAL,
        tenant_context=payload.tenant_id,
        reply_target=payload.reply_target,
        actor_role=MessageRole.SYSTEM_TASK,
        timezone=payload.timezone,
        metadata=metadata,
    )
