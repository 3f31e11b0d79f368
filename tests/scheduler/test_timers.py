"""
Tests for the timer registries

Tests cover:
- In-process install/remove/exists and replacement by job name
- fire_due fires only due timers and recomputes the next run
- A failing fire callback does not stop other timers
- pg_cron registry issues audited privileged statements
- build_timer_registry backend selection
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from tenantloop.errors import SchedulerError
from tenantloop.scheduler.timers import (
    InProcessTimerRegistry,
    PgCronTimerRegistry,
    TimerSpec,
    build_timer_registry,
)


class TestInProcessRegistry:
    """Tests for InProcessTimerRegistry"""

    @pytest.mark.asyncio
    async def test_install_replaces_same_name(self):
        registry = InProcessTimerRegistry()
        await registry.install(TimerSpec("trg_a", "0 9 5 * *"))
        await registry.install(TimerSpec("trg_a", "0 9 6 * *"))

        assert registry.job_names == ["trg_a"]
        assert await registry.exists("trg_a")

    @pytest.mark.asyncio
    async def test_remove_reports_existence(self):
        registry = InProcessTimerRegistry()
        await registry.install(TimerSpec("trg_a", "0 9 5 * *"))

        assert await registry.remove("trg_a") is True
        assert await registry.remove("trg_a") is False

    @pytest.mark.asyncio
    async def test_install_invalid_expression(self):
        registry = InProcessTimerRegistry()
        with pytest.raises(SchedulerError):
            await registry.install(TimerSpec("trg_a", "not a cron"))

    @pytest.mark.asyncio
    async def test_fire_due(self):
        registry = InProcessTimerRegistry()
        on_fire = AsyncMock()
        registry._on_fire = on_fire
        await registry.install(TimerSpec("trg_due", "* * * * *"))
        await registry.install(TimerSpec("trg_later", "0 9 5 * *"))
        registry._timers["trg_due"].next_run_at_ms = 0

        fired = await registry.fire_due()

        assert fired == 1
        on_fire.assert_awaited_once_with("trg_due")
        assert registry.next_run_at_ms("trg_due") > 0
        assert registry._timers["trg_due"].running is False

    @pytest.mark.asyncio
    async def test_failing_fire_does_not_block_others(self):
        registry = InProcessTimerRegistry()
        calls = []

        async def on_fire(job_name):
            calls.append(job_name)
            if job_name == "trg_bad":
                raise RuntimeError("boom")

        registry._on_fire = on_fire
        for name in ("trg_bad", "trg_good"):
            await registry.install(TimerSpec(name, "* * * * *"))
            registry._timers[name].next_run_at_ms = 0

        assert await registry.fire_due() == 2
        assert sorted(calls) == ["trg_bad", "trg_good"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        registry = InProcessTimerRegistry()
        await registry.start(AsyncMock(), [TimerSpec("trg_a", "0 9 5 * *")])
        assert registry.job_names == ["trg_a"]
        await registry.stop()


def _gateway():
    gateway = MagicMock()
    gateway.privileged.fetch = AsyncMock(return_value=[{"jobid": 1}])
    gateway.privileged.fetchrow = AsyncMock(return_value=None)
    return gateway


class TestPgCronRegistry:
    """Tests for PgCronTimerRegistry"""

    def test_requires_reentry_url(self):
        with pytest.raises(SchedulerError):
            PgCronTimerRegistry(_gateway(), "")

    @pytest.mark.asyncio
    async def test_install_schedules_http_reentry(self):
        gateway = _gateway()
        registry = PgCronTimerRegistry(gateway, "https://api.example/scheduled", "key-1")

        await registry.install(TimerSpec("trg_a", "0 9 5 * *"))

        call_site, sql, *args = gateway.privileged.fetch.call_args.args
        assert call_site == "scheduler.timer"
        assert "cron.schedule" in sql
        assert args[:3] == ["trg_a", "0 9 5 * *", "https://api.example/scheduled"]
        assert json.loads(args[3]) == {"jobName": "trg_a"}
        assert json.loads(args[4])["X-Service-Key"] == "key-1"

    @pytest.mark.asyncio
    async def test_remove_and_exists(self):
        gateway = _gateway()
        registry = PgCronTimerRegistry(gateway, "https://api.example/scheduled")

        assert await registry.remove("trg_a") is True
        assert await registry.exists("trg_a") is False


class TestBuildTimerRegistry:

    def test_default_is_in_process(self):
        assert isinstance(build_timer_registry(None, _gateway()), InProcessTimerRegistry)

    def test_pg_cron(self):
        registry = build_timer_registry(
            {"backend": "pg_cron", "reentry_url": "https://api.example/scheduled"},
            _gateway(),
        )
        assert isinstance(registry, PgCronTimerRegistry)

    def test_unknown_backend(self):
        with pytest.raises(SchedulerError):
            build_timer_registry({"backend": "cronjob"}, _gateway())
