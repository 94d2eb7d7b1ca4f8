"""Tests for interval parsing, due checks and scheduler ticks."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from synchub.constants import VERSION
from synchub.hub import SyncHub
from synchub.models import ProviderRecord, SchedulerConfig
from synchub.plugins.base import ProviderDescriptor
from synchub.scheduler import Scheduler, is_due, parse_interval

if TYPE_CHECKING:
    from conftest import FakeClock


def make_descriptor(plugin_id: str, sync, interval: str = "5m") -> ProviderDescriptor:
    return ProviderDescriptor(
        id=plugin_id, name=plugin_id, default_interval=interval, version=VERSION, sync=sync
    )


async def quiet_sync(ctx) -> dict:
    return {"summary": "No changes"}


class TestParseInterval:
    """Tests for parse_interval function."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("30s", 30_000),
            ("15m", 900_000),
            ("2h", 7_200_000),
            ("1d", 86_400_000),
            ("10", 600_000),
            ("0s", 0),
            ("", 300_000),
            (None, 300_000),
            ("manual", 300_000),
            ("5 m", 300_000),
            ("1w", 300_000),
            ("-5m", 300_000),
        ],
    )
    def test_parse(self, text: str | None, expected: int) -> None:
        assert parse_interval(text) == expected


class TestIsDue:
    """Tests for is_due function."""

    def record(self, clock: FakeClock, **fields) -> ProviderRecord:
        return ProviderRecord.from_row({"plugin_id": "github-sync", **fields})

    def test_never_run_is_due(self, clock: FakeClock) -> None:
        assert is_due(self.record(clock), clock())

    def test_interval_elapsed(self, clock: FakeClock) -> None:
        last = (clock() - timedelta(minutes=15)).isoformat()
        assert is_due(self.record(clock, interval="15m", last_run=last), clock())

    def test_interval_not_elapsed(self, clock: FakeClock) -> None:
        last = (clock() - timedelta(minutes=14)).isoformat()
        assert not is_due(self.record(clock, interval="15m", last_run=last), clock())

    def test_disabled_never_due(self, clock: FakeClock) -> None:
        assert not is_due(self.record(clock, enabled=0), clock())

    def test_manual_never_due(self, clock: FakeClock) -> None:
        assert not is_due(self.record(clock, interval="manual"), clock())

    def test_syncing_never_due(self, clock: FakeClock) -> None:
        assert not is_due(self.record(clock, status="syncing"), clock())


class TestSchedulerTick:
    """Ticks against a real store through a hub."""

    async def test_dispatches_only_due_registered(self, hub: SyncHub) -> None:
        await hub.register(make_descriptor("due-sync", quiet_sync))
        await hub.register(make_descriptor("manual-sync", quiet_sync, interval="manual"))
        await hub.register(make_descriptor("off-sync", quiet_sync))
        await hub.set_enabled("off-sync", False)
        await hub.store.create_record("orphan-sync")

        dispatched = await hub.tick()
        await hub.drain()

        assert dispatched == ["due-sync"]

    async def test_failure_does_not_block_others(self, hub: SyncHub) -> None:
        async def broken(ctx) -> None:
            raise RuntimeError("API down")

        await hub.register(make_descriptor("a-sync", broken))
        await hub.register(make_descriptor("b-sync", quiet_sync))

        dispatched = await hub.tick()
        await hub.drain()

        assert sorted(dispatched) == ["a-sync", "b-sync"]
        a = await hub.store.get_record("a-sync")
        b = await hub.store.get_record("b-sync")
        assert a.status == "error"
        assert a.last_error == "API down"
        assert b.status == "idle"
        assert b.last_error is None

    async def test_in_flight_not_redispatched(self, hub: SyncHub) -> None:
        release = asyncio.Event()

        async def slow(ctx) -> None:
            await release.wait()

        await hub.register(make_descriptor("slow-sync", slow))

        assert await hub.tick() == ["slow-sync"]
        assert await hub.tick() == []

        release.set()
        await hub.drain()

    async def test_not_due_again_until_interval(self, hub: SyncHub, clock: FakeClock) -> None:
        await hub.register(make_descriptor("github-sync", quiet_sync, interval="1m"))

        assert await hub.tick() == ["github-sync"]
        await hub.drain()
        assert await hub.tick() == []

        clock.advance(seconds=61)
        assert await hub.tick() == ["github-sync"]
        await hub.drain()


class TestSchedulerLoop:
    async def test_start_stop(self, hub: SyncHub, clock: FakeClock) -> None:
        calls: list[str] = []

        async def counting(ctx) -> None:
            calls.append(ctx.plugin_id)

        await hub.register(make_descriptor("github-sync", counting))
        scheduler = Scheduler(
            hub.store,
            hub.registry,
            hub.executor,
            SchedulerConfig(tick_interval_seconds=0.05),
            clock=clock,
        )

        scheduler.start()
        await asyncio.sleep(0.4)
        await scheduler.stop()

        assert not scheduler.running
        assert calls == ["github-sync"]

    async def test_disabled_by_config(self, hub: SyncHub) -> None:
        scheduler = Scheduler(
            hub.store, hub.registry, hub.executor, SchedulerConfig(enabled=False)
        )
        scheduler.start()
        assert not scheduler.running
        await scheduler.stop()
