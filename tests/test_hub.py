"""Tests for the SyncHub orchestrator."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from synchub.constants import VERSION
from synchub.exceptions import ConfigError, ProviderNotFoundError
from synchub.hub import SyncHub
from synchub.models import LockConfig, SyncHubConfig
from synchub.plugins.base import ProviderDescriptor, SyncContext

if TYPE_CHECKING:
    from conftest import FakeClock


def make_descriptor(plugin_id: str, sync, interval: str = "5m") -> ProviderDescriptor:
    return ProviderDescriptor(
        id=plugin_id, name=plugin_id, default_interval=interval, version=VERSION, sync=sync
    )


async def quiet_sync(ctx: SyncContext) -> None:
    return None


class TestEndToEnd:
    async def test_scheduled_and_manual_providers(self, hub: SyncHub) -> None:
        calls: list[str] = []

        async def sync_a(ctx: SyncContext) -> dict:
            calls.append("A")
            return {
                "summary": "3 new",
                "created": 3,
                "changes": [
                    {"verb": "created", "title": f"Item {i}", "guid": f"guid-{i}"}
                    for i in range(3)
                ],
            }

        async def sync_b(ctx: SyncContext) -> None:
            calls.append("B")

        await hub.register(make_descriptor("A", sync_a, interval="1m"))
        await hub.register(make_descriptor("B", sync_b, interval="manual"))

        await hub.tick()
        await hub.drain()

        assert calls == ["A"]
        changes = [e for e in await hub.activity.entries("A") if e.kind == "change"]
        assert len(changes) == 3
        assert len(hub.notifier.sent) == 1
        assert hub.notifier.sent[0].message == "3 new"

        record_b = await hub.store.get_record("B")
        assert record_b.last_run is None
        assert record_b.status == "idle"


class TestReadiness:
    async def test_register_waits_for_start(self, config: SyncHubConfig, clock: FakeClock) -> None:
        hub = SyncHub(config, clock=clock)
        registering = asyncio.create_task(hub.register(make_descriptor("A", quiet_sync)))

        await asyncio.sleep(0.01)
        assert not registering.done()

        await hub.start(start_scheduler=False)
        record = await registering

        assert record.plugin_id == "A"
        await hub.close()

    async def test_wait_ready_timeout(self, config: SyncHubConfig) -> None:
        hub = SyncHub(config)
        with pytest.raises(TimeoutError):
            await hub.wait_ready(timeout=0.01)


class TestRequestSync:
    async def test_unknown_plugin_raises(self, hub: SyncHub) -> None:
        with pytest.raises(ProviderNotFoundError):
            await hub.request_sync("missing")

    async def test_manual_full_sync(self, hub: SyncHub, clock: FakeClock) -> None:
        seen: list = []

        async def sync(ctx: SyncContext) -> None:
            seen.append(ctx.last_run)

        await hub.register(make_descriptor("A", sync, interval="manual"))
        await hub.store.update_fields("A", last_run=clock() - timedelta(days=1))

        outcome = await hub.request_sync("A", full=True, manual=True)

        assert outcome.state == "idle"
        assert seen == [None]
        assert len(hub.notifier.sent) == 1


class TestSyncAll:
    async def test_runs_enabled_registered(self, hub: SyncHub) -> None:
        calls: list[str] = []

        async def sync(ctx: SyncContext) -> None:
            calls.append(ctx.plugin_id)

        await hub.register(make_descriptor("A", sync, interval="manual"))
        await hub.register(make_descriptor("B", sync))
        await hub.register(make_descriptor("C", sync))
        await hub.set_enabled("C", False)

        outcomes = await hub.sync_all()

        assert calls == ["A", "B"]
        assert [o.state for o in outcomes] == ["idle", "idle"]
        assert hub.notifier.sent[0].message == "Syncing 2 plugins..."

    async def test_nothing_enabled(self, hub: SyncHub) -> None:
        assert await hub.sync_all() == []
        assert hub.notifier.sent[0].message == "No syncs enabled"
        assert hub.notifier.sent[0].auto_dismiss_ms == 2000


class TestOperatorCommands:
    async def test_reset_stuck_syncs(self, hub: SyncHub) -> None:
        for plugin_id in ("A", "B", "C"):
            await hub.store.create_record(plugin_id)
        await hub.store.update_fields("A", status="syncing")
        await hub.store.update_fields("B", status="syncing")
        await hub.store.update_fields("C", status="error", last_error="boom")

        count = await hub.reset_stuck_syncs()

        assert count == 2
        a = await hub.get_status("A")
        c = await hub.get_status("C")
        assert a.status == "idle"
        assert a.last_error == "Reset by user"
        assert c.status == "error"
        assert c.last_error == "boom"
        assert hub.notifier.sent[-1].message == "Reset 2 stuck sync(s)"

    async def test_reset_with_nothing_stuck(self, hub: SyncHub) -> None:
        assert await hub.reset_stuck_syncs() == 0
        assert hub.notifier.sent[-1].message == "No stuck syncs found"

    async def test_set_interval(self, hub: SyncHub) -> None:
        await hub.store.create_record("A")

        await hub.set_interval("A", "2h")
        assert (await hub.get_status("A")).interval == "2h"

        with pytest.raises(ConfigError):
            await hub.set_interval("A", "every hour")
        with pytest.raises(ProviderNotFoundError):
            await hub.set_interval("missing", "5m")

    async def test_get_status_unknown(self, hub: SyncHub) -> None:
        assert await hub.get_status("missing") is None


class TestSummary:
    async def test_disabled_when_nothing_enabled(self, hub: SyncHub) -> None:
        summary = await hub.summary()
        assert summary.state == "disabled"

    async def test_error_lists_names(self, hub: SyncHub) -> None:
        await hub.store.create_record("github-sync", name="GitHub")
        await hub.store.update_fields("github-sync", status="error")

        summary = await hub.summary()

        assert summary.state == "error"
        assert summary.message == "Sync errors: GitHub"
        assert summary.error_ids == ["github-sync"]

    async def test_idle_reports_latest_run(self, hub: SyncHub, clock: FakeClock) -> None:
        await hub.store.create_record("A")
        await hub.store.create_record("B")
        await hub.store.update_fields("A", last_run=clock() - timedelta(hours=3))
        await hub.store.update_fields("B", last_run=clock() - timedelta(minutes=5))

        summary = await hub.summary()

        assert summary.state == "idle"
        assert summary.message == "Sync Hub - Last sync: 5m ago (2 active)"

    async def test_syncing_while_running(self, hub: SyncHub) -> None:
        release = asyncio.Event()

        async def slow(ctx: SyncContext) -> None:
            await release.wait()

        await hub.register(make_descriptor("A", slow))
        run = asyncio.create_task(hub.request_sync("A"))
        while not hub.executor.is_running("A"):
            await asyncio.sleep(0.005)

        summary = await hub.summary()
        release.set()
        await run

        assert summary.state == "syncing"
        assert summary.message == "Syncing A..."


class TestMultipleInstances:
    """Two hubs over one workspace file coordinate through the record lock."""

    async def test_only_one_instance_runs(self, config: SyncHubConfig, clock: FakeClock) -> None:
        calls: list[str] = []
        release = asyncio.Event()

        def routine(instance: str):
            async def sync(ctx: SyncContext) -> None:
                calls.append(instance)
                await release.wait()

            return sync

        config = config.model_copy(
            update={"lock": LockConfig(settle_base_ms=100, settle_jitter_ms=50)}
        )
        first = SyncHub(config, clock=clock)
        second = SyncHub(config, clock=clock)
        await first.start(start_scheduler=False)
        await second.start(start_scheduler=False)
        try:
            await first.register(make_descriptor("A", routine("first")))
            await second.register(make_descriptor("A", routine("second")))

            runs = asyncio.gather(first.request_sync("A"), second.request_sync("A"))
            await asyncio.sleep(0.2)
            release.set()
            outcomes = await runs

            assert len(calls) == 1
            assert sorted(o.state for o in outcomes) == ["idle", "skipped"]
        finally:
            await first.close()
            await second.close()
