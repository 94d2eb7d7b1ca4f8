"""Tests for the provider registry."""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import AsyncMock

import pytest

from synchub.activity import ActivityLog
from synchub.constants import VERSION
from synchub.exceptions import RegistrationError, StoreError
from synchub.models import SyncResult
from synchub.plugins import ProviderDescriptor, ProviderRegistry, SyncContext, SyncProvider
from synchub.storage import WorkspaceStore


async def noop(ctx: SyncContext) -> None:
    return None


class ReadwiseProvider(SyncProvider):
    id = "readwise-sync"
    name = "Readwise"
    icon = "ti-book"
    default_interval = "1h"
    version = VERSION

    def __init__(self) -> None:
        self.closed = False

    async def sync(self, ctx: SyncContext) -> SyncResult:
        return SyncResult(summary="No new highlights")

    async def close(self) -> None:
        self.closed = True


class FakeEntryPoint:
    """Stand-in for importlib.metadata.EntryPoint."""

    def __init__(self, name: str, target: Any) -> None:
        self.name = name
        self.value = f"tests:{name}"
        self._target = target

    def load(self) -> Any:
        if isinstance(self._target, Exception):
            raise self._target
        return self._target


@pytest.fixture
async def registry(store: WorkspaceStore) -> ProviderRegistry:
    activity = ActivityLog(store)
    yield ProviderRegistry(store, activity)
    await activity.close()


class TestProviderDescriptor:
    def test_camel_case_interval_alias(self) -> None:
        descriptor = ProviderDescriptor.model_validate(
            {"id": "github-sync", "defaultInterval": "15m", "sync": noop}
        )
        assert descriptor.default_interval == "15m"
        assert descriptor.display_name == "github-sync"


class TestRegistration:
    """Tests for register and unregister."""

    async def test_register_creates_record(
        self, registry: ProviderRegistry, store: WorkspaceStore
    ) -> None:
        descriptor = ProviderDescriptor(
            id="github-sync", name="GitHub", default_interval="15m", version=VERSION, sync=noop
        )

        record = await registry.register(descriptor)

        assert record.plugin_id == "github-sync"
        assert record.interval == "15m"
        assert record.journal == "major_only"
        assert registry.is_registered("github-sync")
        assert registry.get("github-sync") is descriptor

    async def test_store_failure_leaves_provider_unregistered(
        self, registry: ProviderRegistry, store: WorkspaceStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            store, "create_record", AsyncMock(side_effect=StoreError("database is locked"))
        )
        descriptor = ProviderDescriptor(id="github-sync", name="GitHub", sync=noop)

        with pytest.raises(StoreError):
            await registry.register(descriptor)

        assert not registry.is_registered("github-sync")
        assert registry.get("github-sync") is None

    async def test_registration_entry_written_once(
        self, registry: ProviderRegistry, store: WorkspaceStore
    ) -> None:
        descriptor = ProviderDescriptor(id="github-sync", name="GitHub", sync=noop)

        await registry.register(descriptor)
        await registry.register(descriptor)

        entries = await ActivityLog(store).entries("github-sync")
        assert [e.message for e in entries] == ["Plugin registered: GitHub"]

    async def test_reregistration_keeps_record_settings(
        self, registry: ProviderRegistry, store: WorkspaceStore
    ) -> None:
        await registry.register(ProviderDescriptor(id="github-sync", sync=noop))
        await store.update_fields("github-sync", interval="manual")

        record = await registry.register(
            ProviderDescriptor(id="github-sync", default_interval="1m", sync=noop)
        )

        assert record.interval == "manual"

    async def test_empty_id_rejected(self, registry: ProviderRegistry) -> None:
        with pytest.raises(RegistrationError):
            await registry.register(ProviderDescriptor(id="", sync=noop))

    async def test_unregister_keeps_record(
        self, registry: ProviderRegistry, store: WorkspaceStore
    ) -> None:
        await registry.register(ProviderDescriptor(id="github-sync", sync=noop))

        assert registry.unregister("github-sync") is True
        assert registry.unregister("github-sync") is False
        assert not registry.is_registered("github-sync")
        assert await store.get_record("github-sync") is not None

    async def test_version_mismatch_warns(
        self, registry: ProviderRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="synchub.plugins.registry"):
            await registry.register(ProviderDescriptor(id="old-sync", version="0.0.1", sync=noop))

        assert "does not match" in caplog.text
        assert registry.is_registered("old-sync")

    async def test_list_reports_version_match(self, registry: ProviderRegistry) -> None:
        await registry.register(ProviderDescriptor(id="a-sync", version=VERSION, sync=noop))
        await registry.register(ProviderDescriptor(id="b-sync", version="0.0.1", sync=noop))

        infos = {info.id: info.version_match for info in registry.list()}

        assert infos == {"a-sync": True, "b-sync": False}


class TestDiscovery:
    """Entry-point discovery."""

    async def test_discovers_and_skips_broken(
        self, registry: ProviderRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        entry_points = [
            FakeEntryPoint("readwise", ReadwiseProvider),
            FakeEntryPoint("broken", ImportError("missing dependency")),
            FakeEntryPoint("not_a_provider", dict),
        ]
        monkeypatch.setattr(
            "importlib.metadata.entry_points", lambda group: entry_points
        )

        registered = await registry.discover_providers()

        assert registered == ["readwise-sync"]
        info = registry.list()[0]
        assert info.name == "Readwise"
        assert info.version_match is True

    async def test_close_all_closes_instances(
        self, registry: ProviderRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "importlib.metadata.entry_points",
            lambda group: [FakeEntryPoint("readwise", ReadwiseProvider)],
        )
        await registry.discover_providers()
        provider = registry._instances["readwise-sync"]

        await registry.close_all()

        assert provider.closed is True
        assert len(registry) == 0
