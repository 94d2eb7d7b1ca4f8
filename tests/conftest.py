"""Shared fixtures for SyncHub tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from synchub.hub import SyncHub
from synchub.models import ExecutorConfig, LockConfig, SchedulerConfig, StorageConfig, SyncHubConfig
from synchub.storage import WorkspaceStore


class FakeClock:
    """Settable clock passed wherever components take `clock=`."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 30, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Create a temporary database path."""
    return str(tmp_path / "workspace.db")


@pytest.fixture
async def store(db_path: str) -> WorkspaceStore:
    """Create and initialize a test store."""
    store = WorkspaceStore(db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def config(db_path: str) -> SyncHubConfig:
    """Config with short lock settle times and the periodic tick off."""
    return SyncHubConfig(
        storage=StorageConfig(path=db_path),
        scheduler=SchedulerConfig(enabled=False),
        lock=LockConfig(settle_base_ms=20, settle_jitter_ms=10),
        executor=ExecutorConfig(timeout_seconds=5),
    )


@pytest.fixture
async def hub(config: SyncHubConfig, clock: FakeClock) -> SyncHub:
    """A started hub without the background scheduler."""
    hub = SyncHub(config, clock=clock)
    await hub.start(start_scheduler=False)
    yield hub
    await hub.close()
