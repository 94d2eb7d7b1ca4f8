"""SyncHub orchestrator.

A SyncHub is one client instance of the sync engine. It owns every
component as an instance field: workspace store, provider registry, lock
manager, executor, activity log, journal feed, notifier and scheduler.
Several hubs (in separate processes, or in one test) coordinate only
through the shared store.

Providers register after the hub is ready. register() awaits readiness,
so a provider may call it before start() has finished.

Example:
    config = load_config()
    async with SyncHub(config) as hub:
        await hub.register(ProviderDescriptor(id="github-sync", sync=github_sync))
        outcome = await hub.request_sync("github-sync", manual=True)
        print((await hub.summary()).message)
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from synchub.activity import ActivityLog, JournalFeed, OrderedTaskQueue
from synchub.constants import (
    HUB_NOTIFICATION_TITLE,
    MANUAL_INTERVAL,
    RESET_BY_USER_MESSAGE,
    STATUS_ERROR,
    STATUS_IDLE,
    STATUS_SYNCING,
)
from synchub.exceptions import ConfigError, ProviderNotFoundError
from synchub.executor import SyncExecutor
from synchub.lock import LockManager
from synchub.logging import get_logger
from synchub.models import HubSummary, ProviderStatusReport, SyncHubConfig
from synchub.notifications import LoggingNotifier, Notification
from synchub.plugins.registry import ProviderRegistry
from synchub.scheduler import INTERVAL_PATTERN, Scheduler
from synchub.storage import WorkspaceStore
from synchub.utils import format_relative_time, utc_now

if TYPE_CHECKING:
    from synchub.models import ProviderInfo, ProviderRecord, RunOutcome
    from synchub.notifications import Notifier
    from synchub.plugins.base import ProviderDescriptor

logger = get_logger(__name__)


class SyncHub:
    """One client instance: registry, scheduler and executor over a shared store."""

    def __init__(
        self,
        config: SyncHubConfig | None = None,
        *,
        store: WorkspaceStore | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        """Wire up the components. Nothing is opened until start().

        Args:
            config: Hub configuration; defaults when omitted.
            store: Workspace store to use instead of the configured path.
            notifier: Notification destination; LoggingNotifier by default.
            clock: Source of the current time for every component.
            rng: Random source for lock settle jitter.
        """
        self._config = config or SyncHubConfig()
        self._clock = clock
        self._owns_store = store is None
        self.store = store or WorkspaceStore(self._config.storage.path)
        self.notifier: Notifier = notifier or LoggingNotifier()

        ledger_queue = OrderedTaskQueue("ledger")
        self.activity = ActivityLog(self.store, queue=ledger_queue, clock=clock)
        self.journal = JournalFeed(
            self.store,
            queue=ledger_queue,
            clock=clock,
            child_max_chars=self._config.executor.journal_child_max_chars,
        )
        self.registry = ProviderRegistry(self.store, self.activity)
        self.locks = LockManager(self.store, self._config.lock, clock=clock, rng=rng)
        self.executor = SyncExecutor(
            self.store,
            self.registry,
            self.locks,
            self.activity,
            self.journal,
            self.notifier,
            self._config.executor,
            clock=clock,
        )
        self.scheduler = Scheduler(
            self.store, self.registry, self.executor, self._config.scheduler, clock=clock
        )

        self._ready = asyncio.Event()

    @property
    def config(self) -> SyncHubConfig:
        return self._config

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self, *, start_scheduler: bool | None = None) -> None:
        """Open the store, start ticking and let providers register.

        Args:
            start_scheduler: Override config.scheduler.enabled.
        """
        if self._ready.is_set():
            return

        if not self.store.is_open:
            await self.store.initialize()

        if start_scheduler is None:
            start_scheduler = self._config.scheduler.enabled
        if start_scheduler:
            self.scheduler.start()

        self._ready.set()
        logger.info(
            "Sync hub ready",
            extra={"db_path": self.store.db_path, "scheduler": start_scheduler},
        )

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Wait until start() has completed.

        Raises:
            TimeoutError: If the hub is not ready within timeout seconds.
        """
        await asyncio.wait_for(self._ready.wait(), timeout)

    async def close(self) -> None:
        """Stop ticking, let runs finish, cancel abandoned routines, close the store."""
        await self.scheduler.stop(drain=True)
        await self.executor.close()
        await self.registry.close_all()
        await self.activity.close()
        if self._owns_store:
            await self.store.close()
        self._ready.clear()
        logger.info("Sync hub closed")

    async def __aenter__(self) -> SyncHub:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    async def register(self, descriptor: ProviderDescriptor) -> ProviderRecord:
        """Register a provider once the hub is ready."""
        await self.wait_ready()
        return await self.registry.register(descriptor)

    def unregister(self, plugin_id: str) -> bool:
        return self.registry.unregister(plugin_id)

    def list_providers(self) -> list[ProviderInfo]:
        return self.registry.list()

    async def discover_providers(self) -> list[str]:
        """Register providers published under the entry-point group."""
        await self.wait_ready()
        return await self.registry.discover_providers()

    # =========================================================================
    # SYNC TRIGGERS
    # =========================================================================

    async def request_sync(
        self, plugin_id: str, *, full: bool = False, manual: bool = False
    ) -> RunOutcome:
        """Run one provider now.

        Args:
            plugin_id: Provider to run.
            full: Clear last_run so the provider refetches everything.
            manual: Triggered by a user; success is always notified.

        Raises:
            ProviderNotFoundError: If no record exists for plugin_id.
        """
        record = await self.store.get_record(plugin_id)
        if record is None:
            logger.error("Cannot sync unknown plugin", extra={"plugin_id": plugin_id})
            raise ProviderNotFoundError(plugin_id)

        if full:
            logger.info("Full sync requested", extra={"plugin_id": plugin_id})

        return await self.executor.run(plugin_id, manual=manual, full=full)

    async def sync_all(self) -> list[RunOutcome]:
        """Run every enabled, registered provider one after another."""
        records = [r for r in await self.store.list_records() if r.enabled]

        if not records:
            await self._notify_operator("No syncs enabled")
            return []

        await self._notify_operator(f"Syncing {len(records)} plugins...")

        outcomes: list[RunOutcome] = []
        try:
            for record in records:
                if self.registry.is_registered(record.plugin_id):
                    outcomes.append(await self.executor.run(record.plugin_id))
        except Exception as e:
            logger.error("Sync all failed", extra={"error": str(e)})
            await self.notifier.notify(
                Notification.build(HUB_NOTIFICATION_TITLE, f"Sync all failed: {e}", "error")
            )
            raise

        return outcomes

    async def tick(self) -> list[str]:
        """Run one scheduler tick; the dispatched runs continue in the background."""
        return await self.scheduler.tick()

    async def drain(self) -> None:
        """Wait for runs started by ticks."""
        await self.scheduler.drain()

    # =========================================================================
    # OPERATOR COMMANDS
    # =========================================================================

    async def reset_stuck_syncs(self) -> int:
        """Return every record stuck in syncing to idle.

        Returns:
            Number of records reset.
        """
        count = 0
        for record in await self.store.list_records():
            if record.status == STATUS_SYNCING:
                await self.store.update_fields(
                    record.plugin_id, status=STATUS_IDLE, last_error=RESET_BY_USER_MESSAGE
                )
                count += 1
                logger.info("Reset stuck sync", extra={"plugin_id": record.plugin_id})

        await self._notify_operator(
            f"Reset {count} stuck sync(s)" if count else "No stuck syncs found"
        )
        return count

    async def set_enabled(self, plugin_id: str, enabled: bool) -> None:
        if not await self.store.update_fields(plugin_id, enabled=enabled):
            raise ProviderNotFoundError(plugin_id)
        logger.info("Provider toggled", extra={"plugin_id": plugin_id, "enabled": enabled})

    async def set_interval(self, plugin_id: str, interval: str) -> None:
        """Change a provider's interval.

        Raises:
            ConfigError: If interval is neither "manual" nor N{s|m|h|d}.
            ProviderNotFoundError: If no record exists for plugin_id.
        """
        if interval != MANUAL_INTERVAL and not INTERVAL_PATTERN.match(interval):
            raise ConfigError(
                f"Invalid interval: {interval!r}", {"expected": "manual or N{s|m|h|d}"}
            )
        if not await self.store.update_fields(plugin_id, interval=interval):
            raise ProviderNotFoundError(plugin_id)

    # =========================================================================
    # STATUS
    # =========================================================================

    async def get_status(self, plugin_id: str) -> ProviderStatusReport | None:
        record = await self.store.get_record(plugin_id)
        if record is None:
            return None
        return ProviderStatusReport(
            enabled=record.enabled,
            status=record.status,
            last_run=record.last_run,
            last_error=record.last_error,
            interval=record.interval,
        )

    async def summary(self) -> HubSummary:
        """Overall state for status bars: syncing, error, disabled or idle."""
        records = await self.store.list_records()
        names = {r.plugin_id: r.name or r.plugin_id for r in records}
        enabled = [r for r in records if r.enabled]

        running = self.executor.running
        if running:
            return HubSummary(
                state="syncing",
                message=f"Syncing {names.get(running[0], running[0])}...",
                active_count=len(enabled),
            )

        errors = [r.plugin_id for r in enabled if r.status == STATUS_ERROR]
        if errors:
            return HubSummary(
                state="error",
                message=f"Sync errors: {', '.join(names[pid] for pid in errors)}",
                active_count=len(enabled),
                error_ids=errors,
            )

        if not enabled:
            return HubSummary(state="disabled", message="Sync Hub - No syncs enabled")

        runs = [r.last_run for r in enabled if r.last_run is not None]
        relative = format_relative_time(max(runs), self._clock()) if runs else "never"
        return HubSummary(
            state="idle",
            message=f"Sync Hub - Last sync: {relative} ({len(enabled)} active)",
            active_count=len(enabled),
        )

    async def _notify_operator(self, message: str) -> None:
        await self.notifier.notify(Notification.build(HUB_NOTIFICATION_TITLE, message, "info"))
