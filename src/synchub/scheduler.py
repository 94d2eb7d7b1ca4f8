"""Interval scheduler that decides which providers are due.

Every tick (30 seconds by default, independent of any provider's own
interval) the scheduler reads all records fresh from the store and hands
each due, registered provider to the executor as its own task. A tick
does not wait for the runs it starts, and one failing run never stops
the others.

A record is due when it is enabled, not syncing, not manual-only, and
its interval has elapsed since last_run. A record that never ran is
always due.

Example:
    scheduler = Scheduler(store, registry, executor)
    scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import re
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from synchub.constants import DEFAULT_INTERVAL_MS, INTERVAL_UNIT_MS, MANUAL_INTERVAL, STATUS_SYNCING
from synchub.logging import get_logger
from synchub.models import SchedulerConfig
from synchub.utils import utc_now

if TYPE_CHECKING:
    from synchub.executor import SyncExecutor
    from synchub.models import ProviderRecord, RunOutcome
    from synchub.plugins.registry import ProviderRegistry
    from synchub.storage import WorkspaceStore

logger = get_logger(__name__)

INTERVAL_PATTERN = re.compile(r"^(\d+)(s|m|h|d)?$")


def parse_interval(text: str | None) -> int:
    """Convert an interval like "30s", "15m", "2h", "1d" or "10" to milliseconds.

    A bare number means minutes. Anything unrecognised, including an
    empty value, falls back to five minutes.

    Args:
        text: Interval text from a record.

    Returns:
        Interval in milliseconds.
    """
    if not text:
        return DEFAULT_INTERVAL_MS

    match = INTERVAL_PATTERN.match(text)
    if not match:
        return DEFAULT_INTERVAL_MS

    value = int(match.group(1))
    unit = match.group(2) or "m"
    return value * INTERVAL_UNIT_MS[unit]


def is_due(record: ProviderRecord, now: datetime) -> bool:
    """Whether a record should be run by a scheduler tick at `now`."""
    if not record.enabled:
        return False
    if record.status == STATUS_SYNCING:
        return False
    if record.interval == MANUAL_INTERVAL:
        return False
    if record.last_run is None:
        return True

    elapsed_ms = (now - record.last_run).total_seconds() * 1000
    return elapsed_ms >= parse_interval(record.interval)


class Scheduler:
    """Periodic due-check that dispatches runs to the executor."""

    def __init__(
        self,
        store: WorkspaceStore,
        registry: ProviderRegistry,
        executor: SyncExecutor,
        config: SchedulerConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Workspace store with the records.
            registry: Providers this instance can run.
            executor: Runs one provider through the state machine.
            config: Tick period and enable flag.
            clock: Source of the current time.
        """
        self._store = store
        self._registry = registry
        self._executor = executor
        self._config = config or SchedulerConfig()
        self._clock = clock

        self._running = False
        self._loop_task: asyncio.Task[None] | None = None
        self._in_flight: dict[str, asyncio.Task[RunOutcome]] = {}

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> list[str]:
        return list(self._in_flight)

    # =========================================================================
    # TICK
    # =========================================================================

    async def tick(self) -> list[str]:
        """Inspect every record once and start runs for the due ones.

        Returns:
            Ids of the providers dispatched by this tick.
        """
        records = await self._store.list_records()
        now = self._clock()
        dispatched: list[str] = []

        for record in records:
            plugin_id = record.plugin_id
            if not is_due(record, now):
                continue
            if not self._registry.is_registered(plugin_id):
                continue
            if plugin_id in self._in_flight or self._executor.is_running(plugin_id):
                logger.debug("Already running, not dispatched", extra={"plugin_id": plugin_id})
                continue

            task = asyncio.create_task(self._executor.run(plugin_id), name=f"sync-{plugin_id}")
            self._in_flight[plugin_id] = task
            task.add_done_callback(lambda t, pid=plugin_id: self._on_run_done(pid, t))
            dispatched.append(plugin_id)

        if dispatched:
            logger.info("Tick dispatched runs", extra={"plugin_ids": ",".join(dispatched)})
        else:
            logger.debug("Tick found nothing due", extra={"records": len(records)})

        return dispatched

    def _on_run_done(self, plugin_id: str, task: asyncio.Task[RunOutcome]) -> None:
        if self._in_flight.get(plugin_id) is task:
            del self._in_flight[plugin_id]

        if task.cancelled():
            logger.debug("Dispatched run cancelled", extra={"plugin_id": plugin_id})
            return

        error = task.exception()
        if error is not None:
            logger.error(
                "Dispatched run raised",
                extra={"plugin_id": plugin_id, "error": str(error)},
            )

    async def drain(self) -> None:
        """Wait for every run started by a tick to finish."""
        while self._in_flight:
            await asyncio.gather(*self._in_flight.values(), return_exceptions=True)

    # =========================================================================
    # LOOP
    # =========================================================================

    async def run(self) -> None:
        """Tick every period until stopped.

        Errors of a single tick are logged; the loop keeps going.
        """
        self._running = True
        period = self._config.tick_interval_seconds

        logger.info("Starting scheduler", extra={"tick_interval_seconds": period})

        while self._running:
            await asyncio.sleep(period)
            if not self._running:
                break
            try:
                await self.tick()
            except Exception as e:
                logger.error("Error in scheduler tick", extra={"error": str(e)})

        logger.info("Scheduler stopped")

    def start(self) -> None:
        """Run the tick loop as a background task of the current event loop."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        if not self._config.enabled:
            logger.info("Scheduler disabled by configuration")
            return
        self._loop_task = asyncio.create_task(self.run(), name="synchub-scheduler")

    async def stop(self, *, drain: bool = True) -> None:
        """Stop ticking, optionally waiting for runs already dispatched."""
        self._running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None

        if drain:
            await self.drain()
