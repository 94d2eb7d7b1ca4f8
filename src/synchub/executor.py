"""Sync executor: runs one provider through the status state machine.

    idle/error --acquire lock--> syncing --routine returns--> idle
                                         --raises/timeout---> error

Every run that got the lock ends in cleanup, whatever happened in
between: last_run is stamped, the terminal status and last_error are
written, and the lock is released. A run that could not start (provider
not registered, record missing, disabled, lock held elsewhere) is
reported as skipped and changes nothing.

The routine races a timeout. On timeout the run fails but the routine is
not cancelled; it is kept as an abandoned task until it settles or the
executor is closed.

Example:
    executor = SyncExecutor(store, registry, locks, activity, journal, notifier)
    outcome = await executor.run("github-sync", manual=True)
    if outcome.state == "error":
        print(outcome.error)
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from synchub.constants import (
    JOURNAL_NONE,
    LOG_LEVEL_DEBUG,
    LOG_LEVEL_ERROR,
    STATUS_ERROR,
    STATUS_IDLE,
    STATUS_SYNCING,
    TOAST_ALL_UPDATES,
    TOAST_NEW_RECORDS,
)
from synchub.exceptions import SyncTimeoutError
from synchub.logging import get_logger
from synchub.models import ExecutorConfig, RunOutcome, SyncResult
from synchub.notifications import Notification
from synchub.plugins.base import SyncContext
from synchub.storage import WorkspaceView
from synchub.utils import format_duration, utc_now

if TYPE_CHECKING:
    from synchub.activity import ActivityLog, JournalFeed
    from synchub.lock import LockManager
    from synchub.models import ProviderRecord
    from synchub.notifications import Notifier
    from synchub.plugins.base import ProviderDescriptor
    from synchub.plugins.registry import ProviderRegistry
    from synchub.storage import WorkspaceStore

logger = get_logger(__name__)


def should_notify(level: str, result: SyncResult | None) -> bool:
    """Whether a successful run is worth a notification at this toast level.

    errors_only is False here because failures are always notified.
    """
    if level == TOAST_ALL_UPDATES:
        return True
    if level == TOAST_NEW_RECORDS:
        return result is not None and result.created > 0
    return False


def coerce_result(raw: Any) -> SyncResult:
    """Accept what a routine returned: SyncResult, a dict of one, or None."""
    if raw is None:
        return SyncResult()
    if isinstance(raw, SyncResult):
        return raw
    return SyncResult.model_validate(raw)


class SyncExecutor:
    """Runs registered providers and keeps their records consistent."""

    def __init__(
        self,
        store: WorkspaceStore,
        registry: ProviderRegistry,
        locks: LockManager,
        activity: ActivityLog,
        journal: JournalFeed,
        notifier: Notifier,
        config: ExecutorConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the executor.

        Args:
            store: Workspace store with the records.
            registry: Registered sync routines.
            locks: Cross-instance lock protocol.
            activity: Per-provider activity log.
            journal: Dated feed of notable changes.
            notifier: Destination of run notifications.
            config: Timeout settings.
            clock: Source of the current time for last_run.
        """
        self._store = store
        self._registry = registry
        self._locks = locks
        self._activity = activity
        self._journal = journal
        self._notifier = notifier
        self._config = config or ExecutorConfig()
        self._clock = clock
        self._workspace = WorkspaceView(store)

        self._running: set[str] = set()
        self._abandoned: set[asyncio.Future[Any]] = set()

    @property
    def timeout_seconds(self) -> float:
        return self._config.timeout_seconds

    @property
    def running(self) -> list[str]:
        return sorted(self._running)

    def is_running(self, plugin_id: str) -> bool:
        return plugin_id in self._running

    @property
    def abandoned_count(self) -> int:
        return len(self._abandoned)

    # =========================================================================
    # RUN
    # =========================================================================

    async def run(self, plugin_id: str, *, manual: bool = False, full: bool = False) -> RunOutcome:
        """Run one provider if it is runnable and the lock can be taken.

        Args:
            plugin_id: Provider to run.
            manual: Triggered by a user; always notifies on success.
            full: Clear last_run first so the provider fetches everything.

        Returns:
            RunOutcome with state idle, error or skipped. Never raises for
            provider failures.
        """
        descriptor = self._registry.get(plugin_id)
        if descriptor is None:
            logger.warning("No sync routine registered", extra={"plugin_id": plugin_id})
            return self._skipped(plugin_id, "not registered")

        record = await self._store.get_record(plugin_id)
        if record is None:
            logger.warning("No record for provider", extra={"plugin_id": plugin_id})
            return self._skipped(plugin_id, "no record")

        if not record.enabled:
            logger.debug("Provider disabled, not running", extra={"plugin_id": plugin_id})
            return self._skipped(plugin_id, "disabled")

        token = await self._locks.acquire(plugin_id)
        if token is None:
            logger.debug("Another run holds the lock", extra={"plugin_id": plugin_id})
            return self._skipped(plugin_id, "locked")

        self._running.add(plugin_id)
        try:
            return await self._run_locked(descriptor, record, manual=manual, full=full)
        finally:
            self._running.discard(plugin_id)

    async def _run_locked(
        self,
        descriptor: ProviderDescriptor,
        record: ProviderRecord,
        *,
        manual: bool,
        full: bool,
    ) -> RunOutcome:
        plugin_id = descriptor.id
        started = time.monotonic()
        result: SyncResult | None = None
        error: str | None = None

        logger.info(
            "Sync started",
            extra={"plugin_id": plugin_id, "manual": manual, "full": full},
        )

        try:
            if full:
                await self._store.update_fields(plugin_id, status=STATUS_SYNCING, last_run=None)
            else:
                await self._store.update_fields(plugin_id, status=STATUS_SYNCING)

            ctx = SyncContext(
                plugin_id=plugin_id,
                workspace=self._workspace,
                activity=self._activity,
                last_run=None if full else record.last_run,
                log_level=record.log_level,
                full=full,
                manual=manual,
            )
            result = coerce_result(await self._invoke(descriptor, ctx))
            duration_ms = self._elapsed_ms(started)
            await self._on_success(record, result, duration_ms, manual=manual)

        except asyncio.CancelledError:
            error = "Sync cancelled"
            raise
        except ValidationError as e:
            error = f"Invalid sync result: {e.error_count()} validation error(s)"
            await self._on_error(record, error)
        except Exception as e:
            error = str(e) or type(e).__name__
            await self._on_error(record, error)

        finally:
            duration_ms = self._elapsed_ms(started)
            error = await self._finish(plugin_id, error)

        if error is not None:
            return RunOutcome(
                plugin_id=plugin_id, state="error", error=error, duration_ms=duration_ms
            )
        return RunOutcome(plugin_id=plugin_id, state="idle", result=result, duration_ms=duration_ms)

    async def _invoke(self, descriptor: ProviderDescriptor, ctx: SyncContext) -> Any:
        """Await the routine, giving up after the configured timeout."""
        task = asyncio.ensure_future(descriptor.sync(ctx))
        try:
            done, _ = await asyncio.wait({task}, timeout=self._config.timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task not in done:
            self._abandon(descriptor.id, task)
            timeout_ms = int(self._config.timeout_seconds * 1000)
            raise SyncTimeoutError(
                f"Sync timeout ({format_duration(timeout_ms)})",
                provider_id=descriptor.id,
                details={"timeout_ms": timeout_ms},
            )
        return task.result()

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def _on_success(
        self,
        record: ProviderRecord,
        result: SyncResult,
        duration_ms: int,
        *,
        manual: bool,
    ) -> None:
        plugin_id = record.plugin_id

        for change in result.changes:
            await self._activity.append_change(
                plugin_id, change.verb, change.title, change.guid, major=change.major
            )

        if record.log_level == LOG_LEVEL_DEBUG:
            await self._activity.append(
                plugin_id, f"{result.summary} ({format_duration(duration_ms)})", LOG_LEVEL_DEBUG
            )

        if manual or should_notify(record.toast, result):
            await self._notifier.notify(Notification.build(plugin_id, result.summary))

        if record.journal != JOURNAL_NONE and result.changes:
            await self._journal.write_changes(plugin_id, result.changes, record.journal)

        logger.info(
            "Sync completed",
            extra={
                "plugin_id": plugin_id,
                "created": result.created,
                "updated": result.updated,
                "changes": len(result.changes),
                "duration_ms": duration_ms,
            },
        )

    async def _on_error(self, record: ProviderRecord, message: str) -> None:
        plugin_id = record.plugin_id
        logger.error("Sync failed", extra={"plugin_id": plugin_id, "error": message})

        await self._activity.append(plugin_id, f"ERROR: {message}", LOG_LEVEL_ERROR)
        try:
            await self._notifier.notify(
                Notification.build(f"{plugin_id} error", message, level="error")
            )
        except Exception as e:
            logger.warning(
                "Failed to deliver error notification",
                extra={"plugin_id": plugin_id, "error": str(e)},
            )

    async def _finish(self, plugin_id: str, error: str | None) -> str | None:
        """Write the terminal state and release the lock.

        Returns:
            The run's error message, or a new one if the state write failed.
        """
        try:
            await self._store.update_fields(
                plugin_id,
                status=STATUS_ERROR if error is not None else STATUS_IDLE,
                last_error=error,
                last_run=self._clock(),
            )
        except Exception as e:
            logger.error(
                "Failed to write terminal state",
                extra={"plugin_id": plugin_id, "error": str(e)},
            )
            error = error or f"Failed to record sync result: {e}"
        finally:
            try:
                await self._locks.release(plugin_id)
            except Exception as e:
                logger.error(
                    "Failed to release lock",
                    extra={"plugin_id": plugin_id, "error": str(e)},
                )
        return error

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _skipped(self, plugin_id: str, reason: str) -> RunOutcome:
        return RunOutcome(plugin_id=plugin_id, state="skipped", skipped_reason=reason)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    def _abandon(self, plugin_id: str, task: asyncio.Future[Any]) -> None:
        self._abandoned.add(task)

        def settled(fut: asyncio.Future[Any]) -> None:
            self._abandoned.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            logger.info(
                "Abandoned sync routine settled",
                extra={"plugin_id": plugin_id, "error": str(exc) if exc else None},
            )

        task.add_done_callback(settled)
        logger.warning("Sync routine abandoned after timeout", extra={"plugin_id": plugin_id})

    async def close(self) -> None:
        """Cancel routines abandoned by timeouts. Only used at shutdown."""
        pending = list(self._abandoned)
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._abandoned.clear()
        if pending:
            logger.info("Cancelled abandoned sync routines", extra={"count": len(pending)})
