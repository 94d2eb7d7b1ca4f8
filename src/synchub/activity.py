"""Append-only activity log and journal feed.

Every write to a ledger goes through an OrderedTaskQueue: one consumer
task takes jobs in submission order and awaits each before starting the
next, so entry order is the order of submission and never depends on how
individual writes interleave.

Provider routines log through SyncContext.log(), which is synchronous;
it posts to the queue and returns immediately. Callers that need the
entries on disk await flush().

Example:
    activity = ActivityLog(store)
    await activity.append("github-sync", "Plugin registered: GitHub")
    await activity.append_change("github-sync", "created", "Fix login", "issue-42", major=True)

    for entry in await activity.entries("github-sync"):
        print(entry.render())
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from synchub.constants import (
    JOURNAL_CHILD_MAX_CHARS,
    JOURNAL_MAJOR_ONLY,
    JOURNAL_NONE,
    JOURNAL_VERBOSE,
    LOG_LEVEL_INFO,
)
from synchub.logging import get_logger
from synchub.utils import truncate_child, utc_now

if TYPE_CHECKING:
    from synchub.models import ActivityEntry, Change, JournalEntry
    from synchub.storage import WorkspaceStore

logger = get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


class OrderedTaskQueue:
    """Single-consumer queue that runs async jobs strictly one after another.

    The consumer task is started lazily on the first submit() so the queue
    can be constructed outside a running event loop. A job whose caller
    stopped waiting still runs to completion; only its result is dropped.
    """

    def __init__(self, name: str = "ordered") -> None:
        self._name = name
        self._queue: asyncio.Queue[tuple[Job, asyncio.Future[Any]]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    def submit(self, job: Job) -> asyncio.Future[Any]:
        """Enqueue a job and return a future for its result."""
        loop = asyncio.get_running_loop()
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(
                self._consume(self._queue), name=f"{self._name}-queue"
            )

        future: asyncio.Future[Any] = loop.create_future()
        self._queue.put_nowait((job, future))
        return future

    async def _consume(self, queue: asyncio.Queue[tuple[Job, asyncio.Future[Any]]]) -> None:
        while True:
            job, future = await queue.get()
            try:
                if future.done():
                    continue
                try:
                    result = await job()
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                    else:
                        logger.warning(
                            "Queued job failed after its caller stopped waiting",
                            extra={"queue": self._name, "error": str(e)},
                        )
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                queue.task_done()

    def pending(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        await self._queue.join()

    async def close(self) -> None:
        """Finish queued jobs, then stop the consumer."""
        await self.join()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None


class ActivityLog:
    """Per-provider append-only ledger of timestamped entries.

    Write failures are logged and swallowed: a ledger that cannot be
    written must not turn a successful sync into a failed one.
    """

    def __init__(
        self,
        store: WorkspaceStore,
        *,
        queue: OrderedTaskQueue | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._queue = queue or OrderedTaskQueue("activity")
        self._clock = clock

    @property
    def queue(self) -> OrderedTaskQueue:
        return self._queue

    def post(self, plugin_id: str, message: str, level: str = LOG_LEVEL_INFO) -> None:
        """Enqueue a message entry without waiting for it to be written."""
        self._submit_message(plugin_id, message, level)

    async def append(
        self, plugin_id: str, message: str, level: str = LOG_LEVEL_INFO
    ) -> int | None:
        """Append a message entry and wait for it to be written.

        Returns:
            The entry id, or None if the write failed.
        """
        return await self._submit_message(plugin_id, message, level)

    async def append_change(
        self,
        plugin_id: str,
        verb: str,
        title: str | None,
        subject: str | None,
        *,
        major: bool = False,
    ) -> int | None:
        """Append a structured change entry and wait for it to be written."""
        timestamp = self._clock()

        async def write() -> int | None:
            try:
                return await self._store.append_activity(
                    plugin_id,
                    timestamp=timestamp,
                    kind="change",
                    level=LOG_LEVEL_INFO,
                    verb=verb,
                    title=title,
                    subject=subject,
                    major=major,
                )
            except Exception as e:
                logger.warning(
                    "Failed to append change entry",
                    extra={"plugin_id": plugin_id, "error": str(e)},
                )
                return None

        return await self._queue.submit(write)

    def _submit_message(self, plugin_id: str, message: str, level: str) -> asyncio.Future[Any]:
        timestamp = self._clock()
        logger.debug("Activity", extra={"plugin_id": plugin_id, "entry": message})

        async def write() -> int | None:
            try:
                return await self._store.append_activity(
                    plugin_id,
                    timestamp=timestamp,
                    message=message,
                    level=level,
                )
            except Exception as e:
                logger.warning(
                    "Failed to append activity entry",
                    extra={"plugin_id": plugin_id, "error": str(e)},
                )
                return None

        return self._queue.submit(write)

    async def entries(self, plugin_id: str, limit: int | None = None) -> list[ActivityEntry]:
        """Return entries oldest to newest, after pending writes land."""
        await self.flush()
        return await self._store.list_activity(plugin_id, limit)

    async def flush(self) -> None:
        await self._queue.join()

    async def close(self) -> None:
        await self._queue.close()


class JournalFeed:
    """Dated feed of notable changes, grouped by UTC day.

    Levels:
        none: nothing is written.
        major_only: only changes flagged major.
        all: every change.
        verbose: every change, plus its children as nested lines.
    """

    def __init__(
        self,
        store: WorkspaceStore,
        *,
        queue: OrderedTaskQueue | None = None,
        clock: Callable[[], datetime] = utc_now,
        child_max_chars: int = JOURNAL_CHILD_MAX_CHARS,
    ) -> None:
        self._store = store
        self._queue = queue or OrderedTaskQueue("journal")
        self._clock = clock
        self._child_max_chars = child_max_chars

    @staticmethod
    def day_key(moment: datetime) -> str:
        return moment.strftime("%Y%m%d")

    async def write_changes(self, plugin_id: str, changes: list[Change], level: str) -> int:
        """Write the changes the journal level selects.

        Returns:
            Number of top-level lines written.
        """
        if level == JOURNAL_NONE or not changes:
            return 0

        selected = [c for c in changes if c.major] if level == JOURNAL_MAJOR_ONLY else changes
        if not selected:
            return 0

        timestamp = self._clock()
        day = self.day_key(timestamp)
        with_children = level == JOURNAL_VERBOSE

        async def write() -> int:
            written = 0
            try:
                for change in selected:
                    parent_id = await self._store.append_journal(
                        day=day,
                        timestamp=timestamp,
                        plugin_id=plugin_id,
                        verb=change.verb,
                        subject=change.guid,
                    )
                    written += 1
                    if with_children:
                        for child in change.children:
                            await self._store.append_journal(
                                day=day,
                                timestamp=timestamp,
                                plugin_id=plugin_id,
                                text=truncate_child(child, self._child_max_chars),
                                parent_id=parent_id,
                            )
            except Exception as e:
                logger.warning(
                    "Failed to write journal entries",
                    extra={"plugin_id": plugin_id, "error": str(e), "written": written},
                )
            return written

        return await self._queue.submit(write)

    async def entries(self, day: str | None = None) -> list[JournalEntry]:
        """Return a day's lines (today by default) in insertion order."""
        await self._queue.join()
        return await self._store.list_journal(day or self.day_key(self._clock()))
