"""Advisory cross-instance lock stored on provider records.

The workspace store has no compare-and-swap, so mutual exclusion between
client instances is optimistic and time-bounded:

    1. Read the record's sync_lock. A lock younger than the staleness
       threshold belongs to someone else: give up.
    2. Otherwise (no lock, or a stale one left by a crashed instance)
       write {timestamp: now, sync_run_id: <random>}.
    3. Sleep a settle interval (base + random jitter) so concurrent
       writers' writes land before anyone verifies.
    4. Re-read the record. Ours if sync_run_id is still the one we wrote.

Of several instances racing, the last writer is the one that verifies;
everyone else sees a foreign run id. An instance whose read happens after
another's verify but before that lock is visible can still slip through;
that window is accepted rather than closed.

Losing the race is expected contention, not an error: it is logged at
DEBUG and the caller skips the provider for this tick.

Example:
    locks = LockManager(store)
    token = await locks.acquire("github-sync")
    if token is not None:
        try:
            ...
        finally:
            await locks.release("github-sync")
"""

from __future__ import annotations

import asyncio
import random
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from synchub.logging import get_logger
from synchub.models import LockConfig, SyncLock, to_epoch_ms
from synchub.utils import utc_now

if TYPE_CHECKING:
    from synchub.storage import WorkspaceStore

logger = get_logger(__name__)


class LockManager:
    """Acquire/release protocol over the sync_lock field of a record."""

    def __init__(
        self,
        store: WorkspaceStore,
        config: LockConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the lock manager.

        Args:
            store: Workspace store holding the records.
            config: Staleness threshold and settle timing.
            clock: Source of the current time, used for lock timestamps.
            rng: Random source for settle jitter.
        """
        self._store = store
        self._config = config or LockConfig()
        self._clock = clock
        self._rng = rng or random.Random()

    @property
    def stale_after_ms(self) -> int:
        return int(self._config.stale_after_seconds * 1000)

    def is_stale(self, lock: SyncLock, now: datetime | None = None) -> bool:
        """Whether a lock is old enough to be presumed abandoned."""
        now = now or self._clock()
        return lock.age_ms(now) >= self.stale_after_ms

    def settle_delay(self) -> float:
        """Seconds to wait between writing and verifying a lock."""
        jitter = self._rng.uniform(0, self._config.settle_jitter_ms)
        return (self._config.settle_base_ms + jitter) / 1000

    async def acquire(self, plugin_id: str) -> SyncLock | None:
        """Try to take the lock for a provider.

        Args:
            plugin_id: Provider whose record carries the lock.

        Returns:
            The written lock token on success, None if another instance
            holds a fresh lock, won the race, or the record is gone.
        """
        record = await self._store.get_record(plugin_id)
        if record is None:
            logger.debug("Lock not acquired: no record", extra={"plugin_id": plugin_id})
            return None

        now = self._clock()
        current = record.sync_lock
        if current is not None and not self.is_stale(current, now):
            logger.debug(
                "Lock held by another run",
                extra={
                    "plugin_id": plugin_id,
                    "holder": current.sync_run_id,
                    "age_ms": current.age_ms(now),
                },
            )
            return None

        if current is not None:
            logger.info(
                "Taking over stale lock",
                extra={
                    "plugin_id": plugin_id,
                    "holder": current.sync_run_id,
                    "age_ms": current.age_ms(now),
                },
            )

        token = SyncLock(timestamp=to_epoch_ms(now), sync_run_id=uuid.uuid4().hex)
        if not await self._store.write_lock(plugin_id, token):
            logger.debug("Lock not acquired: record vanished", extra={"plugin_id": plugin_id})
            return None

        await asyncio.sleep(self.settle_delay())

        verified = await self._store.get_record(plugin_id)
        if verified is None or verified.sync_lock is None:
            logger.debug("Lock lost during settle", extra={"plugin_id": plugin_id})
            return None

        if verified.sync_lock.sync_run_id != token.sync_run_id:
            logger.debug(
                "Lock race lost",
                extra={"plugin_id": plugin_id, "winner": verified.sync_lock.sync_run_id},
            )
            return None

        logger.debug(
            "Lock acquired",
            extra={"plugin_id": plugin_id, "sync_run_id": token.sync_run_id},
        )
        return token

    async def release(self, plugin_id: str) -> None:
        """Clear the lock field unconditionally."""
        await self._store.write_lock(plugin_id, None)
        logger.debug("Lock released", extra={"plugin_id": plugin_id})
