"""Pydantic models for SyncHub.

This module contains all data models used throughout SyncHub.
All models use Pydantic BaseModel with Field() descriptions for
documentation and validation.

Models are organized by domain:
- Config models (StorageConfig, SchedulerConfig, LockConfig, etc.)
- Durable record models (SyncLock, ProviderRecord)
- Provider result models (Change, SyncResult)
- Ledger models (ActivityEntry, JournalEntry)
- Report models (RunOutcome, ProviderInfo, ProviderStatusReport, HubSummary)

All datetime fields use timezone-aware UTC datetimes.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from synchub.constants import (
    DEFAULT_INTERVAL,
    DEFAULT_LOCK_SETTLE_BASE_MS,
    DEFAULT_LOCK_SETTLE_JITTER_MS,
    DEFAULT_LOCK_STALE_SECONDS,
    DEFAULT_STORAGE_PATH,
    DEFAULT_SYNC_TIMEOUT_SECONDS,
    DEFAULT_TICK_INTERVAL_SECONDS,
    JOURNAL_CHILD_MAX_CHARS,
    JOURNAL_NONE,
    LOG_LEVEL_INFO,
    STATUS_ERROR,
    STATUS_IDLE,
    STATUS_SYNCING,
    TOAST_NEW_RECORDS,
)
from synchub.utils import format_timestamp

ProviderStatus = Literal["idle", "syncing", "error"]

# =============================================================================
# CONFIG MODELS
# =============================================================================


class StorageConfig(BaseModel):
    """Workspace store configuration."""

    path: str = Field(default=DEFAULT_STORAGE_PATH, description="Path to the SQLite workspace")


class SchedulerConfig(BaseModel):
    """Scheduler configuration."""

    enabled: bool = Field(default=True, description="Whether the periodic tick runs")
    tick_interval_seconds: float = Field(
        default=DEFAULT_TICK_INTERVAL_SECONDS,
        gt=0,
        description="Seconds between due-checks, independent of provider intervals",
    )


class LockConfig(BaseModel):
    """Advisory lock configuration."""

    stale_after_seconds: float = Field(
        default=DEFAULT_LOCK_STALE_SECONDS,
        gt=0,
        description="Age after which a lock is presumed abandoned",
    )
    settle_base_ms: int = Field(
        default=DEFAULT_LOCK_SETTLE_BASE_MS,
        ge=0,
        description="Fixed wait between writing and verifying a lock",
    )
    settle_jitter_ms: int = Field(
        default=DEFAULT_LOCK_SETTLE_JITTER_MS,
        ge=0,
        description="Upper bound of random wait added to settle_base_ms",
    )


class ExecutorConfig(BaseModel):
    """Sync executor configuration."""

    timeout_seconds: float = Field(
        default=DEFAULT_SYNC_TIMEOUT_SECONDS,
        gt=0,
        description="How long to wait for a provider routine",
    )
    journal_child_max_chars: int = Field(
        default=JOURNAL_CHILD_MAX_CHARS,
        ge=1,
        description="Truncation length for nested journal lines",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Root log level name")


class SyncHubConfig(BaseModel):
    """Root configuration for SyncHub."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# DURABLE RECORD MODELS
# =============================================================================


class SyncLock(BaseModel):
    """Advisory lock token stored in a record's sync_lock field."""

    timestamp: int = Field(..., description="Epoch milliseconds when the lock was written")
    sync_run_id: str = Field(..., description="Random id of the run that wrote the lock")

    def to_json(self) -> str:
        return json.dumps({"timestamp": self.timestamp, "sync_run_id": self.sync_run_id})

    @classmethod
    def from_json(cls, raw: str | None) -> SyncLock | None:
        """Parse the stored JSON; unreadable values count as no lock."""
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return cls.model_validate(data)
        except (ValueError, TypeError):
            return None

    def age_ms(self, now: datetime) -> int:
        return to_epoch_ms(now) - self.timestamp


class ProviderRecord(BaseModel):
    """Durable per-provider state shared by every client instance.

    Built only through from_row(), which applies the defaults for absent
    fields so callers never check for presence themselves.
    """

    plugin_id: str = Field(..., description="Identity key, immutable after creation")
    name: str = Field(default="", description="Display name")
    icon: str = Field(default="", description="Icon tag")
    enabled: bool = Field(default=True, description="Disabled providers never run")
    status: ProviderStatus = Field(default="idle", description="State machine status")
    interval: str = Field(default=DEFAULT_INTERVAL, description="'manual' or N{s|m|h|d}")
    last_run: datetime | None = Field(default=None, description="Last completed run (UTC)")
    last_error: str | None = Field(default=None, description="Last failure message")
    sync_lock: SyncLock | None = Field(default=None, description="Advisory lock token")
    log_level: str = Field(default=LOG_LEVEL_INFO, description="Activity log verbosity")
    toast: str = Field(default=TOAST_NEW_RECORDS, description="Notification verbosity")
    journal: str = Field(default=JOURNAL_NONE, description="Journal feed verbosity")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ProviderRecord:
        """Build a record from a store row, filling defaults for NULL columns."""

        def value(key: str, default: Any) -> Any:
            raw = row[key] if key in row.keys() else None  # noqa: SIM118
            return default if raw is None or raw == "" else raw

        status = value("status", STATUS_IDLE)
        if status not in (STATUS_IDLE, STATUS_SYNCING, STATUS_ERROR):
            status = STATUS_IDLE

        last_run_raw = value("last_run", None)
        enabled_raw = value("enabled", 1)

        return cls(
            plugin_id=row["plugin_id"],
            name=value("name", ""),
            icon=value("icon", ""),
            enabled=_coerce_enabled(enabled_raw),
            status=status,
            interval=value("interval", DEFAULT_INTERVAL),
            last_run=datetime.fromisoformat(last_run_raw) if last_run_raw else None,
            last_error=value("last_error", None),
            sync_lock=SyncLock.from_json(value("sync_lock", None)),
            log_level=value("log_level", LOG_LEVEL_INFO),
            toast=value("toast", TOAST_NEW_RECORDS),
            journal=value("journal", JOURNAL_NONE),
        )


def _coerce_enabled(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "yes", "true", "on")
    return bool(raw)


def to_epoch_ms(moment: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(moment.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


# =============================================================================
# PROVIDER RESULT MODELS
# =============================================================================


class Change(BaseModel):
    """One notable effect of a sync run."""

    verb: str = Field(..., description="What happened (e.g., 'created', 'updated')")
    title: str | None = Field(default=None, description="Human label chosen by the provider")
    guid: str = Field(..., description="Reference to the affected workspace item")
    major: bool = Field(default=False, description="Whether the change belongs in the journal")
    children: list[str] = Field(default_factory=list, description="Detail lines for verbose mode")


class SyncResult(BaseModel):
    """What a provider routine returns after a completed run."""

    summary: str = Field(default="Sync complete", description="One-line description of the run")
    created: int = Field(default=0, ge=0, description="Items created")
    updated: int = Field(default=0, ge=0, description="Items updated")
    changes: list[Change] = Field(default_factory=list, description="Notable changes")

    @field_validator("changes", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


# =============================================================================
# LEDGER MODELS
# =============================================================================


class ActivityEntry(BaseModel):
    """One line of a provider's append-only activity log."""

    id: int = Field(..., description="Monotonic entry id")
    plugin_id: str = Field(..., description="Owning provider")
    timestamp: datetime = Field(..., description="When the entry was written (UTC)")
    kind: Literal["message", "change"] = Field(default="message", description="Entry variant")
    level: str = Field(default=LOG_LEVEL_INFO, description="Log level of message entries")
    message: str = Field(default="", description="Free text for message entries")
    verb: str | None = Field(default=None, description="Change verb")
    title: str | None = Field(default=None, description="Change title")
    subject: str | None = Field(default=None, description="Referenced item guid")
    major: bool = Field(default=False, description="Importance flag of change entries")

    def render(self) -> str:
        """Format as `YYYY-MM-DD HH:MM text`."""
        if self.kind == "change":
            parts = [self.verb or ""]
            if self.title:
                parts.append(self.title)
            if self.subject:
                parts.append(f"[{self.subject}]")
            text = " ".join(parts)
        else:
            text = self.message
        return f"{format_timestamp(self.timestamp)} {text}"


class JournalEntry(BaseModel):
    """One line of the dated journal feed."""

    id: int = Field(..., description="Monotonic entry id")
    day: str = Field(..., description="Journal day as YYYYMMDD")
    timestamp: datetime = Field(..., description="When the entry was written (UTC)")
    plugin_id: str = Field(..., description="Provider that reported the change")
    verb: str | None = Field(default=None, description="Change verb for top-level lines")
    subject: str | None = Field(default=None, description="Referenced item guid")
    text: str | None = Field(default=None, description="Quoted detail for nested lines")
    parent_id: int | None = Field(default=None, description="Parent line for nested lines")

    def render(self) -> str:
        """Format as `HH:MM verb [guid]`, or an indented quote for nested lines."""
        if self.parent_id is not None:
            return f"    > {self.text or ''}"
        return f"{self.timestamp.strftime('%H:%M')} {self.verb or ''} [{self.subject or ''}]"


# =============================================================================
# REPORT MODELS
# =============================================================================


class RunOutcome(BaseModel):
    """Result of one SyncExecutor.run() call."""

    plugin_id: str = Field(..., description="Provider that was run")
    state: Literal["idle", "error", "skipped"] = Field(..., description="Terminal state")
    result: SyncResult | None = Field(default=None, description="Provider result on success")
    error: str | None = Field(default=None, description="Failure message on error")
    skipped_reason: str | None = Field(default=None, description="Why the run did not start")
    duration_ms: int = Field(default=0, ge=0, description="Wall time spent in the run")

    @property
    def ran(self) -> bool:
        return self.state != "skipped"


class ProviderInfo(BaseModel):
    """Registered provider as reported to health collaborators."""

    id: str = Field(..., description="Provider id")
    name: str = Field(..., description="Display name")
    icon: str = Field(default="", description="Icon tag")
    version: str = Field(..., description="Version declared by the provider")
    version_match: bool = Field(..., description="Whether it matches the hub version")


class ProviderStatusReport(BaseModel):
    """Durable status of one provider."""

    enabled: bool
    status: ProviderStatus
    last_run: datetime | None = None
    last_error: str | None = None
    interval: str


class HubSummary(BaseModel):
    """Overall state across all providers, for status bars and the CLI."""

    state: Literal["idle", "syncing", "error", "disabled"] = Field(..., description="Hub state")
    message: str = Field(..., description="Human-readable description")
    active_count: int = Field(default=0, ge=0, description="Enabled providers")
    error_ids: list[str] = Field(default_factory=list, description="Providers in error")
