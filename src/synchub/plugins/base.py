"""Base provider interfaces for SyncHub.

This module defines what a sync provider hands to the hub and what the hub
hands back while the provider runs:

- ProviderDescriptor: id, display metadata, version and the sync routine
- SyncContext: the handle a routine receives for one run
- SyncProvider: optional class-based way to write a provider

Design Principles:
- The sync routine is async and returns a SyncResult (or a dict of one)
- Raising is how a routine reports failure; the hub records it
- Missing credentials or settings are not failures: return a SyncResult
  with zero counts and a summary that says what is missing
- A routine may be abandoned after the timeout and must not assume it
  runs to completion

Example Provider:
    class GitHubProvider(SyncProvider):
        id = "github-sync"
        name = "GitHub"
        icon = "ti-brand-github"
        default_interval = "15m"
        version = "0.1.0"

        async def sync(self, ctx):
            if ctx.last_run is None:
                ctx.log("Cold run, fetching everything")
            issues = await self._fetch_issues(since=ctx.last_run)
            ctx.debug(f"Fetched {len(issues)} issues")
            return SyncResult(summary=f"{len(issues)} new", created=len(issues))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import AliasChoices, BaseModel, Field

from synchub.constants import DEFAULT_INTERVAL, LOG_LEVEL_DEBUG, LOG_LEVEL_INFO

if TYPE_CHECKING:
    from synchub.activity import ActivityLog
    from synchub.models import SyncResult
    from synchub.storage import WorkspaceView


# Called with a SyncContext; returns an awaitable of SyncResult, dict or None
SyncRoutine = Callable[..., Awaitable[Any]]


# =============================================================================
# DESCRIPTOR
# =============================================================================


class ProviderDescriptor(BaseModel):
    """In-memory registration of a provider. Never persisted.

    Attributes:
        id: Stable provider id, the key of its durable record.
        name: Display name.
        icon: Icon tag for dashboards.
        default_interval: Interval written to a newly created record.
        version: Version the provider was built against.
        sync: The async routine invoked for each run.
    """

    id: str = Field(..., description="Stable provider id")
    name: str = Field(default="", description="Display name")
    icon: str = Field(default="", description="Icon tag")
    default_interval: str = Field(
        default=DEFAULT_INTERVAL,
        validation_alias=AliasChoices("default_interval", "defaultInterval"),
        description="'manual' or N{s|m|h|d}",
    )
    version: str = Field(default="", description="Version the provider declares")
    sync: SyncRoutine = Field(..., description="Async sync routine")

    model_config = {"arbitrary_types_allowed": True, "populate_by_name": True}

    @property
    def display_name(self) -> str:
        return self.name or self.id


# =============================================================================
# RUN CONTEXT
# =============================================================================


class SyncContext:
    """What a sync routine can see and do during one run.

    Attributes:
        plugin_id: Provider being run.
        workspace: Read-only access to records and ledgers.
        last_run: Completion time of the previous run; None on a cold or full run.
        full: Whether this run was requested as a full sync.
        manual: Whether a user triggered this run.
    """

    def __init__(
        self,
        *,
        plugin_id: str,
        workspace: WorkspaceView,
        activity: ActivityLog,
        last_run: datetime | None,
        log_level: str = LOG_LEVEL_INFO,
        full: bool = False,
        manual: bool = False,
    ) -> None:
        self.plugin_id = plugin_id
        self.workspace = workspace
        self.last_run = last_run
        self.full = full
        self.manual = manual
        self._activity = activity
        self._log_level = log_level

    @property
    def debug_enabled(self) -> bool:
        return self._log_level == LOG_LEVEL_DEBUG

    def log(self, message: str) -> None:
        """Append a line to this provider's activity log."""
        self._activity.post(self.plugin_id, message, self._log_level)

    def debug(self, message: str) -> None:
        """Append a `[debug]` line, only when the record's log level is debug."""
        if self.debug_enabled:
            self._activity.post(self.plugin_id, f"[debug] {message}", LOG_LEVEL_DEBUG)


# =============================================================================
# CLASS-BASED PROVIDER
# =============================================================================


class SyncProvider(ABC):
    """Abstract base class for providers published as entry points.

    Class Attributes:
        id: Stable provider id.
        name: Display name.
        icon: Icon tag.
        default_interval: Interval for a newly created record.
        version: Version the provider was built against.
    """

    id: ClassVar[str]
    name: ClassVar[str] = ""
    icon: ClassVar[str] = ""
    default_interval: ClassVar[str] = DEFAULT_INTERVAL
    version: ClassVar[str] = ""

    @abstractmethod
    async def sync(self, ctx: SyncContext) -> SyncResult:
        """Pull external data into the workspace.

        Args:
            ctx: Run context with workspace access and logging callbacks.

        Returns:
            SyncResult describing what changed.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Clean up resources (HTTP clients, connections, etc.).

        Override this method if your provider holds resources that need
        cleanup. The default implementation does nothing.
        """
        pass

    def descriptor(self) -> ProviderDescriptor:
        """Build the descriptor registered with the hub."""
        return ProviderDescriptor(
            id=self.id,
            name=self.name,
            icon=self.icon,
            default_interval=self.default_interval,
            version=self.version,
            sync=self.sync,
        )
