"""Provider registry for discovering and managing sync providers.

This module provides the ProviderRegistry class that handles:
- Registration of provider descriptors (in memory, one client instance)
- Lazy creation of each provider's durable record on first registration
- Discovery of class-based providers via Python entry points
- Version reporting for health collaborators

The registry is local state of a single client instance. Unregistering
only forgets the routine; the durable record and its history stay, so a
provider registered again later resumes from its previous state.

Entry Points:
    Third-party packages can publish providers in pyproject.toml:

    [project.entry-points."synchub.providers"]
    github = "mypackage.github:GitHubProvider"

Example Usage:
    registry = ProviderRegistry(store)
    await registry.register(ProviderDescriptor(id="github-sync", sync=github_sync))
    await registry.discover_providers()

    for info in registry.list():
        print(info.id, info.version_match)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from synchub.constants import PROVIDER_ENTRY_POINT, VERSION
from synchub.exceptions import RegistrationError
from synchub.logging import get_logger
from synchub.models import ProviderInfo
from synchub.plugins.base import ProviderDescriptor, SyncProvider

if TYPE_CHECKING:
    from synchub.activity import ActivityLog
    from synchub.models import ProviderRecord
    from synchub.storage import WorkspaceStore

logger = get_logger(__name__)


class ProviderRegistry:
    """Registry of the sync routines this client instance can run.

    Attributes:
        _descriptors: Mapping of provider ids to descriptors.
        _instances: Class-based providers created by discovery, closed on shutdown.
    """

    def __init__(
        self,
        store: WorkspaceStore,
        activity: ActivityLog | None = None,
        *,
        version: str = VERSION,
    ) -> None:
        """Initialize an empty registry.

        Args:
            store: Workspace store where records are created.
            activity: Activity log for the registration entry of new records.
            version: Version providers are compared against.
        """
        self._store = store
        self._activity = activity
        self._version = version

        self._descriptors: dict[str, ProviderDescriptor] = {}
        self._instances: dict[str, SyncProvider] = {}

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    async def register(self, descriptor: ProviderDescriptor) -> ProviderRecord:
        """Register a provider, creating its durable record if needed.

        Re-registering an id replaces the descriptor; an existing record
        keeps its settings and history.

        Args:
            descriptor: The provider to register.

        Returns:
            The provider's durable record.

        Raises:
            RegistrationError: If the descriptor has no id.
        """
        if not descriptor.id:
            raise RegistrationError("Registration failed: missing provider id")

        if descriptor.version != self._version:
            logger.warning(
                "Provider version does not match hub version",
                extra={
                    "plugin_id": descriptor.id,
                    "provider_version": descriptor.version or "(none)",
                    "hub_version": self._version,
                },
            )

        record, created = await self._store.create_record(
            descriptor.id,
            name=descriptor.display_name,
            icon=descriptor.icon,
            interval=descriptor.default_interval,
        )
        replaced = descriptor.id in self._descriptors
        self._descriptors[descriptor.id] = descriptor
        if created and self._activity is not None:
            await self._activity.append(
                descriptor.id, f"Plugin registered: {descriptor.display_name}"
            )

        logger.info(
            "Registered provider",
            extra={
                "plugin_id": descriptor.id,
                "replaced": replaced,
                "record_created": created,
                "total": len(self._descriptors),
            },
        )
        return record

    def unregister(self, plugin_id: str) -> bool:
        """Forget a provider's routine. Its durable record is left untouched.

        Returns:
            True if the provider was registered.
        """
        removed = self._descriptors.pop(plugin_id, None) is not None
        if removed:
            logger.info("Unregistered provider", extra={"plugin_id": plugin_id})
        return removed

    # =========================================================================
    # DISCOVERY
    # =========================================================================

    async def discover_providers(self) -> list[str]:
        """Discover and register class-based providers from entry points.

        Errors while loading or registering a single provider are logged
        and do not stop discovery.

        Returns:
            Ids of the providers registered by this call.
        """
        from importlib.metadata import entry_points

        registered: list[str] = []

        for ep in entry_points(group=PROVIDER_ENTRY_POINT):
            try:
                provider_class = ep.load()
                is_provider = isinstance(provider_class, type) and issubclass(
                    provider_class, SyncProvider
                )
                if not is_provider:
                    raise TypeError(f"{ep.value} is not a SyncProvider subclass")

                provider = provider_class()
                await self.register(provider.descriptor())
                self._instances[provider.id] = provider
                registered.append(provider.id)
                logger.info(f"Discovered provider via entry point: {ep.name}")
            except Exception as e:
                logger.warning(
                    f"Failed to load provider from entry point {ep.name}: {e}",
                    extra={"entry_point": ep.name, "group": PROVIDER_ENTRY_POINT},
                )

        return registered

    # =========================================================================
    # ACCESS
    # =========================================================================

    def get(self, plugin_id: str) -> ProviderDescriptor | None:
        return self._descriptors.get(plugin_id)

    def is_registered(self, plugin_id: str) -> bool:
        return plugin_id in self._descriptors

    def ids(self) -> list[str]:
        return list(self._descriptors.keys())

    def list(self) -> list[ProviderInfo]:
        """List registered providers with version-match flags.

        Returns:
            ProviderInfo for every registered provider, in registration order.
        """
        return [
            ProviderInfo(
                id=descriptor.id,
                name=descriptor.display_name,
                icon=descriptor.icon,
                version=descriptor.version,
                version_match=descriptor.version == self._version,
            )
            for descriptor in self._descriptors.values()
        ]

    def __len__(self) -> int:
        return len(self._descriptors)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def close_all(self) -> None:
        """Close discovered provider instances and forget all descriptors."""
        for plugin_id, provider in list(self._instances.items()):
            try:
                await provider.close()
                logger.debug(f"Closed provider: {plugin_id}")
            except Exception as e:
                logger.warning(f"Error closing provider {plugin_id}: {e}")

        self._instances.clear()
        self._descriptors.clear()
