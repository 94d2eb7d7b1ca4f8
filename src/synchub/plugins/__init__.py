"""Provider plugin system for SyncHub.

Sync providers pull external data (issue trackers, calendars, contacts,
read-later services, ...) into the shared workspace. Each provider is
registered with the hub as a descriptor holding its metadata and its
async sync routine; the hub decides when the routine runs.

Plugin Interfaces:
    - ProviderDescriptor: Metadata plus the sync routine
    - SyncProvider: Base class for providers published as entry points
    - SyncContext: What a routine receives for one run

Registry:
    - ProviderRegistry: Registration, discovery and version reporting

Example:
    from synchub.plugins import ProviderDescriptor

    async def sync(ctx):
        ctx.log("Fetching highlights")
        return {"summary": "No changes", "created": 0, "updated": 0}

    await hub.register(ProviderDescriptor(id="readwise-sync", name="Readwise", sync=sync))
"""

from synchub.plugins.base import ProviderDescriptor, SyncContext, SyncProvider
from synchub.plugins.registry import ProviderRegistry

__all__ = [
    "ProviderDescriptor",
    "ProviderRegistry",
    "SyncContext",
    "SyncProvider",
]
