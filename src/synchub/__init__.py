"""SyncHub - schedules sync providers against a shared workspace."""

from synchub.constants import VERSION

__version__ = VERSION

__all__ = ["__version__"]
