"""Constants and configuration defaults for SyncHub.

This module contains all magic values, default configurations, and constants
used throughout the application. Import from here instead of hardcoding values.
"""

from typing import Final

# =============================================================================
# VERSION
# =============================================================================
VERSION: Final[str] = "0.1.0"

# =============================================================================
# SCHEDULER DEFAULTS
# =============================================================================
DEFAULT_TICK_INTERVAL_SECONDS: Final[float] = 30.0
DEFAULT_INTERVAL: Final[str] = "5m"
DEFAULT_INTERVAL_MS: Final[int] = 5 * 60 * 1000
MANUAL_INTERVAL: Final[str] = "manual"

INTERVAL_UNIT_MS: Final[dict[str, int]] = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}

# =============================================================================
# LOCK DEFAULTS
# =============================================================================
DEFAULT_LOCK_STALE_SECONDS: Final[float] = 300.0  # 5 minutes
DEFAULT_LOCK_SETTLE_BASE_MS: Final[int] = 100
DEFAULT_LOCK_SETTLE_JITTER_MS: Final[int] = 200

# =============================================================================
# EXECUTOR DEFAULTS
# =============================================================================
DEFAULT_SYNC_TIMEOUT_SECONDS: Final[float] = 300.0  # 5 minutes
JOURNAL_CHILD_MAX_CHARS: Final[int] = 100
RESET_BY_USER_MESSAGE: Final[str] = "Reset by user"

# =============================================================================
# RECORD FIELD VALUES
# =============================================================================
STATUS_IDLE: Final[str] = "idle"
STATUS_SYNCING: Final[str] = "syncing"
STATUS_ERROR: Final[str] = "error"

TOAST_NONE: Final[str] = "none"
TOAST_ALL_UPDATES: Final[str] = "all_updates"
TOAST_NEW_RECORDS: Final[str] = "new_records"
TOAST_ERRORS_ONLY: Final[str] = "errors_only"

JOURNAL_NONE: Final[str] = "none"
JOURNAL_MAJOR_ONLY: Final[str] = "major_only"
JOURNAL_ALL: Final[str] = "all"
JOURNAL_VERBOSE: Final[str] = "verbose"

LOG_LEVEL_DEBUG: Final[str] = "debug"
LOG_LEVEL_INFO: Final[str] = "info"
LOG_LEVEL_ERROR: Final[str] = "error"

# Defaults written when a record is first created
NEW_RECORD_JOURNAL: Final[str] = JOURNAL_MAJOR_ONLY
NEW_RECORD_TOAST: Final[str] = TOAST_NEW_RECORDS
NEW_RECORD_LOG_LEVEL: Final[str] = LOG_LEVEL_INFO

# =============================================================================
# NOTIFICATIONS
# =============================================================================
NOTIFY_SUCCESS_DISMISS_MS: Final[int] = 3000
NOTIFY_ERROR_DISMISS_MS: Final[int] = 5000
NOTIFY_OPERATOR_DISMISS_MS: Final[int] = 2000
HUB_NOTIFICATION_TITLE: Final[str] = "Sync Hub"

# =============================================================================
# STORAGE
# =============================================================================
DEFAULT_STORAGE_PATH: Final[str] = ".synchub/workspace.db"
SQLITE_BUSY_TIMEOUT_SECONDS: Final[float] = 10.0

# =============================================================================
# PLUGINS
# =============================================================================
PROVIDER_ENTRY_POINT: Final[str] = "synchub.providers"

# =============================================================================
# CONFIG FILE
# =============================================================================
CONFIG_FILE_NAME: Final[str] = ".synchub.yaml"

# =============================================================================
# LOGGING
# =============================================================================
LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d %H:%M"
