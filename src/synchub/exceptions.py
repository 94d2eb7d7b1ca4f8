"""Custom exceptions for SyncHub.

This module defines a hierarchy of exceptions used throughout SyncHub.
All exceptions inherit from SyncHubError, making it easy to catch
all SyncHub-related errors in one place.

Exception Hierarchy:
    SyncHubError (base)
    ├── ConfigError - Configuration loading/validation failures
    ├── StoreError - Workspace store failures
    ├── RegistrationError - Invalid provider descriptors
    ├── ProviderNotFoundError - Unknown provider id
    └── ProviderError (base for failures raised by or about a provider)
        └── SyncTimeoutError
"""

from typing import Any


class SyncHubError(Exception):
    """Base exception for all SyncHub errors.

    Args:
        message: Human-readable error message.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(SyncHubError):
    """Raised when configuration loading or validation fails.

    Examples:
        - Invalid YAML syntax in .synchub.yaml
        - Values outside their allowed range
    """


class StoreError(SyncHubError):
    """Raised when the workspace store cannot serve a request.

    Examples:
        - Store used before initialize()
        - Update of a record that does not exist
    """


class RegistrationError(SyncHubError):
    """Raised when a provider descriptor cannot be registered.

    Examples:
        - Empty provider id
        - Missing sync routine
    """


class ProviderNotFoundError(SyncHubError):
    """Raised when a provider id has no durable record."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Unknown provider: {provider_id}", {"provider_id": provider_id})
        self.provider_id = provider_id


class ProviderError(SyncHubError):
    """Base exception for failures of a provider run.

    Args:
        message: Human-readable error message.
        provider_id: Id of the provider the failure belongs to.
        details: Optional dictionary with additional error context.
    """

    def __init__(
        self,
        message: str,
        provider_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.provider_id = provider_id

    def __str__(self) -> str:
        # Shown verbatim as last_error, so details stay out of it
        return self.message


class SyncTimeoutError(ProviderError):
    """Raised when a provider routine does not settle before the timeout.

    The routine itself keeps running; only the executor stops waiting.
    """
