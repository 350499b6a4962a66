"""Error taxonomy shared by every psqmon component.

None of these are fatal: the session controller turns them into inline
errors or status messages and keeps running.
"""

from __future__ import annotations


class PsqmonError(RuntimeError):
    """Base class for all expected failures."""


class ConfigurationError(PsqmonError):
    """Missing or malformed configuration, profile or credential."""


class ProfileNotFoundError(ConfigurationError):
    """Raised when a profile name is absent from the service file."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Profile '{name}' not found.")
        self.name = name


class DatabaseConnectionError(PsqmonError):
    """The database could not be reached or refused authentication."""


class ExecutionError(PsqmonError):
    """A statement or administrative call failed on the server."""


class StorageError(PsqmonError):
    """The saved-query store could not be read or written."""


class ExternalServiceError(PsqmonError):
    """The text-generation service failed or timed out."""


__all__ = [
    "ConfigurationError",
    "DatabaseConnectionError",
    "ExecutionError",
    "ExternalServiceError",
    "ProfileNotFoundError",
    "PsqmonError",
    "StorageError",
]
