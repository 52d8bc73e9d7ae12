"""Exception types raised by the configuration store.

Hierarchy:
    ConfigStoreError
    ├── NotFoundError
    ├── ConflictError
    ├── SyncConflictError
    ├── ValidationError
    └── RepositoryError
        └── TransportError
"""
from typing import Optional


class ConfigStoreError(Exception):
    """Base class for all configuration store failures."""
    pass


class NotFoundError(ConfigStoreError):
    """No document (or schema) exists at the requested path."""
    pass


class ConflictError(ConfigStoreError):
    """A save was based on a stale fingerprint.

    Raised before anything is written. The caller should load again and retry.
    """

    def __init__(self, message: str, current: str = "", base: str = ""):
        super().__init__(message)
        self.current = current
        self.base = base


class SyncConflictError(ConfigStoreError):
    """A saved commit collided with a remote change and was discarded."""

    def __init__(self, message: str, conflicts: Optional[list[str]] = None):
        super().__init__(message)
        self.conflicts = conflicts or []


class ValidationError(ConfigStoreError):
    """A document could not be validated against its schema."""

    def __init__(self, message: str, messages: Optional[list[str]] = None):
        super().__init__(message)
        self.messages = messages or []


class RepositoryError(ConfigStoreError):
    """A git operation on the local repository failed."""

    def __init__(
        self,
        message: str,
        command: Optional[list[str]] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command or []
        self.stderr = stderr


class TransportError(RepositoryError):
    """The remote could not be reached (network, auth or timeout)."""
    pass
