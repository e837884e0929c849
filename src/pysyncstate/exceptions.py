"""Custom exception hierarchy for pysyncstate."""

from __future__ import annotations


class SyncStateError(Exception):
    """Base exception for all pysyncstate errors."""


class SyncConfigError(SyncStateError):
    """Invalid or contradictory configuration."""


class SyncClosedError(SyncStateError):
    """Operation attempted on an engine that has already been torn down."""


class SyncPayloadError(SyncStateError):
    """Stored payload could not be decoded.

    Backends raise this internally and translate it into "nothing stored"
    before it reaches the hydration path.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class SyncBackendError(SyncStateError):
    """A storage backend failed to read or write a value."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class SyncTransportError(SyncBackendError):
    """Network-level failure (connection error, unexpected HTTP status)."""

    def __init__(
        self,
        message: str,
        *,
        key: str = "",
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, key=key)
