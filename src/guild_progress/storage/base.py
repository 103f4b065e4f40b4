"""Base protocol and error taxonomy for guild progress storage."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from guild_progress.models import GuildProgress


class StorageError(Exception):
    """Base class for storage failures.

    Attributes:
        namespace: Namespace of the record the operation concerned.
        key: Storage key of the record the operation concerned.
    """

    def __init__(self, message: str, *, namespace: str = "", key: str = "") -> None:
        super().__init__(message)
        self.namespace = namespace
        self.key = key


class NotFoundError(StorageError):
    """Raised when no record exists for a (namespace, key) pair."""

    pass


class InternalError(StorageError):
    """Raised on transport, (de)serialization or unclassified backend failures."""

    pass


@runtime_checkable
class GuildProgressStorage(Protocol):
    """Protocol for guild progress storage backends.

    Implementations must not retry internally and must never return a
    partially populated value. ``asyncio.CancelledError`` and ``TimeoutError``
    raised by the caller's deadline propagate unchanged.
    """

    async def open(self) -> None:
        """Acquire connections. Failures here are fatal at startup."""
        ...

    async def get(self, namespace: str, key: str) -> GuildProgress:
        """Fetch the record stored under (namespace, key).

        Raises:
            NotFoundError: If no record exists.
            InternalError: On any other failure.
        """
        ...

    async def save(self, namespace: str, key: str, value: GuildProgress) -> GuildProgress:
        """Create or fully replace the record stored under (namespace, key).

        Returns:
            The canonical persisted value.

        Raises:
            InternalError: On any failure.
        """
        ...

    async def close(self) -> None:
        """Release resources. Safe to call more than once."""
        ...
