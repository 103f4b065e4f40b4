"""Persistence backends for guild progress."""

from guild_progress.storage.base import (
    GuildProgressStorage,
    InternalError,
    NotFoundError,
    StorageError,
)
from guild_progress.storage.cloudsave import CloudSaveConfig, CloudSaveStorage
from guild_progress.storage.docstore import DocumentStoreConfig, DocumentStoreStorage

__all__ = [
    "CloudSaveConfig",
    "CloudSaveStorage",
    "DocumentStoreConfig",
    "DocumentStoreStorage",
    "GuildProgressStorage",
    "InternalError",
    "NotFoundError",
    "StorageError",
]
