"""Guild Progress Service.

A gRPC service that reads and writes guild progress records through a
pluggable storage layer: CloudSave game records or a self-hosted document
store.
"""

from guild_progress.config import ConfigError, ServiceConfig, StorageBackend, load_config
from guild_progress.models import GuildProgress, GuildProgressDocument, guild_progress_key
from guild_progress.service import GuildProgressServicer
from guild_progress.storage import (
    CloudSaveConfig,
    CloudSaveStorage,
    DocumentStoreConfig,
    DocumentStoreStorage,
    GuildProgressStorage,
    InternalError,
    NotFoundError,
    StorageError,
)

__version__ = "0.1.0"

__all__ = [
    "CloudSaveConfig",
    "CloudSaveStorage",
    "ConfigError",
    "DocumentStoreConfig",
    "DocumentStoreStorage",
    "GuildProgress",
    "GuildProgressDocument",
    "GuildProgressServicer",
    "GuildProgressStorage",
    "InternalError",
    "NotFoundError",
    "ServiceConfig",
    "StorageBackend",
    "StorageError",
    "guild_progress_key",
    "load_config",
]
