"""Startup configuration loaded from the environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from guild_progress.storage.cloudsave import CloudSaveConfig
from guild_progress.storage.docstore import DocumentStoreConfig


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


class StorageBackend(str, Enum):
    """Available storage backends.

    Attributes:
        CLOUDSAVE: Managed CloudSave game records.
        DOCSTORE: Self-hosted MongoDB collection.
    """

    CLOUDSAVE = "cloudsave"
    DOCSTORE = "docstore"


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """Process configuration, loaded once at startup.

    Attributes:
        backend: Which storage backend is active.
        grpc_host: Host the gRPC server binds to.
        grpc_port: Port the gRPC server binds to.
        shutdown_grace: Seconds in-flight RPCs get on shutdown.
        log_level: Logging level name.
        cloudsave: CloudSave settings, set when ``backend`` is CLOUDSAVE.
        docstore: Document store settings, set when ``backend`` is DOCSTORE.
    """

    backend: StorageBackend
    grpc_host: str = "[::]"
    grpc_port: int = 6565
    shutdown_grace: float = 5.0
    log_level: str = "INFO"
    cloudsave: CloudSaveConfig | None = None
    docstore: DocumentStoreConfig | None = None

    @property
    def address(self) -> str:
        """Bind address for the gRPC server."""
        return f"{self.grpc_host}:{self.grpc_port}"


def _get(environ: Mapping[str, str], name: str, default: str) -> str:
    value = environ.get(name, "").strip()
    return value or default


def _require(environ: Mapping[str, str], name: str) -> str:
    value = environ.get(name, "").strip()
    if not value:
        raise ConfigError(f"{name} envar is not set or empty")
    return value


def _get_int(environ: Mapping[str, str], name: str, default: int) -> int:
    # Unparsable values fall back to the default.
    try:
        return int(_get(environ, name, str(default)))
    except ValueError:
        return default


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(_get(environ, name, str(default)))
    except ValueError:
        return default


def parse_log_level(value: str, source: str = "log level") -> str:
    """Normalize a logging level name.

    Raises:
        ConfigError: If ``value`` is not a known level name.
    """
    level = value.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"{source} is invalid: {value!r}")
    return level


def load_config(environ: Mapping[str, str] | None = None) -> ServiceConfig:
    """Build the service configuration from environment variables.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        The loaded configuration.

    Raises:
        ConfigError: If a required variable is missing or invalid.
    """
    env = os.environ if environ is None else environ

    backend_name = _require(env, "STORAGE_BACKEND").lower()
    try:
        backend = StorageBackend(backend_name)
    except ValueError:
        choices = ", ".join(b.value for b in StorageBackend)
        raise ConfigError(
            f"STORAGE_BACKEND envar is invalid: {backend_name!r} (expected one of: {choices})"
        ) from None

    log_level = parse_log_level(_get(env, "LOG_LEVEL", "INFO"), source="LOG_LEVEL envar")

    cloudsave: CloudSaveConfig | None = None
    docstore: DocumentStoreConfig | None = None

    if backend is StorageBackend.CLOUDSAVE:
        base_url = _require(env, "AB_BASE_URL")
        if not base_url.startswith(("http://", "https://")):
            raise ConfigError(
                "AB_BASE_URL envar is invalid, no http(s) scheme found. "
                "Valid example: https://demo.accelbyte.io"
            )
        cloudsave = CloudSaveConfig(
            base_url=base_url,
            access_token=env.get("AB_ACCESS_TOKEN") or None,
            timeout=_get_float(env, "CLOUDSAVE_TIMEOUT_SECONDS", 30.0),
        )
    else:
        try:
            docstore = DocumentStoreConfig(
                url=_require(env, "MONGODB_URL"),
                database=_get(env, "MONGODB_DATABASE", "guild_progress"),
                collection=_get(env, "MONGODB_COLLECTION", "guild_progress"),
                connect_timeout=_get_float(env, "MONGODB_CONNECT_TIMEOUT_SECONDS", 10.0),
            )
        except ValueError as exc:
            raise ConfigError(f"document store configuration is invalid: {exc}") from exc

    return ServiceConfig(
        backend=backend,
        grpc_host=_get(env, "GRPC_HOST", "[::]"),
        grpc_port=_get_int(env, "GRPC_PORT", 6565),
        shutdown_grace=_get_float(env, "SHUTDOWN_GRACE_SECONDS", 5.0),
        log_level=log_level,
        cloudsave=cloudsave,
        docstore=docstore,
    )
