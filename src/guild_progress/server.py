"""Server wiring: backend selection, gRPC server construction and lifecycle."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from contextlib import suppress
from datetime import UTC, datetime

import grpc

from guild_progress.config import ConfigError, ServiceConfig, StorageBackend
from guild_progress.proto import add_guild_progress_servicer
from guild_progress.service import GuildProgressServicer
from guild_progress.storage.base import GuildProgressStorage
from guild_progress.storage.cloudsave import CloudSaveStorage
from guild_progress.storage.docstore import DocumentStoreStorage

logger = logging.getLogger(__name__)


def build_storage(config: ServiceConfig) -> GuildProgressStorage:
    """Instantiate the backend named by the configuration.

    Raises:
        ConfigError: If the selected backend has no settings.
    """
    if config.backend is StorageBackend.CLOUDSAVE:
        if config.cloudsave is None:
            raise ConfigError("cloudsave backend selected without cloudsave settings")
        return CloudSaveStorage(config.cloudsave)

    if config.docstore is None:
        raise ConfigError("docstore backend selected without docstore settings")
    return DocumentStoreStorage(config.docstore)


def create_server(storage: GuildProgressStorage, address: str) -> tuple[grpc.aio.Server, int]:
    """Create a server with the guild progress service bound to ``address``.

    Returns:
        The unstarted server and the port actually bound.

    Raises:
        RuntimeError: If the address cannot be bound.
    """
    server = grpc.aio.server()
    add_guild_progress_servicer(GuildProgressServicer(storage), server)
    port = server.add_insecure_port(address)
    if port == 0:
        raise RuntimeError(f"failed to bind gRPC server to {address}")
    return server, port


def _log_event(event: str, **fields: object) -> None:
    log_entry = {"event": event, **fields, "timestamp": datetime.now(UTC).isoformat()}
    logger.info(json.dumps(log_entry))


async def serve(config: ServiceConfig, stop_event: asyncio.Event | None = None) -> None:
    """Run the service until SIGINT/SIGTERM or ``stop_event`` is set.

    The storage backend is opened before the socket is bound, so a backend
    that cannot initialize prevents the server from starting.

    Args:
        config: Loaded service configuration.
        stop_event: Optional event that stops the server when set.
    """
    storage = build_storage(config)
    stop = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await storage.open()
        server, port = create_server(storage, config.address)
        await server.start()
        _log_event(
            "server_started", backend=config.backend.value, address=config.address, port=port
        )
        try:
            await stop.wait()
        finally:
            _log_event("server_stopping", grace_seconds=config.shutdown_grace)
            await server.stop(config.shutdown_grace)
    finally:
        await storage.close()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError, RuntimeError, ValueError):
                loop.remove_signal_handler(sig)
        _log_event("server_stopped")
