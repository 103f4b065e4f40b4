"""gRPC servicer translating guild progress RPCs into storage calls."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Any, NoReturn

import grpc

from guild_progress import proto as pb
from guild_progress.models import guild_progress_key
from guild_progress.storage.base import GuildProgressStorage, NotFoundError, StorageError

logger = logging.getLogger(__name__)


class GuildProgressServicer:
    """Implements the ``Service`` RPCs on top of a storage backend.

    Storage errors become gRPC statuses: NotFoundError maps to NOT_FOUND and
    any other StorageError maps to INTERNAL. The caller's deadline bounds the
    storage call; expiry maps to DEADLINE_EXCEEDED. Client cancellation is left
    to propagate so the runtime reports CANCELLED.

    Args:
        storage: Backend selected at startup.
    """

    def __init__(self, storage: GuildProgressStorage) -> None:
        self._storage = storage

    async def CreateOrUpdateGuildProgress(
        self, request: Any, context: grpc.aio.ServicerContext
    ) -> Any:
        namespace = request.namespace
        value = pb.from_message(request.guild_progress, namespace)
        key = guild_progress_key(value.guild_id)

        try:
            async with asyncio.timeout(context.time_remaining()):
                saved = await self._storage.save(namespace, key, value)
        except TimeoutError:
            await self._abort(
                context,
                "CreateOrUpdateGuildProgress",
                namespace,
                key,
                grpc.StatusCode.DEADLINE_EXCEEDED,
                "Deadline exceeded updating guild progress",
            )
        except StorageError as exc:
            await self._abort(
                context,
                "CreateOrUpdateGuildProgress",
                namespace,
                key,
                grpc.StatusCode.INTERNAL,
                f"Error updating guild progress: {exc}",
            )

        return pb.CreateOrUpdateGuildProgressResponse(guild_progress=pb.to_message(saved))

    async def GetGuildProgress(self, request: Any, context: grpc.aio.ServicerContext) -> Any:
        namespace = request.namespace
        key = guild_progress_key(request.guild_id)

        try:
            async with asyncio.timeout(context.time_remaining()):
                progress = await self._storage.get(namespace, key)
        except TimeoutError:
            await self._abort(
                context,
                "GetGuildProgress",
                namespace,
                key,
                grpc.StatusCode.DEADLINE_EXCEEDED,
                "Deadline exceeded getting guild progress",
            )
        except NotFoundError as exc:
            await self._abort(
                context,
                "GetGuildProgress",
                namespace,
                key,
                grpc.StatusCode.NOT_FOUND,
                f"Error getting guild progress: {exc}",
            )
        except StorageError as exc:
            await self._abort(
                context,
                "GetGuildProgress",
                namespace,
                key,
                grpc.StatusCode.INTERNAL,
                f"Error getting guild progress: {exc}",
            )

        return pb.GetGuildProgressResponse(guild_progress=pb.to_message(progress))

    async def _abort(
        self,
        context: grpc.aio.ServicerContext,
        method: str,
        namespace: str,
        key: str,
        code: grpc.StatusCode,
        details: str,
    ) -> NoReturn:
        """Log the failure as structured JSON, then abort the RPC.

        ``context.abort`` always raises, so callers never fall through.
        """
        log_entry = {
            "event": "rpc_failed",
            "method": method,
            "namespace": namespace,
            "key": key,
            "code": code.name,
            "error": details,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if code == grpc.StatusCode.NOT_FOUND:
            logger.info(json.dumps(log_entry))
        else:
            logger.error(json.dumps(log_entry))
        await context.abort(code, details)
