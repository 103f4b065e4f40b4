"""Guild progress storage backed by a MongoDB collection via pymongo's async client."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Self

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from guild_progress.models import GuildProgress, GuildProgressDocument
from guild_progress.storage.base import GuildProgressStorage, InternalError, NotFoundError

logger = logging.getLogger(__name__)

UNIQUE_INDEX_NAME = "namespace_key_unique"

_INVALID_DATABASE_CHARS = frozenset('/\\. "$')


@dataclass(frozen=True, slots=True)
class DocumentStoreConfig:
    """Configuration for DocumentStoreStorage.

    Attributes:
        url: MongoDB connection string, e.g. ``mongodb://localhost:27017``.
        database: Database name.
        collection: Collection name.
        connect_timeout: Seconds allowed for server selection and the health probe.
    """

    url: str
    database: str = "guild_progress"
    collection: str = "guild_progress"
    connect_timeout: float = 10.0

    def __post_init__(self) -> None:
        if not self.url.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(
                f"url must use the mongodb:// or mongodb+srv:// scheme, got {self.url!r}"
            )
        if not self.database or _INVALID_DATABASE_CHARS.intersection(self.database):
            raise ValueError(f"database is not a valid database name: {self.database!r}")
        if not self.collection or "$" in self.collection or self.collection.startswith("system."):
            raise ValueError(f"collection is not a valid collection name: {self.collection!r}")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")


class DocumentStoreStorage(GuildProgressStorage):
    """Document store with a unique (namespace, key) index and upserts.

    Each guild progress record is one document holding ``namespace``,
    ``key``, ``guild_id``, the ``objectives`` sub-document and the
    ``created_at``/``updated_at`` timestamps. ``created_at`` is written once
    on insert and ``updated_at`` on every save.

    If the unique index cannot be created at startup a warning is logged and
    the backend stays available. Upserts keep working, but uniqueness of
    (namespace, key) is no longer enforced by the server until the index is
    built.

    Example:
        ```python
        config = DocumentStoreConfig(url="mongodb://localhost:27017")
        async with DocumentStoreStorage(config) as storage:
            await storage.save("ns1", "guildProgress_g1", progress)
        ```
    """

    def __init__(self, config: DocumentStoreConfig, client: AsyncMongoClient | None = None) -> None:
        """Initialize the backend.

        Args:
            config: Backend configuration.
            client: Optional pre-built client. An injected client is not
                closed by ``close()``.
        """
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._collection: Any = None
        self._closed = False
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def open(self) -> None:
        """Connect, probe liveness and ensure the unique index.

        Concurrent callers share a single connection attempt.

        Raises:
            InternalError: If the client cannot be created, or the health
                probe fails or does not complete within ``connect_timeout``.
        """
        async with self._lock:
            if self._collection is not None:
                return

            timeout = self._config.connect_timeout
            client = self._client
            owns_client = client is None
            try:
                if client is None:
                    client = AsyncMongoClient(
                        self._config.url,
                        serverSelectionTimeoutMS=int(timeout * 1000),
                        connectTimeoutMS=int(timeout * 1000),
                        tz_aware=True,
                    )
                await asyncio.wait_for(client.admin.command("ping"), timeout=timeout)
            except TimeoutError as exc:
                await self._discard(client, owns_client)
                raise InternalError(
                    f"document store health probe timed out after {timeout}s"
                ) from exc
            except PyMongoError as exc:
                await self._discard(client, owns_client)
                raise InternalError(f"failed to connect to document store: {exc}") from exc

            collection = client[self._config.database][self._config.collection]
            await self._ensure_indexes(collection)

            self._client = client
            self._owns_client = owns_client
            self._collection = collection
            self._closed = False

        logger.info(
            json.dumps(
                {
                    "event": "storage_opened",
                    "backend": "docstore",
                    "database": self._config.database,
                    "collection": self._config.collection,
                    "timestamp": datetime.now(UTC).isoformat(),
                }
            )
        )

    @staticmethod
    async def _discard(client: AsyncMongoClient | None, owns_client: bool) -> None:
        if client is None or not owns_client:
            return
        try:
            await client.close()
        except PyMongoError:
            logger.debug("ignoring close failure after failed connect", exc_info=True)

    async def _ensure_indexes(self, collection: Any) -> None:
        """Create the unique (namespace, key) index on a best-effort basis."""
        try:
            await collection.create_index(
                [("namespace", ASCENDING), ("key", ASCENDING)],
                unique=True,
                name=UNIQUE_INDEX_NAME,
            )
        except PyMongoError as exc:
            # Startup continues without the constraint.
            logger.warning(
                json.dumps(
                    {
                        "event": "unique_index_creation_failed",
                        "collection": self._config.collection,
                        "error": str(exc),
                        "timestamp": datetime.now(UTC).isoformat(),
                    }
                )
            )

    async def _get_collection(self) -> Any:
        if self._closed:
            raise InternalError("document store is closed")
        if self._collection is None:
            await self.open()
        return self._collection

    async def save(self, namespace: str, key: str, value: GuildProgress) -> GuildProgress:
        """Upsert the document stored under (namespace, key).

        Args:
            namespace: Record namespace.
            key: Record key.
            value: Guild progress to persist.

        Returns:
            ``value`` unchanged. The document is not re-read after the write.

        Raises:
            InternalError: If the driver reports a failure.
        """
        collection = await self._get_collection()
        now = datetime.now(UTC)
        try:
            await collection.update_one(
                {"namespace": namespace, "key": key},
                {
                    "$set": {
                        "guild_id": value.guild_id,
                        "objectives": dict(value.objectives),
                        "updated_at": now,
                    },
                    "$setOnInsert": {"created_at": now},
                },
                upsert=True,
            )
        except PyMongoError as exc:
            raise InternalError(
                f"failed to upsert guild progress: {exc}", namespace=namespace, key=key
            ) from exc
        return value

    async def get(self, namespace: str, key: str) -> GuildProgress:
        """Fetch the document stored under (namespace, key).

        Raises:
            NotFoundError: If no document matches.
            InternalError: On driver failures or an undecodable document.
        """
        document = await self.get_document(namespace, key)
        return document.to_progress()

    async def get_document(self, namespace: str, key: str) -> GuildProgressDocument:
        """Fetch the full persisted document, timestamps included.

        Raises:
            NotFoundError: If no document matches.
            InternalError: On driver failures or an undecodable document.
        """
        collection = await self._get_collection()
        try:
            raw = await collection.find_one(
                {"namespace": namespace, "key": key}, projection={"_id": False}
            )
        except PyMongoError as exc:
            raise InternalError(
                f"failed to query guild progress: {exc}", namespace=namespace, key=key
            ) from exc

        if raw is None:
            raise NotFoundError(
                f"guild progress not found: namespace={namespace} key={key}",
                namespace=namespace,
                key=key,
            )

        try:
            progress = GuildProgress.from_dict(raw)
            created_at, updated_at = raw.get("created_at"), raw.get("updated_at")
            if not isinstance(created_at, datetime) or not isinstance(updated_at, datetime):
                raise ValueError("created_at and updated_at must be dates")
        except ValueError as exc:
            raise InternalError(
                f"stored guild progress document is malformed: {exc}",
                namespace=namespace,
                key=key,
            ) from exc

        return GuildProgressDocument(
            namespace=progress.namespace,
            key=key,
            guild_id=progress.guild_id,
            objectives=progress.objectives,
            created_at=created_at,
            updated_at=updated_at,
        )

    async def close(self) -> None:
        """Close the owned client. Failures are logged, not raised."""
        if self._closed:
            return

        self._closed = True
        client, self._client = self._client, None
        self._collection = None
        if client is None or not self._owns_client:
            return

        try:
            await client.close()
        except PyMongoError as exc:
            logger.warning(
                json.dumps(
                    {
                        "event": "storage_close_failed",
                        "backend": "docstore",
                        "error": str(exc),
                        "timestamp": datetime.now(UTC).isoformat(),
                    }
                )
            )
