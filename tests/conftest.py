"""Pytest configuration and fixtures for guild progress tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import grpc
import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from guild_progress.models import GuildProgress
from guild_progress.storage.docstore import DocumentStoreConfig

MONGODB_URL = "mongodb://localhost:27017"


@pytest.fixture()
def sample_progress() -> GuildProgress:
    """Provide a guild progress value for namespace ns1."""
    return GuildProgress(namespace="ns1", guild_id="g1", objectives={"kills": 10})


@pytest.fixture()
def docstore_config() -> DocumentStoreConfig:
    """Provide document store settings with a short connect timeout."""
    return DocumentStoreConfig(url=MONGODB_URL, connect_timeout=0.5)


@pytest.fixture()
def mongo_client() -> FakeMongoClient:
    """Provide an empty in-memory MongoDB client."""
    return FakeMongoClient()


def _matches(document: dict[str, Any], query: dict[str, Any]) -> bool:
    return all(document.get(field) == value for field, value in query.items())


class FakeCollection:
    """In-memory stand-in for the parts of AsyncCollection the document store uses.

    ``update_one`` applies an upsert without yielding between the lookup and
    the write, so concurrent upserts behave like the server's atomic upsert.
    """

    def __init__(self) -> None:
        self.documents: list[dict[str, Any]] = []
        self.indexes: dict[str, dict[str, Any]] = {}
        self.index_error: PyMongoError | None = None
        self.operation_error: PyMongoError | None = None

    def count(self, query: dict[str, Any]) -> int:
        return sum(1 for document in self.documents if _matches(document, query))

    async def create_index(
        self, keys: list[tuple[str, int]], unique: bool = False, name: str | None = None
    ) -> str:
        await asyncio.sleep(0)
        if self.index_error is not None:
            raise self.index_error

        fields = [field for field, _ in keys]
        index_name = name or "_".join(f"{field}_{direction}" for field, direction in keys)
        if unique:
            seen: set[tuple[Any, ...]] = set()
            for document in self.documents:
                values = tuple(document.get(field) for field in fields)
                if values in seen:
                    raise DuplicateKeyError(f"E11000 duplicate key error index: {index_name}")
                seen.add(values)
        self.indexes[index_name] = {"key": keys, "unique": unique}
        return index_name

    async def update_one(
        self, query: dict[str, Any], update: dict[str, Any], upsert: bool = False
    ) -> None:
        await asyncio.sleep(0)
        if self.operation_error is not None:
            raise self.operation_error

        for document in self.documents:
            if _matches(document, query):
                document.update(copy.deepcopy(update.get("$set", {})))
                return
        if upsert:
            self.documents.append(
                {
                    "_id": ObjectId(),
                    **query,
                    **copy.deepcopy(update.get("$set", {})),
                    **copy.deepcopy(update.get("$setOnInsert", {})),
                }
            )

    async def find_one(
        self, query: dict[str, Any], projection: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        if self.operation_error is not None:
            raise self.operation_error

        for document in self.documents:
            if _matches(document, query):
                found = copy.deepcopy(document)
                if projection is not None and projection.get("_id") is False:
                    found.pop("_id", None)
                return found
        return None


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


class FakeAdmin:
    def __init__(self, client: FakeMongoClient) -> None:
        self._client = client

    async def command(self, name: str) -> dict[str, Any]:
        await asyncio.sleep(self._client.ping_delay)
        self._client.commands.append(name)
        if self._client.ping_error is not None:
            raise self._client.ping_error
        return {"ok": 1.0}


class FakeMongoClient:
    """In-memory stand-in for pymongo.AsyncMongoClient.

    Constructor arguments are recorded so tests can patch the real client
    class with this one and inspect how it was built.
    """

    def __init__(
        self,
        *args: Any,
        ping_error: PyMongoError | None = None,
        ping_delay: float = 0,
        **kwargs: Any,
    ) -> None:
        self.args = args
        self.kwargs = kwargs
        self.ping_error = ping_error
        self.ping_delay = ping_delay
        self.commands: list[str] = []
        self.databases: dict[str, FakeDatabase] = {}
        self.admin = FakeAdmin(self)
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase())

    def collection(self, config: DocumentStoreConfig) -> FakeCollection:
        return self[config.database][config.collection]

    async def close(self) -> None:
        self.closed = True


class AbortedError(Exception):
    """Raised by FakeServicerContext.abort, mirroring grpc.aio's abort."""

    def __init__(self, code: grpc.StatusCode, details: str) -> None:
        super().__init__(details)
        self.code = code
        self.details = details


class FakeServicerContext:
    """Minimal stand-in for grpc.aio.ServicerContext."""

    def __init__(self, time_remaining: float | None = None) -> None:
        self._time_remaining = time_remaining
        self.code: grpc.StatusCode | None = None
        self.details: str | None = None

    def time_remaining(self) -> float | None:
        return self._time_remaining

    async def abort(self, code: grpc.StatusCode, details: str = "") -> None:
        self.code = code
        self.details = details
        raise AbortedError(code, details)


@pytest.fixture()
def servicer_context() -> FakeServicerContext:
    """Provide a servicer context without a deadline."""
    return FakeServicerContext()
