"""Guild progress storage backed by the CloudSave admin game-record API."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Self
from urllib.parse import quote

import httpx

from guild_progress.models import GuildProgress
from guild_progress.storage.base import GuildProgressStorage, InternalError, NotFoundError

logger = logging.getLogger(__name__)

RECORD_PATH = "/cloudsave/v1/admin/namespaces/{namespace}/records/{key}"


@dataclass(frozen=True, slots=True)
class CloudSaveConfig:
    """Configuration for CloudSaveStorage.

    Attributes:
        base_url: Base URL of the platform, e.g. ``https://demo.accelbyte.io``.
        access_token: Optional bearer token sent with every request.
        timeout: Transport timeout in seconds.
        max_connections: Maximum number of pooled connections.
        max_keepalive_connections: Maximum idle keep-alive connections.
    """

    base_url: str
    access_token: str | None = None
    timeout: float = 30.0
    max_connections: int = 100
    max_keepalive_connections: int = 20


class CloudSaveStorage(GuildProgressStorage):
    """Stores guild progress as an arbitrary JSON game record.

    The record service has no notion of the guild progress schema, so the
    schema is enforced client-side: the opaque ``value`` of each record is
    re-serialized to JSON and then validated into a GuildProgress.

    Saves use PUT, which replaces the whole record value.

    Example:
        ```python
        config = CloudSaveConfig(base_url="https://demo.accelbyte.io", access_token=token)
        async with CloudSaveStorage(config) as storage:
            progress = await storage.get("ns1", "guildProgress_g1")
        ```
    """

    def __init__(self, config: CloudSaveConfig, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the backend.

        Args:
            config: Backend configuration.
            client: Optional pre-built client. An injected client is not
                closed by ``close()``.
        """
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._closed = False
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def open(self) -> None:
        """Create the shared HTTP client if one was not injected.

        Concurrent callers share a single client.
        """
        async with self._lock:
            if self._client is not None:
                return

            limits = httpx.Limits(
                max_connections=self._config.max_connections,
                max_keepalive_connections=self._config.max_keepalive_connections,
            )
            self._client = httpx.AsyncClient(
                limits=limits,
                timeout=httpx.Timeout(self._config.timeout),
            )
            self._owns_client = True
            self._closed = False

        logger.info(
            json.dumps(
                {
                    "event": "storage_opened",
                    "backend": "cloudsave",
                    "base_url": self._config.base_url,
                    "timestamp": datetime.now(UTC).isoformat(),
                }
            )
        )

    async def get(self, namespace: str, key: str) -> GuildProgress:
        """Fetch a game record and decode its value.

        Args:
            namespace: Record namespace.
            key: Record key.

        Returns:
            The decoded guild progress.

        Raises:
            NotFoundError: If the record service reports HTTP 404.
            InternalError: On transport failures, other error statuses or
                values that do not decode into a GuildProgress.
        """
        response = await self._request("GET", namespace, key)
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError(
                f"guild progress not found: namespace={namespace} key={key}",
                namespace=namespace,
                key=key,
            )
        self._raise_for_status(response, namespace, key)
        return self._decode_record(response, namespace, key)

    async def save(self, namespace: str, key: str, value: GuildProgress) -> GuildProgress:
        """Replace the game record with the given value.

        Args:
            namespace: Record namespace.
            key: Record key.
            value: Guild progress to persist.

        Returns:
            The value as echoed back by the record service.

        Raises:
            InternalError: On transport failures, error statuses or an
                undecodable response.
        """
        response = await self._request("PUT", namespace, key, body=value.to_dict())
        self._raise_for_status(response, namespace, key)
        return self._decode_record(response, namespace, key)

    async def close(self) -> None:
        """Close the owned HTTP client."""
        if self._closed:
            return

        self._closed = True
        client, self._client = self._client, None
        if client is not None and self._owns_client:
            await client.aclose()

    def _url(self, namespace: str, key: str) -> str:
        path = RECORD_PATH.format(namespace=quote(namespace, safe=""), key=quote(key, safe=""))
        return f"{self._config.base_url.rstrip('/')}{path}"

    async def _request(
        self,
        method: str,
        namespace: str,
        key: str,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if self._closed:
            raise InternalError("record service client is closed", namespace=namespace, key=key)
        if self._client is None:
            await self.open()
        assert self._client is not None

        headers = {"Accept": "application/json"}
        if self._config.access_token:
            headers["Authorization"] = f"Bearer {self._config.access_token}"

        try:
            return await self._client.request(
                method,
                self._url(namespace, key),
                json=body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise InternalError(
                f"record service request failed: {exc!r}", namespace=namespace, key=key
            ) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, namespace: str, key: str) -> None:
        if response.is_success:
            return
        raise InternalError(
            f"record service returned HTTP {response.status_code}: {response.text}",
            namespace=namespace,
            key=key,
        )

    @staticmethod
    def _decode_record(response: httpx.Response, namespace: str, key: str) -> GuildProgress:
        """Decode a record response in two steps: JSON round trip, then typed validation."""
        try:
            record = response.json()
        except ValueError as exc:
            raise InternalError(
                f"Error decoding record response: {exc}", namespace=namespace, key=key
            ) from exc

        raw_value = record.get("value") if isinstance(record, dict) else None

        try:
            value = json.loads(json.dumps(raw_value))
        except (TypeError, ValueError) as exc:
            raise InternalError(
                f"Error marshalling value into JSON: {exc}", namespace=namespace, key=key
            ) from exc

        if isinstance(value, dict) and not value.get("namespace"):
            value["namespace"] = namespace

        try:
            return GuildProgress.from_dict(value)
        except ValueError as exc:
            raise InternalError(
                f"Error unmarshalling value into GuildProgress: {exc}",
                namespace=namespace,
                key=key,
            ) from exc
