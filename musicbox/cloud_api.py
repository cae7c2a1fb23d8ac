"""
Music Box - Cloud Catalog Client

Provides async methods to fetch the remote music catalog and individual
music files from the cloud music service.

Uses httpx for async HTTP operations.  Each call is a single attempt: no
retry wrapping happens here, and the only timeout is the client timeout
(``CLOUD_API_TIMEOUT``).  Failures are raised as :class:`CloudApiError` so
that the caching layer above can decide what to keep.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
from loguru import logger

from musicbox.config import CLOUD_API_TIMEOUT, CLOUD_API_TOKEN, CLOUD_API_URL


class CloudApiError(Exception):
    """The remote music service could not be reached or answered badly."""


class CloudMusicApi(Protocol):
    """The two remote calls the cloud music source depends on."""

    async def fetch_music_list(
        self, offset: int, limit: int, filter: str | None = None
    ) -> list[dict[str, Any]]: ...

    async def fetch_music_file_by_id(self, music_id: Any) -> bytes: ...


def is_configured() -> bool:
    """Return True if a cloud API base URL is configured."""
    return bool(CLOUD_API_URL)


class HttpCloudMusicApi:
    """:class:`CloudMusicApi` backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str = CLOUD_API_URL,
        token: str = CLOUD_API_TOKEN,
        timeout: float = CLOUD_API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def fetch_music_list(
        self, offset: int, limit: int, filter: str | None = None
    ) -> list[dict[str, Any]]:
        """Fetch one page of catalog entries (``{"id", "name"}`` dicts)."""
        if not self.base_url:
            raise CloudApiError("Cloud API URL is not configured")

        params: dict[str, Any] = {"offset": offset, "limit": limit}
        if filter:
            params["filter"] = filter

        try:
            async with self._client() as client:
                response = await client.get("/music", params=params)
        except httpx.HTTPError as e:
            raise CloudApiError(f"Catalog request failed: {e}") from e

        if response.status_code != 200:
            raise CloudApiError(
                f"Catalog request failed ({response.status_code}): {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CloudApiError(f"Catalog response is not JSON: {e}") from e

        # Both a bare list and a {"data": [...]} envelope are accepted
        if isinstance(data, dict):
            data = data.get("data", [])
        if not isinstance(data, list):
            raise CloudApiError("Catalog response has unexpected shape")

        entries = [
            {"id": item["id"], "name": str(item["name"])}
            for item in data
            if isinstance(item, dict) and "id" in item and "name" in item
        ]
        logger.debug("☁️ Catalog page offset={} limit={} → {} entries", offset, limit, len(entries))
        return entries

    async def fetch_music_file_by_id(self, music_id: Any) -> bytes:
        """Fetch the raw payload of a single catalog entry."""
        if not self.base_url:
            raise CloudApiError("Cloud API URL is not configured")

        try:
            async with self._client() as client:
                response = await client.get(f"/music/{music_id}")
        except httpx.HTTPError as e:
            raise CloudApiError(f"Music file request failed: {e}") from e

        if response.status_code != 200:
            raise CloudApiError(
                f"Music file request failed ({response.status_code}) for id={music_id}"
            )
        return response.content
