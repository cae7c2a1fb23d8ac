"""
Music Box - Cloud Music Source

Handles:
- Caching the remote catalog in the key-value store, with a TTL
- Listing catalog entries as ``<prefix>/<name>.json`` identifiers
- Downloading one entry into the scratch directory on demand
- Loading an already downloaded entry without touching the network

Concurrent refreshes (and concurrent downloads of the same entry) are
coalesced: the first caller starts the fetch, later callers await the same
task and receive the same :class:`FetchResult`.  Nothing is retried here.
"""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import aiofiles
from loguru import logger

from musicbox.cloud_api import CloudApiError, CloudMusicApi
from musicbox.config import CLOUD_CACHE_TTL, CLOUD_PAGE_LIMIT, CLOUD_PREFIX
from musicbox.database import KeyValueStore
from musicbox.utils import scratch_path, split_identifier

CATALOG_KEY = "cloud_catalog"


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------
@dataclass
class CloudCatalogEntry:
    """A single known remote item."""

    id: Any
    name: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CloudCatalogEntry":
        return cls(id=data["id"], name=str(data["name"]))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FetchResult:
    """Outcome of a refresh or download; failures never raise."""

    success: bool
    error: Optional[str] = None
    # Refresh was not needed (catalog still fresh)
    skipped: bool = False
    # Identifier does not name a catalog entry
    not_found: bool = False
    path: Optional[Path] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "skipped": self.skipped,
            "not_found": self.not_found,
            "path": str(self.path) if self.path else None,
        }


# ---------------------------------------------------------------------------
# Catalog cache
# ---------------------------------------------------------------------------
class CloudCatalogCache:
    """The fetched catalog plus its last-refresh time.

    The store's per-key modification time is the refresh timestamp; a
    missing timestamp means the catalog was never fetched.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: float = CLOUD_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

    async def load(self) -> Optional[list[CloudCatalogEntry]]:
        raw = await self._store.aget_json(CATALOG_KEY)
        if raw is None:
            return None
        return [CloudCatalogEntry.from_dict(item) for item in raw]

    async def save(self, entries: list[CloudCatalogEntry]) -> None:
        async with self._lock:
            await self._store.aset_json(CATALOG_KEY, [e.to_dict() for e in entries])

    async def last_refreshed(self) -> Optional[float]:
        return await self._store.aget_last_modified(CATALOG_KEY)

    async def is_stale(self) -> bool:
        last = await self.last_refreshed()
        if last is None:
            return True
        return self._clock() - last > self.ttl_seconds


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------
class CloudMusicSource:
    """Remote catalog entries addressed as ``<prefix>/<name>.json``."""

    def __init__(
        self,
        api: CloudMusicApi,
        catalog: CloudCatalogCache,
        scratch_dir: Path,
        prefix: str = CLOUD_PREFIX,
        page_limit: int = CLOUD_PAGE_LIMIT,
    ):
        self.api = api
        self.catalog = catalog
        self.scratch_dir = Path(scratch_dir)
        self.prefix = prefix
        self.page_limit = page_limit
        self._inflight: dict[str, asyncio.Task] = {}

    # -----------------------------------------------------------------------
    # Identifier helpers
    # -----------------------------------------------------------------------
    def owns(self, identifier: str) -> bool:
        head, _ = split_identifier(identifier)
        return head.startswith(self.prefix)

    def identifier_for(self, entry: CloudCatalogEntry) -> str:
        return f"{self.prefix}/{entry.name}.json"

    @staticmethod
    def file_name_of(identifier: str) -> str:
        """``"cloud:x/Song.json"`` → ``"Song.json"``."""
        _, rest = split_identifier(identifier)
        return rest

    def temp_path_for(self, identifier: str) -> Optional[Path]:
        return scratch_path(self.scratch_dir, self.file_name_of(identifier))

    # -----------------------------------------------------------------------
    # Coalescing
    # -----------------------------------------------------------------------
    async def _coalesced(
        self, key: str, factory: Callable[[], Awaitable[FetchResult]]
    ) -> FetchResult:
        task = self._inflight.get(key)
        if task is not None:
            logger.debug("⏳ Joining in-flight request {}", key)
        else:

            async def _run() -> FetchResult:
                try:
                    return await factory()
                finally:
                    self._inflight.pop(key, None)

            task = asyncio.ensure_future(_run())
            self._inflight[key] = task
        return await asyncio.shield(task)

    # -----------------------------------------------------------------------
    # Listing
    # -----------------------------------------------------------------------
    async def list_known_entries(self) -> list[str]:
        """Identifiers for every cached catalog entry; empty if never fetched."""
        entries = await self.catalog.load()
        if not entries:
            return []
        return [self.identifier_for(e) for e in entries]

    async def find_entry(self, identifier: str) -> Optional[CloudCatalogEntry]:
        file_name = self.file_name_of(identifier)
        for entry in await self.catalog.load() or []:
            if f"{entry.name}.json" == file_name:
                return entry
        return None

    # -----------------------------------------------------------------------
    # Refresh
    # -----------------------------------------------------------------------
    async def refresh_catalog(self, force: bool = False) -> FetchResult:
        """
        Refresh the cached catalog if it is stale (or *force* is set).

        On failure the existing catalog is left untouched and the error is
        returned in the result.
        """
        if not force and not await self.catalog.is_stale():
            logger.info("☁️ Skip fetching cloud music list (cache is fresh)")
            return FetchResult(success=True, skipped=True)
        return await self._coalesced("catalog", self._fetch_catalog)

    async def _fetch_catalog(self) -> FetchResult:
        logger.info("☁️ Start fetching cloud music list")
        try:
            raw = await self.api.fetch_music_list(0, self.page_limit, None)
            entries = [CloudCatalogEntry.from_dict(item) for item in raw]
        except CloudApiError as e:
            logger.error("❌ Failed to fetch cloud music list: {}", e)
            return FetchResult(success=False, error=str(e))
        except Exception as e:
            logger.exception(f"❌ Unexpected error fetching cloud music list: {e}")
            return FetchResult(success=False, error=str(e))

        await self.catalog.save(entries)
        logger.success("✅ Fetched cloud music list: {} entries", len(entries))
        return FetchResult(success=True)

    # -----------------------------------------------------------------------
    # Entries
    # -----------------------------------------------------------------------
    async def materialize_entry(self, identifier: str) -> FetchResult:
        """
        Download the catalog entry named by *identifier* into the scratch dir.

        An identifier that is not in the catalog fetches nothing and returns
        ``not_found``.  A failed download writes nothing.
        """
        entry = await self.find_entry(identifier)
        if entry is None:
            logger.warning("⚠️ {} is not in the cloud catalog", identifier)
            return FetchResult(success=False, not_found=True, error="Entry not in catalog")

        target = self.temp_path_for(identifier)
        if target is None:
            logger.warning("⚠️ Refusing cloud entry with unsafe name: {}", entry.name)
            return FetchResult(success=False, error="Unsafe entry name")

        return await self._coalesced(
            f"entry:{entry.name}", lambda: self._download(entry, target)
        )

    async def _download(self, entry: CloudCatalogEntry, target: Path) -> FetchResult:
        logger.info("☁️ Start fetching cloud music file: name={}, id={}", entry.name, entry.id)
        try:
            payload = await self.api.fetch_music_file_by_id(entry.id)
        except CloudApiError as e:
            logger.error("❌ Failed to fetch cloud music file {}: {}", entry.name, e)
            return FetchResult(success=False, error=str(e))
        except Exception as e:
            logger.exception(f"❌ Unexpected error fetching {entry.name}: {e}")
            return FetchResult(success=False, error=str(e))

        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")
        async with aiofiles.open(partial, "wb") as f:
            await f.write(payload)
        os.replace(partial, target)

        logger.success("✅ Fetched cloud music file: {} ({} bytes)", entry.name, len(payload))
        return FetchResult(success=True, path=target)

    def load_from_cache(self, identifier: str) -> Optional[Path]:
        """Return the downloaded file for *identifier* if it exists; never fetches."""
        target = self.temp_path_for(identifier)
        if target is not None and target.is_file():
            return target
        return None
