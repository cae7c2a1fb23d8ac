"""
Music Box - Virtual Path Resolver

One addressing scheme over three kinds of music source:

    Identifier                      Origin
    ─────────────────────────────────────────────────────────
    song.mid                        loose file in the music dir
    pack.zip/folder/song.mid        entry inside a zip archive
    cloud:chimomoapi/Song.json      entry of the cloud catalog

``list_all()`` returns every identifier (cached until invalidated) and
``resolve()`` turns one identifier into a path relative to the music
directory.  Zip entries are extracted into ``tmp/`` on demand; cloud
entries resolve only once they have been downloaded with
:meth:`CloudMusicSource.materialize_entry`.

All public operations are coroutines.  Blocking zip work runs in a worker
thread so that callers have a single concurrency model for every origin.
"""

from __future__ import annotations

import asyncio
import shutil
from enum import Enum
from pathlib import Path
from typing import Optional

from loguru import logger

from musicbox.config import SCRATCH_SUBDIR
from musicbox.services.archive_reader import ZipMusicArchiveReader
from musicbox.services.cloud_source import CloudMusicSource
from musicbox.services.music_formats import is_music_file
from musicbox.utils import split_identifier


class Origin(str, Enum):
    LOCAL = "local"
    ZIP = "zip"
    CLOUD = "cloud"


class VirtualPathResolver:
    """Lists and resolves music identifiers across all origins."""

    def __init__(
        self,
        music_dir: Path,
        archive_reader: ZipMusicArchiveReader,
        cloud_source: CloudMusicSource,
        scratch_subdir: str = SCRATCH_SUBDIR,
    ):
        self.music_dir = Path(music_dir)
        self.scratch_subdir = scratch_subdir
        self.archive_reader = archive_reader
        self.cloud_source = cloud_source
        # None until computed; an empty list is a valid cached listing
        self._listing: Optional[list[str]] = None
        self._listing_lock = asyncio.Lock()
        # In-flight zip extractions keyed by identifier
        self._extractions: dict[str, asyncio.Future] = {}
        self.scratch_dir.mkdir(parents=True, exist_ok=True)

    @property
    def scratch_dir(self) -> Path:
        return self.music_dir / self.scratch_subdir

    # -----------------------------------------------------------------------
    # Origin dispatch
    # -----------------------------------------------------------------------
    def origin_of(self, identifier: str) -> Origin:
        head, _ = split_identifier(identifier)
        if head.endswith(".zip"):
            return Origin.ZIP
        if self.cloud_source.owns(identifier):
            return Origin.CLOUD
        return Origin.LOCAL

    # -----------------------------------------------------------------------
    # Listing
    # -----------------------------------------------------------------------
    def _files_in_music_dir(self) -> list[Path]:
        if not self.music_dir.is_dir():
            logger.warning("⚠️ Music directory does not exist: {}", self.music_dir)
            return []
        return sorted(p for p in self.music_dir.iterdir() if p.is_file())

    def list_loose_files(self) -> list[str]:
        """Music files placed directly in the music dir, e.g. ``["a.mid"]``."""
        return [p.name for p in self._files_in_music_dir() if is_music_file(p.name)]

    def list_archives(self) -> list[Path]:
        return [p for p in self._files_in_music_dir() if p.name.endswith(".zip")]

    def list_zipped_files(self) -> list[str]:
        """Music entries of every archive, e.g. ``["1.zip/a.mid", "2.zip/b.mid"]``.

        Raises ArchiveReadError (or its UnknownArchiveEncodingError subclass) if
        any archive cannot be read.
        """
        identifiers: list[str] = []
        for archive in self.list_archives():
            for entry in self.archive_reader.list_music_entries(archive):
                identifiers.append(f"{archive.name}/{entry}")
        return identifiers

    async def list_cloud_files(self) -> list[str]:
        """Identifiers of the cached cloud catalog; never hits the network."""
        return await self.cloud_source.list_known_entries()

    async def _compute_listing(self) -> list[str]:
        loose = self.list_loose_files()
        zipped = await asyncio.to_thread(self.list_zipped_files)
        cloud = await self.list_cloud_files()
        logger.info(
            "🎵 Listed music: {} loose, {} zipped, {} cloud",
            len(loose),
            len(zipped),
            len(cloud),
        )
        return loose + zipped + cloud

    async def list_all(self) -> list[str]:
        """Every identifier: loose files, then zip entries, then cloud entries.

        The result is cached for the life of the resolver until
        :meth:`invalidate_listing_cache` is called.
        """
        async with self._listing_lock:
            if self._listing is None:
                self._listing = await self._compute_listing()
            return list(self._listing)

    def invalidate_listing_cache(self) -> None:
        self._listing = None
        logger.debug("🔄 Music listing cache invalidated")

    # -----------------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------------
    def _relative(self, path: Path) -> str:
        return path.relative_to(self.music_dir).as_posix()

    async def resolve(self, identifier: str) -> Optional[str]:
        """
        Return a path (relative to the music dir) for *identifier*, or None.

        Examples
        --------
        ``"disk.mid"``          → ``"disk.mid"`` (returned unchanged)
        ``"1.zip/disk.mid"``    → ``"tmp/disk.mid"`` (extracted)
        ``"cloud:x/a.json"``    → ``"tmp/a.json"`` if already downloaded
        """
        origin = self.origin_of(identifier)

        if origin is Origin.ZIP:
            extracted = await self._extract(identifier)
            return self._relative(extracted) if extracted else None

        if origin is Origin.CLOUD:
            cached = self.cloud_source.load_from_cache(identifier)
            if cached is None:
                logger.debug("☁️ {} has not been downloaded yet", identifier)
                return None
            return self._relative(cached)

        return identifier

    async def _extract(self, identifier: str) -> Optional[Path]:
        """Extract a zip entry in a worker thread; identical requests share one run."""
        task = self._extractions.get(identifier)
        if task is not None:
            logger.debug("⏳ Joining in-flight extraction of {}", identifier)
        else:
            archive_name, entry_name = split_identifier(identifier)
            task = asyncio.ensure_future(
                asyncio.to_thread(
                    self.archive_reader.extract_entry,
                    self.music_dir / archive_name,
                    entry_name,
                )
            )
            self._extractions[identifier] = task
            task.add_done_callback(lambda _: self._extractions.pop(identifier, None))
        return await asyncio.shield(task)

    async def resolve_absolute(self, identifier: str) -> Optional[Path]:
        relative = await self.resolve(identifier)
        return self.music_dir / relative if relative is not None else None

    # -----------------------------------------------------------------------
    # Scratch management
    # -----------------------------------------------------------------------
    def _reset_scratch_dir(self) -> None:
        shutil.rmtree(self.scratch_dir, ignore_errors=True)
        self.scratch_dir.mkdir(parents=True, exist_ok=True)

    async def clear_temporary_extractions(self) -> None:
        """Delete everything extracted or downloaded into the scratch dir."""
        await asyncio.to_thread(self._reset_scratch_dir)
        logger.info("🧹 Cleared music file cache at {}", self.scratch_dir)
