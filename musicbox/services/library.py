"""
Music Box - Library Wiring

Builds the store, the source handlers, the resolver and the playlists
from configuration (or from explicit arguments in tests and scripts).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from musicbox.cloud_api import CloudMusicApi, HttpCloudMusicApi
from musicbox.config import (
    CLOUD_CACHE_TTL,
    CLOUD_PREFIX,
    DB_PATH,
    MUSIC_DIR,
    SCRATCH_SUBDIR,
)
from musicbox.database import KeyValueStore
from musicbox.services.archive_reader import ArchiveCharsetCache, ZipMusicArchiveReader
from musicbox.services.cloud_source import CloudCatalogCache, CloudMusicSource
from musicbox.services.playlists import PlaylistStore
from musicbox.services.resolver import VirtualPathResolver


@dataclass
class MusicLibrary:
    store: KeyValueStore
    archive_reader: ZipMusicArchiveReader
    cloud_source: CloudMusicSource
    resolver: VirtualPathResolver
    playlists: PlaylistStore

    @classmethod
    def create(
        cls,
        music_dir: Path | str = MUSIC_DIR,
        db_path: Path | str = DB_PATH,
        api: Optional[CloudMusicApi] = None,
        cloud_prefix: str = CLOUD_PREFIX,
        cloud_ttl: float = CLOUD_CACHE_TTL,
    ) -> "MusicLibrary":
        music_dir = Path(music_dir)
        scratch_dir = music_dir / SCRATCH_SUBDIR
        scratch_dir.mkdir(parents=True, exist_ok=True)

        store = KeyValueStore(db_path)
        store.init()

        archive_reader = ZipMusicArchiveReader(ArchiveCharsetCache(store), scratch_dir)
        cloud_source = CloudMusicSource(
            api or HttpCloudMusicApi(),
            CloudCatalogCache(store, ttl_seconds=cloud_ttl),
            scratch_dir,
            prefix=cloud_prefix,
        )
        resolver = VirtualPathResolver(
            music_dir, archive_reader, cloud_source, scratch_subdir=SCRATCH_SUBDIR
        )
        return cls(
            store=store,
            archive_reader=archive_reader,
            cloud_source=cloud_source,
            resolver=resolver,
            playlists=PlaylistStore(store),
        )
