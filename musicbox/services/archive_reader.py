"""
Music Box - Zip Archive Reader

Handles:
- Listing the music entries inside a ``.zip`` archive
- Detecting (and remembering) the character set used for entry names
- Extracting a single entry into the scratch directory

Zip files created on Windows with a regional code page store entry names in
that code page without flagging them as UTF-8.  Opening such an archive
with the wrong charset either fails to decode or produces garbage, so each
archive is probed with a fixed, ordered list of candidate charsets and the
first one that works is stored per archive path.  Later listings and
extractions reuse the stored charset without probing again.
"""

import os
import shutil
import tempfile
import threading
import zipfile
from pathlib import Path
from typing import Optional

from loguru import logger

from musicbox.config import ZIP_CHARSETS
from musicbox.database import KeyValueStore
from musicbox.services.music_formats import is_music_file
from musicbox.utils import scratch_path

CHARSET_KEY_PREFIX = "zip_charset:"

# Raised by zipfile when an archive is corrupt or its names do not decode
_ZIP_READ_ERRORS = (UnicodeDecodeError, zipfile.BadZipFile, LookupError, ValueError)


class ArchiveReadError(Exception):
    """An archive exists but could not be opened or read."""

    def __init__(self, archive_path: Path | str, message: Optional[str] = None):
        self.archive_path = str(archive_path)
        super().__init__(message or f"Zip file {self.archive_path} could not be read")


class UnknownArchiveEncodingError(ArchiveReadError):
    """No candidate charset could open and enumerate the archive."""

    def __init__(self, archive_path: Path | str, tried: Optional[list[str]] = None):
        self.tried = list(tried or [])
        super().__init__(
            archive_path,
            f"Zip file {archive_path}: the encoding of the file names inside "
            "is unknown and reading failed (try extracting it on a computer and "
            "compressing it again)",
        )


# ---------------------------------------------------------------------------
# Charset cache
# ---------------------------------------------------------------------------
class ArchiveCharsetCache:
    """Per-archive filename charset, persisted in the key-value store.

    Records are never invalidated: an archive is assumed to keep the
    encoding it was written with.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._lock = threading.Lock()

    @staticmethod
    def _key(archive_path: Path | str) -> str:
        return CHARSET_KEY_PREFIX + str(archive_path)

    def get(self, archive_path: Path | str) -> Optional[str]:
        with self._lock:
            return self._store.get_json(self._key(archive_path))

    def set(self, archive_path: Path | str, charset: str) -> None:
        with self._lock:
            self._store.set_json(self._key(archive_path), charset)
        logger.debug("🔤 Recorded charset {} for {}", charset, archive_path)

    def all(self) -> dict[str, str]:
        """Return every recorded archive → charset pair."""
        with self._lock:
            return {
                key[len(CHARSET_KEY_PREFIX):]: self._store.get_json(key)
                for key in self._store.keys(CHARSET_KEY_PREFIX)
            }


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------
class ZipMusicArchiveReader:
    """Lists and extracts music entries from zip archives."""

    def __init__(
        self,
        charset_cache: ArchiveCharsetCache,
        scratch_dir: Path,
        charsets: Optional[list[str]] = None,
    ):
        self.charset_cache = charset_cache
        self.scratch_dir = Path(scratch_dir)
        self.charsets = list(charsets or ZIP_CHARSETS)

    @staticmethod
    def _open(archive_path: Path | str, charset: str) -> zipfile.ZipFile:
        return zipfile.ZipFile(archive_path, "r", metadata_encoding=charset)

    def _try_list_entries(self, archive_path: Path | str, charset: str) -> list[str]:
        """Open *archive_path* with *charset* and return its music entry names.

        Raises whatever zipfile raises when the names do not decode.
        """
        with self._open(archive_path, charset) as zf:
            return [
                info.filename
                for info in zf.infolist()
                if not info.is_dir() and is_music_file(info.filename)
            ]

    def _probe(self, archive_path: Path | str) -> tuple[str, list[str]]:
        """Try each candidate charset; persist and return the first that works."""
        for charset in self.charsets:
            try:
                entries = self._try_list_entries(archive_path, charset)
            except FileNotFoundError:
                raise
            except _ZIP_READ_ERRORS as e:
                logger.warning(
                    "⚠️ Failed to list music files inside {} with charset {}: {}",
                    archive_path,
                    charset,
                    e,
                )
                continue
            self.charset_cache.set(archive_path, charset)
            return charset, entries

        logger.error("❌ No usable filename charset for {}", archive_path)
        raise UnknownArchiveEncodingError(archive_path, self.charsets)

    def charset_for(self, archive_path: Path | str) -> str:
        """Return the recorded charset for *archive_path*, probing if needed."""
        charset = self.charset_cache.get(archive_path)
        if charset:
            return charset
        charset, _ = self._probe(archive_path)
        return charset

    def list_music_entries(self, archive_path: Path | str) -> list[str]:
        """
        Return the names of music entries inside *archive_path*.

        Directory entries are skipped and music entries are chosen by file
        extension only.

        Raises
        ------
        UnknownArchiveEncodingError
            If no candidate charset can open the archive.
        ArchiveReadError
            If the archive can no longer be read with its recorded charset.
        FileNotFoundError
            If the archive does not exist.
        """
        charset = self.charset_cache.get(archive_path)
        if charset:
            try:
                return self._try_list_entries(archive_path, charset)
            except _ZIP_READ_ERRORS as e:
                logger.error("❌ Failed to read {} with charset {}: {}", archive_path, charset, e)
                raise ArchiveReadError(
                    archive_path, f"Zip file {archive_path} could not be read: {e}"
                ) from e
        _, entries = self._probe(archive_path)
        logger.info("📦 Listed {} music entries in {}", len(entries), archive_path)
        return entries

    def extract_entry(self, archive_path: Path | str, entry_name: str) -> Optional[Path]:
        """
        Extract *entry_name* from *archive_path* into the scratch directory.

        Returns the extracted file path, or None if the archive has no entry
        with exactly that name (case-sensitive, separators untouched).

        The entry is written to a temporary sibling and moved onto the target
        once complete, so a file handed out by an earlier extraction is never
        truncated.

        Raises
        ------
        UnknownArchiveEncodingError
            If the archive has no recorded charset and probing fails.
        ArchiveReadError
            If the archive or the entry data is corrupt.
        """
        archive_path = Path(archive_path)
        if not archive_path.is_file():
            logger.warning("⚠️ Archive not found: {}", archive_path)
            return None

        target = scratch_path(self.scratch_dir, entry_name)
        if target is None:
            logger.warning(
                "⚠️ Refusing to extract {} from {}: path escapes scratch dir",
                entry_name,
                archive_path.name,
            )
            return None

        charset = self.charset_for(archive_path)
        try:
            with self._open(archive_path, charset) as zf:
                for info in zf.infolist():
                    if info.filename != entry_name:
                        continue
                    self._copy_entry(zf, info, target)
                    logger.info(
                        "📤 Extracted {} from {} → {}", entry_name, archive_path.name, target
                    )
                    return target
        except _ZIP_READ_ERRORS as e:
            logger.error("❌ Failed to extract {} from {}: {}", entry_name, archive_path.name, e)
            raise ArchiveReadError(
                archive_path, f"Zip file {archive_path} could not be read: {e}"
            ) from e

        logger.warning("⚠️ Entry {} not found in {}", entry_name, archive_path.name)
        return None

    @staticmethod
    def _copy_entry(zf: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, partial = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=".part"
        )
        try:
            with os.fdopen(fd, "wb") as dst, zf.open(info) as src:
                shutil.copyfileobj(src, dst)
            os.replace(partial, target)
        except BaseException:
            Path(partial).unlink(missing_ok=True)
            raise
