"""
Music Box - Music Format Sniffing

Maps file names to music format names by extension only.  No content
inspection happens here; a ``.mid`` file that is not really MIDI fails
later, in the decoder.
"""

from pathlib import PurePosixPath
from typing import Optional

from musicbox.config import MUSIC_FILE_EXTENSIONS, MUSIC_FORMAT_EXTENSIONS


def get_extension(file_name: str) -> str:
    return PurePosixPath(file_name).suffix.lower()


def is_music_file(file_name: str) -> bool:
    """Return True if *file_name* has one of the configured music extensions."""
    return get_extension(file_name) in MUSIC_FILE_EXTENSIONS


def get_file_format(file_name: str) -> Optional[str]:
    """Return the format name for *file_name* (e.g. ``"midi"``), or None."""
    ext = get_extension(file_name)
    if ext not in MUSIC_FILE_EXTENSIONS:
        return None
    return MUSIC_FORMAT_EXTENSIONS.get(ext)
