"""
Music Box - Music Reader

Dispatches a resolved local file to the decoder for its format.  Only MIDI
has a decoder; the JSON note-list formats are recognised but rejected.
"""

from pathlib import Path
from typing import Optional

from musicbox.services.midi_parser import TracksData, parse_midi_file
from musicbox.services.music_formats import get_file_format


class UnsupportedFormatError(Exception):
    """No decoder exists for the file's format."""


def parse_file(file_path: str | Path, forced_format: Optional[str] = None) -> TracksData:
    """
    Parse *file_path* into ``TracksData``.

    *forced_format* overrides the extension-based format detection.

    Raises
    ------
    UnsupportedFormatError
        If the format is unknown or has no decoder.
    MidiDecodeError
        If a MIDI file cannot be decoded.
    """
    file_format = forced_format or get_file_format(str(file_path))
    if file_format == "midi":
        return parse_midi_file(file_path)
    raise UnsupportedFormatError(
        f"Unsupported file format: {file_format or Path(file_path).suffix or 'unknown'}"
    )
