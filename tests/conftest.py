"""
Music Box - Pytest Configuration & Shared Fixtures

Provides reusable fixtures for:
- A temporary music directory with a scratch sub-directory
- A fresh SQLite key-value store per test
- Zip archive builders (UTF-8 names, raw regional-charset names)
- A fake cloud music API with call counters and failure switches
- Synthetic MIDI files written with mido
- Capturing loguru warnings
"""

import asyncio
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import mido
import pytest
from loguru import logger

from musicbox.cloud_api import CloudApiError
from musicbox.database import KeyValueStore
from musicbox.services.library import MusicLibrary

CLOUD_PREFIX = "cloud:chimomoapi"

# "歌曲.mid" encoded in GBK, not valid UTF-8
GBK_SONG_NAME = "歌曲.mid"
GBK_SONG_RAW = GBK_SONG_NAME.encode("gbk")

# Neither valid UTF-8 nor valid GBK
UNDECODABLE_RAW = b"\xff\xff\xff.mid"

SAMPLE_CATALOG = [
    {"id": 101, "name": "Canon in D"},
    {"id": 102, "name": "Fur Elise"},
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def build_zip(path: Path, entries: Dict[str, bytes]) -> Path:
    """Write a zip archive with the given name → content entries."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


def build_zip_raw_names(path: Path, entries: Dict[bytes, bytes]) -> Path:
    """
    Write a zip archive whose entry names are stored as raw bytes, without
    the UTF-8 flag (like archives made by legacy Windows tools).

    zipfile always encodes non-ASCII names as flagged UTF-8, so each entry
    is written under an ASCII placeholder of the same length which is then
    patched in place (local header and central directory).
    """
    placeholders = {}
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_STORED) as zf:
        for i, (raw_name, data) in enumerate(entries.items()):
            placeholder = str(i).rjust(len(raw_name), "~").encode("ascii")
            placeholders[placeholder] = raw_name
            zf.writestr(placeholder.decode("ascii"), data)

    blob = path.read_bytes()
    for placeholder, raw_name in placeholders.items():
        assert blob.count(placeholder) == 2
        blob = blob.replace(placeholder, raw_name)
    path.write_bytes(blob)
    return path


def write_midi(
    path: Path,
    notes: List[tuple],
    ticks_per_beat: int = 500,
    tempo: Optional[int] = 500_000,
    channel: int = 0,
    program: Optional[int] = None,
    track_name: str = "Piano",
) -> Path:
    """
    Write a two-track MIDI file (tempo track + one instrument track).

    *notes* is a list of ``(pitch, start_tick, end_tick, velocity)``.
    """
    mid = mido.MidiFile(ticks_per_beat=ticks_per_beat)

    meta = mido.MidiTrack()
    if tempo is not None:
        meta.append(mido.MetaMessage("set_tempo", tempo=tempo, time=0))
    meta.append(mido.MetaMessage("time_signature", numerator=4, denominator=4, time=0))
    mid.tracks.append(meta)

    track = mido.MidiTrack()
    track.append(mido.MetaMessage("track_name", name=track_name, time=0))
    if program is not None:
        track.append(mido.Message("program_change", channel=channel, program=program, time=0))

    timeline = []
    for pitch, start, end, velocity in notes:
        timeline.append((start, 1, mido.Message("note_on", channel=channel, note=pitch, velocity=velocity)))
        timeline.append((end, 0, mido.Message("note_off", channel=channel, note=pitch, velocity=0)))
    timeline.sort(key=lambda item: (item[0], item[1]))

    last = 0
    for tick, _, msg in timeline:
        track.append(msg.copy(time=tick - last))
        last = tick
    mid.tracks.append(track)

    mid.save(str(path))
    return path


def run(coro):
    """Run a coroutine to completion in a fresh event loop."""
    return asyncio.run(coro)


class FakeCloudApi:
    """In-memory stand-in for the cloud music service."""

    def __init__(
        self,
        entries: Optional[List[Dict[str, Any]]] = None,
        files: Optional[Dict[Any, bytes]] = None,
        delay: float = 0.0,
    ):
        self.entries = list(entries if entries is not None else SAMPLE_CATALOG)
        self.files = dict(files or {})
        self.delay = delay
        self.fail_list = False
        self.fail_file = False
        self.list_calls = 0
        self.file_calls: List[Any] = []

    async def fetch_music_list(self, offset, limit, filter=None):
        self.list_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_list:
            raise CloudApiError("catalog unavailable")
        return [dict(e) for e in self.entries[offset:offset + limit]]

    async def fetch_music_file_by_id(self, music_id):
        self.file_calls.append(music_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_file or music_id not in self.files:
            raise CloudApiError(f"file {music_id} unavailable")
        return self.files[music_id]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def music_dir(tmp_path: Path) -> Path:
    """An empty music directory with its scratch sub-directory."""
    d = tmp_path / "music"
    (d / "tmp").mkdir(parents=True)
    return d


@pytest.fixture
def kv_store(tmp_path: Path) -> KeyValueStore:
    store = KeyValueStore(tmp_path / "db" / "musicbox.db")
    store.init()
    return store


@pytest.fixture
def fake_api() -> FakeCloudApi:
    return FakeCloudApi(
        files={
            101: b'{"name": "Canon in D", "notes": []}',
            102: b'{"name": "Fur Elise", "notes": []}',
        }
    )


@pytest.fixture
def library(music_dir: Path, tmp_path: Path, fake_api: FakeCloudApi) -> MusicLibrary:
    return MusicLibrary.create(
        music_dir=music_dir,
        db_path=tmp_path / "db" / "musicbox.db",
        api=fake_api,
        cloud_prefix=CLOUD_PREFIX,
    )


@pytest.fixture
def log_messages():
    """Collect loguru messages of level WARNING and above."""
    messages: List[str] = []
    handler_id = logger.add(lambda m: messages.append(str(m)), level="WARNING")
    yield messages
    logger.remove(handler_id)
