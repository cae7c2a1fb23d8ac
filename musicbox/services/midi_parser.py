"""
Music Box - MIDI Parser Service

Turns a MIDI file into per-track note lists (``TracksData``).

The work happens in two stages:

    1. Decoding (``decode_midi_file``): ``mido`` reads the file and the
       per-track messages are flattened into one chronological stream of
       ``NoteEvent`` / ``ProgramChangeEvent`` / ``MetaEvent`` objects with
       absolute tick timestamps, together with static file information
       (microseconds per tick, the channels each track declares).

    2. Reconstruction (``MidiTrackReconstructor``): the event stream is
       bucketed per (track, channel), program changes assign instruments,
       and note-on events are paired with their note-off events to get
       durations.

Pairing rules:

    On-events   note_on with velocity >= 1
    Off-events  note_off, or note_on with velocity 0

Each on-event (in stream order) consumes the *first* remaining off-event
with the same pitch and a strictly later tick.  On-events without such an
off-event are dropped with a warning; they never abort the parse.

Times are ``tick * microseconds_per_tick / 1000`` (milliseconds) and
velocities are normalised to 0..1.

Dependencies: ``mido`` (pure-Python MIDI parser, no C dependencies).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Union

import mido
from loguru import logger

from musicbox.config import DEFAULT_MICROSECONDS_PER_TICK

# Default tempo when a file has no set_tempo event (120 BPM)
DEFAULT_TEMPO = 500_000

NOTE_ON = "note_on"
NOTE_OFF = "note_off"


class MidiDecodeError(ValueError):
    """The MIDI file is missing, malformed or cannot be decoded."""


# ---------------------------------------------------------------------------
# Decoded event stream
# ---------------------------------------------------------------------------


@dataclass
class NoteEvent:
    """A note_on / note_off message at an absolute tick."""

    kind: str  # NOTE_ON or NOTE_OFF
    pitch: int
    velocity: int
    tick: int
    track: int
    channel: int

    @property
    def is_on(self) -> bool:
        return self.kind == NOTE_ON and self.velocity >= 1

    @property
    def is_off(self) -> bool:
        return self.kind == NOTE_OFF or (self.kind == NOTE_ON and self.velocity == 0)


@dataclass
class ProgramChangeEvent:
    """Instrument selection for a channel."""

    program: int
    tick: int
    track: int
    channel: int


@dataclass
class MetaEvent:
    """A meta message (tempo, time signature, ...) kept for diagnostics."""

    type: str
    tick: int
    track: int
    content: dict[str, Any] = field(default_factory=dict)


MidiEvent = Union[NoteEvent, ProgramChangeEvent, MetaEvent]


@dataclass
class MidiTrackLayout:
    """A track as declared by the file: its name and the channels it uses."""

    index: int
    name: str
    channels: list[int] = field(default_factory=list)


@dataclass
class MidiFileInfo:
    """Static information about a decoded MIDI file."""

    microseconds_per_tick: int
    ticks_per_beat: int = 480
    midi_format: int = 1
    tracks: list[MidiTrackLayout] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Reconstructed output
# ---------------------------------------------------------------------------


@dataclass
class Note:
    """A paired note: pitch, start time and duration (ms), velocity 0..1."""

    pitch: int
    start_time: float
    duration: float
    velocity: float

    def to_list(self) -> list[Any]:
        return [
            self.pitch,
            self.start_time,
            {"duration": self.duration, "velocity": self.velocity},
        ]


@dataclass
class Track:
    """Notes of one (track, channel) pair.  Index 0 is the fallback bucket."""

    name: str
    channel: int
    track_index: int
    instrument_id: int = -1
    notes: list[Note] = field(default_factory=list)

    @property
    def note_count(self) -> int:
        return len(self.notes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "channel": self.channel,
            "trackIndex": self.track_index,
            "instrumentId": self.instrument_id,
            "noteCount": self.note_count,
            "notes": [n.to_list() for n in self.notes],
        }


@dataclass
class TracksData:
    """Complete reconstruction result for one file."""

    tracks: list[Track] = field(default_factory=list)
    have_multiple_tracks: bool = True
    duration_type: str = "native"

    @property
    def track_count(self) -> int:
        return len(self.tracks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "haveMultipleTrack": self.have_multiple_tracks,
            "durationType": self.duration_type,
            "trackCount": self.track_count,
            "tracks": [t.to_dict() for t in self.tracks],
        }


# ---------------------------------------------------------------------------
# Decoding (mido)
# ---------------------------------------------------------------------------


def _microseconds_per_tick(midi: mido.MidiFile) -> int:
    tempo = DEFAULT_TEMPO
    for track in midi.tracks:
        found = next((msg.tempo for msg in track if msg.type == "set_tempo"), None)
        if found is not None:
            tempo = found
            break
    tpb = midi.ticks_per_beat or 0
    return int(tempo / tpb) if tpb > 0 else 0


def decode_midi_file(file_path: str | Path) -> tuple[MidiFileInfo, list[MidiEvent]]:
    """
    Decode a MIDI file into static info and a chronological event stream.

    Raises
    ------
    MidiDecodeError
        If the file is missing or is not a valid MIDI file.
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise MidiDecodeError(f"MIDI file not found: {file_path}")

    try:
        midi = mido.MidiFile(str(file_path))
    except Exception as e:
        raise MidiDecodeError(f"Failed to parse MIDI file {file_path.name}: {e}") from e

    info = MidiFileInfo(
        microseconds_per_tick=_microseconds_per_tick(midi),
        ticks_per_beat=midi.ticks_per_beat,
        midi_format=midi.type,
    )
    events: list[MidiEvent] = []

    for track_idx, track in enumerate(midi.tracks):
        layout = MidiTrackLayout(index=track_idx, name=track.name or "")
        abs_tick = 0

        for msg in track:
            abs_tick += msg.time  # msg.time is delta ticks

            if msg.type in (NOTE_ON, NOTE_OFF):
                if msg.channel not in layout.channels:
                    layout.channels.append(msg.channel)
                events.append(
                    NoteEvent(
                        kind=msg.type,
                        pitch=msg.note,
                        velocity=msg.velocity,
                        tick=abs_tick,
                        track=track_idx,
                        channel=msg.channel,
                    )
                )
            elif msg.type == "program_change":
                events.append(
                    ProgramChangeEvent(
                        program=msg.program,
                        tick=abs_tick,
                        track=track_idx,
                        channel=msg.channel,
                    )
                )
            elif msg.is_meta and msg.type in ("set_tempo", "time_signature"):
                content = msg.dict()
                content.pop("time", None)
                content.pop("type", None)
                events.append(
                    MetaEvent(type=msg.type, tick=abs_tick, track=track_idx, content=content)
                )

        info.tracks.append(layout)

    # Stable sort keeps track order for events sharing a tick
    events.sort(key=lambda e: e.tick)
    return info, events


# ---------------------------------------------------------------------------
# Reconstruction
# ---------------------------------------------------------------------------


class MidiTrackReconstructor:
    """Builds ``TracksData`` from file info and a decoded event stream."""

    def __init__(self, default_microseconds_per_tick: int = DEFAULT_MICROSECONDS_PER_TICK):
        self.default_microseconds_per_tick = default_microseconds_per_tick

    def reconstruct(self, info: MidiFileInfo, events: Iterable[MidiEvent]) -> TracksData:
        us_per_tick = info.microseconds_per_tick or self.default_microseconds_per_tick

        tracks: list[Track] = [Track(name="", channel=0, track_index=0)]
        # (track number, channel number) → index into ``tracks``
        track_map: dict[tuple[int, int], int] = {}
        # channel number → indices of every declared track on that channel
        channel_tracks: dict[int, list[int]] = {}

        for layout in info.tracks:
            for channel in layout.channels:
                tracks.append(
                    Track(name=layout.name, channel=channel, track_index=layout.index)
                )
                idx = len(tracks) - 1
                track_map[(layout.index, channel)] = idx
                channel_tracks.setdefault(channel, []).append(idx)

        buckets: list[list[NoteEvent]] = [[] for _ in tracks]

        for event in events:
            if isinstance(event, NoteEvent):
                buckets[track_map.get((event.track, event.channel), 0)].append(event)
            elif isinstance(event, ProgramChangeEvent):
                for idx in channel_tracks.get(event.channel, []):
                    tracks[idx].instrument_id = event.program
            elif isinstance(event, MetaEvent):
                logger.debug("🎼 {} at tick {}: {}", event.type, event.tick, event.content)

        for i, note_events in enumerate(buckets):
            tracks[i].notes = self._pair_notes(i, note_events, us_per_tick)

        for t in tracks:
            logger.debug(
                "  📌 Track {}, channel {}, instrument {}, {} notes",
                t.track_index,
                t.channel,
                t.instrument_id,
                t.note_count,
            )

        return TracksData(tracks=tracks)

    @staticmethod
    def _pair_notes(
        bucket: int, events: list[NoteEvent], us_per_tick: int
    ) -> list[Note]:
        note_ons = [e for e in events if e.is_on]
        note_offs = [e for e in events if e.is_off]

        if len(note_ons) != len(note_offs):
            logger.warning(
                "⚠️ NOTE_ON and NOTE_OFF count mismatch in track {}: {} on, {} off",
                bucket,
                len(note_ons),
                len(note_offs),
            )

        notes: list[Note] = []
        for on in note_ons:
            match = next(
                (
                    j
                    for j, off in enumerate(note_offs)
                    if off.pitch == on.pitch and off.tick > on.tick
                ),
                None,
            )
            if match is None:
                logger.warning(
                    "⚠️ NOTE_ON without NOTE_OFF in track {}: pitch={} tick={}",
                    bucket,
                    on.pitch,
                    on.tick,
                )
                continue

            off = note_offs.pop(match)
            start = on.tick * us_per_tick / 1000
            notes.append(
                Note(
                    pitch=on.pitch,
                    start_time=start,
                    duration=off.tick * us_per_tick / 1000 - start,
                    velocity=on.velocity / 127,
                )
            )
        return notes


def parse_midi_file(file_path: str | Path) -> TracksData:
    """
    Parse a MIDI file into per-track notes.

    Raises
    ------
    MidiDecodeError
        If the file cannot be decoded.  Pairing problems only log warnings.
    """
    logger.info("🎹 Parsing MIDI file: {}", Path(file_path).name)
    info, events = decode_midi_file(file_path)
    tracks_data = MidiTrackReconstructor().reconstruct(info, events)
    logger.info(
        "✅ MIDI parsed: format={}, tpb={}, {} µs/tick, {} tracks, {} notes",
        info.midi_format,
        info.ticks_per_beat,
        info.microseconds_per_tick,
        tracks_data.track_count,
        sum(t.note_count for t in tracks_data.tracks),
    )
    return tracks_data
