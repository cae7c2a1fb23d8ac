#!/usr/bin/env python3
"""
inspect_library.py: Browse and debug a Music Box music directory

Lists every music identifier, resolves identifiers to local files, parses
MIDI files into tracks and manages the cloud catalog cache.

Usage:
    python scripts/inspect_library.py list
    python scripts/inspect_library.py resolve "pack.zip/songs/Canon.mid"
    python scripts/inspect_library.py tracks "Canon.mid" --json
    python scripts/inspect_library.py refresh-cloud --force
    python scripts/inspect_library.py fetch "cloud:chimomoapi/Canon.json"
    python scripts/inspect_library.py charsets
    python scripts/inspect_library.py clear-cache

Flags:
    --music-dir DIR   Music directory (default: MUSIC_DIR from the environment)
    --db PATH         Key-value store path (default: DB_PATH)
    --verbose         Show debug logging
    --json            Output results as JSON
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from musicbox.config import DB_PATH, MUSIC_DIR
from musicbox.services.archive_reader import ArchiveReadError
from musicbox.services.library import MusicLibrary
from musicbox.services.midi_parser import MidiDecodeError
from musicbox.services.music_reader import UnsupportedFormatError, parse_file


def _emit(data: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
    elif isinstance(data, list):
        for item in data:
            print(item)
    elif isinstance(data, dict):
        for key, value in data.items():
            print(f"{key}: {value}")
    else:
        print(data)


async def _run(args: argparse.Namespace) -> int:
    library = MusicLibrary.create(music_dir=args.music_dir, db_path=args.db)
    resolver = library.resolver

    if args.command == "list":
        _emit(await resolver.list_all(), args.json)

    elif args.command == "resolve":
        path = await resolver.resolve(args.id)
        if path is None:
            print(f"❌ Not available: {args.id}", file=sys.stderr)
            return 1
        _emit({"id": args.id, "origin": resolver.origin_of(args.id).value, "path": path}, args.json)

    elif args.command == "tracks":
        path = await resolver.resolve_absolute(args.id)
        if path is None or not path.is_file():
            print(f"❌ Not available: {args.id}", file=sys.stderr)
            return 1
        tracks_data = parse_file(path, args.format)
        if args.json:
            _emit(tracks_data.to_dict(), True)
        else:
            for t in tracks_data.tracks:
                print(
                    f"Track {t.track_index:>2}  ch {t.channel:>2}  "
                    f"instrument {t.instrument_id:>3}  notes {t.note_count:>5}  {t.name}"
                )

    elif args.command == "refresh-cloud":
        result = await library.cloud_source.refresh_catalog(force=args.force)
        _emit(result.to_dict(), args.json)
        return 0 if result.success else 1

    elif args.command == "fetch":
        result = await library.cloud_source.materialize_entry(args.id)
        _emit(result.to_dict(), args.json)
        return 0 if result.success else 1

    elif args.command == "charsets":
        _emit(library.archive_reader.charset_cache.all(), args.json)

    elif args.command == "clear-cache":
        await resolver.clear_temporary_extractions()
        print("🧹 Cleared")

    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Browse and debug a Music Box music directory"
    )
    parser.add_argument("--music-dir", type=Path, default=MUSIC_DIR)
    parser.add_argument("--db", type=Path, default=DB_PATH)
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--json", action="store_true", help="JSON output")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List every music identifier")
    p = sub.add_parser("resolve", help="Resolve an identifier to a local path")
    p.add_argument("id")
    p = sub.add_parser("tracks", help="Parse an identifier into tracks")
    p.add_argument("id")
    p.add_argument("--format", default=None, help="Force a format (e.g. midi)")
    p = sub.add_parser("refresh-cloud", help="Refresh the cloud catalog")
    p.add_argument("--force", action="store_true", help="Ignore the cache TTL")
    p = sub.add_parser("fetch", help="Download a cloud entry")
    p.add_argument("id")
    sub.add_parser("charsets", help="Show recorded zip filename charsets")
    sub.add_parser("clear-cache", help="Empty the scratch directory")

    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    try:
        return asyncio.run(_run(args))
    except ArchiveReadError as e:
        print(f"❌ {e}", file=sys.stderr)
    except (MidiDecodeError, UnsupportedFormatError) as e:
        print(f"❌ {e}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
