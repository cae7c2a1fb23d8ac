"""
Music Box - Playlists

User playlists are a list of ``{"name", "music_files"}`` records kept
under one key in the key-value store and rewritten on every change.  A
``collection`` playlist always exists on first use.

Methods are safe to call from worker threads; each change holds a lock
while it edits the in-memory lists and writes them back.
"""

import threading
from typing import Any, Dict, List, Optional

from loguru import logger

from musicbox.database import KeyValueStore

PLAYLISTS_KEY = "user_music_lists"
DEFAULT_PLAYLIST = "collection"


class PlaylistStore:
    def __init__(self, store: KeyValueStore):
        self._store = store
        self._lock = threading.Lock()
        lists = store.get_json(PLAYLISTS_KEY)
        if not lists:
            lists = [{"name": DEFAULT_PLAYLIST, "music_files": []}]
        self._lists: List[Dict[str, Any]] = lists
        self._save()

    def _save(self) -> None:
        self._store.set_json(PLAYLISTS_KEY, self._lists)

    def _find(self, name: str) -> Optional[Dict[str, Any]]:
        return next((p for p in self._lists if p["name"] == name), None)

    def create_list(self, name: str) -> bool:
        """Create an empty playlist; False if the name is taken."""
        with self._lock:
            if self._find(name) is not None:
                return False
            self._lists.append({"name": name, "music_files": []})
            self._save()
        logger.info("📝 Created playlist '{}'", name)
        return True

    def delete_list(self, name: str) -> bool:
        with self._lock:
            before = len(self._lists)
            self._lists = [p for p in self._lists if p["name"] != name]
            if len(self._lists) == before:
                return False
            self._save()
        logger.info("🗑️ Deleted playlist '{}'", name)
        return True

    def rename_list(self, old_name: str, new_name: str) -> bool:
        with self._lock:
            if self._find(new_name) is not None:
                return False
            playlist = self._find(old_name)
            if playlist is None:
                return False
            playlist["name"] = new_name
            self._save()
        return True

    def add_music(self, name: str, identifier: str) -> bool:
        """Append *identifier*; False if the playlist is missing or already has it."""
        with self._lock:
            playlist = self._find(name)
            if playlist is None or identifier in playlist["music_files"]:
                return False
            playlist["music_files"].append(identifier)
            self._save()
        return True

    def remove_music(self, name: str, identifier: str) -> bool:
        with self._lock:
            playlist = self._find(name)
            if playlist is None or identifier not in playlist["music_files"]:
                return False
            playlist["music_files"] = [m for m in playlist["music_files"] if m != identifier]
            self._save()
        return True

    def list_music(self, name: str) -> Optional[List[str]]:
        with self._lock:
            playlist = self._find(name)
            return list(playlist["music_files"]) if playlist else None

    def list_names(self) -> List[str]:
        with self._lock:
            return [p["name"] for p in self._lists]

    def get_list(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            playlist = self._find(name)
            return dict(playlist, music_files=list(playlist["music_files"])) if playlist else None
