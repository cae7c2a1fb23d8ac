"""
Music Box - Configuration
All settings loaded from environment variables with sensible defaults.

Music sources live in a single music directory: loose files and ``.zip``
archives sit directly inside it, and a ``tmp/`` scratch sub-directory holds
entries extracted from archives or fetched from the cloud catalog.  The
SQLite key-value store keeps the small bits of state that must survive
restarts (archive charsets, the cloud catalog, playlists).
"""

import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
_ = load_dotenv()

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
APP_ENV = os.getenv("APP_ENV", "development")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# ---------------------------------------------------------------------------
# Logging (stdout only)
# ---------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = BASE_DIR.parent

# Root folder scanned for loose music files and zip archives
MUSIC_DIR = Path(os.getenv("MUSIC_DIR", str(PROJECT_ROOT / "music")))

# Scratch sub-directory (inside MUSIC_DIR) for extracted / downloaded entries
SCRATCH_SUBDIR = os.getenv("SCRATCH_SUBDIR", "tmp")

DB_PATH = Path(
    os.getenv("DB_PATH", os.path.join(tempfile.gettempdir(), "musicbox", "musicbox.db"))
)

# ---------------------------------------------------------------------------
# Music formats
# ---------------------------------------------------------------------------
# Extension → format name.  Only "midi" has a decoder; the JSON note-list
# formats are recognised so they can be listed and fetched.
MUSIC_FORMAT_EXTENSIONS = {
    ".mid": "midi",
    ".midi": "midi",
    ".json": "tonejsjson",
}

MUSIC_FILE_EXTENSIONS = {
    ext.strip().lower()
    for ext in os.getenv(
        "MUSIC_FILE_EXTENSIONS", ",".join(MUSIC_FORMAT_EXTENSIONS)
    ).split(",")
    if ext.strip()
}

# ---------------------------------------------------------------------------
# Zip archives
# ---------------------------------------------------------------------------
# Candidate filename encodings, probed in order for archives without a
# recorded charset.
ZIP_CHARSETS = [
    c.strip()
    for c in os.getenv("ZIP_CHARSETS", "utf-8,gbk").split(",")
    if c.strip()
]

# ---------------------------------------------------------------------------
# Cloud catalog
# ---------------------------------------------------------------------------
CLOUD_API_URL = os.getenv("CLOUD_API_URL", "")  # e.g. https://api.example.com/v1
CLOUD_API_TOKEN = os.getenv("CLOUD_API_TOKEN", "")
CLOUD_API_TIMEOUT = float(os.getenv("CLOUD_API_TIMEOUT", "30"))

# First path segment of every cloud identifier ("<prefix>/<name>.json")
CLOUD_PREFIX = os.getenv("CLOUD_PREFIX", "cloud:chimomoapi")

# Catalog is considered stale after this many seconds (default 24 hours)
CLOUD_CACHE_TTL = int(os.getenv("CLOUD_CACHE_TTL", str(60 * 60 * 24)))

# Single page size requested when refreshing the catalog
CLOUD_PAGE_LIMIT = int(os.getenv("CLOUD_PAGE_LIMIT", "10000"))

CLOUD_REFRESH_ON_STARTUP = (
    os.getenv("CLOUD_REFRESH_ON_STARTUP", "true").lower() == "true"
)

# ---------------------------------------------------------------------------
# MIDI
# ---------------------------------------------------------------------------
# Used when a MIDI file reports zero microseconds per tick
DEFAULT_MICROSECONDS_PER_TICK = int(os.getenv("DEFAULT_MICROSECONDS_PER_TICK", "5000"))


def ensure_directories() -> None:
    """Create the music directory, its scratch area and the DB parent."""
    (MUSIC_DIR / SCRATCH_SUBDIR).mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
