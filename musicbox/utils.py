"""
Music Box - Shared Utilities

Common helpers used across multiple modules to avoid duplication.
"""

from pathlib import Path, PurePosixPath
from typing import Optional


def scratch_path(scratch_dir: Path, name: str) -> Optional[Path]:
    """
    Return ``scratch_dir / name`` if it stays inside *scratch_dir*.

    Entry names come from archives and remote catalogs, so they may contain
    ``..`` segments or absolute paths.  Those are refused (None).
    """
    if not name:
        return None
    pure = PurePosixPath(name.replace("\\", "/"))
    if pure.is_absolute() or ".." in pure.parts:
        return None
    candidate = (scratch_dir / pure).resolve()
    root = scratch_dir.resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return scratch_dir / pure


def split_identifier(identifier: str) -> tuple[str, str]:
    """Split ``"head/rest/of/path"`` into ``("head", "rest/of/path")``."""
    head, _, rest = identifier.partition("/")
    return head, rest
