"""
gate-orchestrator — filesystem utilities

File: src/gate_orchestrator/utils/fs.py

Purpose
- Seed workspace roots from a pre-populated cache and write run reports atomically.

Functional requirements
- Cache seeding merges into existing directories and preserves symlinks.
- Atomic writes use a temp file in the destination directory and replace in a single step.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "seed_from_cache",
]


def seed_from_cache(cache_dir: PathLike, destination: PathLike) -> bool:
    """
    Copy the contents of ``cache_dir`` into ``destination``.

    Behaves like ``rsync -a cache/ destination/`` without deletion: existing files
    are overwritten, unrelated files are kept. Returns ``False`` when the cache is
    missing or empty.
    """

    cache = Path(cache_dir).expanduser()
    if not cache.is_dir() or not any(cache.iterdir()):
        return False

    target = Path(destination)
    target.mkdir(parents=True, exist_ok=True)
    shutil.copytree(cache, target, symlinks=True, dirs_exist_ok=True)
    return True


def atomic_write(path: PathLike, data: str, *, encoding: str = "utf-8") -> None:
    """Write ``data`` to ``path`` through a temp file and ``os.replace``."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target.parent),
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
