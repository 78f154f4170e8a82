"""
gate-orchestrator — unit tests for filesystem utilities.

File: tests/unit/utils/test_fs_utils.py
"""

from __future__ import annotations

import os
from pathlib import Path

from gate_orchestrator.utils.fs import atomic_write, seed_from_cache


def test_seed_from_missing_or_empty_cache_is_a_no_op(tmp_path: Path) -> None:
    empty = tmp_path / "empty"
    empty.mkdir()

    assert not seed_from_cache(tmp_path / "missing", tmp_path / "dest")
    assert not seed_from_cache(empty, tmp_path / "dest")
    assert not (tmp_path / "dest").exists()


def test_seed_merges_into_existing_destination(tmp_path: Path) -> None:
    cache = tmp_path / "cache"
    (cache / "nova").mkdir(parents=True)
    (cache / "nova" / "setup.py").write_text("cached", encoding="utf-8")
    dest = tmp_path / "dest"
    (dest / "nova").mkdir(parents=True)
    (dest / "nova" / "setup.py").write_text("stale", encoding="utf-8")
    (dest / "keystone").mkdir()

    assert seed_from_cache(cache, dest)

    assert (dest / "nova" / "setup.py").read_text(encoding="utf-8") == "cached"
    assert (dest / "keystone").is_dir()


def test_seed_preserves_symlinks(tmp_path: Path) -> None:
    cache = tmp_path / "cache"
    cache.mkdir()
    (cache / "target.txt").write_text("x", encoding="utf-8")
    os.symlink("target.txt", cache / "link.txt")

    seed_from_cache(cache, tmp_path / "dest")

    link = tmp_path / "dest" / "link.txt"
    assert link.is_symlink()
    assert os.readlink(link) == "target.txt"


def test_atomic_write_creates_parents_and_replaces_content(tmp_path: Path) -> None:
    target = tmp_path / "logs" / "run" / "sync-new.json"

    atomic_write(target, "first\n")
    atomic_write(target, "second\n")

    assert target.read_text(encoding="utf-8") == "second\n"
    assert sorted(path.name for path in target.parent.iterdir()) == ["sync-new.json"]
