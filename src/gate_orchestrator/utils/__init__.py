"""Utility exports for filesystem helpers."""

from gate_orchestrator.utils.fs import atomic_write, seed_from_cache

__all__ = ["atomic_write", "seed_from_cache"]
