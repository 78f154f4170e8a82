"""YAML manifest listing the projects kept in lockstep."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from gate_orchestrator.config.loader import ConfigLoadError
from gate_orchestrator.domain.models import Project


def load_projects_manifest(path: Path | str) -> tuple[str, ...]:
    """Read project names from ``path``.

    The document is either a list of names or a mapping with a ``projects`` list.
    Names are validated and returned in file order without de-duplication.
    """

    manifest_path = Path(path)
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"unable to read projects manifest {manifest_path}: {exc}") from exc

    try:
        document: Any = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"invalid YAML in {manifest_path}: {exc}") from exc

    if isinstance(document, dict):
        document = document.get("projects")
    if not isinstance(document, list):
        raise ConfigLoadError(
            f"{manifest_path}: expected a list of projects or a mapping with a 'projects' list"
        )

    names: list[str] = []
    for index, item in enumerate(document):
        if not isinstance(item, str):
            raise ConfigLoadError(
                f"{manifest_path}: projects[{index}] must be a string, got {type(item).__name__}"
            )
        try:
            names.append(Project(item.strip()).name)
        except ValueError as exc:
            raise ConfigLoadError(f"{manifest_path}: projects[{index}]: {exc}") from exc
    return tuple(names)


__all__ = ["load_projects_manifest"]
