"""
gate-orchestrator — runtime config loader.

File: src/gate_orchestrator/config/loader.py

Purpose
- Load the effective gate configuration from defaults, ``gate.toml``, the CI
  system's legacy environment variables, ``GATE_`` variables, and CLI overrides.

What should be included in this file
- Precedence logic: CLI > env (GATE_) > legacy env (ZUUL_*, BASE, ...) > file > defaults.
- TOML loading via ``tomllib``.
- Deterministic environment variable mapping and coercion.
- Path normalization relative to the config file location.
- Redacted deterministic dump of the effective config.

Functional requirements
- Reject invalid config via schema validation after every merge step.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from gate_orchestrator.config.schema import (
    PATH_FIELDS,
    SCHEMA,
    FieldKind,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "gate.toml"
ENV_PREFIX: Final[str] = "GATE_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off", ""})


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, str]
    value_type: FieldKind


@dataclass(frozen=True, slots=True)
class LegacyBinding:
    """A CI-system variable and how its raw value maps onto a config field."""

    env_name: str
    path: tuple[str, str]
    convert: Callable[[str], object | None]


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def _split_words(raw: str) -> list[str]:
    return [item for item in raw.replace(",", " ").split() if item]


def _non_empty_is_true(raw: str) -> bool:
    return bool(raw.strip())


def _literal_true(raw: str) -> bool:
    return raw.strip() == "true"


def _flag_mode(mode: str) -> Callable[[str], object | None]:
    def convert(raw: str) -> object | None:
        return mode if raw.strip() == "1" else None

    return convert


def _text(raw: str) -> str:
    return raw.strip()


def _text_unless_blank(raw: str) -> str | None:
    return raw.strip() or None


# Later entries win when two bindings target the same field.
LEGACY_ENV_BINDINGS: Final[tuple[LegacyBinding, ...]] = (
    LegacyBinding("ZUUL_BRANCH", ("queue", "branch"), _text),
    LegacyBinding("ZUUL_REF", ("queue", "ref"), _text),
    LegacyBinding("ZUUL_PROJECT", ("queue", "project"), _text),
    LegacyBinding("ZUUL_URL", ("queue", "url"), _text_unless_blank),
    LegacyBinding("ZUUL_CHANGES", ("queue", "changes"), _text),
    LegacyBinding("OVERRIDE_ZUUL_BRANCH", ("run", "override_branch"), _text),
    LegacyBinding("SKIP_DEVSTACK_GATE_PROJECT", ("run", "skip_self_project"), _non_empty_is_true),
    LegacyBinding("RE_EXEC", ("run", "reexec"), _literal_true),
    LegacyBinding("BASE", ("paths", "base_dir"), _text_unless_blank),
    LegacyBinding("PROJECTS", ("run", "extra_projects"), _split_words),
    LegacyBinding("DEVSTACK_GATE_GRENADE_FORWARD", ("upgrade", "mode"), _flag_mode("forward")),
    LegacyBinding("DEVSTACK_GATE_GRENADE", ("upgrade", "mode"), _flag_mode("backward")),
)


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with precedence CLI > GATE_ env > legacy env > file > defaults."""

    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_toml_file(resolved_path, required=config_path is not None)
    merged = assert_valid_config(merge_config(default_config(), file_payload))
    merged = normalize_paths(merged, base_dir=resolved_path.parent)

    merged = merge_config(merged, _collect_legacy_overrides(env_map))
    merged = merge_config(merged, _collect_env_overrides(env_map))
    merged = merge_config(merged, _materialize_cli_overrides(cli_overrides or {}))
    merged = assert_valid_config(merged)

    return normalize_paths(merged, base_dir=Path.cwd())


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Make configured path fields absolute, resolving relative ones against ``base_dir``."""

    materialized = merge_config({}, config)
    for section, key in PATH_FIELDS:
        payload = materialized.get(section)
        if not isinstance(payload, dict):
            continue
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            payload[key] = _normalize_one_path(value.strip(), base_dir)
    return materialized


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a redacted effective config representation suitable for logging."""

    return redact_config(config)


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    """Return a deterministic JSON dump of the redacted effective config."""

    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        effective_config(config),
        sort_keys=True,
        indent=indent,
        separators=separators,
        ensure_ascii=False,
    )


def config_file_in_use(config_path: str | Path | None = None) -> Path | None:
    """Return the file ``load_config`` reads for ``config_path``, or ``None`` if it reads none."""

    resolved = _resolve_config_path(config_path)
    if config_path is None and not resolved.exists():
        return None
    return resolved


def env_name_for(section: str, key: str) -> str:
    return f"{ENV_PREFIX}{section.upper()}_{key.upper()}"


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_legacy_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for binding in LEGACY_ENV_BINDINGS:
        raw = environ.get(binding.env_name)
        if raw is None:
            continue
        value = binding.convert(raw)
        if value is None:
            continue
        section, key = binding.path
        overrides.setdefault(section, {})[key] = value
    return overrides


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    bindings = _build_bindings()
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        section, key = binding.path
        value = _coerce_env(raw, binding.value_type, env_name, binding.path)
        overrides.setdefault(section, {})[key] = value
    return overrides


def _build_bindings() -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for section, fields in SCHEMA.items():
        if section == "meta":
            continue
        for key, spec in fields.items():
            bindings[env_name_for(section, key)] = _Binding((section, key), spec.kind)
    return bindings


def _coerce_env(
    raw: str,
    value_type: FieldKind,
    env_name: str,
    path: tuple[str, str],
) -> object:
    value = raw.strip()
    dotted = ".".join(path)
    if value_type == "list":
        return _split_words(value)
    if value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be a number") from exc
    if value_type == "bool":
        lowered = value.lower()
        if lowered in _BOOLEAN_TRUE:
            return True
        if lowered in _BOOLEAN_FALSE:
            return False
        raise ConfigLoadError(
            f"{env_name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    return value


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    """Expand ``{"section.key": value}`` overrides; ``None`` values are ignored."""

    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        value = cli_overrides[key]
        if value is None:
            continue
        parts = tuple(part for part in key.split(".") if part)
        if len(parts) != 2:
            raise ConfigLoadError(f"invalid CLI override key {key!r}; expected section.field")
        section, field = parts
        payload.setdefault(section, {})[field] = value
    return payload


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    expanded = os.path.expandvars(raw)
    candidate = Path(expanded).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LEGACY_ENV_BINDINGS",
    "ConfigLoadError",
    "LegacyBinding",
    "config_file_in_use",
    "dump_effective_config",
    "effective_config",
    "env_name_for",
    "load_config",
    "normalize_paths",
]
