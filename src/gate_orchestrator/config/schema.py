"""
gate-orchestrator — configuration schema and validation.

File: src/gate_orchestrator/config/schema.py

Purpose
- Define the built-in defaults for ``gate.toml`` and the strict validation rules
  applied after every merge step of the loader.

What should be included in this file
- Schema versioning.
- Per-field type, emptiness, enum, and numeric constraints.
- Cross-field checks (backoff window, URL template variables, project identifiers).
- Deterministic deep-merge and redaction helpers.

Functional requirements
- Validation returns structured issues (dotted field path + message) and never
  stops at the first problem.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal

from gate_orchestrator.constants import (
    CLEAN_RETRY_DELAY_SECONDS,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_BASE_DIR,
    DEFAULT_ORIGIN_URL_TEMPLATE,
    DEFAULT_PROJECTS,
    DEFAULT_QUEUE_FETCH_URL_TEMPLATE,
    DEFAULT_QUEUE_URL,
    DEFAULT_SELF_PROJECT,
    DEFAULT_WORKSPACE_CACHE,
    GIT_COMMAND_TIMEOUT_SECONDS,
    KILL_GRACE_SECONDS,
    REMOTE_UPDATE_MAX_ATTEMPTS,
    REMOTE_UPDATE_TIMEOUT_SECONDS,
    RETRY_BACKOFF_MAX_SECONDS,
    RETRY_BACKOFF_MIN_SECONDS,
)
from gate_orchestrator.domain.models import Project
from gate_orchestrator.integration_plane.url_templates import (
    ORIGIN_URL_VARIABLES,
    QUEUE_FETCH_URL_VARIABLES,
    UrlTemplate,
    UrlTemplateError,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

UPGRADE_MODES: Final[tuple[str, ...]] = ("none", "backward", "forward")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

FieldKind = Literal["str", "text", "path", "int", "float", "bool", "list", "enum", "template"]

_SENSITIVE_KEY_PATTERN = re.compile(r"(?i)(secret|token|password|passwd|api_?key|credential)")
_URL_CREDENTIALS = re.compile(r"(?i)\b([a-z][a-z0-9+.-]*://)[^/\s:@]+(?::[^/\s@]*)?@")


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Validation rule for one scalar or list field.

    ``str`` must be non-empty, ``text`` may be empty; ``minimum`` and ``exclusive``
    bound numeric fields.
    """

    kind: FieldKind
    minimum: float | None = None
    exclusive: bool = False
    choices: tuple[str, ...] = ()
    template_variables: frozenset[str] = frozenset()


SCHEMA: Final[Mapping[str, Mapping[str, FieldSpec]]] = {
    "meta": {
        "schema_version": FieldSpec("int", minimum=1),
    },
    "queue": {
        "branch": FieldSpec("text"),
        "ref": FieldSpec("text"),
        "project": FieldSpec("text"),
        "url": FieldSpec("str"),
        "changes": FieldSpec("text"),
        "fetch_url_template": FieldSpec(
            "template", template_variables=QUEUE_FETCH_URL_VARIABLES
        ),
    },
    "run": {
        "branch": FieldSpec("text"),
        "override_branch": FieldSpec("text"),
        "self_project": FieldSpec("str"),
        "skip_self_project": FieldSpec("bool"),
        "reexec": FieldSpec("bool"),
        "projects": FieldSpec("list"),
        "extra_projects": FieldSpec("list"),
    },
    "git": {
        "origin_url_template": FieldSpec("template", template_variables=ORIGIN_URL_VARIABLES),
        "remote_update_attempts": FieldSpec("int", minimum=1),
        "remote_update_timeout_seconds": FieldSpec("float", minimum=0, exclusive=True),
        "kill_grace_seconds": FieldSpec("float", minimum=0),
        "retry_backoff_min_seconds": FieldSpec("float", minimum=0),
        "retry_backoff_max_seconds": FieldSpec("float", minimum=0),
        "command_timeout_seconds": FieldSpec("float", minimum=0, exclusive=True),
        "clean_retry_delay_seconds": FieldSpec("float", minimum=0),
    },
    "upgrade": {
        "mode": FieldSpec("enum", choices=UPGRADE_MODES),
    },
    "hooks": {
        "pre_test": FieldSpec("text"),
        "gate": FieldSpec("text"),
        "post_test": FieldSpec("text"),
    },
    "paths": {
        "base_dir": FieldSpec("path"),
        "workspace_cache": FieldSpec("path"),
        "projects_file": FieldSpec("text"),
    },
    "observability": {
        "log_level": FieldSpec("enum", choices=LOG_LEVELS),
        "log_dir": FieldSpec("path"),
        "log_to_stdout": FieldSpec("bool"),
        "redact_secrets": FieldSpec("bool"),
    },
}

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "base_dir"),
    ("paths", "workspace_cache"),
    ("paths", "projects_file"),
    ("observability", "log_dir"),
)

DEFAULT_CONFIG: Final[dict[str, dict[str, Any]]] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "queue": {
        "branch": "",
        "ref": "",
        "project": "",
        "url": DEFAULT_QUEUE_URL,
        "changes": "",
        "fetch_url_template": DEFAULT_QUEUE_FETCH_URL_TEMPLATE,
    },
    "run": {
        "branch": "",
        "override_branch": "",
        "self_project": DEFAULT_SELF_PROJECT,
        "skip_self_project": False,
        "reexec": False,
        "projects": list(DEFAULT_PROJECTS),
        "extra_projects": [],
    },
    "git": {
        "origin_url_template": DEFAULT_ORIGIN_URL_TEMPLATE,
        "remote_update_attempts": REMOTE_UPDATE_MAX_ATTEMPTS,
        "remote_update_timeout_seconds": REMOTE_UPDATE_TIMEOUT_SECONDS,
        "kill_grace_seconds": KILL_GRACE_SECONDS,
        "retry_backoff_min_seconds": RETRY_BACKOFF_MIN_SECONDS,
        "retry_backoff_max_seconds": RETRY_BACKOFF_MAX_SECONDS,
        "command_timeout_seconds": GIT_COMMAND_TIMEOUT_SECONDS,
        "clean_retry_delay_seconds": CLEAN_RETRY_DELAY_SECONDS,
    },
    "upgrade": {"mode": "none"},
    "hooks": {"pre_test": "", "gate": "", "post_test": ""},
    "paths": {
        "base_dir": DEFAULT_BASE_DIR,
        "workspace_cache": DEFAULT_WORKSPACE_CACHE,
        "projects_file": "",
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base``; lists are replaced, not concatenated."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> tuple[ConfigValidationIssue, ...]:
    """Return every issue found in ``config``; an empty tuple means valid."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return issues.items()

    for section in sorted(config):
        if section not in SCHEMA:
            issues.add(str(section), "unknown section")

    for section, fields in SCHEMA.items():
        payload = config.get(section)
        if payload is None:
            issues.add(section, "missing required section")
            continue
        if not isinstance(payload, Mapping):
            issues.add(section, f"expected object, got {type(payload).__name__}")
            continue
        for key in sorted(payload):
            if key not in fields:
                issues.add(_join(section, str(key)), _unknown_field_message(str(key)))
        for key, spec in fields.items():
            if key not in payload:
                issues.add(_join(section, key), "missing required field")
                continue
            _check_field(payload[key], spec, _join(section, key), issues)

    if not issues.has_issues:
        _check_cross_fields(config, issues)
    return issues.items()


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate ``config`` and raise ``ConfigValidationError`` on failure."""

    issues = validate_config(config)
    if issues:
        raise ConfigValidationError(issues)
    assert isinstance(config, Mapping)
    return copy.deepcopy(dict(config))


def redact_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Copy of ``config`` with secret-looking keys and URL credentials masked."""

    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def _check_field(value: object, spec: FieldSpec, path: str, issues: _IssueCollector) -> None:
    if spec.kind in {"str", "path", "template"}:
        parsed = _as_str(value, path, issues)
        if parsed is None:
            return
        if spec.kind == "path" and "\x00" in parsed:
            issues.add(path, "must not contain NUL bytes")
        if spec.kind == "template":
            try:
                UrlTemplate(parsed, allowed_variables=spec.template_variables)
            except UrlTemplateError as exc:
                issues.add(path, str(exc))
    elif spec.kind == "text":
        if not isinstance(value, str):
            issues.add(path, f"expected string, got {type(value).__name__}")
    elif spec.kind == "bool":
        if not isinstance(value, bool):
            issues.add(path, f"expected boolean, got {type(value).__name__}")
    elif spec.kind == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            issues.add(path, f"expected integer, got {type(value).__name__}")
            return
        _check_minimum(float(value), spec, path, issues)
    elif spec.kind == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            issues.add(path, f"expected number, got {type(value).__name__}")
            return
        if not math.isfinite(float(value)):
            issues.add(path, "must be finite")
            return
        _check_minimum(float(value), spec, path, issues)
    elif spec.kind == "enum":
        parsed = _as_str(value, path, issues)
        if parsed is not None and parsed not in spec.choices:
            expected = ", ".join(spec.choices)
            issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
    elif spec.kind == "list":
        if not isinstance(value, (list, tuple)):
            issues.add(path, f"expected list of strings, got {type(value).__name__}")
            return
        for index, item in enumerate(value):
            _as_str(item, f"{path}[{index}]", issues)


def _check_minimum(value: float, spec: FieldSpec, path: str, issues: _IssueCollector) -> None:
    if spec.minimum is None:
        return
    if spec.exclusive and value <= spec.minimum:
        issues.add(path, f"must be > {spec.minimum:g}")
    elif value < spec.minimum:
        issues.add(path, f"must be >= {spec.minimum:g}")


def _check_cross_fields(config: Mapping[str, Any], issues: _IssueCollector) -> None:
    version = config["meta"]["schema_version"]
    if version != ConfigSchemaVersion:
        issues.add(
            "meta.schema_version",
            f"schema version {version} is not supported (expected {ConfigSchemaVersion})",
        )

    git = config["git"]
    if git["retry_backoff_max_seconds"] < git["retry_backoff_min_seconds"]:
        issues.add(
            "git.retry_backoff_max_seconds",
            "must be >= git.retry_backoff_min_seconds",
        )

    run = config["run"]
    for key in ("projects", "extra_projects"):
        for index, name in enumerate(run[key]):
            _check_project(name, f"run.{key}[{index}]", issues)
    _check_project(run["self_project"], "run.self_project", issues)
    if config["queue"]["project"]:
        _check_project(config["queue"]["project"], "queue.project", issues)
    if run["override_branch"] and run["override_branch"].strip() != run["override_branch"]:
        issues.add("run.override_branch", "must not contain surrounding whitespace")


def _check_project(name: str, path: str, issues: _IssueCollector) -> None:
    try:
        Project(name.strip())
    except ValueError as exc:
        issues.add(path, str(exc))


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _unknown_field_message(key: str) -> str:
    if _SENSITIVE_KEY_PATTERN.search(key):
        return "embedded secret values are forbidden in gate.toml"
    return "unknown field"


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if not isinstance(existing, dict):
                existing = {}
                target[key] = existing
            _merge_into(existing, value)
        else:
            target[key] = copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            if _SENSITIVE_KEY_PATTERN.search(str(key)):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(value[key], str(key))
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    if isinstance(value, str):
        return _URL_CREDENTIALS.sub(lambda match: f"{match.group(1)}<redacted>@", value)
    return value


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "SCHEMA",
    "UPGRADE_MODES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "FieldSpec",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "redact_config",
    "validate_config",
]
