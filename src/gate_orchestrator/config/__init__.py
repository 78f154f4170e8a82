"""
gate-orchestrator config package public API.

File: src/gate_orchestrator/config/__init__.py

Purpose
- Export config loading/validation entrypoints, the typed settings view, and
  public error types.

Functional requirements
- Support loading from ``gate.toml`` + legacy CI env + ``GATE_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from gate_orchestrator.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    LEGACY_ENV_BINDINGS,
    ConfigLoadError,
    config_file_in_use,
    dump_effective_config,
    effective_config,
    load_config,
)
from gate_orchestrator.config.projects_manifest import load_projects_manifest
from gate_orchestrator.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    validate_config,
)
from gate_orchestrator.config.settings import GateSettings, UpgradeMode, load_settings

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LEGACY_ENV_BINDINGS",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "GateSettings",
    "UpgradeMode",
    "assert_valid_config",
    "config_file_in_use",
    "default_config",
    "dump_effective_config",
    "effective_config",
    "load_config",
    "load_projects_manifest",
    "load_settings",
    "validate_config",
]
