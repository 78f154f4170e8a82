"""Public observability primitives: JSON-lines run logging, redaction, and correlation scopes."""

from gate_orchestrator.observability.logging import (
    REDACTED,
    GateLoggingConfig,
    GateLoggingHandle,
    LogRedactor,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    parse_log_level,
    redact_text,
    setup_gate_logging,
    shutdown_logging,
)

__all__ = [
    "REDACTED",
    "GateLoggingConfig",
    "GateLoggingHandle",
    "LogRedactor",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "parse_log_level",
    "redact_text",
    "setup_gate_logging",
    "shutdown_logging",
]
