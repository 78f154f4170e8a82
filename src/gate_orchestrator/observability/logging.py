"""Queue-backed JSON-lines logging for gate runs, with redaction and correlation scopes."""

from __future__ import annotations

import atexit
import contextvars
import copy
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, cast

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

REDACTED: Final[str] = "***REDACTED***"
GATE_LOG_FILENAME: Final[str] = "gate.jsonl"
GATE_LOGGER_NAME: Final[str] = "gate_orchestrator"
_QUEUE_SIZE: Final[int] = 4096
_TRACEBACK_FORMATTER: Final[logging.Formatter] = logging.Formatter()

_CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "pass_name", "project")

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "api_key",
    "authorization",
    "credential",
    "private_key",
)

_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b"
    r"(\s*[:=]\s*)(?!bearer\b)([^\s,;]+)"
)
_BEARER_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_URL_CREDENTIALS_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b([a-z][a-z0-9+.-]*://)[^/\s:@]+(?::[^/\s@]*)?@"
)

_STANDARD_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "gate_orchestrator_correlation", default=()
)

_ACTIVE_LOCK = threading.Lock()
_ACTIVE: GateLoggingHandle | None = None
_ATEXIT_REGISTERED = False


@dataclass(frozen=True, slots=True)
class GateLoggingConfig:
    """Where and how one gate run writes its logs."""

    run_id: str
    log_dir: Path | str = Path("logs")
    level: int | str = "INFO"
    log_to_stdout: bool = False
    redact_secrets: bool = True
    logger_name: str = GATE_LOGGER_NAME
    log_filename: str = GATE_LOG_FILENAME


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Attach correlation fields at emit time; drop records when the queue is full."""

    def __init__(self, log_queue: queue.Queue[object]) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        context = get_correlation_context()
        if context:
            record.correlation = context
        # Keep the traceback out of the message; the formatter renders it separately.
        prepared = copy.copy(record)
        prepared.message = record.getMessage()
        prepared.msg = prepared.message
        prepared.args = None
        if record.exc_info is not None and not record.exc_text:
            prepared.exc_text = _TRACEBACK_FORMATTER.formatException(record.exc_info)
        prepared.exc_info = None
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, correlation, fields."""

    def __init__(self, *, redactor: LogRedactor, base_context: Mapping[str, str]) -> None:
        super().__init__()
        self._redactor = redactor
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": _as_text(self._redactor(record.getMessage())),
        }

        correlation = dict(self._base_context)
        recorded = getattr(record, "correlation", None)
        if isinstance(recorded, Mapping):
            correlation.update({str(key): str(value) for key, value in recorded.items()})
        event.update(sorted(correlation.items()))

        fields = {
            key: _to_json(value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_FIELDS
            and key != "correlation"
            and not key.startswith("_")
        }
        if fields:
            event["fields"] = self._redactor(cast("JSONValue", fields))

        exception = record.exc_text
        if not exception and record.exc_info is not None:
            exception = self.formatException(record.exc_info)
        if exception:
            event["exception"] = _as_text(self._redactor(exception))

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class GateLoggingHandle:
    """Active logging setup for one run; shut down to flush and close the sinks."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        run_log_dir: Path,
        log_path: Path,
        log_queue: queue.Queue[object],
        queue_handler: _DroppingQueueHandler,
        sinks: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.run_log_dir = run_log_dir
        self.log_path = log_path
        self._queue = log_queue
        self._queue_handler = queue_handler
        self._sinks = sinks
        self._listener = listener
        self._lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks > 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.flush()
                sink.close()
            self._closed = True


def setup_gate_logging(config: GateLoggingConfig) -> GateLoggingHandle:
    """Route the package logger through a queue into ``<log_dir>/<run_id>/gate.jsonl``."""

    shutdown_logging()

    run_id = config.run_id.strip()
    if not run_id:
        raise ValueError("run_id must not be empty")
    if Path(config.log_filename).name != config.log_filename:
        raise ValueError("log_filename must not include path separators")
    level = parse_log_level(config.level)

    run_log_dir = Path(config.log_dir) / run_id
    run_log_dir.mkdir(parents=True, exist_ok=True)
    log_path = run_log_dir / config.log_filename

    redactor = default_log_redactor if config.redact_secrets else _identity
    formatter = JsonLineFormatter(redactor=redactor, base_context={"run_id": run_id})

    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    log_queue: queue.Queue[object] = queue.Queue(maxsize=_QUEUE_SIZE)
    queue_handler = _DroppingQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = GateLoggingHandle(
        logger=logger,
        run_id=run_id,
        run_log_dir=run_log_dir,
        log_path=log_path,
        log_queue=log_queue,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
        listener=listener,
    )
    global _ACTIVE, _ATEXIT_REGISTERED
    with _ACTIVE_LOCK:
        _ACTIVE = handle
        if not _ATEXIT_REGISTERED:
            atexit.register(shutdown_logging)
            _ATEXIT_REGISTERED = True
    return handle


def configure_structlog() -> None:
    """Render structlog events into stdlib records so they reach the JSON-lines sinks.

    Event keyword arguments become record extras and land under ``fields``.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_active_logging_handle() -> GateLoggingHandle | None:
    with _ACTIVE_LOCK:
        return _ACTIVE


def shutdown_logging(handle: GateLoggingHandle | None = None) -> None:
    global _ACTIVE
    with _ACTIVE_LOCK:
        target = handle if handle is not None else _ACTIVE
        if target is None:
            return
        if _ACTIVE is target:
            _ACTIVE = None
    target.shutdown()


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (``pass_name``, ``project``...) for records emitted in scope.

    A ``None`` value removes the field for the duration of the scope.
    """

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
            continue
        text = str(value).strip()
        if not text:
            raise ValueError(f"correlation field {key!r} must not be empty")
        state[key] = text
    token = _CORRELATION.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    parsed = logging.getLevelName(str(value).strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def redact_text(text: str) -> str:
    """Mask credentials embedded in free text, including ``scheme://user:pass@`` URLs."""

    redacted = _URL_CREDENTIALS_PATTERN.sub(lambda match: f"{match.group(1)}{REDACTED}@", text)
    redacted = _BEARER_PATTERN.sub(f"Bearer {REDACTED}", redacted)
    return _ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{REDACTED}", redacted
    )


def default_log_redactor(value: JSONValue) -> JSONValue:
    return _redact(value, key=None)


def _redact(value: JSONValue, *, key: str | None) -> JSONValue:
    if key is not None and any(term in key.lower() for term in _SENSITIVE_KEY_TERMS):
        return REDACTED
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, list):
        return [_redact(item, key=None) for item in value]
    if isinstance(value, dict):
        return {name: _redact(item, key=name) for name, item in value.items()}
    return value


def _identity(value: JSONValue) -> JSONValue:
    return value


def _iso8601z(epoch_seconds: float) -> str:
    stamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_json(item) for item in value]
    return str(value)


__all__ = [
    "GATE_LOGGER_NAME",
    "GATE_LOG_FILENAME",
    "GateLoggingConfig",
    "GateLoggingHandle",
    "JSONValue",
    "JsonLineFormatter",
    "LogRedactor",
    "REDACTED",
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
