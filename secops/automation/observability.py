"""
Automation Observability

Structured logging for the security automation engines. Every pass runs
under its own correlation ID, so all log lines emitted while one pass
classifies, escalates and finalizes can be grouped together:

    log = get_logger(Component.ENGINE, "phishing_prevention")
    with correlation_scope("pass"):
        log.info("Anomaly detected", entity_key="0xabc", violations=2)

Events are written one per line, as JSON or as plain text, by a single
handler installed on the ``secops.automation`` logger.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator

ROOT_LOGGER = "secops.automation"

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Keyword arguments lifted out of the free-form context into top-level fields.
_EVENT_FIELDS = ("operation", "duration_ms", "error_code")


class Component(Enum):
    """Part of the automation that emitted an event."""
    ENGINE = "engine"
    ESCALATION = "escalation"
    SCHEDULER = "scheduler"


def event_from_record(record: logging.LogRecord) -> Dict[str, Any]:
    """Flatten a log record into an event dict, dropping empty fields."""
    event: Dict[str, Any] = {
        "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        "level": record.levelname.lower(),
        "logger": record.name,
        "message": record.getMessage(),
        "correlation_id": correlation_id_var.get(),
        "component": getattr(record, "component", ""),
        "protocol": getattr(record, "protocol", ""),
    }
    for name in _EVENT_FIELDS:
        event[name] = getattr(record, name, None)
    event["context"] = getattr(record, "context", None)
    if record.exc_info:
        event["exception"] = "".join(traceback.format_exception(*record.exc_info))
    return {k: v for k, v in event.items() if v is not None and v != "" and v != {}}


def _as_text(event: Dict[str, Any]) -> str:
    parts = [event["timestamp"], event["level"].upper(), event["logger"], event["message"]]
    if "correlation_id" in event:
        parts.append(f"[{event['correlation_id']}]")
    context = event.get("context", {})
    if context:
        parts.append(" ".join(f"{k}={v}" for k, v in sorted(context.items())))
    line = " ".join(parts)
    if "exception" in event:
        line = f"{line}\n{event['exception']}"
    return line


class StructuredHandler(logging.Handler):
    """Writes one event per line, as JSON (``fmt="json"``) or text."""

    def __init__(self, stream: Any = None, fmt: str = "json"):
        super().__init__()
        self.stream = stream or sys.stderr
        self.fmt = fmt

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = event_from_record(record)
            line = json.dumps(event, default=str) if self.fmt == "json" else _as_text(event)
            self.stream.write(line + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


def configure_logging(level: str = "info", fmt: str = "json", stream: Any = None) -> logging.Logger:
    """
    Install a single structured handler on the automation root logger.

    Safe to call repeatedly; the previous handler is replaced.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(_LEVELS[level.lower()])
    for handler in list(root.handlers):
        if isinstance(handler, StructuredHandler):
            root.removeHandler(handler)
    root.addHandler(StructuredHandler(stream, fmt))
    return root


class AutomationLogger:
    """Logger that tags every event with its component and protocol."""

    def __init__(self, component: Component, protocol: str = ""):
        self.component = component
        self.protocol = protocol
        name = f"{ROOT_LOGGER}.{component.value}"
        self._logger = logging.getLogger(f"{name}.{protocol}" if protocol else name)

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        extra: Dict[str, Any] = {
            "component": self.component.value,
            "protocol": self.protocol,
            "context": {k: v for k, v in fields.items() if k not in _EVENT_FIELDS},
        }
        extra.update({k: v for k, v in fields.items() if k in _EVENT_FIELDS})
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, **fields)

    def operation(self, name: str, duration_ms: float, **fields: Any) -> None:
        """Log a completed operation with its duration."""
        self._log(logging.INFO, f"{name} completed", operation=name, duration_ms=duration_ms, **fields)


def get_correlation_id() -> str:
    """The current correlation ID, or an empty string outside a pass."""
    return correlation_id_var.get()


@contextmanager
def correlation_scope(prefix: str = "pass") -> Iterator[str]:
    """Run a block under a fresh ``<prefix>-<hex>`` correlation ID."""
    token = correlation_id_var.set(f"{prefix}-{uuid.uuid4().hex[:12]}")
    try:
        yield correlation_id_var.get()
    finally:
        correlation_id_var.reset(token)


def get_logger(component: Component, protocol: str = "") -> AutomationLogger:
    return AutomationLogger(component, protocol)
