# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# STATUS: Core - Structured logging with context
# PURPOSE: Consistent, queryable logging across all components
# CREATED: 07 OCT 2026
# ============================================================================
"""
Structured Logging

Provides structured, JSON-formatted logging for the control plane.

Features:
- Component-based loggers
- Contextual fields (record_id, kind, worker_id)
- JSON output for log aggregation
- Named checkpoints for lease / transition / cascade events

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger("orchestrator.loop")

    with log_context(record_id="abc", kind="bucket"):
        logger.info("Claimed record")
"""

import contextvars
import json
import logging
import os
import sys
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


NOISY_LOGGERS = ("httpx", "httpcore", "psycopg.pool")


class ComponentType(str, Enum):
    """Component types for logging categorization."""
    RECONCILER = "reconciler"    # kind loops and cycles
    EXECUTOR = "executor"        # one edge under a lease
    CASCADE = "cascade"          # desired-state propagation
    SERVICE = "service"          # external writes


@dataclass
class LogContext:
    """
    Context for structured logging.

    Stored per asyncio task so concurrent kind loops do not mix fields.
    """
    record_id: Optional[str] = None
    kind: Optional[str] = None
    owner_key: Optional[str] = None
    worker_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        result = {}
        for key, value in asdict(self).items():
            if value is not None and key != "extra":
                result[key] = value
        if self.extra:
            result.update(self.extra)
        return result


_context_stack: contextvars.ContextVar[Tuple[LogContext, ...]] = contextvars.ContextVar(
    "log_context_stack", default=()
)


def get_current_context() -> LogContext:
    """Get current logging context."""
    stack = _context_stack.get()
    if stack:
        return stack[-1]
    return LogContext()


@contextmanager
def log_context(**kwargs):
    """
    Context manager for adding logging context.

    Args:
        **kwargs: Context fields to add

    Example:
        with log_context(record_id="abc", kind="database"):
            logger.info("Executing transition")
    """
    parent = get_current_context()
    new_context = LogContext(
        record_id=kwargs.get("record_id", parent.record_id),
        kind=kwargs.get("kind", parent.kind),
        owner_key=kwargs.get("owner_key", parent.owner_key),
        worker_id=kwargs.get("worker_id", parent.worker_id),
        component=kwargs.get("component", parent.component),
        operation=kwargs.get("operation", parent.operation),
        extra={**parent.extra, **kwargs.get("extra", {})},
    )

    token = _context_stack.set(_context_stack.get() + (new_context,))
    try:
        yield new_context
    finally:
        _context_stack.reset(token)


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    record_id, kind and checkpoint are lifted to the top level so a
    record's history is one filter away in any log aggregator.
    """

    PROMOTED = ("record_id", "kind", "owner_key")

    def format(self, record: logging.LogRecord) -> str:
        context = get_current_context().to_dict()
        payload = getattr(record, "extra", None) or {}

        log_data: Dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in self.PROMOTED:
            value = payload.get(key, context.get(key))
            if value is not None:
                log_data[key] = value
        if "checkpoint" in payload:
            log_data["checkpoint"] = payload["checkpoint"]

        if context:
            log_data["context"] = context
        if payload:
            log_data["data"] = payload
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data["source"] = f"{record.filename}:{record.lineno}"
        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """
    Single-line formatter for development.

    Shows kind, record, operation and worker inline; checkpoint data is
    appended after the message.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = _record_time(record).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)

        context = get_current_context()
        context_parts = []
        if context.kind:
            context_parts.append(f"kind={context.kind}")
        if context.record_id:
            context_parts.append(f"record={context.record_id}")
        if context.operation:
            context_parts.append(f"op={context.operation}")
        if context.worker_id:
            context_parts.append(f"worker={context.worker_id[:8]}")
        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        payload = getattr(record, "extra", None) or {}
        data = payload.get("data")
        data_str = f" {data}" if data else ""

        result = f"{timestamp} {level} {record.name}{context_str}: {record.getMessage()}{data_str}"
        if record.exc_info:
            result += f"\n{self.formatException(record.exc_info)}"
        return result


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter stamping the current log context (and the logger's
    component, if bound) onto every record.
    """

    def process(self, msg, kwargs):
        payload = dict(kwargs.get("extra") or {})
        payload.update(get_current_context().to_dict())
        component = self.extra.get("component")
        if component is not None:
            payload.setdefault("component", component.value)
        kwargs["extra"] = {"extra": payload}
        return msg, kwargs


def get_logger(
    name: str,
    component: Optional[ComponentType] = None,
) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (e.g., "orchestrator.loop")
        component: Component stamped on records that have none in context
    """
    return ContextLogger(logging.getLogger(name), {"component": component})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
) -> None:
    """
    Install one stdout handler on the root logger.

    Args:
        level: Log level name or number
        json_output: JSON lines instead of human-readable output
            (also enabled by LOG_FORMAT=json)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # One request line per driver call is noise at INFO
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

CHECKPOINT_LOGGER = "checkpoint"


def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a named checkpoint.

    Checkpoints mark the points of a record's life worth querying later:
    lease_acquired, transition_committed, transition_failed,
    cascade_applied, expiry_applied, resource_provisioned,
    desired_state_changed. Each carries the current log context.

    Args:
        name: Checkpoint name
        data: Checkpoint-specific fields
        level: Log level (failures use WARNING)
    """
    payload: Dict[str, Any] = {"checkpoint": name}
    payload.update(get_current_context().to_dict())
    if data:
        payload["data"] = data

    logging.getLogger(CHECKPOINT_LOGGER).log(level, f"CHECKPOINT: {name}", extra={"extra": payload})


__all__ = [
    "ComponentType",
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
