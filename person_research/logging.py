import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

PACKAGE_PREFIX = "person_research"


class LogKeys(str, Enum):
    """Field names of the rendered log record."""

    CORRELATION_ID = "correlation_id"
    CONTEXT = "context"
    TIMESTAMP = "timestamp"
    LOGGER = "logger"
    MESSAGE = "message"
    LEVEL = "level"
    EXTRA = "extra"


@dataclass(frozen=True)
class LogDefaults:
    context: str = "default"
    correlation_id: str = "unknown"
    log_level: str = "INFO"
    log_format: str = "json"
    max_value_length: int = 50
    correlation_id_display_length: int = 8


DEFAULTS = LogDefaults()

_ROOT_FIELDS = (
    LogKeys.TIMESTAMP.value,
    LogKeys.LOGGER.value,
    LogKeys.MESSAGE.value,
    LogKeys.CONTEXT.value,
    LogKeys.LEVEL.value,
)


def _context_value(key: str, default: str) -> str:
    return str(structlog.contextvars.get_contextvars().get(key, default))


def get_correlation_id() -> str:
    """Correlation id of the current run, or the default placeholder."""
    return _context_value(LogKeys.CORRELATION_ID.value, DEFAULTS.correlation_id)


def _move_fields_to_extra(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Keep the standard fields at the root and nest everything else under ``extra``."""
    event_dict[LogKeys.MESSAGE.value] = event_dict.pop("event", "")
    event_dict[LogKeys.CONTEXT.value] = _context_value(LogKeys.CONTEXT.value, DEFAULTS.context)

    extra = {key: event_dict.pop(key) for key in list(event_dict) if key not in _ROOT_FIELDS}
    correlation_id = get_correlation_id()
    if correlation_id != DEFAULTS.correlation_id:
        extra[LogKeys.CORRELATION_ID.value] = correlation_id
    if extra:
        event_dict[LogKeys.EXTRA.value] = extra
    return event_dict


class ConsoleRenderer:
    """Renders ``HH:MM:SS [LEVEL] logger: message [k=v, ...] [id:xxxxxxxx]``."""

    def __init__(self, defaults: LogDefaults = DEFAULTS):
        self.defaults = defaults

    def __call__(self, _: WrappedLogger, __: str, event_dict: EventDict) -> str:
        extra = event_dict.get(LogKeys.EXTRA.value, {})
        level = event_dict.get(LogKeys.LEVEL.value, "info").upper()
        name = self.short_logger_name(event_dict.get(LogKeys.LOGGER.value, ""))
        message = event_dict.get(LogKeys.MESSAGE.value, "")

        parts = [f"{self.clock(event_dict.get(LogKeys.TIMESTAMP.value, ''))} [{level}] {name}: {message}"]
        shown = {k: v for k, v in extra.items() if k != LogKeys.CORRELATION_ID.value}
        if shown:
            parts.append(" [" + ", ".join(f"{k}={self.truncate(v)}" for k, v in shown.items()) + "]")
        correlation_id = extra.get(LogKeys.CORRELATION_ID.value)
        if correlation_id:
            parts.append(f" [id:{str(correlation_id)[: self.defaults.correlation_id_display_length]}]")
        return "".join(parts)

    def truncate(self, value: Any) -> str:
        text = str(value)
        limit = self.defaults.max_value_length
        return text if len(text) <= limit else f"{text[: limit - 3]}..."

    def clock(self, timestamp: str) -> str:
        if not timestamp:
            return ""
        try:
            return datetime.fromisoformat(timestamp.replace("Z", "+00:00")).strftime("%H:%M:%S")
        except ValueError:
            return timestamp.split("T")[1][:8] if "T" in timestamp else ""

    def short_logger_name(self, name: str) -> str:
        """``person_research.research.web_search`` -> ``research.web_search``."""
        if not name.startswith(PACKAGE_PREFIX):
            return name
        parts = name.removeprefix(PACKAGE_PREFIX).strip(".").split(".")
        parts = [part for part in parts if part]
        if not parts:
            return PACKAGE_PREFIX
        return ".".join(parts[-2:])


def configure_logging(log_format: str | None = None) -> None:
    """Configure structlog; ``LOG_FORMAT=console`` selects the human-readable renderer."""
    level_name = os.environ.get("LOGGING_LEVEL", DEFAULTS.log_level).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.INFO
    fmt = (log_format or os.environ.get("LOG_FORMAT", DEFAULTS.log_format)).lower()

    logging.basicConfig(format="%(message)s", level=level, stream=sys.stdout)
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.contextvars.merge_contextvars,
            _move_fields_to_extra,
            structlog.processors.TimeStamper(fmt="iso"),
            ConsoleRenderer() if fmt == "console" else structlog.processors.JSONRenderer(),
        ],  # type: ignore[arg-type]
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def bind_context_vars(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context_fields() -> None:
    structlog.contextvars.clear_contextvars()


def get_context_vars() -> dict[str, Any]:
    return structlog.contextvars.get_contextvars()


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields for the duration of a block, restoring the previous values after."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


def get_logger(name: str = "") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name or __name__)  # type: ignore
