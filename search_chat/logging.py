"""structlog setup for the search chat service.

Production emits one JSON object per line; local runs and tests use a compact
console line. Every record logged during a chat turn carries the turn's
``correlation_id`` in ``extra``.
"""

import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4

import structlog
from structlog.types import EventDict, WrappedLogger

PACKAGE_PREFIX = "search_chat"

# Framework and network loggers that drown out pipeline events at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "asyncio")

CORRELATION_ID = "correlation_id"
UNBOUND_CORRELATION_ID = "unknown"


class LogField(str, Enum):
    """Top-level keys of a rendered record; anything else is nested under ``extra``."""

    TIMESTAMP = "timestamp"
    LEVEL = "level"
    LOGGER = "logger"
    MESSAGE = "message"
    EXTRA = "extra"


_TOP_LEVEL_FIELDS = frozenset(field.value for field in LogField)


def _level_from_env(name: str, default: int) -> int:
    level = logging.getLevelName(os.environ.get(name, "").strip().upper())
    return level if isinstance(level, int) else default


@dataclass(frozen=True)
class LogSettings:
    level: int = logging.INFO
    noisy_level: int = logging.WARNING
    console_value_width: int = 50
    console_id_width: int = 8

    @classmethod
    def from_env(cls) -> "LogSettings":
        """``LOGGING_LEVEL`` and ``NOISY_LOGGING_LEVEL``; unknown names keep the defaults."""
        return cls(
            level=_level_from_env("LOGGING_LEVEL", logging.INFO),
            noisy_level=_level_from_env("NOISY_LOGGING_LEVEL", logging.WARNING),
        )


# --- Turn context ---


def new_correlation_id() -> str:
    return uuid4().hex[:8]


def start_turn() -> str:
    """Reset the logging context and bind a fresh correlation id for one chat turn."""
    correlation_id = new_correlation_id()
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**{CORRELATION_ID: correlation_id})
    return correlation_id


def get_correlation_id() -> str:
    return str(structlog.contextvars.get_contextvars().get(CORRELATION_ID, UNBOUND_CORRELATION_ID))


# --- Processors ---


def _nest_extra_fields(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Rename ``event`` to ``message`` and fold every non-standard key into ``extra``."""
    record: EventDict = {LogField.MESSAGE.value: event_dict.pop("event", "")}
    extra: dict[str, Any] = {}
    for key, value in event_dict.items():
        if key in _TOP_LEVEL_FIELDS:
            record[key] = value
        else:
            extra[key] = value
    if extra:
        record[LogField.EXTRA.value] = extra
    return record


def short_logger_name(name: str) -> str:
    """``search_chat.a.b.c`` becomes ``b.c``; names outside the package are kept."""
    if not name.startswith(f"{PACKAGE_PREFIX}."):
        return name
    return ".".join(name.split(".")[1:][-2:])


class ConsoleRenderer:
    """Single-line renderer: ``HH:MM:SS [LEVEL] logger: message [k=v, ...] [id:xxxxxxxx]``."""

    def __init__(self, settings: LogSettings | None = None) -> None:
        self.settings = settings or LogSettings()

    def __call__(self, _: WrappedLogger, __: str, event_dict: EventDict) -> str:
        extra = dict(event_dict.get(LogField.EXTRA.value) or {})
        correlation_id = str(extra.pop(CORRELATION_ID, ""))

        line = "{timestamp} [{level}] {logger}: {message}".format(
            timestamp=event_dict.get(LogField.TIMESTAMP.value, ""),
            level=str(event_dict.get(LogField.LEVEL.value, "info")).upper(),
            logger=short_logger_name(str(event_dict.get(LogField.LOGGER.value, ""))),
            message=event_dict.get(LogField.MESSAGE.value, ""),
        )
        if extra:
            line += " [" + ", ".join(f"{key}={self._clip(value)}" for key, value in extra.items()) + "]"
        if correlation_id:
            line += f" [id:{correlation_id[: self.settings.console_id_width]}]"
        return line

    def _clip(self, value: Any) -> str:
        text = str(value)
        width = self.settings.console_value_width
        return text if len(text) <= width else f"{text[: width - 3]}..."


# --- Configuration ---


def configure_structlog(testing: bool = False) -> None:
    """Route structlog through stdlib logging; JSON lines unless ``testing``."""
    settings = LogSettings.from_env()

    logging.basicConfig(format="%(message)s", level=settings.level, stream=sys.stdout)
    logging.getLogger().setLevel(settings.level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(settings.level, settings.noisy_level))

    renderer = ConsoleRenderer(settings) if testing else structlog.processors.JSONRenderer(ensure_ascii=False)
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="%H:%M:%S" if testing else "iso"),
            _nest_extra_fields,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(settings.level),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]
