"""
Structured logging configuration for the ListUp server.

Provides:
- JSONFormatter for production (one JSON object per line)
- DevelopmentFormatter for local runs (colored, one line per record)
- Room context on every record: room code, connection id and the client
  message type being handled
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional, TextIO

# Set by the WebSocket endpoint for the lifetime of a connection
room_code_var: ContextVar[Optional[str]] = ContextVar("room_code", default=None)
connection_id_var: ContextVar[Optional[str]] = ContextVar("connection_id", default=None)
# Set by dispatch_message while a handler runs
message_type_var: ContextVar[Optional[str]] = ContextVar("message_type", default=None)

# (record attribute, context var, short label for the development format)
CONTEXT_FIELDS = (
    ("room_code", room_code_var, "room"),
    ("player_id", connection_id_var, "player"),
    ("message_type", message_type_var, "msg"),
)

QUIET_LOGGERS = ("uvicorn.access", "uvicorn.error", "websockets", "asyncio", "asyncpg")


def record_context(record: logging.LogRecord) -> dict[str, str]:
    """
    Room context for a record.

    Values passed through `extra=` win over the context variables, so timer
    callbacks (which run outside any connection) can still name their room.
    """
    context = {}
    for attr, var, _ in CONTEXT_FIELDS:
        value = getattr(record, attr, None) or var.get()
        if value:
            context[attr] = str(value)
    return context


class JSONFormatter(logging.Formatter):
    """
    Format logs as JSON for production log aggregation.

    Errors carry their source location; exceptions carry the traceback.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """Colored single-line output: time, level, logger, [room context], message."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        level = f"{color}{record.levelname:8}{self.RESET if color else ''}"
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        context = record_context(record)
        labels = [
            f"{label}={context[attr][:8] if attr == 'player_id' else context[attr]}"
            for attr, _, label in CONTEXT_FIELDS
            if attr in context
        ]
        where = f" [{' '.join(labels)}]" if labels else ""

        line = f"{timestamp} {level} {record.name}{where} - {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        environment: "production" selects JSON output; anything else is
            human-readable.
        stream: Where to write; defaults to stdout.
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter() if environment == "production" else DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, environment={environment}")


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that stamps fixed room context onto every record.

    Usage:
        log = get_logger(__name__).with_context(room_code="ABCDEF")
        log.info("Round started")
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def with_context(self, **context) -> "ContextLogger":
        return ContextLogger(self.logger, {**self.extra, **context})

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        # Per-call extra overrides the bound context
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Get a ContextLogger for a module (typically __name__)."""
    return ContextLogger(logging.getLogger(name))
