"""
Structured logging for the multiplexer.

Every logger call accepts keyword context (``logger.info("...", key=..., url=...)``).
Production renders one JSON object per line, development a coloured line with
the context appended.
"""

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings


def _task_name() -> str | None:
    """Name of the asyncio task emitting the record, if any."""
    try:
        task = asyncio.current_task()
    except RuntimeError:
        return None
    return task.get_name() if task else None


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for log aggregation.

    Context fields are nested under ``context`` so they never shadow the
    envelope fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context

        task = getattr(record, "task", None)
        if task:
            entry["task"] = task

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            entry["at"] = f"{record.module}:{record.funcName}:{record.lineno}"

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Single coloured line per record; the subscription key goes first when present."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2;37m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        line = f"{clock} {color}{record.levelname[0]}{self.RESET} {record.name} {record.getMessage()}"

        context = dict(getattr(record, "context", None) or {})
        key = context.pop("key", None)
        if key is not None:
            line += f" [{key}]"
        if context:
            line += " " + " ".join(f"{k}={v!r}" for k, v in context.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.Logger):
    """
    Logger accepting keyword context on every call.

    Keyword arguments the stdlib does not know are collected into the
    record's ``context`` attribute; the current asyncio task name is attached
    as ``task``.
    """

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **context: Any,
    ) -> None:
        fields = dict(extra or {})
        fields["context"] = context or None
        fields["task"] = _task_name()
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=fields,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """
    Install the stdout handler on the root logger.
    Call this once at startup.
    """
    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        StructuredFormatter() if settings.environment == "production" else DevelopmentFormatter()
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # The websockets client logs every frame at debug level
    logging.getLogger("websockets").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("Subscription opened", key=str(key), listeners=2)
        logger.warning("Connect failed", url=url, exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def mask_user_id(user_id: int | str | None) -> str:
    """
    Mask a caller identity for logging.

    Keeps the first 2 characters so lines from one caller can be correlated.
    """
    if user_id is None or user_id == "":
        return "<no-user>"

    text = str(user_id)
    return f"{text[:2]}***"


# Transport lifecycle audit trail
connection_audit_logger = get_logger("ws_multiplexer.audit")


def audit_connection_event(
    event_type: str,
    url: str,
    attempt: int | None = None,
    reason: str | None = None,
    active_subscriptions: int | None = None,
    **extra: Any,
) -> None:
    """
    Record one transport lifecycle event.

    Args:
        event_type: CONNECT, CONNECT_FAILED, DISCONNECT, CLOSE, RECONNECT_FAILED.
        url: Multiplexer endpoint URL.
        attempt: Connection attempt number, when one applies.
        reason: Failure or close reason.
        active_subscriptions: Subscription records held at the time.
        **extra: Additional context.
    """
    level = logging.WARNING if event_type.endswith("FAILED") else logging.INFO
    context = {
        "event_type": event_type,
        "url": url,
        "attempt": attempt,
        "reason": reason,
        "active_subscriptions": active_subscriptions,
        **extra,
    }
    connection_audit_logger.log(
        level,
        "mux audit: %s",
        event_type,
        **{k: v for k, v in context.items() if v is not None},
    )
