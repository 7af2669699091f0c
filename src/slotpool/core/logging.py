"""Logging setup for slotpool.

Modules log through ``logging.getLogger(__name__)``.  ``configure_logging``
routes those records through structlog's ProcessorFormatter, so console and
file output share one processor chain.  Every record is tagged with the event
type of the query being computed (``query``) and the active OTel trace ids.

With ``log_root`` set, JSON lines are also written to::

    {log_root}/slotpool/slotpool.log   application records
    {log_root}/http/http.log           httpx/httpcore records
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar, Token
from pathlib import Path

import structlog
from opentelemetry import trace

HTTP_LOGGERS = ("httpx", "httpcore")

_query_context: ContextVar[str | None] = ContextVar("slotpool_query", default=None)


def set_query_context(label: str | None) -> Token[str | None]:
    """Tag log records in the current context; pass the token to ``reset_query_context``."""
    return _query_context.set(label)


def reset_query_context(token: Token[str | None]) -> None:
    _query_context.reset(token)


def get_query_context() -> str | None:
    return _query_context.get()


def add_query_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    event_dict["query"] = _query_context.get()
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Add ``trace_id``/``span_id`` of the current span, zero-filled outside a span."""
    ctx = trace.get_current_span().get_span_context()
    event_dict["trace_id"] = format(ctx.trace_id, "032x")
    event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _formatter(renderer: structlog.types.Processor, timestamp_fmt: str) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt=timestamp_fmt),
            add_query_context,
            add_otel_context,
            structlog.stdlib.ExtraAdder(),
        ],
    )


def _json_file_handler(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer(), "iso"))
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(level: str = "INFO", fmt: str = "text", log_root: Path | None = None) -> None:
    """Install console (and optionally file) handlers on the root logger.

    ``fmt`` is ``"text"`` for the colored console renderer or ``"json"`` for
    JSON lines.  Safe to call repeatedly: earlier handlers are replaced.
    """
    if fmt == "json":
        console_formatter = _formatter(structlog.processors.JSONRenderer(), "iso")
    else:
        console_formatter = _formatter(structlog.dev.ConsoleRenderer(), "%H:%M:%S")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(console_formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console_handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # httpx logs every request at INFO.
    http_loggers = [logging.getLogger(name) for name in HTTP_LOGGERS]
    for http_logger in http_loggers:
        http_logger.handlers.clear()
        http_logger.setLevel(logging.WARNING)

    if log_root is None:
        return

    log_root = Path(log_root)
    root.addHandler(_json_file_handler(log_root / "slotpool" / "slotpool.log"))
    http_handler = _json_file_handler(log_root / "http" / "http.log")
    for http_logger in http_loggers:
        http_logger.addHandler(http_handler)
