"""Loguru setup for the console.

Two sinks, picked by ``ENV``:

* production: one JSON object per line. Bound extras (``deployment_id``,
  ``stage``, ``correlation_id``) become top-level keys so the log shipper
  can index canary events without parsing the message.
* anything else: colored text with the deployment id and stage, when
  bound, shown ahead of the message.

Standard-library loggers (uvicorn, apscheduler) are routed into loguru.
"""
import inspect
import json
import logging
import sys
from contextvars import ContextVar
from typing import Optional

from loguru import logger
from opentelemetry import trace

from src.trading_ops.core.config import settings

# Correlation id of the request being served
trace_id: ContextVar[str] = ContextVar("trace_id", default="")

# Routed explicitly and kept from propagating, so the root handler does not log them again
STDLIB_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi", "apscheduler")

_TEXT_PREFIX = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
_TEXT_SOURCE = "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "


def get_trace_id() -> str:
    """Trace id of the active span, else the request correlation id."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return format(span_context.trace_id, "032x")
    return trace_id.get() or "no-trace"


def deployment_logger(deployment_id: str, stage: Optional[int] = None):
    """Logger bound to one canary deployment (and stage, when given)."""
    if stage is None:
        return logger.bind(deployment_id=deployment_id)
    return logger.bind(deployment_id=deployment_id, stage=stage)


class InterceptHandler(logging.Handler):
    """Hand standard logging records to loguru, keeping the original call site."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # first frame outside the logging module is the caller
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def json_formatter(record) -> str:
    extra = record["extra"]
    entry = {
        "timestamp": record["time"].strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "level": record["level"].name,
        "service": settings.PROJECT_NAME,
        "env": settings.ENV,
        "trace_id": get_trace_id(),
        "message": record["message"],
        "logger": f'{record["name"]}:{record["function"]}:{record["line"]}',
    }
    entry.update(extra)

    exc = record["exception"]
    if exc:
        entry["exception"] = {
            "type": exc.type.__name__ if exc.type else "Unknown",
            "value": str(exc.value) if exc.value else "",
        }

    # the returned string is used as a format template
    return json.dumps(entry, default=str).replace("{", "{{").replace("}", "}}") + "\n"


def text_formatter(record) -> str:
    extra = record["extra"]
    context = ""
    if "deployment_id" in extra:
        context = "<magenta>{extra[deployment_id]}</magenta>"
        if "stage" in extra:
            context += "<magenta>/stage {extra[stage]}</magenta>"
        context += " "
    return _TEXT_PREFIX + _TEXT_SOURCE + context + "<level>{message}</level>\n{exception}"


def setup_logging() -> None:
    level = "DEBUG" if settings.DEBUG else "INFO"

    logger.remove()
    if settings.ENV == "production":
        logger.add(sys.stderr, format=json_formatter, level=level)
    else:
        logger.add(sys.stderr, format=text_formatter, level=level, colorize=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in STDLIB_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False
