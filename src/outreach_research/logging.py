"""Logging setup for research runs.

Everything logs through structlog; stdlib handlers do the filtering and the
output (stderr, plus an optional file). ``step_logging_context`` scopes log
entries to one aggregator state, and ``log_video_source`` records which video
fed which part of a result.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3")

_provenance_logger: structlog.stdlib.BoundLogger = structlog.get_logger("provenance")


def generate_run_id() -> str:
    return str(uuid.uuid4())


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def _reset_handlers(level: int, log_file: str | Path | None) -> list[logging.Handler]:
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(str(log_file), encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(level)
        root.addHandler(handler)
    return handlers


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | Path | None = None,
) -> None:
    """Route structlog through stdlib handlers at ``level``.

    Safe to call repeatedly; each call replaces the root handlers.

    Args:
        level: Level name, case-insensitive.
        fmt: ``"json"`` for one JSON object per line, anything else for the
            colored console renderer.
        log_file: Also write log lines to this file.

    Raises:
        ValueError: If ``level`` is not a known level name.
    """
    name = level.upper()
    if name not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)
    numeric_level = getattr(logging, name)

    handlers = _reset_handlers(numeric_level, log_file)
    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(fmt),
        ],
    )
    for handler in handlers:
        handler.setFormatter(formatter)


@contextmanager
def step_logging_context(
    step_name: str,
    **extra: Any,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Bind ``step_name`` and ``extra`` for the duration of one pipeline state.

    Emits ``step_start`` on entry and ``step_end`` (with ``duration_ms``) on
    exit; an exception is logged as ``step_error`` and re-raised.

    Example::

        with step_logging_context("processing", queries=10) as log:
            log.info("query_no_videos", query="saas sales psychology")
    """
    structlog.contextvars.bind_contextvars(step_name=step_name, **extra)
    log: structlog.stdlib.BoundLogger = structlog.get_logger(step_name)
    started = time.perf_counter()
    log.info("step_start")
    try:
        yield log
    except Exception:
        log.exception("step_error")
        raise
    finally:
        log.info("step_end", duration_ms=round((time.perf_counter() - started) * 1000))
        structlog.contextvars.unbind_contextvars("step_name", *extra)


def log_video_source(
    video_id: str,
    action: str,
    details: dict[str, Any] | None = None,
) -> None:
    """Record that ``video_id`` went through ``action`` ("transcribed", "analyzed")."""
    _provenance_logger.info("video_source", video_id=video_id, action=action, **(details or {}))
