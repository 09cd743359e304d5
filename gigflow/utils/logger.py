"""Structured logging for gigflow: structlog on top of stdlib logging.

``setup_logging()`` installs two sinks on the root logger: a Rich console
for operators and a rotating JSON-lines file for later inspection.  Modules
get their logger through ``get_logger(__name__, component=...)``.

Workflow writes wrap their body in ``gig_context(gig_id)`` so every event
emitted while a gig is being changed carries the gig id, including events
from the stores and the notification dispatcher further down the stack.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

import structlog
from rich.console import Console
from rich.logging import RichHandler

_configured = False
_handlers: list[logging.Handler] = []

LOG_DIR_ENV = "GIGFLOW_LOG_DIR"
_DEFAULT_LOG_DIR = Path(__file__).resolve().parents[2] / "data" / "logs"
_LOG_FILE = "gigflow.log"
_ROTATE_BYTES = 5 * 1024 * 1024
_ROTATE_KEEP = 3


def _pre_chain() -> list[structlog.types.Processor]:
    """Processors shared by structlog events and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _console_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            foreign_pre_chain=_pre_chain(),
        )
    )
    return handler


def _file_handler(level: int, log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / _LOG_FILE,
        maxBytes=_ROTATE_BYTES,
        backupCount=_ROTATE_KEEP,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=_pre_chain(),
        )
    )
    return handler


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _set_level(level: int) -> None:
    logging.getLogger().setLevel(level)
    for handler in _handlers:
        handler.setLevel(level)
    # aiosqlite logs every statement at DEBUG.
    logging.getLogger("aiosqlite").setLevel(max(level, logging.INFO))


def setup_logging(log_level: str = "INFO") -> None:
    """Route structlog through stdlib logging to the console and a log file.

    The first call installs the handlers; later calls only change the level,
    so an explicit call after modules were imported still takes effect.  The
    log directory is taken from the ``GIGFLOW_LOG_DIR`` environment variable
    when set.
    """
    global _configured  # noqa: PLW0603
    level = _parse_level(log_level)
    if _configured:
        _set_level(level)
        return

    log_dir = Path(os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR)

    root = logging.getLogger()
    root.handlers.clear()
    _handlers[:] = [_console_handler(level), _file_handler(level, log_dir)]
    for handler in _handlers:
        root.addHandler(handler)
    _set_level(level)

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str, **initial_binds: Any) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger for *name* with *initial_binds* attached."""
    if not _configured:
        setup_logging()
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger.bind(**initial_binds) if initial_binds else logger


@contextmanager
def gig_context(gig_id: str, **extra: Any) -> Iterator[None]:
    """Attach *gig_id* (and *extra*) to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(gig_id=gig_id, **extra):
        yield
