"""structlog setup for the ``kdx`` CLI.

Console output goes to stderr at a level chosen by ``--verbose``/``--debug``.
Independently, everything down to DEBUG is appended as JSON lines to a
rotating file under ``$KDX_LOG_DIR`` (``~/.local/state/kdx`` by default).
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

LOG_DIR = Path(os.environ.get("KDX_LOG_DIR", Path.home() / ".local" / "state" / "kdx"))
LOG_FILE_NAME = "kdx.log"
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5
RETENTION_DAYS = 30

# Set on every handler installed here; reconfiguring removes tagged handlers first
_HANDLER_ATTR = "_kdx_handler"


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _console_level(verbose: bool, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    return logging.INFO if verbose else logging.WARNING


def _cleanup_old_logs(log_dir: Path) -> None:
    """Remove rotated ``kdx.log*`` files not touched for RETENTION_DAYS."""
    if not log_dir.exists():
        return
    cutoff = (datetime.now() - timedelta(days=RETENTION_DAYS)).timestamp()
    for path in log_dir.glob(f"{LOG_FILE_NAME}*"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
        except OSError:
            continue


def _file_handler(log_dir: Path, shared_processors: list[Any]) -> logging.Handler | None:
    """JSON rotating file handler, or None if ``log_dir`` cannot be written."""
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        _cleanup_old_logs(log_dir)
        handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT
        )
    except OSError:
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=shared_processors,
        )
    )
    return handler


def _console_handler(
    level: int, json_output: bool, debug: bool, shared: list[Any]
) -> logging.Handler:
    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=debug),
        )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared)
    )
    return handler


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    json_output: bool = False,
    log_dir: Path | None = LOG_DIR,
) -> None:
    """Route structlog through stdlib handlers on the root logger.

    Safe to call more than once: handlers from a previous call are closed
    and replaced.

    Args:
        verbose: Show INFO events on the console.
        debug: Show DEBUG events on the console and include locals in tracebacks.
        json_output: Render console events as JSON instead of key=value.
        log_dir: Where the rotating file log lives; None turns file logging off.
    """
    level = _console_level(verbose, debug)
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        # The file handler wants DEBUG even when the console is quieter
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if log_dir is not None else level
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for old in [h for h in root.handlers if getattr(h, _HANDLER_ATTR, False)]:
        root.removeHandler(old)
        old.close()

    handlers = [_console_handler(level, json_output, debug, shared)]
    if log_dir is not None and (file_handler := _file_handler(log_dir, shared)):
        handlers.append(file_handler)

    root.setLevel(logging.DEBUG)
    for handler in handlers:
        setattr(handler, _HANDLER_ATTR, True)
        root.addHandler(handler)

    # The kubernetes client logs request bodies at DEBUG
    logging.getLogger("kubernetes").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Return a structlog logger, bound to ``initial_context`` when given."""
    logger: structlog.BoundLogger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger
