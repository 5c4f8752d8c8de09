"""
Structured logging for the note store.

Everything logs through structlog on top of the stdlib root logger, so
records from SQLAlchemy and aiosqlite land in the same handlers as ours.
Settings come from config/settings/logging.yaml. The NOTESTORE_LOG_LEVEL
environment variable beats the file, and arguments to setup_logging beat both.

Each JSON record carries timestamp, level, logger, event, func_name and
lineno, plus whatever the caller binds. Two fields have a fixed meaning:

    source     - which layer wrote the record (one of VALID_SOURCES)
    operation  - the store call in progress, bound by operation_context()

Usage:
    from notestore.core.logging import get_logger, operation_context, setup_logging

    setup_logging(level="DEBUG", format_type="console")
    logger = get_logger(__name__)

    with operation_context("move_item", item_id=item.id):
        logger.info("Item moved", extra={"parent_id": parent.id})

    log_with_source(logger, "cli", "info", "Index rebuilt", rows=120)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import Processor

from notestore.core.config import get_app_config, get_settings
from notestore.core.config_schema import LoggingSchema

VALID_SOURCES = frozenset({
    "cli",
    "store",
    "provisioner",
    "search",
    "settings",
    "internal",
    "unknown",
})
"""Values accepted for the ``source`` field. Callers always pass one explicitly."""

# Libraries that are chatty at INFO and below.
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite")


def _log_file(configured: str) -> Path:
    path = Path(configured)
    if path.is_absolute():
        return path
    base = get_app_config().root or Path.cwd()
    return base / path


def _pre_chain() -> list[Processor]:
    """Processors applied to structlog and foreign stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
    ]


def _formatter(renderer: Processor, pre_chain: list[Processor]) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)


def _file_handler(cfg: LoggingSchema, formatter: logging.Formatter) -> logging.Handler:
    target = _log_file(cfg.handlers.file.path)
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(target),
        maxBytes=cfg.handlers.file.max_bytes,
        backupCount=cfg.handlers.file.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    enable_console: bool | None = None,
    enable_file_logging: bool | None = None,
) -> None:
    """
    (Re)configure logging. Safe to call more than once; the root logger's
    handlers are replaced each time.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format_type: 'json' or 'console' for the stderr handler
        enable_console: write records to stderr
        enable_file_logging: append JSON lines to the configured rotating file
    """
    cfg = get_app_config().logging
    level_name = (level or get_settings().log_level or cfg.level).upper()
    console_on = cfg.handlers.console.enabled if enable_console is None else enable_console
    file_on = cfg.handlers.file.enabled if enable_file_logging is None else enable_file_logging
    render_as = cfg.format if format_type is None else format_type

    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    as_json = _formatter(structlog.processors.JSONRenderer(), pre_chain)
    handlers: list[logging.Handler] = []
    if console_on:
        stream = logging.StreamHandler(sys.stderr)
        if render_as == "console":
            renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
            stream.setFormatter(_formatter(renderer, pre_chain))
        else:
            stream.setFormatter(as_json)
        handlers.append(stream)
    if file_on:
        handlers.append(_file_handler(cfg, as_json))

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(getattr(logging, level_name))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """structlog logger for ``name`` (normally the module's ``__name__``)."""
    return structlog.get_logger(name)


@contextmanager
def operation_context(operation: str, **fields: Any) -> Iterator[None]:
    """
    Bind ``operation`` (and any extra fields) to every record logged inside
    the block, including records from services and repositories below it.
    """
    with structlog.contextvars.bound_contextvars(operation=operation, **fields):
        yield


def log_with_source(logger: Any, source: str, level: str, message: str, **kwargs: Any) -> None:
    """
    Emit ``message`` at ``level`` tagged with ``source``.

    An unknown level name raises AttributeError, e.g.
    ``log_with_source(logger, "cli", "shout", "x")``.
    """
    getattr(logger, level.lower())(message, source=source, **kwargs)
