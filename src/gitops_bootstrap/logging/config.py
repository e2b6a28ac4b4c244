"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

# Log file configuration
LOG_DIR = Path(
    os.environ.get("GITOPS_LOG_DIR", Path.home() / ".local" / "state" / "gitops-bootstrap")
)
LOG_FILE_NAME = "gitops-bootstrap.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5
RETENTION_DAYS = 30

# Event keys whose values must never reach a log sink
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "token",
        "ssh_key",
        "ssh_private_key",
        "sshPrivateKey",
        "admin_password",
        "authorization",
    }
)
REDACTED = "***"

# Marker attribute set on handlers installed by configure_logging
_HANDLER_MARKER = "_gitops_bootstrap_handler"


def redact_sensitive(
    _logger: Any, _method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Replace the value of credential-bearing keys before rendering."""
    for key in event_dict:
        if key in SENSITIVE_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def _cleanup_old_logs(log_dir: Path | None = None) -> None:
    """Delete rotated log files older than RETENTION_DAYS."""
    directory = log_dir or LOG_DIR
    if not directory.exists():
        return
    cutoff = datetime.now() - timedelta(days=RETENTION_DAYS)
    for log_file in directory.glob(f"{LOG_FILE_NAME}*"):
        try:
            if datetime.fromtimestamp(log_file.stat().st_mtime) < cutoff:
                log_file.unlink()
        except OSError:
            continue


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _setup_file_logging(log_dir: Path | None = None) -> Path:
    """Attach a rotating JSON file handler to the root logger.

    Returns:
        Path of the active log file.
    """
    directory = log_dir or LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    _cleanup_old_logs(directory)

    log_file = directory / LOG_FILE_NAME
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_shared_processors(),
        )
    )
    setattr(file_handler, _HANDLER_MARKER, True)
    logging.getLogger().addHandler(file_handler)
    return log_file


def _remove_installed_handlers() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)
            handler.close()


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    json_output: bool = False,
    log_dir: Path | None = None,
    file_logging: bool = True,
) -> None:
    """Configure structured logging for bootstrap runs.

    Console output is human readable unless ``json_output`` is set. A JSON
    copy of every record is kept in a rotating file (10MB, 5 backups, 30 day
    retention). Calling this again replaces the handlers it installed.

    Args:
        verbose: Enable INFO level console output.
        debug: Enable DEBUG level console output and local variables in
            tracebacks.
        json_output: Render console output as JSON (CI friendly).
        log_dir: Directory for the rotating log file (defaults to LOG_DIR).
        file_logging: Disable to skip the rotating file handler.
    """
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    shared_processors = _shared_processors()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    _remove_installed_handlers()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    if json_output:
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=shared_processors,
        )
    else:
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.RichTracebackFormatter(
                    show_locals=debug,
                ),
            ),
            foreign_pre_chain=shared_processors,
        )
    console_handler.setFormatter(console_formatter)
    setattr(console_handler, _HANDLER_MARKER, True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)

    if file_logging:
        _setup_file_logging(log_dir)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger with optional bound context.

    Args:
        name: Logger name. If None, structlog picks the calling module.
        **initial_context: Key/value pairs bound to every event.

    Returns:
        A bound structlog logger.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
