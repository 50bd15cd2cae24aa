"""Rotating log files for run summaries and errors.

- filter-move-mail-{account}.log: what each run moved, per account
- filter-move-mail-error.log: ERROR records from account loggers and from
  every module logger under ``filter_move_mail``
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_DIR = Path.home() / ".local" / "state" / "filter-move-mail" / "logs"

DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5MB
DEFAULT_BACKUP_COUNT = 3

ROOT_LOGGER_NAME = "filter_move_mail"
ERROR_LOGGER_NAME = "filter-move-mail.errors"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

_log_dir: Path = DEFAULT_LOG_DIR
_max_bytes: int = DEFAULT_MAX_BYTES
_backup_count: int = DEFAULT_BACKUP_COUNT
_initialized: bool = False
_account_loggers: dict[str, logging.Logger] = {}
_package_handler: logging.Handler | None = None


class ErrorPropagatingHandler(logging.Handler):
    """Copies ERROR+ records to the shared error log, tagged with the account."""

    def __init__(self, account: str | None = None) -> None:
        super().__init__(level=logging.ERROR)
        self.account = account

    def emit(self, record: logging.LogRecord) -> None:
        msg = record.getMessage()
        if self.account:
            msg = f"[{self.account}] {msg}"
        get_error_logger().handle(
            logging.LogRecord(
                name=record.name,
                level=record.levelno,
                pathname=record.pathname,
                lineno=record.lineno,
                msg=msg,
                args=(),
                exc_info=record.exc_info,
            )
        )


def _attach_file(logger: logging.Logger, filename: str, level: int = logging.NOTSET) -> None:
    """Add a rotating file handler unless the logger already writes to a file."""
    if any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        return
    handler = RotatingFileHandler(
        _log_dir / filename, maxBytes=_max_bytes, backupCount=_backup_count
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)


def setup_logging(
    log_dir: Path | None = None,
    log_level: str = "INFO",
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> None:
    """Configure log locations and the package log level.

    Args:
        log_dir: Directory for log files.
        log_level: Minimum level for the package loggers.
        max_bytes: Size at which a log file is rotated.
        backup_count: Number of rotated files to keep.
    """
    global _log_dir, _max_bytes, _backup_count, _initialized, _package_handler

    _log_dir = log_dir or DEFAULT_LOG_DIR
    _max_bytes = max_bytes or DEFAULT_MAX_BYTES
    _backup_count = backup_count if backup_count is not None else DEFAULT_BACKUP_COUNT
    _log_dir.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    if _package_handler is None:
        _package_handler = ErrorPropagatingHandler()
        package_logger.addHandler(_package_handler)

    _initialized = True


def get_error_logger() -> logging.Logger:
    """The shared ERROR-level logger behind filter-move-mail-error.log."""
    if not _initialized:
        setup_logging()

    # Outside the package hierarchy so records are not routed back to it.
    logger = logging.getLogger(ERROR_LOGGER_NAME)
    logger.setLevel(logging.ERROR)
    logger.propagate = False
    _attach_file(logger, "filter-move-mail-error.log", logging.ERROR)
    return logger


def get_account_logger(account: str) -> logging.Logger:
    """Logger writing to filter-move-mail-{account}.log; errors also reach the error log."""
    if account in _account_loggers:
        return _account_loggers[account]

    if not _initialized:
        setup_logging()

    safe_name = "".join(c if c.isalnum() else "-" for c in account)
    logger = logging.getLogger(f"filter-move-mail.account.{safe_name}")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    _attach_file(logger, f"filter-move-mail-{safe_name}.log")
    if not any(isinstance(h, ErrorPropagatingHandler) for h in logger.handlers):
        logger.addHandler(ErrorPropagatingHandler(account))

    _account_loggers[account] = logger
    return logger


def reset_logging() -> None:
    """Close every handler this module added (used between tests)."""
    global _account_loggers, _initialized, _package_handler

    managed = list(_account_loggers.values()) + [logging.getLogger(ERROR_LOGGER_NAME)]
    for logger in managed:
        for handler in logger.handlers[:]:
            if isinstance(handler, (RotatingFileHandler, ErrorPropagatingHandler)):
                handler.close()
                logger.removeHandler(handler)

    if _package_handler is not None:
        logging.getLogger(ROOT_LOGGER_NAME).removeHandler(_package_handler)

    _account_loggers = {}
    _package_handler = None
    _initialized = False
