"""Logging setup for apptrail runs.

Modules log through ``logging.getLogger(__name__)``, so everything lands under
the ``apptrail`` package logger. The command line configures that logger once
per run: stderr always, plus a log file when ``APPTRAIL_LOG_FILE`` is set.
"""

import logging
import sys
from pathlib import Path

LOGGER_NAME = "apptrail"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# LiteLLM logs every request at INFO
NOISY_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx")

_configured = False
_log_file: Path | None = None


def _level(name: str | None) -> int:
    return logging.getLevelNamesMapping().get((name or "INFO").upper(), logging.INFO)


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _build_handlers(
    log_file: Path | None, formatter: logging.Formatter
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    level: str | None = None,
    log_file: Path | None = None,
    format_string: str = LOG_FORMAT,
    date_format: str = DATE_FORMAT,
) -> logging.Logger:
    """Configure and return the package logger.

    Handlers are installed on the first call and rebuilt only when the log
    file changes; later calls just adjust the level.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Unknown or missing names fall back to INFO.
        log_file: Optional file that receives the same records as stderr.
        format_string: Format string for log messages.
        date_format: Format string for timestamps.

    Returns:
        The configured ``apptrail`` logger.
    """
    global _configured, _log_file

    logger = logging.getLogger(LOGGER_NAME)
    log_level = _level(level)
    logger.setLevel(log_level)

    if not _configured or log_file != _log_file:
        _detach_handlers(logger)
        formatter = logging.Formatter(format_string, datefmt=date_format)
        for handler in _build_handlers(log_file, formatter):
            logger.addHandler(handler)
        logger.propagate = False
        _configured = True
        _log_file = log_file

    for handler in logger.handlers:
        handler.setLevel(log_level)

    third_party_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger (``apptrail.<name>``)."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def reset_logging() -> None:
    """Drop handlers and forget prior configuration (used by tests)."""
    global _configured, _log_file

    logger = logging.getLogger(LOGGER_NAME)
    _detach_handlers(logger)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True

    _configured = False
    _log_file = None
