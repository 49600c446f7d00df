"""Logging configuration for processes hosting the ledger core.

The hosting process calls ``setup_server_logging(settings)`` once at
startup. Records go to stdout and to ``settings.log_file`` at
``settings.log_level`` (LOG_LEVEL / LOG_FILE in the environment or .env).
Every committed mutation is logged at INFO by the ledger service, so the
file is an operational trail next to the ledger history itself.
"""

import logging
import sys
from pathlib import Path

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level(level_name: str) -> int:
    """Logging constant for a level name; unknown names map to INFO."""
    return LOG_LEVEL_MAP.get(level_name.upper(), logging.INFO)


def _build_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_server_logging(settings) -> None:
    """Configure the root logger from ledger settings.

    Args:
        settings: Settings providing ``log_level`` and ``log_file``

    Previously installed root handlers are closed and replaced, so calling
    this again (e.g. after reloading settings) does not duplicate output.
    """
    level = get_log_level(settings.log_level)
    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.addHandler(_build_handler(logging.StreamHandler(sys.stdout), level, formatter))
    root_logger.addHandler(_build_handler(logging.FileHandler(log_path), level, formatter))

    logging.getLogger(__name__).debug(
        "Logging to stdout and %s at %s", log_path, logging.getLevelName(level)
    )


__all__ = ["LOG_FORMAT", "LOG_LEVEL_MAP", "get_log_level", "setup_server_logging"]
