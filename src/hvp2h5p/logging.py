"""
Logging configuration with Rich.

Components log through ``logging.getLogger(__name__)``; the command line
tool calls ``setup_logging`` once to route records to a RichHandler.

Usage:
    from hvp2h5p.logging import setup_logging

    setup_logging(level="info")
"""

import logging

from rich.logging import RichHandler

LEVEL_MAP = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def setup_logging(level: str = "warning") -> None:
    """
    Configure the root logger with a Rich handler.

    Maps 'error', 'warning', 'info' and 'debug' to logging levels; unknown
    names fall back to warning. Existing handlers are kept and re-levelled.
    """
    log_level = LEVEL_MAP.get(level.lower(), logging.WARNING)

    root = logging.getLogger()
    root.setLevel(log_level)

    if not root.handlers:
        handler = RichHandler(
            rich_tracebacks=(log_level == logging.DEBUG),
            show_path=False,
            show_time=False,
        )
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        root.addHandler(handler)
    else:
        for handler in root.handlers:
            handler.setLevel(log_level)

    # SQL echo is only useful when debugging
    if log_level > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("aiosqlite").setLevel(logging.WARNING)
