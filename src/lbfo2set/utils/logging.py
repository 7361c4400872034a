"""Structured logging for lbfo2set."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

ROOT_LOGGER = "lbfo2set"


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance.

    Only the package root logger carries a handler; module loggers
    propagate to it so a single ``set_log_level`` call governs the run.
    """
    root = logging.getLogger(ROOT_LOGGER)

    if not root.handlers:
        handler = RichHandler(
            show_time=True,
            show_path=False,
            markup=True,
            rich_tracebacks=True,
        )
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
        root.setLevel(logging.INFO)

    return logging.getLogger(name)


def set_log_level(level: str) -> None:
    """Set global log level (DEBUG, INFO, WARNING, ERROR)."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.getLogger(ROOT_LOGGER).setLevel(numeric)
