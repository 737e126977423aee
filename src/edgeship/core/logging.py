"""Logging for edgeship.

Log records go to stderr so stdout stays clean for ``-o json`` output and for
the ``key=value`` lines CI runners read. Context bound to a StructuredLogger is
appended as ``[key=value ...]``; values of secret-looking keys are masked.
"""

import logging
import re
import sys
from enum import Enum
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT = "edgeship"

# Chatty at INFO: one line per request or connection.
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")

SECRET_KEY_PATTERN = re.compile(r"token|secret|password|api_key|webhook", re.IGNORECASE)
MASK = "***"


class LogLevel(str, Enum):
    """Log level enumeration."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def from_flags(cls, verbose: int, quiet: bool, default: "LogLevel") -> "LogLevel":
        """Level for the ``-v``/``-q`` CLI flags; ``-v`` beats ``-q``."""
        if verbose >= 2:
            return cls.DEBUG
        if verbose == 1:
            return cls.INFO
        if quiet:
            return cls.ERROR
        return default

    @property
    def numeric(self) -> int:
        return int(getattr(logging, self.value.upper()))


def setup_logging(level: LogLevel = LogLevel.WARNING, rich_output: bool = True) -> logging.Logger:
    """Install a single stderr handler on the root logger.

    Args:
        level: Threshold for edgeship and the root logger
        rich_output: RichHandler when True, a plain line format otherwise
            (``--no-color`` and non-terminal CI logs)
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler: logging.Handler
    if rich_output:
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        # CI runners timestamp each line already
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)-8s %(name)s: %(message)s"))

    root_logger.addHandler(handler)
    root_logger.setLevel(level.numeric)

    logger = logging.getLogger(ROOT)
    logger.setLevel(level.numeric)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``edgeship.`` namespace, for ``__name__`` or a short name."""
    if name == ROOT or name.startswith(f"{ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT}.{name}")


def format_context(context: dict[str, Any]) -> str:
    """Render ``key=value`` pairs, masking secret-looking keys."""
    parts = []
    for key, value in context.items():
        if value is not None and SECRET_KEY_PATTERN.search(key):
            value = MASK
        parts.append(f"{key}={value}")
    return " ".join(parts)


class StructuredLogger:
    """Logger carrying bound ``key=value`` context.

    The orchestrator binds ``deployment_id`` and ``environment`` once so every
    line of a run can be grepped out of a shared CI log.
    """

    def __init__(self, name: str, context: dict[str, Any] | None = None):
        self._logger = get_logger(name)
        self._context: dict[str, Any] = dict(context or {})

    @property
    def context(self) -> dict[str, Any]:
        """Bound context values."""
        return dict(self._context)

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """New logger with additional context; this one is unchanged."""
        return StructuredLogger(self._logger.name, {**self._context, **kwargs})

    def _log(self, level: int, message: str, kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        context = {**self._context, **kwargs}
        if context:
            message = f"{message} [{format_context(context)}]"
        self._logger.log(level, message)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, kwargs)
