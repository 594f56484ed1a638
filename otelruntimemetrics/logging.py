"""Logging setup for the telemetry service.

Modules log through stdlib loggers (``logging.getLogger(__name__)``). This
module configures the process-wide handler once at startup and masks
credentials that may appear in messages, such as collector authorization
headers.

Example:
    >>> from otelruntimemetrics.logging import configure_logging
    >>> configure_logging("DEBUG")
"""

from __future__ import annotations

import logging
import re
import sys
from enum import Enum
from typing import ClassVar, TextIO

__all__ = [
    "LOG_FORMAT",
    "LogLevel",
    "SensitiveDataFilter",
    "configure_logging",
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_NAME = "otelruntimemetrics"


class LogLevel(Enum):
    """Log severity levels with numeric values for comparison."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    def to_stdlib(self) -> int:
        """Convert to stdlib logging level."""
        return self.value

    @classmethod
    def from_string(cls, level: str) -> LogLevel:
        """Create from string representation. Unknown names map to INFO."""
        try:
            return cls[level.strip().upper()]
        except KeyError:
            return cls.INFO


# Patterns for credentials in collector headers and endpoints
DEFAULT_SENSITIVE_PATTERNS: tuple[tuple[str, str], ...] = (
    (r"((?:authorization|api-key|x-api-key|token)['\"]?\s*[:=]\s*['\"]?)[^'\",\s}]+", r"\1***MASKED***"),
    (r"(://[^:/@\s]+:)[^@\s]+(@)", r"\1***MASKED***\2"),
)


class SensitiveDataFilter(logging.Filter):
    """Masks credentials in log messages.

    Example:
        >>> handler.addFilter(SensitiveDataFilter())
    """

    MASK_VALUE: ClassVar[str] = "***MASKED***"

    def __init__(self, patterns: tuple[tuple[str, str], ...] | None = None) -> None:
        super().__init__()
        self._compiled_patterns = tuple(
            (re.compile(pattern, re.IGNORECASE), replacement)
            for pattern, replacement in (patterns or DEFAULT_SENSITIVE_PATTERNS)
        )

    def mask_string(self, value: str) -> str:
        """Mask sensitive data in a string."""
        result = value
        for pattern, replacement in self._compiled_patterns:
            result = pattern.sub(replacement, result)
        return result

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = self.mask_string(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Configure root logging for the service.

    Installs a single stream handler (stderr by default). Calling this again
    replaces the handler installed by the previous call rather than adding
    another one.

    Args:
        level: Log level (LogLevel or name).
        stream: Stream to write to.

    Returns:
        The installed handler.
    """
    if isinstance(level, str):
        level = LogLevel.from_string(level)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(SensitiveDataFilter())

    root.addHandler(handler)
    root.setLevel(level.to_stdlib())
    return handler
