"""
HueSampler Structured Logging
Centralized loguru configuration. Session tokens passed in ``extra`` are
shortened before they reach any sink.
"""
import sys
from typing import Dict, Any, Optional

from loguru import logger

from huesampler.config import config
from huesampler.utils.ids import short_token

# extra keys whose values are session tokens
REDACTED_KEYS = ("token",)

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {message} | {extra}"


def redact(extra: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of extra with token values cut down to a log-safe prefix."""
    cleaned = dict(extra)
    for key in REDACTED_KEYS:
        value = cleaned.get(key)
        if isinstance(value, str) and not value.endswith("…"):
            cleaned[key] = short_token(value)
    return cleaned


class StructuredLogger:
    """Structured logger for the HueSampler services."""

    def __init__(self, level: Optional[str] = None, serialize: Optional[bool] = None):
        self.level = (level or config.LOG_LEVEL).upper()
        self.serialize = config.LOG_JSON if serialize is None else serialize
        self._configure_logger()

    def _configure_logger(self):
        """Replace loguru's default handler with the service handler."""
        logger.remove()
        logger.add(
            sys.stdout,
            format=LOG_FORMAT,
            level=self.level,
            serialize=self.serialize,
        )

    def _log(self, level: str, message: str, extra: Optional[Dict[str, Any]]):
        if extra:
            logger.bind(**redact(extra)).log(level, message)
        else:
            logger.log(level, message)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log("INFO", message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log("WARNING", message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log("ERROR", message, extra)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log("DEBUG", message, extra)


_logger: Optional[StructuredLogger] = None


def get_logger() -> StructuredLogger:
    """Get or create global logger instance."""
    global _logger
    if _logger is None:
        _logger = StructuredLogger()
    return _logger
