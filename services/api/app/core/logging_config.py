"""Logging for the TreeTracker API: UTC ISO-8601 lines on stderr, bearer tokens and passwords masked."""
import logging
import os
import re
import sys
from datetime import datetime, timezone

LOG_FORMAT = "%(asctime)sZ [%(levelname)s] %(name)s: %(message)s"

# Libraries that are chatty at INFO; request lines come from our own middleware
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "python_multipart": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}

_SECRET_PATTERNS = [
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"((?:access_token|refresh_token|password)[\"']?\s*[=:]\s*[\"']?)[^\s&,\"'}]+"), r"\1***"),
]


def redact(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class UTCIsoFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return ts.isoformat(timespec="milliseconds").replace("+00:00", "")


class RedactSecretsFilter(logging.Filter):
    """Rewrites the rendered message so tokens never reach the log sink."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg, record.args = cleaned, None
        return True


def _level(name: str) -> int:
    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | None = None) -> logging.Handler:
    """Configure the root logger once (LOG_LEVEL env var, default INFO). Returns the stderr handler."""
    root = logging.getLogger()
    root.setLevel(_level(level or os.getenv("LOG_LEVEL", "INFO")))
    handler = next((h for h in root.handlers if getattr(h, "_treetracker", False)), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler._treetracker = True
        handler.setFormatter(UTCIsoFormatter(LOG_FORMAT))
        handler.addFilter(RedactSecretsFilter())
        root.addHandler(handler)
    for name, lib_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(lib_level)
    return handler
