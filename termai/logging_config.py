"""
Logging configuration for termai.

Records from the ``termai`` logger tree go to stderr (text or JSON) and,
optionally, to a JSON-lines file. Every handler redacts API keys, and each
line carries the request ID of the call that produced it.
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

# Set by the client at the start of each request
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

TEXT_FORMAT = "%(asctime)s %(level)s %(rid)s%(name)s: %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"

QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

_SECRET_PATTERNS = (
    # api_key=..., "api-key": "..."
    (re.compile(r'(api[_-]?key["\']?\s*[:=]\s*["\']?)([a-zA-Z0-9_-]{20,})', re.I), r'\1[REDACTED]'),
    (re.compile(r'(Bearer\s+)([a-zA-Z0-9_.-]+)', re.I), r'\1[REDACTED]'),
    # sk-..., sk-proj-...
    (re.compile(r'\b(sk-[a-zA-Z0-9]{0,4})[a-zA-Z0-9_-]{16,}'), r'\1...[REDACTED]'),
)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request ID to the current context, generating a short one if needed."""
    rid = request_id or uuid.uuid4().hex[:8]
    request_id_var.set(rid)
    return rid


def redact(text: str) -> str:
    """Replace API keys and bearer tokens in ``text``."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _redact_value(value: Any) -> Any:
    return redact(value) if isinstance(value, str) else value


class SensitiveDataFilter(logging.Filter):
    """Redacts secrets from the message and its format arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)

        if isinstance(record.args, dict):
            record.args = {k: _redact_value(v) for k, v in record.args.items()}
        elif record.args:
            record.args = tuple(_redact_value(arg) for arg in record.args)

        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            entry['request_id'] = request_id

        entry.update(getattr(record, 'extra_data', None) or {})

        if record.levelno >= logging.ERROR:
            entry['source'] = {
                'file': record.pathname,
                'line': record.lineno,
                'function': record.funcName,
            }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line terminal output with an optionally colored level."""

    LEVEL_COLORS = {
        logging.DEBUG: 36,
        logging.INFO: 32,
        logging.WARNING: 33,
        logging.ERROR: 31,
        logging.CRITICAL: 35,
    }

    def __init__(self, use_colors: bool = True):
        super().__init__(TEXT_FORMAT, datefmt=TEXT_DATEFMT)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        record.level = f"\033[{color}m{level}\033[0m" if color else level

        request_id = get_request_id()
        record.rid = f"[{request_id}] " if request_id else ""

        return super().format(record)


def _attach(logger: logging.Logger, handler: logging.Handler, formatter: logging.Formatter) -> None:
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveDataFilter())
    logger.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Configure the ``termai`` logger tree.

    Args:
        level: Log level name
        format_type: "text" or "json" for stderr output
        log_file: Optional path that receives JSON lines

    Returns:
        The ``termai`` logger

    Calling it again replaces the handlers from the previous call.
    Output goes to stderr so answers printed on stdout stay clean.
    """
    logger = logging.getLogger("termai")
    logger.setLevel(level.upper())
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if format_type.lower() == "json":
        console_formatter: logging.Formatter = JSONFormatter()
    else:
        use_colors = hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()
        console_formatter = TextFormatter(use_colors=use_colors)
    _attach(logger, logging.StreamHandler(sys.stderr), console_formatter)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _attach(logger, logging.FileHandler(log_path, encoding="utf-8"), JSONFormatter())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
