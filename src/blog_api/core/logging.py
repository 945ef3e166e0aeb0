"""Loguru logging configuration for the API and the CLI.

Records go to a human-readable stderr sink, or to a JSON sink when bound
with ``json_output=True``. A patcher masks credentials before any sink sees
them: one-time tokens embedded in links, bearer headers and values bound
under sensitive keys. A rotating file sink is added when ``log_dir`` is set.
"""

import re
import sys
from pathlib import Path

from loguru import logger

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"

REDACTED = "[redacted]"

_SENSITIVE_KEYS = frozenset({"password", "token", "refresh_token", "access_token", "secret", "authorization"})

_SECRET_PATTERNS = (
    re.compile(r"(token=)[^\s&\"'<]+"),
    re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+"),
)


def redact(message: str) -> str:
    """Mask token query parameters and bearer credentials in a log message."""
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub(rf"\g<1>{REDACTED}", message)
    return message


def _redact_record(record: dict) -> None:
    record["message"] = redact(record["message"])
    for key in record["extra"]:
        if key.lower() in _SENSITIVE_KEYS:
            record["extra"][key] = REDACTED


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure the Loguru sinks.

    Args:
        log_level: Minimum log level to emit, case-insensitive.
        log_dir: Optional directory for ``blog-api.log``, rotated every 24
            hours and retained 14 days.
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(patcher=_redact_record)  # type: ignore[arg-type]
    logger.add(
        sys.stderr,
        level=level,
        format=_LOG_FORMAT,
        filter=lambda record: not record["extra"].get("json_output", False),
    )
    logger.add(
        sys.stderr,
        level=level,
        serialize=True,
        filter=lambda record: record["extra"].get("json_output", False),
    )

    if not log_dir:
        return
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_path / "blog-api.log",
        level=level,
        format=_LOG_FORMAT,
        rotation="24h",
        retention="14 days",
    )
