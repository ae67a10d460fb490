"""Logging configuration using loguru.

Intercepts stdlib logging so that uvicorn, redis, etc. all flow through
loguru with a unified format.  Every record is patched so that OAuth2 tokens
and the configured client secret never reach a sink in clear text.
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

MASK = "***"

# Google access tokens start with "ya29.", refresh tokens with "1//".
_TOKEN_PATTERN = re.compile(r"(ya29\.|1//)[\w.\-]+")


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk the call stack so loguru reports the real call-site
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def redact(text: str, secrets: Iterable[str] = ()) -> str:
    """Mask OAuth2 tokens and any of *secrets* found in *text*."""
    text = _TOKEN_PATTERN.sub(lambda match: match.group(1) + MASK, text)
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    return text


def _redactor(secrets: Iterable[str]) -> Callable[[Record], None]:
    secrets = tuple(secrets)

    def patch(record: Record) -> None:
        record["message"] = redact(record["message"], secrets)

    return patch


def setup_logging(level: str = "INFO", device_id: str | None = None, secrets: Iterable[str] = ()) -> None:
    """Configure loguru as the sole logging sink.

    Call this once at process startup.  When *device_id* is given every record
    carries it, which keeps logs apart when several devices share a collector.
    Values in *secrets* (the client secret) are masked wherever they appear.
    """
    level = level.upper()

    logger.remove()
    logger.configure(extra={"device": device_id or "-"}, patcher=_redactor(secrets))
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<magenta>{extra[device]}</magenta> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for name in ("uvicorn.access", "redis"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={})", level)
