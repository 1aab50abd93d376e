"""Logging configuration for siteclone."""

import re
import sys
from typing import Any

from loguru import logger

# Signed backup URLs carry their credentials in the query string
_SIGNED_QUERY = re.compile(r"(https?://[^\s?'\"]+)\?[^\s'\"]+")

_info_format = "<level>{level: <7}</level> | {message}"
_debug_format = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <7}</level> | <cyan>{name}</cyan> | {message}"


def redact(message: str) -> str:
    """Strip query strings from URLs so signatures never reach a log."""
    return _SIGNED_QUERY.sub(r"\1?<redacted>", message)


def _redact_record(record: dict[str, Any]) -> None:
    record["message"] = redact(record["message"])


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the stderr sink.

    Args:
        verbose: Show DEBUG (API calls, poll ticks) with timestamps and module names
        quiet: Show warnings and errors only; ignored when verbose is set
    """
    logger.remove()
    if verbose:
        logger.add(sys.stderr, format=_debug_format, level="DEBUG")
    elif quiet:
        logger.add(sys.stderr, format=_info_format, level="WARNING")
    else:
        logger.add(sys.stderr, format=_info_format, level="INFO")


logger.remove()
logger.configure(patcher=_redact_record)  # type: ignore[arg-type]

__all__ = ["logger", "configure_logging", "redact"]
