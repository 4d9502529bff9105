"""Logging helpers shared by routers, domain services and gateways."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

__all__ = ["StructuredFormatter", "configure_logging", "get_logger"]

ROOT_LOGGER_NAME = "backend"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Appends ``extra`` fields to the message as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extract_extra(record)
        if not extras:
            return base
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(extras.items()))
        return f"{base} {rendered}"


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""

    return logging.getLogger(name)


def configure_logging(config: Optional[Mapping[str, Any]] = None) -> logging.Logger:
    """Install the structured formatter on the backend logger tree."""

    config = dict(config or {})
    level_name = str(config.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    handler = next(
        (
            existing
            for existing in root.handlers
            if isinstance(existing.formatter, StructuredFormatter)
        ),
        None,
    )
    if handler is None:
        handler = logging.StreamHandler()
        root.addHandler(handler)
    handler.setFormatter(StructuredFormatter(config.get("format")))
    return root


def _extract_extra(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }
