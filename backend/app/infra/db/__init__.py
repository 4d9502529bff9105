"""Database connection helpers."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from ...config import load_settings

__all__ = ["get_engine"]


@lru_cache()
def get_engine(database_url: str | None = None) -> Engine:
    """Return a shared engine for ``database_url`` (configured URL by default)."""

    url = database_url or load_settings().database_url
    return create_engine(url, echo=False, future=True)
