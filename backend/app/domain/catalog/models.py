"""Book catalog data models."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from numbers import Real
from typing import Any, Dict, Mapping, Optional, Tuple

from .photos import normalize_photos

__all__ = [
    "Book",
    "BookDocument",
    "WRITABLE_FIELDS",
    "utcnow",
    "validate_field_names",
]

WRITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "author",
        "price",
        "description",
        "photos",
        "created_at",
        "updated_at",
    }
)


def utcnow() -> datetime:
    """Return timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BookDocument:
    """Raw stored record: the id plus whatever fields the store holds."""

    book_id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class Book:
    """Canonical catalog entry, built from a stored record."""

    book_id: str
    title: str
    author: str
    price: Optional[float]
    description: Optional[str]
    photos: Tuple[str, ...]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, document: BookDocument) -> "Book":
        """Normalize a raw record, including the legacy photo layout."""

        return cls(
            book_id=document.book_id,
            title=_as_text(document.get("title")),
            author=_as_text(document.get("author")),
            price=_as_price(document.get("price")),
            description=document.get("description") or None,
            photos=tuple(normalize_photos(document.get("photos"))),
            created_at=document.get("created_at"),
            updated_at=document.get("updated_at"),
        )

    @property
    def display_price(self) -> Optional[float]:
        """Price to show, or None when the book is not for sale."""

        if self.price is None or self.price <= 0:
            return None
        return self.price


def validate_field_names(fields: Mapping[str, Any]) -> None:
    unknown = sorted(set(fields) - WRITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown book fields: {', '.join(unknown)}")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_price(value: Any) -> Optional[float]:
    # Older records may hold the price as text, e.g. "12".
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return None
    price = float(value)
    if not math.isfinite(price):
        return None
    return price
