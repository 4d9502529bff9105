"""Photo layout handling for stored book records.

Older records keep their pictures under a fixed ``front/spine/back/inside``
mapping instead of an ordered list. Both layouts are resolved here, at the
record boundary, so the rest of the code only ever sees a list of URLs.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Mapping, Sequence

__all__ = [
    "LEGACY_PHOTO_KEYS",
    "PhotoLayout",
    "classify_photo_layout",
    "normalize_photos",
]

LEGACY_PHOTO_KEYS: tuple[str, ...] = ("front", "spine", "back", "inside")


class PhotoLayout(str, Enum):
    SEQUENCE = "sequence"
    LEGACY_MAPPING = "legacy_mapping"
    MISSING = "missing"


def classify_photo_layout(raw: Any) -> PhotoLayout:
    if isinstance(raw, (list, tuple)):
        return PhotoLayout.SEQUENCE
    if isinstance(raw, Mapping):
        return PhotoLayout.LEGACY_MAPPING
    return PhotoLayout.MISSING


def normalize_photos(raw: Any) -> List[str]:
    """Return the ordered photo URLs held by ``raw`` whatever its layout."""

    layout = classify_photo_layout(raw)
    if layout is PhotoLayout.SEQUENCE:
        return list(raw)
    if layout is PhotoLayout.LEGACY_MAPPING:
        return _from_legacy_mapping(raw)
    return []


def _from_legacy_mapping(raw: Mapping[str, Any]) -> List[str]:
    values: Sequence[Any] = [raw.get(key) for key in LEGACY_PHOTO_KEYS]
    return [value for value in values if isinstance(value, str)]
