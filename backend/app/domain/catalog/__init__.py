"""Book catalog domain package."""

from .gateway import (
    BookNotFoundError,
    BookStoreError,
    BookStoreGateway,
    InMemoryBookStoreGateway,
    PostgresBookStoreGateway,
    build_book_store_gateway,
)
from .models import Book, BookDocument, utcnow
from .photos import LEGACY_PHOTO_KEYS, PhotoLayout, classify_photo_layout, normalize_photos
from .subscriptions import BookSubscription, SnapshotBroadcaster, SnapshotPoller

__all__ = [
    "Book",
    "BookDocument",
    "BookNotFoundError",
    "BookStoreError",
    "BookStoreGateway",
    "BookSubscription",
    "InMemoryBookStoreGateway",
    "LEGACY_PHOTO_KEYS",
    "PhotoLayout",
    "PostgresBookStoreGateway",
    "SnapshotBroadcaster",
    "SnapshotPoller",
    "build_book_store_gateway",
    "classify_photo_layout",
    "normalize_photos",
    "utcnow",
]
