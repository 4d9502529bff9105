"""Live book listing backed by a store subscription."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from ...infra.events import EventEmitter
from ...infra.logging import get_logger
from ...infra.metrics import MetricsClient, get_metrics_client
from ..catalog.gateway import BookStoreGateway
from ..catalog.models import Book, BookDocument
from ..catalog.subscriptions import BookSubscription
from ..navigation import CREATE_BOOK_PATH
from .card import BookCard

__all__ = ["BookListView", "EMPTY_MESSAGE", "ListStatus"]

logger = get_logger(__name__)

EMPTY_MESSAGE = "No books yet. Click “Add a book”."


class ListStatus:
    LOADING = "loading"
    EMPTY = "empty"
    READY = "ready"


ChangeCallback = Callable[[Dict[str, Any]], None]


class BookListView:
    """Keeps one card per stored book, refreshed on every snapshot.

    Only one subscription exists while mounted. Each snapshot rebuilds the
    card list in delivered order; cards for ids already shown keep their
    carousel position, new ones start at the first photo.
    """

    def __init__(
        self,
        gateway: BookStoreGateway,
        *,
        order_by: str = "created_at",
        direction: str = "desc",
        on_change: Optional[ChangeCallback] = None,
        event_emitter: EventEmitter | None = None,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._gateway = gateway
        self._order_by = order_by
        self._direction = direction
        self._on_change = on_change
        self._event_emitter = event_emitter
        self._metrics = metrics or get_metrics_client()
        self._lock = threading.RLock()
        self._subscription: Optional[BookSubscription] = None
        self._cards: Dict[str, BookCard] = {}
        self._loaded = False

    @property
    def mounted(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def cards(self) -> List[BookCard]:
        with self._lock:
            return list(self._cards.values())

    def card(self, book_id: str) -> BookCard:
        with self._lock:
            return self._cards[book_id]

    def mount(self) -> "BookListView":
        if self._subscription is not None:
            raise RuntimeError("Book list view is already mounted")
        self._subscription = self._gateway.subscribe_list(
            self._on_snapshot, order_by=self._order_by, direction=self._direction
        )
        logger.debug("book_list_mounted", extra={"order_by": self._order_by})
        return self

    def unmount(self) -> bool:
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return False
        cancelled = subscription.cancel()
        logger.debug("book_list_unmounted", extra={"cancelled": cancelled})
        return cancelled

    def __enter__(self) -> "BookListView":
        return self.mount()

    def __exit__(self, *exc_info) -> None:
        self.unmount()

    def render(self) -> Dict[str, Any]:
        with self._lock:
            if not self._loaded:
                return _view(ListStatus.LOADING)
            if not self._cards:
                return _view(ListStatus.EMPTY, message=EMPTY_MESSAGE)
            return _view(
                ListStatus.READY,
                books=[card.render() for card in self._cards.values()],
            )

    def _on_snapshot(self, documents: List[BookDocument]) -> None:
        with self._lock:
            previous = self._cards
            cards: Dict[str, BookCard] = {}
            for document in documents:
                book = Book.from_document(document)
                if not book.photos:
                    # Blank legacy records cannot be shown as a carousel.
                    logger.warning("book_list_record_skipped", extra={"book_id": book.book_id})
                    self._metrics.increment("books_list_skipped_total")
                    continue
                existing = previous.get(book.book_id)
                index = existing.current_index if existing else 0
                cards[book.book_id] = BookCard(
                    book,
                    gateway=self._gateway,
                    current_index=index if index < len(book.photos) else 0,
                    event_emitter=self._event_emitter,
                )
            self._cards = cards
            self._loaded = True
            view = self.render()
        if self._on_change is not None:
            self._on_change(view)


def _view(
    status: str,
    *,
    message: Optional[str] = None,
    books: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    return {
        "status": status,
        "message": message,
        "books": books or [],
        "create_path": CREATE_BOOK_PATH,
    }
