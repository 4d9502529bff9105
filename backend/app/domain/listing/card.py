"""Book card: photo carousel plus edit/delete actions for one book."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ...infra.events import EventEmitter, get_event_emitter
from ...infra.logging import get_logger
from ..catalog.gateway import BookStoreError, BookStoreGateway
from ..catalog.models import Book
from ..navigation import edit_book_path

__all__ = ["BookCard", "CardActionResult", "DELETE_PROMPT", "DELETE_FAILED_MESSAGE"]

logger = get_logger(__name__)

DELETE_PROMPT = "Are you sure you want to delete this book?"
DELETE_FAILED_MESSAGE = "Could not delete the book, please try again."

ConfirmPrompt = Callable[[str], bool]


@dataclass(frozen=True)
class CardActionResult:
    """Outcome of a card action; ``performed`` is False when the user declined."""

    performed: bool
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BookCard:
    def __init__(
        self,
        book: Book,
        *,
        gateway: BookStoreGateway,
        current_index: int = 0,
        event_emitter: EventEmitter | None = None,
    ) -> None:
        if not book.photos:
            raise ValueError(f"Book {book.book_id} has no photos to display")
        self._gateway = gateway
        self._event_emitter = event_emitter or get_event_emitter()
        self.book = book
        self.current_index = current_index % len(book.photos)

    @property
    def book_id(self) -> str:
        return self.book.book_id

    @property
    def photo_count(self) -> int:
        return len(self.book.photos)

    @property
    def edit_path(self) -> str:
        return edit_book_path(self.book_id)

    def next(self) -> int:
        self.current_index = (self.current_index + 1) % self.photo_count
        return self.current_index

    def prev(self) -> int:
        self.current_index = (self.current_index - 1) % self.photo_count
        return self.current_index

    def go_to(self, index: int) -> int:
        if not 0 <= index < self.photo_count:
            raise IndexError(f"Photo index {index} out of range")
        self.current_index = index
        return self.current_index

    def dots(self) -> List[bool]:
        return [index == self.current_index for index in range(self.photo_count)]

    def delete(self, confirm: ConfirmPrompt) -> CardActionResult:
        """Delete the book after confirmation.

        The card stays on screen; it disappears when the next list snapshot
        no longer contains it.
        """

        if not confirm(DELETE_PROMPT):
            return CardActionResult(performed=False)
        try:
            self._gateway.delete_book(self.book_id)
        except BookStoreError:
            logger.warning("book_card_delete_failed", extra={"book_id": self.book_id})
            return CardActionResult(performed=False, error=DELETE_FAILED_MESSAGE)
        except Exception:
            logger.exception("book_card_delete_unexpected", extra={"book_id": self.book_id})
            return CardActionResult(performed=False, error=DELETE_FAILED_MESSAGE)
        self._event_emitter.emit("book_deleted", {"book_id": self.book_id})
        return CardActionResult(performed=True)

    def render(self) -> Dict[str, Any]:
        return {
            "book_id": self.book_id,
            "title": self.book.title,
            "author": self.book.author,
            "description": self.book.description,
            "price": self.book.display_price,
            "photo": {
                "src": self.book.photos[self.current_index],
                "alt": f"Image {self.current_index + 1}",
            },
            "current_index": self.current_index,
            "photo_count": self.photo_count,
            "can_navigate": self.photo_count > 1,
            "dots": self.dots(),
            "edit_path": self.edit_path,
        }
