"""Book listing: live list view and per-book cards."""

from .card import BookCard, CardActionResult
from .list_view import EMPTY_MESSAGE, BookListView, ListStatus

__all__ = ["BookCard", "BookListView", "CardActionResult", "EMPTY_MESSAGE", "ListStatus"]
