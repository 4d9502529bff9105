"""User-facing view paths."""

from __future__ import annotations

LISTING_PATH = "/"
CREATE_BOOK_PATH = "/add-book"
EDIT_BOOK_PATH_TEMPLATE = "/edit-book/{book_id}"


def edit_book_path(book_id: str) -> str:
    return EDIT_BOOK_PATH_TEMPLATE.format(book_id=book_id)
