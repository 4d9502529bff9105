"""Shared form types: states, inputs and submission outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..catalog.models import Book

MISSING_PHOTOS_MESSAGE = "Please select at least one photo."
TITLE_REQUIRED_MESSAGE = "Title is required."
AUTHOR_REQUIRED_MESSAGE = "Author is required."
PRICE_INVALID_MESSAGE = "Price must be a number."
PRICE_NEGATIVE_MESSAGE = "Price cannot be negative."
NOT_FOUND_MESSAGE = "Book not found."
LOAD_ERROR_MESSAGE = "Could not load the book."
UNEXPECTED_ERROR_MESSAGE = "Something went wrong, please try again."


class FormState(str, Enum):
    LOADING = "loading"
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    NOT_FOUND = "not_found"
    LOAD_ERROR = "load_error"

    @property
    def is_terminal(self) -> bool:
        return self in (FormState.SUCCEEDED, FormState.NOT_FOUND, FormState.LOAD_ERROR)


class FormErrorKind(str, Enum):
    VALIDATION = "validation"
    UPLOAD = "upload"
    STORE = "store"
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"


class BookFormError(Exception):
    """Raised inside a submission to abort it with a user-facing message."""

    def __init__(self, kind: FormErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass(frozen=True)
class BookFormInput:
    """Raw text fields as typed by the user."""

    title: str = ""
    author: str = ""
    price: str = ""
    description: str = ""


@dataclass(frozen=True)
class FormValues:
    """Pre-filled edit form fields."""

    title: str
    author: str
    price: str
    description: str
    photos: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_book(cls, book: Book) -> "FormValues":
        return cls(
            title=book.title,
            author=book.author,
            price=format_price_input(book.price),
            description=book.description or "",
            photos=tuple(book.photos),
        )


@dataclass(frozen=True)
class FormResult:
    ok: bool
    navigate_to: Optional[str] = None
    book_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[FormErrorKind] = None


def format_price_input(price: Optional[float]) -> str:
    """Render a stored price for the numeric input; ``None`` stays empty."""

    if price is None:
        return ""
    if float(price).is_integer():
        return str(int(price))
    return repr(float(price))
