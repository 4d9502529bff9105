"""Edit-book form."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ...infra.image_host import UploadSource
from ...infra.logging import get_logger
from ..catalog.models import Book
from ..navigation import LISTING_PATH
from .common import BaseBookForm, selected_files, text_fields
from .types import (
    LOAD_ERROR_MESSAGE,
    MISSING_PHOTOS_MESSAGE,
    NOT_FOUND_MESSAGE,
    BookFormError,
    BookFormInput,
    FormErrorKind,
    FormResult,
    FormState,
    FormValues,
)

__all__ = ["EditBookForm"]

logger = get_logger(__name__)


class EditBookForm(BaseBookForm):
    """Loads one book, then updates it in place.

    States: ``loading`` until :meth:`load` runs, then ``idle`` (ready),
    ``not_found`` or ``load_error``; the last two are terminal.

    New files replace every existing photo; without new files the stored
    sequence is written back unchanged.
    """

    action = "update"
    store_error_message = "Could not update the book, please try again."

    def __init__(self, book_id: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.book_id = book_id
        self.state = FormState.LOADING
        self.values: Optional[FormValues] = None

    @property
    def photos(self) -> List[str]:
        return list(self.values.photos) if self.values else []

    def load(self) -> FormState:
        if self.state is not FormState.LOADING:
            return self.state
        try:
            document = self._gateway.get_book(self.book_id)
        except Exception:
            logger.exception("book_form_load_failed", extra={"book_id": self.book_id})
            return self._terminal(FormState.LOAD_ERROR, LOAD_ERROR_MESSAGE)
        if document is None:
            logger.info("book_form_load_not_found", extra={"book_id": self.book_id})
            return self._terminal(FormState.NOT_FOUND, NOT_FOUND_MESSAGE)

        self.values = FormValues.from_book(Book.from_document(document))
        self.state = FormState.IDLE
        return self.state

    def submit(
        self,
        values: BookFormInput,
        new_files: Optional[Iterable[UploadSource]] = None,
    ) -> FormResult:
        self._begin_submit()
        return self._run(lambda: self._update(values, new_files))

    def _update(
        self,
        values: BookFormInput,
        new_files: Optional[Iterable[UploadSource]],
    ) -> FormResult:
        fields = text_fields(values)
        sources = selected_files(new_files)
        if not sources and not self.photos:
            raise BookFormError(FormErrorKind.VALIDATION, MISSING_PHOTOS_MESSAGE)

        photos = self._upload(sources) if sources else self.photos
        fields["photos"] = photos
        fields["updated_at"] = self._clock()
        self._gateway.update_book(self.book_id, fields)

        self.values = FormValues(
            title=fields["title"],
            author=fields["author"],
            price=values.price.strip() if values.price else "",
            description=fields["description"] or "",
            photos=tuple(photos),
        )
        logger.info(
            "book_form_updated",
            extra={
                "book_id": self.book_id,
                "photos_replaced": bool(sources),
                "photo_count": len(photos),
            },
        )
        self._event_emitter.emit(
            "book_updated",
            {"book_id": self.book_id, "photos_replaced": bool(sources)},
        )
        return FormResult(ok=True, navigate_to=LISTING_PATH, book_id=self.book_id)

    def _terminal(self, state: FormState, message: str) -> FormState:
        self.state = state
        self.error = message
        self.error_kind = (
            FormErrorKind.NOT_FOUND if state is FormState.NOT_FOUND else FormErrorKind.STORE
        )
        return state
