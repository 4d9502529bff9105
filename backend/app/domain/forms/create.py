"""Create-book form."""

from __future__ import annotations

from typing import Iterable, Optional

from ...infra.image_host import UploadSource
from ...infra.logging import get_logger
from ..navigation import LISTING_PATH
from .common import BaseBookForm, selected_files, text_fields
from .types import (
    MISSING_PHOTOS_MESSAGE,
    BookFormError,
    BookFormInput,
    FormErrorKind,
    FormResult,
)

__all__ = ["CreateBookForm"]

logger = get_logger(__name__)


class CreateBookForm(BaseBookForm):
    """Uploads the selected photos, then writes one new book record.

    Nothing is written unless every upload succeeded. Photos uploaded before a
    failing one stay on the image host.
    """

    action = "create"

    def submit(
        self,
        values: BookFormInput,
        files: Optional[Iterable[UploadSource]],
    ) -> FormResult:
        self._begin_submit()
        return self._run(lambda: self._create(values, files))

    def _create(
        self,
        values: BookFormInput,
        files: Optional[Iterable[UploadSource]],
    ) -> FormResult:
        sources = selected_files(files)
        if not sources:
            raise BookFormError(FormErrorKind.VALIDATION, MISSING_PHOTOS_MESSAGE)
        fields = text_fields(values)

        fields["photos"] = self._upload(sources)
        fields["created_at"] = self._clock()
        book_id = self._gateway.create_book(fields)

        logger.info(
            "book_form_created",
            extra={"book_id": book_id, "photo_count": len(fields["photos"])},
        )
        self._event_emitter.emit(
            "book_created",
            {"book_id": book_id, "photo_count": len(fields["photos"])},
        )
        return FormResult(ok=True, navigate_to=LISTING_PATH, book_id=book_id)
