"""Validation and submission plumbing shared by the create and edit forms."""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, Iterable, List, Optional

from ...infra.events import EventEmitter, get_event_emitter
from ...infra.image_host import ImageUploader, ImageUploadError, UploadSource, upload_batch
from ...infra.logging import get_logger
from ...infra.metrics import MetricsClient, get_metrics_client
from ..catalog.gateway import BookNotFoundError, BookStoreError, BookStoreGateway
from ..catalog.models import utcnow
from .types import (
    AUTHOR_REQUIRED_MESSAGE,
    NOT_FOUND_MESSAGE,
    PRICE_INVALID_MESSAGE,
    PRICE_NEGATIVE_MESSAGE,
    TITLE_REQUIRED_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    BookFormError,
    BookFormInput,
    FormErrorKind,
    FormResult,
    FormState,
)

logger = get_logger(__name__)

Clock = Callable[[], Any]


def parse_price(text: Optional[str]) -> Optional[float]:
    """Empty input means "not for sale" (None), never zero."""

    cleaned = (text or "").strip()
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError as exc:
        raise BookFormError(FormErrorKind.VALIDATION, PRICE_INVALID_MESSAGE) from exc
    if not math.isfinite(value):
        raise BookFormError(FormErrorKind.VALIDATION, PRICE_INVALID_MESSAGE)
    if value < 0:
        raise BookFormError(FormErrorKind.VALIDATION, PRICE_NEGATIVE_MESSAGE)
    return value


def clean_description(text: Optional[str]) -> Optional[str]:
    return text or None


def selected_files(files: Optional[Iterable[UploadSource]]) -> List[UploadSource]:
    """Drop the empty parts browsers send when no file was picked."""

    return [source for source in (files or []) if source.filename]


def text_fields(values: BookFormInput) -> Dict[str, Any]:
    """Validate the typed fields and map them to stored values."""

    title = (values.title or "").strip()
    author = (values.author or "").strip()
    if not title:
        raise BookFormError(FormErrorKind.VALIDATION, TITLE_REQUIRED_MESSAGE)
    if not author:
        raise BookFormError(FormErrorKind.VALIDATION, AUTHOR_REQUIRED_MESSAGE)
    return {
        "title": title,
        "author": author,
        "price": parse_price(values.price),
        "description": clean_description(values.description),
    }


class BaseBookForm:
    """Submission state machine: idle -> submitting -> succeeded | idle + error."""

    action = "submit"
    store_error_message = "Could not save the book, please try again."

    def __init__(
        self,
        *,
        uploader: ImageUploader,
        gateway: BookStoreGateway,
        event_emitter: EventEmitter | None = None,
        metrics: MetricsClient | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._uploader = uploader
        self._gateway = gateway
        self._event_emitter = event_emitter or get_event_emitter()
        self._metrics = metrics or get_metrics_client()
        self._clock = clock
        self.state = FormState.IDLE
        self.error: Optional[str] = None
        self.error_kind: Optional[FormErrorKind] = None

    @property
    def is_submitting(self) -> bool:
        return self.state is FormState.SUBMITTING

    def _begin_submit(self) -> None:
        if self.state is not FormState.IDLE:
            raise RuntimeError(
                f"Cannot {self.action} a book form in state {self.state.value}"
            )
        self.state = FormState.SUBMITTING
        self.error = None
        self.error_kind = None
        self._metrics.increment(f"books_{self.action}_attempt_total")

    def _upload(self, sources: List[UploadSource]) -> List[str]:
        return upload_batch(self._uploader, sources)

    def _run(self, submission: Callable[[], FormResult]) -> FormResult:
        """Execute ``submission`` and turn every failure into a form error."""

        try:
            result = submission()
        except BookFormError as exc:
            return self._fail(exc.kind, exc.message)
        except ImageUploadError as exc:
            return self._fail(FormErrorKind.UPLOAD, str(exc))
        except BookNotFoundError:
            return self._fail(FormErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)
        except BookStoreError:
            return self._fail(FormErrorKind.STORE, self.store_error_message)
        except Exception:
            logger.exception("book_form_unexpected_error", extra={"action": self.action})
            return self._fail(FormErrorKind.UNEXPECTED, UNEXPECTED_ERROR_MESSAGE)
        self.state = FormState.SUCCEEDED
        self._metrics.increment(f"books_{self.action}_success_total")
        return result

    def _fail(self, kind: FormErrorKind, message: str) -> FormResult:
        self.state = FormState.IDLE
        self.error = message
        self.error_kind = kind
        self._metrics.increment(f"books_{self.action}_failed_total")
        logger.info(
            "book_form_submission_failed",
            extra={"action": self.action, "error_kind": kind.value, "error": message},
        )
        return FormResult(ok=False, error=message, error_kind=kind)
