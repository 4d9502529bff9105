"""Book portfolio endpoints: listing, live stream, create/edit forms, delete."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Literal, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ...api.dependencies import get_book_gateway, get_image_uploader, get_settings
from ...config import Settings
from ...domain.catalog.gateway import SORTABLE_FIELDS, BookStoreError, BookStoreGateway
from ...domain.forms import (
    BookFormInput,
    CreateBookForm,
    EditBookForm,
    FormErrorKind,
    FormResult,
    FormState,
)
from ...domain.listing import BookListView
from ...infra.events import EventEmitter, get_event_emitter
from ...infra.image_host import ImageUploader, UploadSource
from ...infra.logging import get_logger
from ...infra.metrics import get_metrics_client

router = APIRouter(prefix="/api/books", tags=["books"])
logger = get_logger(__name__)
metrics = get_metrics_client()

KEEP_ALIVE_COMMENT = ": keep-alive\n\n"
SORT_DIRECTIONS = ("asc", "desc")

ERROR_CODES: Dict[FormErrorKind, tuple[int, str]] = {
    FormErrorKind.VALIDATION: (status.HTTP_422_UNPROCESSABLE_CONTENT, "BOOK-VALIDATION"),
    FormErrorKind.UPLOAD: (status.HTTP_502_BAD_GATEWAY, "BOOK-UPLOAD-FAILED"),
    FormErrorKind.STORE: (status.HTTP_503_SERVICE_UNAVAILABLE, "BOOK-STORE-UNAVAILABLE"),
    FormErrorKind.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "BOOK-NOT-FOUND"),
    FormErrorKind.UNEXPECTED: (status.HTTP_500_INTERNAL_SERVER_ERROR, "BOOK-UNEXPECTED"),
}


class PhotoView(BaseModel):
    src: str
    alt: str


class BookCardView(BaseModel):
    book_id: str
    title: str
    author: str
    description: Optional[str] = None
    price: Optional[float] = None
    photo: PhotoView
    current_index: int
    photo_count: int
    can_navigate: bool
    dots: List[bool]
    edit_path: str


class BookListResponse(BaseModel):
    status: Literal["loading", "empty", "ready"]
    message: Optional[str] = None
    books: List[BookCardView]
    create_path: str


class BookSubmitResponse(BaseModel):
    book_id: str
    navigate_to: str


class EditFormResponse(BaseModel):
    book_id: str
    title: str
    author: str
    price: str
    description: str
    photos: List[str]


@router.get("", response_model=BookListResponse)
def list_books(
    order_by: str = Query("created_at"),
    direction: str = Query("desc"),
    gateway: BookStoreGateway = Depends(get_book_gateway),
) -> Dict[str, Any]:
    _validate_ordering(order_by, direction)
    try:
        with BookListView(gateway, order_by=order_by, direction=direction) as view:
            return view.render()
    except BookStoreError as exc:
        logger.warning("books_api_list_failed", extra={"error": str(exc)})
        raise _http_error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "BOOK-STORE-UNAVAILABLE",
            "Could not load books, please try again.",
        ) from exc


@router.get("/stream")
def stream_books(
    request: Request,
    order_by: str = Query("created_at"),
    direction: str = Query("desc"),
    gateway: BookStoreGateway = Depends(get_book_gateway),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """Server-sent events: one ``snapshot`` event per delivered book list."""

    _validate_ordering(order_by, direction)
    events = snapshot_events(
        gateway,
        order_by=order_by,
        direction=direction,
        heartbeat_seconds=settings.streaming.heartbeat_seconds,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("", response_model=BookSubmitResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    title: str = Form(""),
    author: str = Form(""),
    price: str = Form(""),
    description: str = Form(""),
    photos: Optional[List[UploadFile]] = File(None),
    gateway: BookStoreGateway = Depends(get_book_gateway),
    uploader: ImageUploader = Depends(get_image_uploader),
    event_emitter: EventEmitter = Depends(get_event_emitter),
) -> BookSubmitResponse:
    form = CreateBookForm(uploader=uploader, gateway=gateway, event_emitter=event_emitter)
    values = BookFormInput(title=title, author=author, price=price, description=description)
    sources = await _read_uploads(photos)
    result = await run_in_threadpool(form.submit, values, sources)
    return _submit_response(result)


@router.get("/{book_id}/edit", response_model=EditFormResponse)
def load_edit_form(
    book_id: str,
    gateway: BookStoreGateway = Depends(get_book_gateway),
    uploader: ImageUploader = Depends(get_image_uploader),
) -> EditFormResponse:
    form = EditBookForm(book_id, uploader=uploader, gateway=gateway)
    _load_or_raise(form)
    values = form.values
    return EditFormResponse(
        book_id=book_id,
        title=values.title,
        author=values.author,
        price=values.price,
        description=values.description,
        photos=list(values.photos),
    )


@router.put("/{book_id}", response_model=BookSubmitResponse)
async def update_book(
    book_id: str,
    title: str = Form(""),
    author: str = Form(""),
    price: str = Form(""),
    description: str = Form(""),
    photos: Optional[List[UploadFile]] = File(None),
    gateway: BookStoreGateway = Depends(get_book_gateway),
    uploader: ImageUploader = Depends(get_image_uploader),
    event_emitter: EventEmitter = Depends(get_event_emitter),
) -> BookSubmitResponse:
    form = EditBookForm(
        book_id, uploader=uploader, gateway=gateway, event_emitter=event_emitter
    )
    await run_in_threadpool(_load_or_raise, form)
    values = BookFormInput(title=title, author=author, price=price, description=description)
    sources = await _read_uploads(photos)
    result = await run_in_threadpool(form.submit, values, sources)
    return _submit_response(result)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(
    book_id: str,
    confirm: bool = Query(False, description="Must be true; mirrors the confirmation prompt."),
    gateway: BookStoreGateway = Depends(get_book_gateway),
    event_emitter: EventEmitter = Depends(get_event_emitter),
) -> Response:
    if not confirm:
        raise _http_error(
            status.HTTP_400_BAD_REQUEST,
            "BOOK-CONFIRMATION-REQUIRED",
            "Deleting a book requires confirm=true",
            {"book_id": book_id},
        )
    try:
        removed = gateway.delete_book(book_id)
    except BookStoreError as exc:
        logger.warning(
            "books_api_delete_failed", extra={"book_id": book_id, "error": str(exc)}
        )
        raise _http_error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "BOOK-STORE-UNAVAILABLE",
            "Could not delete the book, please try again.",
            {"book_id": book_id},
        ) from exc
    metrics.increment("books_delete_total")
    if removed:
        event_emitter.emit("book_deleted", {"book_id": book_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def snapshot_events(
    gateway: BookStoreGateway,
    *,
    order_by: str,
    direction: str,
    heartbeat_seconds: float,
    is_disconnected=None,
) -> AsyncIterator[str]:
    """Yield SSE frames for a mounted list view until the client goes away.

    Mounting reads the store, so it runs in the threadpool; snapshots from
    writer threads are handed to the loop through an ``asyncio.Queue``.
    """

    loop = asyncio.get_running_loop()
    updates: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def push(view_model: Dict[str, Any]) -> None:
        loop.call_soon_threadsafe(updates.put_nowait, view_model)

    view = BookListView(gateway, order_by=order_by, direction=direction, on_change=push)
    metrics.increment("books_stream_opened_total")
    try:
        try:
            await run_in_threadpool(view.mount)
        except BookStoreError as exc:
            logger.warning("books_stream_subscribe_failed", extra={"error": str(exc)})
            yield format_sse_event(
                "error",
                {
                    "error_code": "BOOK-STORE-UNAVAILABLE",
                    "message": "Could not load books, please try again.",
                },
            )
            return
        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                view_model = await asyncio.wait_for(updates.get(), heartbeat_seconds)
            except asyncio.TimeoutError:
                yield KEEP_ALIVE_COMMENT
                continue
            yield format_sse_event("snapshot", view_model)
    finally:
        view.unmount()
        logger.debug("books_stream_closed")


def format_sse_event(event: str, payload: Dict[str, Any]) -> str:
    data = json.dumps(jsonable_encoder(payload), separators=(",", ":"))
    return f"event: {event}\ndata: {data}\n\n"


async def _read_uploads(files: Optional[List[UploadFile]]) -> List[UploadSource]:
    sources: List[UploadSource] = []
    for upload in files or []:
        if not upload.filename:
            continue
        content = await upload.read()
        sources.append(
            UploadSource(
                filename=upload.filename,
                content=content,
                content_type=upload.content_type or "application/octet-stream",
            )
        )
    return sources


def _load_or_raise(form: EditBookForm) -> None:
    state = form.load()
    if state is FormState.NOT_FOUND:
        raise _http_error(
            status.HTTP_404_NOT_FOUND,
            "BOOK-NOT-FOUND",
            form.error or "Book not found.",
            {"book_id": form.book_id},
        )
    if state is FormState.LOAD_ERROR:
        raise _http_error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "BOOK-STORE-UNAVAILABLE",
            form.error or "Could not load the book.",
            {"book_id": form.book_id},
        )


def _submit_response(result: FormResult) -> BookSubmitResponse:
    if result.ok:
        return BookSubmitResponse(
            book_id=result.book_id or "", navigate_to=result.navigate_to or "/"
        )
    kind = result.error_kind or FormErrorKind.UNEXPECTED
    status_code, error_code = ERROR_CODES[kind]
    raise _http_error(status_code, error_code, result.error or "", {"kind": kind.value})


def _validate_ordering(order_by: str, direction: str) -> None:
    if order_by not in SORTABLE_FIELDS:
        raise _http_error(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            "BOOK-INVALID-REQUEST",
            f"order_by must be one of {', '.join(SORTABLE_FIELDS)}",
            {"order_by": order_by},
        )
    if direction not in SORT_DIRECTIONS:
        raise _http_error(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            "BOOK-INVALID-REQUEST",
            "direction must be asc or desc",
            {"direction": direction},
        )


def _http_error(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": error_code,
            "message": message,
            "details": details or {},
        },
    )
