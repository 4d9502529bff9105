"""Book store gateway implementations."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol
from uuid import uuid4

from sqlalchemy import MetaData, Table, delete, func, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ...config import Settings, load_settings
from ...infra.db import get_engine
from ...infra.logging import get_logger
from .models import BookDocument, utcnow, validate_field_names
from .subscriptions import (
    BookSubscription,
    SnapshotBroadcaster,
    SnapshotListener,
    SnapshotPoller,
)

__all__ = [
    "BookNotFoundError",
    "BookStoreError",
    "BookStoreGateway",
    "InMemoryBookStoreGateway",
    "PostgresBookStoreGateway",
    "SORTABLE_FIELDS",
    "build_book_store_gateway",
]

logger = get_logger(__name__)

SORTABLE_FIELDS = ("created_at", "updated_at", "title", "author")
SORT_DIRECTIONS = ("asc", "desc")
TEXT_SORT_FIELDS = ("title", "author")


class BookStoreError(RuntimeError):
    """Transport or backend failure while talking to the store."""


class BookNotFoundError(KeyError):
    """Raised when updating a record that does not exist."""

    def __init__(self, book_id: str) -> None:
        super().__init__(f"Book {book_id} not found")
        self.book_id = book_id

    def __str__(self) -> str:
        return self.args[0]


class BookStoreGateway(Protocol):  # pragma: no cover
    """Operations the forms and views need from the book store."""

    def create_book(self, fields: Mapping[str, Any]) -> str: ...

    def get_book(self, book_id: str) -> Optional[BookDocument]: ...

    def update_book(self, book_id: str, fields: Mapping[str, Any]) -> BookDocument: ...

    def delete_book(self, book_id: str) -> bool: ...

    def list_books(
        self, order_by: str = "created_at", direction: str = "desc"
    ) -> List[BookDocument]: ...

    def subscribe_list(
        self,
        listener: SnapshotListener,
        order_by: str = "created_at",
        direction: str = "desc",
    ) -> BookSubscription: ...

    def close(self) -> None: ...


class InMemoryBookStoreGateway(BookStoreGateway):
    """Simple in-memory book store used for local development and tests."""

    def __init__(self) -> None:
        self._books: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._broadcaster = SnapshotBroadcaster(self.list_books)

    def create_book(self, fields: Mapping[str, Any]) -> str:
        validate_field_names(fields)
        record = dict(fields)
        record.setdefault("created_at", utcnow())
        book_id = str(uuid4())
        with self._lock:
            self._books[book_id] = record
        logger.info("book_created", extra={"book_id": book_id, "store": "memory"})
        self._broadcaster.notify()
        return book_id

    def get_book(self, book_id: str) -> Optional[BookDocument]:
        with self._lock:
            record = self._books.get(book_id)
            if record is None:
                return None
            return BookDocument(book_id=book_id, fields=dict(record))

    def update_book(self, book_id: str, fields: Mapping[str, Any]) -> BookDocument:
        validate_field_names(fields)
        with self._lock:
            record = self._books.get(book_id)
            if record is None:
                raise BookNotFoundError(book_id)
            updated = dict(record)
            updated.update(fields)
            updated["updated_at"] = fields.get("updated_at") or utcnow()
            self._books[book_id] = updated
            document = BookDocument(book_id=book_id, fields=dict(updated))
        logger.info("book_updated", extra={"book_id": book_id, "store": "memory"})
        self._broadcaster.notify()
        return document

    def delete_book(self, book_id: str) -> bool:
        with self._lock:
            removed = self._books.pop(book_id, None) is not None
        logger.info(
            "book_deleted",
            extra={"book_id": book_id, "store": "memory", "removed": removed},
        )
        if removed:
            self._broadcaster.notify()
        return removed

    def list_books(
        self, order_by: str = "created_at", direction: str = "desc"
    ) -> List[BookDocument]:
        _validate_ordering(order_by, direction)
        with self._lock:
            documents = [
                BookDocument(book_id=book_id, fields=dict(record))
                for book_id, record in self._books.items()
            ]
        reverse = direction == "desc"
        # Secondary key first: sort is stable, so ties keep id order.
        documents.sort(key=lambda doc: doc.book_id, reverse=reverse)
        present = [doc for doc in documents if doc.get(order_by) is not None]
        missing = [doc for doc in documents if doc.get(order_by) is None]
        present.sort(key=lambda doc: _sort_value(doc.get(order_by)), reverse=reverse)
        return present + missing

    def subscribe_list(
        self,
        listener: SnapshotListener,
        order_by: str = "created_at",
        direction: str = "desc",
    ) -> BookSubscription:
        _validate_ordering(order_by, direction)
        return self._broadcaster.subscribe(
            listener, order_by=order_by, direction=direction
        )

    def close(self) -> None:
        logger.debug("book_store_closed", extra={"store": "memory"})

    @property
    def active_subscriptions(self) -> int:
        return self._broadcaster.active_count


class PostgresBookStoreGateway(BookStoreGateway):
    """SQLAlchemy-backed adapter that persists books to PostgreSQL."""

    def __init__(
        self,
        engine: Optional[Engine] = None,
        *,
        table: Optional[Table] = None,
        poll_interval_seconds: float = 0.0,
    ) -> None:
        self._engine = engine or get_engine()
        if table is not None:
            self._books = table
        else:
            self._books = Table("books", MetaData(), autoload_with=self._engine)
        self._broadcaster = SnapshotBroadcaster(self.list_books)
        self._poller = SnapshotPoller(
            self._broadcaster, interval_seconds=poll_interval_seconds
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create_book(self, fields: Mapping[str, Any]) -> str:
        validate_field_names(fields)
        values = dict(fields)
        values.setdefault("created_at", utcnow())
        book_id = str(uuid4())
        stmt = insert(self._books).values(book_id=book_id, **values)
        with self._transaction("create") as conn:
            conn.execute(stmt)
        logger.info("book_created", extra={"book_id": book_id, "store": "postgres"})
        self._broadcaster.notify()
        return book_id

    def update_book(self, book_id: str, fields: Mapping[str, Any]) -> BookDocument:
        validate_field_names(fields)
        values = dict(fields)
        values["updated_at"] = values.get("updated_at") or utcnow()
        stmt = (
            update(self._books)
            .where(self._books.c.book_id == book_id)
            .values(**values)
            .returning(self._books)
        )
        with self._transaction("update") as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None:
            raise BookNotFoundError(book_id)
        logger.info("book_updated", extra={"book_id": book_id, "store": "postgres"})
        self._broadcaster.notify()
        return _row_to_document(row)

    def delete_book(self, book_id: str) -> bool:
        stmt = delete(self._books).where(self._books.c.book_id == book_id)
        with self._transaction("delete") as conn:
            removed = conn.execute(stmt).rowcount > 0
        logger.info(
            "book_deleted",
            extra={"book_id": book_id, "store": "postgres", "removed": removed},
        )
        if removed:
            self._broadcaster.notify()
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_book(self, book_id: str) -> Optional[BookDocument]:
        stmt = select(self._books).where(self._books.c.book_id == book_id)
        with self._transaction("get") as conn:
            row = conn.execute(stmt).mappings().first()
        if row is None:
            return None
        return _row_to_document(row)

    def list_books(
        self, order_by: str = "created_at", direction: str = "desc"
    ) -> List[BookDocument]:
        _validate_ordering(order_by, direction)
        column = self._books.c[order_by]
        if order_by in TEXT_SORT_FIELDS:
            column = func.lower(column)
        id_column = self._books.c.book_id
        if direction == "desc":
            order_clause = (column.desc().nulls_last(), id_column.desc())
        else:
            order_clause = (column.asc().nulls_last(), id_column.asc())
        stmt = select(self._books).order_by(*order_clause)
        with self._transaction("list") as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_row_to_document(row) for row in rows]

    def subscribe_list(
        self,
        listener: SnapshotListener,
        order_by: str = "created_at",
        direction: str = "desc",
    ) -> BookSubscription:
        _validate_ordering(order_by, direction)
        subscription = self._broadcaster.subscribe(
            listener, order_by=order_by, direction=direction
        )
        self._poller.ensure_running()
        return subscription

    def close(self, timeout: float = 5.0) -> None:
        """Stop the background poller; open subscriptions get no further polls."""

        self._poller.stop(timeout)
        logger.info("book_store_closed", extra={"store": "postgres"})

    @property
    def active_subscriptions(self) -> int:
        return self._broadcaster.active_count

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _transaction(self, operation: str):
        return _guarded_transaction(self._engine, operation)


@contextmanager
def _guarded_transaction(engine: Engine, operation: str) -> Iterator[Connection]:
    """``engine.begin()`` that reports driver failures as BookStoreError."""

    try:
        with engine.begin() as conn:
            yield conn
    except SQLAlchemyError as exc:
        logger.warning(
            "book_store_operation_failed",
            extra={"operation": operation, "error": str(exc)},
        )
        raise BookStoreError(f"Book store {operation} failed") from exc


def build_book_store_gateway(settings: Optional[Settings] = None) -> BookStoreGateway:
    """Factory that returns the configured book store implementation."""

    settings = settings or load_settings()
    store = settings.store
    if store.backend == "postgres":
        try:
            return PostgresBookStoreGateway(
                get_engine(settings.database_url),
                poll_interval_seconds=store.poll_interval_seconds,
            )
        except Exception:
            if not store.fallback_to_memory:
                raise
            logger.warning(
                "postgres_book_store_unavailable_falling_back",
                exc_info=True,
            )
    return InMemoryBookStoreGateway()


def _validate_ordering(order_by: str, direction: str) -> None:
    if order_by not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot order books by {order_by!r}")
    if direction not in SORT_DIRECTIONS:
        raise ValueError(f"Sort direction must be 'asc' or 'desc', got {direction!r}")


def _sort_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, datetime):
        return value.timestamp()
    return value


def _row_to_document(row: Mapping[str, Any]) -> BookDocument:
    fields = {key: value for key, value in row.items() if key != "book_id"}
    return BookDocument(book_id=row["book_id"], fields=fields)
