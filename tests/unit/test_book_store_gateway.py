"""Tests for the in-memory and SQL book store gateways."""

from __future__ import annotations

from datetime import timedelta

import pytest
import sqlalchemy as sa

from backend.app.config import Settings, StoreConfig
from backend.app.domain.catalog import (
    BookNotFoundError,
    BookStoreError,
    InMemoryBookStoreGateway,
    PostgresBookStoreGateway,
    build_book_store_gateway,
)
from backend.app.infra.db.schema import build_books_table
from tests.helpers.catalog import BASE_TIME, CountingGateway, SnapshotRecorder, seed_book

pytestmark = [pytest.mark.catalog]


def _fields(title: str, minutes: int = 0, **extra):
    fields = {
        "title": title,
        "author": "Binder",
        "price": None,
        "description": None,
        "photos": [f"https://img.example.test/{title}.jpg"],
        "created_at": BASE_TIME + timedelta(minutes=minutes),
    }
    fields.update(extra)
    return fields


@pytest.fixture()
def sql_gateway() -> PostgresBookStoreGateway:
    engine = sa.create_engine("sqlite+pysqlite:///:memory:", future=True)
    metadata = sa.MetaData()
    books = build_books_table(metadata)
    metadata.create_all(engine)
    return PostgresBookStoreGateway(engine, table=books)


@pytest.fixture(params=["memory", "sql"])
def gateway(request, sql_gateway):
    if request.param == "memory":
        return InMemoryBookStoreGateway()
    return sql_gateway


def test_create_then_get_returns_stored_fields(gateway):
    book_id = gateway.create_book(_fields("Atlas"))

    document = gateway.get_book(book_id)

    assert document is not None
    assert document.book_id == book_id
    assert document.get("title") == "Atlas"
    assert document.get("price") is None
    assert document.get("photos") == ["https://img.example.test/Atlas.jpg"]


def test_get_missing_book_returns_none(gateway):
    assert gateway.get_book("does-not-exist") is None


def test_create_rejects_unknown_fields(gateway):
    with pytest.raises(ValueError):
        gateway.create_book({**_fields("Atlas"), "isbn": "123"})


def test_update_replaces_given_fields_and_stamps_updated_at(gateway):
    book_id = gateway.create_book(_fields("Atlas", price=10.0))

    updated = gateway.update_book(book_id, {"title": "Atlas II", "price": None})

    assert updated.get("title") == "Atlas II"
    assert updated.get("price") is None
    assert updated.get("author") == "Binder"
    assert updated.get("updated_at") is not None
    assert gateway.get_book(book_id).get("title") == "Atlas II"


def test_update_missing_book_raises_not_found(gateway):
    with pytest.raises(BookNotFoundError) as excinfo:
        gateway.update_book("ghost", {"title": "x"})

    assert excinfo.value.book_id == "ghost"
    assert str(excinfo.value) == "Book ghost not found"


def test_delete_is_idempotent(gateway):
    book_id = gateway.create_book(_fields("Atlas"))

    assert gateway.delete_book(book_id) is True
    assert gateway.delete_book(book_id) is False
    assert gateway.get_book(book_id) is None


def test_list_books_newest_first_by_default(gateway):
    old = gateway.create_book(_fields("old", minutes=0))
    new = gateway.create_book(_fields("new", minutes=10))
    middle = gateway.create_book(_fields("middle", minutes=5))

    ids = [doc.book_id for doc in gateway.list_books()]

    assert ids == [new, middle, old]


def test_list_books_ascending_by_title(gateway):
    gateway.create_book(_fields("Bravo"))
    gateway.create_book(_fields("alpha"))
    gateway.create_book(_fields("Charlie"))

    titles = [doc.get("title") for doc in gateway.list_books("title", "asc")]

    assert [title.lower() for title in titles] == ["alpha", "bravo", "charlie"]


def test_list_books_puts_missing_sort_values_last(gateway):
    never_updated = gateway.create_book(_fields("never"))
    edited = gateway.create_book(_fields("edited"))
    gateway.update_book(edited, {"title": "edited again"})

    ids = [doc.book_id for doc in gateway.list_books("updated_at", "desc")]

    assert ids == [edited, never_updated]


def test_list_books_rejects_unknown_ordering(gateway):
    with pytest.raises(ValueError):
        gateway.list_books("price", "desc")
    with pytest.raises(ValueError):
        gateway.list_books("title", "sideways")


def test_subscription_receives_initial_and_post_write_snapshots(gateway):
    recorder = SnapshotRecorder()
    first = gateway.create_book(_fields("first", minutes=0))

    subscription = gateway.subscribe_list(recorder)
    second = gateway.create_book(_fields("second", minutes=1))
    gateway.delete_book(first)

    assert recorder.snapshots == [[first], [second, first], [second]]
    subscription.cancel()


def test_cancelled_subscription_gets_no_more_snapshots(gateway):
    recorder = SnapshotRecorder()

    with gateway.subscribe_list(recorder) as subscription:
        assert gateway.active_subscriptions == 1
    gateway.create_book(_fields("after"))

    assert recorder.snapshots == [[]]
    assert subscription.active is False
    assert subscription.cancel() is False
    assert gateway.active_subscriptions == 0


def test_memory_gateway_keeps_legacy_layout_verbatim():
    gateway = CountingGateway()
    seed_book(gateway, "legacy", photos={"front": "a", "back": "b"})

    document = gateway.get_book("legacy")

    assert document.get("photos") == {"front": "a", "back": "b"}


def test_sql_gateway_wraps_driver_errors(sql_gateway):
    with sql_gateway._engine.begin() as conn:
        conn.execute(sa.text("DROP TABLE books"))

    with pytest.raises(BookStoreError):
        sql_gateway.list_books()
    with pytest.raises(BookStoreError):
        sql_gateway.create_book(_fields("Atlas"))


def test_sql_gateway_poller_disabled_without_interval(sql_gateway):
    recorder = SnapshotRecorder()

    subscription = sql_gateway.subscribe_list(recorder)

    assert sql_gateway._poller.enabled is False
    assert sql_gateway._poller.running is False
    subscription.cancel()


def test_build_gateway_returns_memory_backend():
    settings = Settings(store=StoreConfig(backend="memory"))

    assert isinstance(build_book_store_gateway(settings), InMemoryBookStoreGateway)


def test_build_gateway_falls_back_to_memory_when_postgres_unreachable():
    settings = Settings(
        database_url="sqlite+pysqlite:///:memory:",
        store=StoreConfig(backend="postgres", fallback_to_memory=True),
    )

    # No books table exists in a fresh SQLite database, so reflection fails.
    assert isinstance(build_book_store_gateway(settings), InMemoryBookStoreGateway)


def test_build_gateway_raises_without_fallback():
    settings = Settings(
        database_url="sqlite+pysqlite:///:memory:",
        store=StoreConfig(backend="postgres", fallback_to_memory=False),
    )

    with pytest.raises(Exception):
        build_book_store_gateway(settings)


def test_sql_gateway_close_stops_the_poller():
    engine = sa.create_engine("sqlite+pysqlite:///:memory:", future=True)
    metadata = sa.MetaData()
    books = build_books_table(metadata)
    metadata.create_all(engine)
    gateway = PostgresBookStoreGateway(engine, table=books, poll_interval_seconds=0.01)
    gateway.subscribe_list(SnapshotRecorder())
    assert gateway._poller.running is True

    gateway.close(timeout=1)

    assert gateway._poller.running is False
