"""Tests for snapshot broadcasting, subscription handles and the poller."""

from __future__ import annotations

import threading
from typing import List, Optional

import pytest

from backend.app.domain.catalog import BookDocument, SnapshotBroadcaster, SnapshotPoller
from backend.app.domain.catalog import subscriptions as subscriptions_module
from backend.app.domain.catalog.gateway import InMemoryBookStoreGateway
from backend.app.domain.listing import BookListView
from backend.app.infra.metrics import InMemoryMetricsClient
from tests.helpers.catalog import SnapshotRecorder
from tests.helpers.logging import RecordingLogger, find_log

pytestmark = [pytest.mark.catalog]


class FakeStore:
    def __init__(self) -> None:
        self.ids: List[str] = []
        self.fetches = 0
        self.fail = False

    def fetch(self, order_by: str, direction: str) -> List[BookDocument]:
        self.fetches += 1
        if self.fail:
            raise RuntimeError("store offline")
        ordered = sorted(self.ids, reverse=direction == "desc")
        return [BookDocument(book_id, {"title": book_id}) for book_id in ordered]


def test_subscribe_delivers_initial_snapshot_synchronously():
    store = FakeStore()
    store.ids = ["a", "b"]
    broadcaster = SnapshotBroadcaster(store.fetch)
    recorder = SnapshotRecorder()

    broadcaster.subscribe(recorder, order_by="title", direction="asc")

    assert recorder.snapshots == [["a", "b"]]
    assert broadcaster.active_count == 1


def test_publish_fetches_once_per_ordering():
    store = FakeStore()
    broadcaster = SnapshotBroadcaster(store.fetch)
    asc_a, asc_b, desc = SnapshotRecorder(), SnapshotRecorder(), SnapshotRecorder()
    broadcaster.subscribe(asc_a, order_by="title", direction="asc")
    broadcaster.subscribe(asc_b, order_by="title", direction="asc")
    broadcaster.subscribe(desc, order_by="title", direction="desc")
    store.fetches = 0
    store.ids = ["a", "b"]

    delivered = broadcaster.publish()

    assert delivered == 3
    assert store.fetches == 2
    assert asc_a.latest == ["a", "b"]
    assert desc.latest == ["b", "a"]


def test_publish_only_if_changed_skips_identical_snapshots():
    store = FakeStore()
    store.ids = ["a"]
    broadcaster = SnapshotBroadcaster(store.fetch)
    recorder = SnapshotRecorder()
    broadcaster.subscribe(recorder)

    assert broadcaster.publish(only_if_changed=True) == 0
    store.ids = ["a", "b"]
    assert broadcaster.publish(only_if_changed=True) == 1
    assert recorder.snapshots == [["a"], ["b", "a"]]


def test_cancel_happens_exactly_once():
    broadcaster = SnapshotBroadcaster(FakeStore().fetch)
    subscription = broadcaster.subscribe(SnapshotRecorder())

    assert subscription.cancel() is True
    assert subscription.cancel() is False
    assert broadcaster.active_count == 0


def test_failed_initial_fetch_does_not_leak_subscription():
    store = FakeStore()
    store.fail = True
    broadcaster = SnapshotBroadcaster(store.fetch)

    with pytest.raises(RuntimeError):
        broadcaster.subscribe(SnapshotRecorder())

    assert broadcaster.active_count == 0


def test_listener_errors_do_not_stop_other_listeners(monkeypatch):
    log = RecordingLogger()
    monkeypatch.setattr(subscriptions_module, "logger", log)
    broadcaster = SnapshotBroadcaster(FakeStore().fetch)
    calls = []

    def broken(snapshot):
        calls.append(len(snapshot))
        if len(calls) > 1:
            raise ValueError("render failed")

    recorder = SnapshotRecorder()
    broadcaster.subscribe(broken)
    broadcaster.subscribe(recorder)

    assert broadcaster.publish() == 1
    assert len(recorder.snapshots) == 2
    find_log(log.records, level="exception", message="book_subscription_listener_failed")


def test_notify_swallows_fetch_errors_and_logs(monkeypatch):
    log = RecordingLogger()
    monkeypatch.setattr(subscriptions_module, "logger", log)
    store = FakeStore()
    broadcaster = SnapshotBroadcaster(store.fetch)
    broadcaster.subscribe(SnapshotRecorder())
    store.fail = True

    assert broadcaster.notify() == 0
    find_log(log.records, level="exception", message="book_snapshot_publish_failed")


def test_poller_is_disabled_without_interval():
    poller = SnapshotPoller(SnapshotBroadcaster(FakeStore().fetch), interval_seconds=0)

    poller.ensure_running()

    assert poller.enabled is False
    assert poller.running is False


def test_poll_once_delivers_external_changes_only():
    store = FakeStore()
    broadcaster = SnapshotBroadcaster(store.fetch)
    recorder = SnapshotRecorder()
    broadcaster.subscribe(recorder)
    poller = SnapshotPoller(broadcaster, interval_seconds=60)

    assert poller.poll_once() == 0
    store.ids = ["written-elsewhere"]
    assert poller.poll_once() == 1
    assert recorder.latest == ["written-elsewhere"]


def test_poll_once_survives_store_errors():
    store = FakeStore()
    broadcaster = SnapshotBroadcaster(store.fetch)
    broadcaster.subscribe(SnapshotRecorder())
    store.fail = True

    assert SnapshotPoller(broadcaster, interval_seconds=60).poll_once() == 0


def test_poller_thread_starts_and_stops():
    broadcaster = SnapshotBroadcaster(FakeStore().fetch)
    subscription = broadcaster.subscribe(SnapshotRecorder())
    poller = SnapshotPoller(broadcaster, interval_seconds=0.01)

    poller.ensure_running()
    assert poller.running is True
    subscription.cancel()
    poller.stop(timeout=1)

    assert poller.running is False


def test_live_subscription_gauge_tracks_open_handles():
    metrics = InMemoryMetricsClient()
    broadcaster = SnapshotBroadcaster(FakeStore().fetch, metrics=metrics)

    first = broadcaster.subscribe(SnapshotRecorder())
    broadcaster.subscribe(SnapshotRecorder())
    assert metrics.snapshot()["gauges"] == {"books_live_subscriptions": 2}

    first.cancel()
    assert metrics.gauges["books_live_subscriptions"] == 1


class PausingGateway(InMemoryBookStoreGateway):
    """Holds one chosen thread inside its list re-read until released."""

    def __init__(self) -> None:
        super().__init__()
        self.paused_thread: Optional[threading.Thread] = None
        self.read_finished = threading.Event()
        self.release = threading.Event()

    def list_books(self, order_by: str = "created_at", direction: str = "desc"):
        documents = super().list_books(order_by, direction)
        if threading.current_thread() is self.paused_thread:
            self.paused_thread = None
            self.read_finished.set()
            self.release.wait(5)
        return documents


def _book_fields(title: str):
    return {"title": title, "author": "Binder", "photos": ["https://img.example.test/a.jpg"]}


def test_slow_writer_snapshot_never_overrides_a_later_delete():
    gateway = PausingGateway()
    doomed = gateway.create_book(_book_fields("Doomed"))
    recorder = SnapshotRecorder()
    gateway.subscribe_list(recorder)
    writer = threading.Thread(target=gateway.create_book, args=(_book_fields("Later"),))
    gateway.paused_thread = writer

    writer.start()
    assert gateway.read_finished.wait(5)
    gateway.delete_book(doomed)
    gateway.release.set()
    writer.join(5)

    stored = [doc.book_id for doc in gateway.list_books()]
    assert doomed not in stored
    assert recorder.latest == stored


def test_concurrent_writers_leave_the_list_view_matching_the_store():
    gateway = PausingGateway()
    doomed = gateway.create_book(_book_fields("Doomed"))
    with BookListView(gateway) as view:
        writer = threading.Thread(target=gateway.create_book, args=(_book_fields("Later"),))
        gateway.paused_thread = writer
        writer.start()
        assert gateway.read_finished.wait(5)
        gateway.delete_book(doomed)
        gateway.release.set()
        writer.join(5)

        shown = [card.book_id for card in view.cards]

    assert shown == [doc.book_id for doc in gateway.list_books()]
    assert doomed not in shown


def test_subscription_drops_snapshots_older_than_the_last_delivered():
    store = FakeStore()
    store.ids = ["a"]
    broadcaster = SnapshotBroadcaster(store.fetch)
    recorder = SnapshotRecorder()
    subscription = broadcaster.subscribe(recorder)
    newer = [BookDocument("b", {"title": "b"})]
    older = [BookDocument("a", {"title": "a"})]

    assert subscription.deliver(newer, 10) is True
    assert subscription.deliver(older, 9) is False
    assert recorder.latest == ["b"]
