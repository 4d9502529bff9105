"""Live list subscriptions over the book store."""

from __future__ import annotations

import itertools
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ...infra.logging import get_logger
from ...infra.metrics import MetricsClient, get_metrics_client
from .models import BookDocument

__all__ = [
    "BookSubscription",
    "SnapshotBroadcaster",
    "SnapshotListener",
    "SnapshotPoller",
]

logger = get_logger(__name__)

SnapshotListener = Callable[[List[BookDocument]], None]
SnapshotFetcher = Callable[[str, str], List[BookDocument]]
OrderKey = Tuple[str, str]
LIVE_SUBSCRIPTIONS_GAUGE = "books_live_subscriptions"


class BookSubscription:
    """Handle for one live list query; cancel it exactly once on teardown."""

    def __init__(
        self,
        listener: SnapshotListener,
        *,
        order_by: str,
        direction: str,
        release: Callable[["BookSubscription"], None],
    ) -> None:
        self._listener = listener
        self._release = release
        self._lock = threading.Lock()
        self._delivery_lock = threading.RLock()
        self._last_sequence = 0
        self._active = True
        self.order_by = order_by
        self.direction = direction

    @property
    def active(self) -> bool:
        return self._active

    @property
    def order_key(self) -> OrderKey:
        return (self.order_by, self.direction)

    def deliver(self, snapshot: List[BookDocument], sequence: int) -> bool:
        """Hand a snapshot to the listener unless a newer one already went out.

        ``sequence`` is taken when the snapshot's read starts; older reads that
        finish late are dropped.
        """

        with self._delivery_lock:
            if not self._active or sequence <= self._last_sequence:
                return False
            self._last_sequence = sequence
            self._listener(list(snapshot))
            return True

    def cancel(self) -> bool:
        """Release the subscription; later calls are no-ops returning False."""

        with self._lock:
            if not self._active:
                return False
            self._active = False
        self._release(self)
        return True

    def __enter__(self) -> "BookSubscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class SnapshotBroadcaster:
    """Pushes the full ordered list to every open subscription."""

    def __init__(self, fetch: SnapshotFetcher, *, metrics: MetricsClient | None = None) -> None:
        self._fetch = fetch
        self._metrics = metrics or get_metrics_client()
        self._lock = threading.RLock()
        self._subscriptions: List[BookSubscription] = []
        self._last_published: Dict[OrderKey, Tuple[int, List[BookDocument]]] = {}
        self._sequence = itertools.count(1)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(
        self,
        listener: SnapshotListener,
        *,
        order_by: str = "created_at",
        direction: str = "desc",
    ) -> BookSubscription:
        subscription = BookSubscription(
            listener,
            order_by=order_by,
            direction=direction,
            release=self._release,
        )
        with self._lock:
            self._subscriptions.append(subscription)
            self._metrics.gauge(LIVE_SUBSCRIPTIONS_GAUGE, len(self._subscriptions))
        logger.debug(
            "book_subscription_opened",
            extra={"order_by": order_by, "direction": direction},
        )
        try:
            sequence, snapshot = self._read(subscription.order_key)
        except Exception:
            subscription.cancel()
            raise
        self._deliver(subscription, snapshot, sequence)
        return subscription

    def publish(self, *, only_if_changed: bool = False) -> int:
        """Re-read the list and deliver it; returns the number of deliveries."""

        with self._lock:
            subscriptions = list(self._subscriptions)
        snapshots: Dict[OrderKey, Tuple[int, List[BookDocument], bool]] = {}
        delivered = 0
        for subscription in subscriptions:
            key = subscription.order_key
            if key not in snapshots:
                with self._lock:
                    previous = self._last_published.get(key)
                sequence, snapshot = self._read(key)
                changed = previous is None or snapshot != previous[1]
                snapshots[key] = (sequence, snapshot, changed)
            sequence, snapshot, changed = snapshots[key]
            if only_if_changed and not changed:
                continue
            if self._deliver(subscription, snapshot, sequence):
                delivered += 1
        return delivered

    def notify(self) -> int:
        """Publish after a local write; a failed re-read never fails the write."""

        try:
            return self.publish()
        except Exception:
            logger.exception("book_snapshot_publish_failed")
            return 0

    def _read(self, key: OrderKey) -> Tuple[int, List[BookDocument]]:
        with self._lock:
            sequence = next(self._sequence)
        snapshot = self._fetch(*key)
        with self._lock:
            latest = self._last_published.get(key)
            if latest is None or latest[0] < sequence:
                self._last_published[key] = (sequence, snapshot)
        return sequence, snapshot

    def _deliver(
        self,
        subscription: BookSubscription,
        snapshot: List[BookDocument],
        sequence: int,
    ) -> bool:
        try:
            return subscription.deliver(snapshot, sequence)
        except Exception:
            logger.exception(
                "book_subscription_listener_failed",
                extra={"order_by": subscription.order_by},
            )
            return False

    def _release(self, subscription: BookSubscription) -> None:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:  # pragma: no cover - cancel() guards double release
                return
            remaining = len(self._subscriptions)
            self._metrics.gauge(LIVE_SUBSCRIPTIONS_GAUGE, remaining)
            if not any(
                other.order_key == subscription.order_key
                for other in self._subscriptions
            ):
                self._last_published.pop(subscription.order_key, None)
        logger.debug(
            "book_subscription_closed", extra={"remaining_subscriptions": remaining}
        )


class SnapshotPoller:
    """Background re-read that catches writes made by other processes.

    Runs only while the broadcaster has open subscriptions.
    """

    def __init__(self, broadcaster: SnapshotBroadcaster, *, interval_seconds: float) -> None:
        self._broadcaster = broadcaster
        self._interval = interval_seconds
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def ensure_running(self) -> None:
        if not self.enabled:
            return
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="book-snapshot-poller", daemon=True
            )
            self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def poll_once(self) -> int:
        try:
            return self._broadcaster.publish(only_if_changed=True)
        except Exception:
            logger.warning("book_snapshot_poll_failed", exc_info=True)
            return 0

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            with self._lock:
                if self._broadcaster.active_count == 0:
                    self._thread = None
                    return
            self.poll_once()
