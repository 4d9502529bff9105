"""Catalog lifecycle event helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Tuple

from .logging import get_logger

logger = get_logger(__name__)


class EventEmitter(Protocol):  # pragma: no cover - interface only
    """Abstract lifecycle-event publisher."""

    def emit(self, topic: str, payload: Dict[str, Any]) -> None:
        """Publish a lifecycle event."""


@dataclass
class LoggingEventEmitter(EventEmitter):
    """Default emitter; writes each event to the log."""

    topic_prefix: str = "catalog"

    def emit(self, topic: str, payload: Dict[str, Any]) -> None:
        logger.info(
            "catalog_event",
            extra={
                "topic": f"{self.topic_prefix}.{topic}",
                "payload": payload,
            },
        )


@dataclass
class RecordingEventEmitter(EventEmitter):
    """Keeps emitted events in memory; handy for local tooling and tests."""

    events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def emit(self, topic: str, payload: Dict[str, Any]) -> None:
        self.events.append((topic, dict(payload)))


_singleton: LoggingEventEmitter | None = None


def get_event_emitter() -> EventEmitter:
    """Return the process-wide lifecycle-event emitter."""

    global _singleton
    if _singleton is None:
        _singleton = LoggingEventEmitter()
    return _singleton
