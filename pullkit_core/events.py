"""Simple event bus used to report transfer progress and per-artifact outcomes."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict

__all__ = ["Event", "EventHandler", "EventBus", "STANDARD_EVENTS"]

TRANSFER_STARTED = "transfer.started"
TRANSFER_PROGRESS = "transfer.progress"
TRANSFER_FINISHED = "transfer.finished"
ARTIFACT_CACHED = "artifact.cached"
ARTIFACT_FAILED = "artifact.failed"
LAYER_ADDED = "layer.added"
LAYER_FAILED = "layer.failed"

STANDARD_EVENTS = (
    TRANSFER_STARTED,
    TRANSFER_PROGRESS,
    TRANSFER_FINISHED,
    ARTIFACT_CACHED,
    ARTIFACT_FAILED,
    LAYER_ADDED,
    LAYER_FAILED,
)


@dataclass(frozen=True)
class Event:
    """Lightweight event descriptor."""

    name: str
    payload: dict[str, Any]


EventHandler = Callable[[Event], None]


@dataclass(frozen=True)
class _EventSubscription:
    priority: int
    order: int
    handler: EventHandler


class EventBus:
    """Synchronous event bus with deterministic delivery."""

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, list[_EventSubscription]] = defaultdict(list)
        self._sequence: DefaultDict[str, int] = defaultdict(int)

    def on(self, event_name: str, handler: EventHandler, priority: int = 0) -> None:
        """Register a handler for `event_name` with optional priority."""
        order = self._sequence[event_name]
        self._sequence[event_name] = order + 1
        self._handlers[event_name].append(
            _EventSubscription(priority=priority, order=order, handler=handler)
        )

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        event = Event(event_name, payload)
        subscriptions = sorted(
            self._handlers[event_name],
            key=lambda item: (-item.priority, item.order),
        )
        for subscription in subscriptions:
            subscription.handler(event)
