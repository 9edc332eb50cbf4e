from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable

from .models import DeliverableEvent


logger = logging.getLogger(__name__)

Subscriber = Callable[[DeliverableEvent], None]


class EventBus:
    """Explicit publish/subscribe port for store mutations.

    Delivery is synchronous, best-effort and at most once per publish; a
    failing subscriber is logged and skipped.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)
        return lambda: self.unsubscribe(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        try:
            self._subscribers.remove(subscriber)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: DeliverableEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception("Event subscriber failed for %s", event.type)


class QueueSubscription:
    """Bridge bus events into an asyncio.Queue (one per SSE client).

    A full queue drops the event for that client only.
    """

    def __init__(self, bus: EventBus, maxsize: int = 100) -> None:
        self.queue: asyncio.Queue[DeliverableEvent] = asyncio.Queue(maxsize=maxsize)
        self._unsubscribe = bus.subscribe(self._on_event)

    def _on_event(self, event: DeliverableEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Dropping %s event for slow subscriber", event.type)

    def close(self) -> None:
        self._unsubscribe()


def format_sse(event: DeliverableEvent) -> str:
    payload = json.dumps(event.model_dump(mode="json"))
    return f"data: {payload}\n\n"
