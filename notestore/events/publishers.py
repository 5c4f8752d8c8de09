"""
Event Publishers.

In-process observer registry owned by one store instance. Callers register
explicitly with subscribe() and leave with unsubscribe(); there is no
module-level registry.

Usage:
    bus = store.events
    bus.subscribe(on_event)                      # every event
    bus.subscribe(on_move, "items.item.moved")   # one event type
    bus.unsubscribe(on_event)

Handlers may be plain callables or coroutine functions. A failing handler
is logged and does not stop delivery to the others.
"""

import inspect
from collections.abc import Callable
from typing import Any

from notestore.core.logging import get_logger
from notestore.events.schemas import EventEnvelope

logger = get_logger(__name__)

Handler = Callable[[EventEnvelope], Any]


class ItemEventBus:
    """Publishes store events to registered subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[Handler, str | None]] = []

    def subscribe(self, handler: Handler, event_type: str | None = None) -> Callable[[], None]:
        """
        Register a handler, optionally for one event type.

        Returns:
            A callable that removes this registration
        """
        self._subscribers.append((handler, event_type))
        return lambda: self.unsubscribe(handler, event_type)

    def unsubscribe(self, handler: Handler, event_type: str | None = None) -> bool:
        """Remove a registration. Returns False when it was not registered."""
        for index, (registered, registered_type) in enumerate(self._subscribers):
            if registered == handler and registered_type == event_type:
                del self._subscribers[index]
                return True
        return False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()

    async def publish(self, event: EventEnvelope) -> None:
        """Deliver one event to every matching subscriber."""
        for handler, event_type in list(self._subscribers):
            if event_type is not None and event_type != event.event_type:
                continue
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Event subscriber failed",
                    extra={
                        "event_type": event.event_type,
                        "event_id": event.event_id,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                        "error": str(e),
                    },
                )
        logger.debug(
            "Event published",
            extra={"event_type": event.event_type, "event_id": event.event_id},
        )

    async def publish_all(self, events: list[EventEnvelope]) -> None:
        for event in events:
            await self.publish(event)
