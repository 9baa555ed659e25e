"""One-way observer channel from the kernel to its collaborators.

Subscribers register a callback per event name and get back a handle
that unsubscribes when called. Delivery is synchronous and in
subscription order. A callback that raises is logged and skipped; the
remaining subscribers still receive the event.

Events:
- pulse: a new pulse was committed (payload is the full pulse dict)
- identity_changed: {old_did, new_did, history}
- index_cleared: {}
- kernel_reset: {preserve_identity}
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from .constants import KernelEvent

logger = logging.getLogger(__name__)

Callback = Callable[[dict[str, Any]], None]


class Subscription:
    """Handle returned by EventBus.subscribe(). Call it to unsubscribe."""

    def __init__(self, bus: EventBus, event: KernelEvent, callback: Callback) -> None:
        self._bus = bus
        self.event = event
        self.callback = callback
        self.active = True

    def __call__(self) -> None:
        if self.active:
            self._bus.unsubscribe(self.event, self.callback)
            self.active = False


class EventBus:
    """Typed publish/subscribe channel."""

    def __init__(self) -> None:
        self._subscribers: dict[KernelEvent, list[Callback]] = {event: [] for event in KernelEvent}

    def subscribe(self, event: KernelEvent | str, callback: Callback) -> Subscription:
        """Register callback for event.

        Raises:
            ValueError: If event is not a known KernelEvent name.
        """
        kind = KernelEvent(event)
        self._subscribers[kind].append(callback)
        return Subscription(self, kind, callback)

    def unsubscribe(self, event: KernelEvent | str, callback: Callback) -> bool:
        """Remove callback. Returns False if it was not subscribed."""
        listeners = self._subscribers[KernelEvent(event)]
        try:
            listeners.remove(callback)
        except ValueError:
            return False
        return True

    def subscriber_count(self, event: KernelEvent | str) -> int:
        return len(self._subscribers[KernelEvent(event)])

    def publish(self, event: KernelEvent, data: dict[str, Any]) -> int:
        """Deliver data to every subscriber of event.

        Returns:
            Number of subscribers that handled the event without raising.
        """
        delivered = 0
        # Snapshot so a callback may unsubscribe itself during delivery
        for callback in list(self._subscribers[event]):
            try:
                callback(data)
            except Exception:
                logger.exception("Observer %r failed on %s", callback, event.value)
                continue
            delivered += 1
        return delivered
