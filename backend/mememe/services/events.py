"""
Event channels.

A channel is a small synchronous publish/subscribe pipe. The host creates
one channel per kind of notification (keyboard, picker results) and hands
them to the editing session, which subscribes for exactly its own lifetime.
"""

import logging
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Delivers published events to the current subscribers, in subscription order."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []

    def subscribe(self, handler: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a handler.

        Returns:
            A callable that removes the handler again. Calling it twice is harmless.
        """
        self._subscribers.append(handler)
        logger.debug(f"Subscribed to {self.name} ({len(self._subscribers)} subscriber(s))")

        def unsubscribe() -> None:
            if handler in self._subscribers:
                self._subscribers.remove(handler)
                logger.debug(f"Unsubscribed from {self.name}")

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: T) -> None:
        for handler in list(self._subscribers):
            handler(event)
