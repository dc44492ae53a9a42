"""In-process publish/subscribe channel keyed by event name.

Each ``DocumentService`` owns one bus unless a shared bus is passed at
construction. Listeners run after the storage work returns, outside any
transaction; a failing listener is logged and never propagates to the writer.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import inspect
import logging
from typing import Any


EventHandler = Callable[[Any], Awaitable[None] | None]


@dataclass(slots=True)
class _Subscription:
    handler: EventHandler
    once: bool = False


class EventBus:
    """Typed channel of named events with ``on`` / ``once`` / ``off`` semantics."""

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = {}
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    def on(self, event_name: str, handler: EventHandler) -> None:
        self._subscriptions.setdefault(event_name, []).append(_Subscription(handler))

    def once(self, event_name: str, handler: EventHandler) -> None:
        self._subscriptions.setdefault(event_name, []).append(_Subscription(handler, once=True))

    def off(self, event_name: str, handler: EventHandler) -> bool:
        """Remove the first subscription of ``handler``; returns False if it was not subscribed."""
        subscriptions = self._subscriptions.get(event_name, [])
        for index, subscription in enumerate(subscriptions):
            if subscription.handler is handler:
                del subscriptions[index]
                return True
        return False

    def listener_count(self, event_name: str) -> int:
        return len(self._subscriptions.get(event_name, []))

    async def publish(self, event_name: str, event: Any) -> int:
        """Deliver ``event`` to every listener of ``event_name``.

        Returns:
            Number of listeners that handled the event without raising.
        """
        subscriptions = list(self._subscriptions.get(event_name, []))
        if not subscriptions:
            return 0

        remaining = [subscription for subscription in self._subscriptions[event_name] if not subscription.once]
        self._subscriptions[event_name] = remaining

        delivered = 0
        for subscription in subscriptions:
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                self._logger.exception("Listener for '%s' event failed", event_name)
        return delivered
