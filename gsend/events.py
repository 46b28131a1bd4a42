from collections import defaultdict
import logging
from typing import Any

from gsend.custom_types import (
    TEventHandler,
)

logger = logging.getLogger(__name__)


class EventBus:
    """
    Named events with any number of independent async subscribers.

    Subscribers are called in registration order. An exception raised by one
    subscriber is logged and does not prevent the others from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[TEventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: TEventHandler) -> None:
        self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: TEventHandler) -> None:
        handlers = self._handlers.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            self._handlers.pop(event, None)

    def has_subscribers(self, event: str) -> bool:
        return bool(self._handlers.get(event))

    def clear(self) -> None:
        self._handlers.clear()

    async def publish(self, event: str, *args: Any) -> int:
        """
        Call every subscriber of ``event`` with ``args``.

        :return: number of subscribers that were called
        """
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                await handler(*args)
            except Exception:
                logger.exception("Handler for event %s raised an exception", event)
        return len(handlers)
