"""In-process publisher for domain events.

Handlers run synchronously in publish order. A failing handler is logged and
skipped: observers can never block or change the outcome of a call.
"""

import logging
from typing import Callable, List

from codelens.domain.events.api_events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventBus:
    """Fan-out of domain events to subscribed handlers."""

    def __init__(self):
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Registers `handler` and returns a function that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler {handler!r} failed on {type(event).__name__}: {e}", exc_info=True)
