"""Single dispatch point for progress events"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Union

from ...domain.entities.events import ProgressEvent, ProgressEventType

logger = logging.getLogger(__name__)

EventHandler = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class EventDispatcher:
    """
    Routes progress events to subscribers.

    Handlers may be plain callables or coroutine functions. A failing
    handler is logged and never stops delivery to the others or breaks
    the upload that emitted the event.
    """

    def __init__(self):
        self._handlers: Dict[Optional[ProgressEventType], List[EventHandler]] = {}
        self.dispatched_count = 0

    def subscribe(self, handler: EventHandler, event_type: Optional[ProgressEventType] = None) -> None:
        """Subscribe to one event type, or to all events when ``event_type`` is None"""
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, handler: EventHandler, event_type: Optional[ProgressEventType] = None) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def dispatch(self, event: ProgressEvent) -> None:
        self.dispatched_count += 1
        handlers = list(self._handlers.get(event.type, [])) + list(self._handlers.get(None, []))

        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Progress handler {getattr(handler, '__name__', handler)} failed for {event.type.value}: {e}")
