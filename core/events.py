"""
Event Hub
=========
Observer registration for broker lifecycle events (request routing, cache
activity, pattern learning). Components emit; monitoring and tests subscribe.

Callbacks may be plain functions or coroutine functions. A failing callback
is logged and never propagates into the emitting component.
"""

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Union

from loguru import logger

EventCallback = Callable[["BrokerEvent"], Union[None, Awaitable[None]]]

WILDCARD = "*"


@dataclass
class BrokerEvent:
    """A single emitted event."""

    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)


class EventHub:
    """
    In-process publish/subscribe hub.

    Subscribing to ``"*"`` receives every event. A bounded history is kept for
    diagnostics and the system routes.
    """

    def __init__(self, max_history: int = 200):
        self._subscribers: Dict[str, List[EventCallback]] = defaultdict(list)
        self._history: Deque[BrokerEvent] = deque(maxlen=max_history)
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_name: str, callback: EventCallback) -> None:
        """Register ``callback`` for ``event_name`` (or ``"*"``)."""
        self._subscribers[event_name].append(callback)

    def unsubscribe(self, event_name: str, callback: EventCallback) -> bool:
        callbacks = self._subscribers.get(event_name, [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def emit(self, event_name: str, payload: Optional[Dict[str, Any]] = None) -> BrokerEvent:
        """
        Deliver an event to its subscribers.

        Coroutine callbacks are scheduled on the running loop; without a
        running loop they are skipped with a warning.

        Args:
            event_name: Event identifier such as ``"cache:hit"``
            payload: Event data

        Returns:
            The emitted event
        """
        event = BrokerEvent(name=event_name, payload=payload or {})
        self._history.append(event)

        for callback in [*self._subscribers.get(event_name, []), *self._subscribers.get(WILDCARD, [])]:
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    self._schedule(result, event_name)
            except Exception as e:
                logger.warning(f"Event callback failed for '{event_name}': {e}")

        return event

    def _schedule(self, coro: Awaitable[None], event_name: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running loop for async subscriber of '{event_name}'")
            coro.close()
            return

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Async event callback failed: {task.exception()}")

    def history(self, event_name: Optional[str] = None) -> List[BrokerEvent]:
        """Return retained events, optionally filtered by name."""
        if event_name is None:
            return list(self._history)
        return [e for e in self._history if e.name == event_name]

    def subscriber_count(self, event_name: str) -> int:
        return len(self._subscribers.get(event_name, []))

    def clear(self) -> None:
        self._subscribers.clear()
        self._history.clear()


__all__ = ["BrokerEvent", "EventCallback", "EventHub", "WILDCARD"]
