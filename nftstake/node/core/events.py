# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking lifecycle events.

Listeners are keyed by event name; `StakingEvent` members and their string
values address the same listeners. Delivery is synchronous and happens
after the emitting operation has committed.
"""
from typing import Dict, List, Callable, Any
import logging
import threading

from ..observability import metrics

logger = logging.getLogger(__name__)


def _name(event_type) -> str:
    return getattr(event_type, "value", event_type)


class EventBus:
    """
    Pub/sub for staking events.

    A failing listener is logged and counted; it never aborts the operation
    that emitted nor the listeners after it.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """
        Args:
            event_type: StakingEvent member or its value (e.g. 'TokensStaked')
            callback: Called with the event data as keyword arguments
        """
        key = _name(event_type)
        with self._lock:
            self.listeners.setdefault(key, []).append(callback)
        logger.debug(f"Subscribed to {key}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        key = _name(event_type)
        with self._lock:
            callbacks = self.listeners.get(key)
            if not callbacks or callback not in callbacks:
                logger.warning(f"Unsubscribe: callback not registered for {key}")
                return
            callbacks.remove(callback)
        logger.debug(f"Unsubscribed from {key}")

    def listener_count(self, event_type: str) -> int:
        return len(self.listeners.get(_name(event_type), []))

    def emit(self, event_type: str, **data: Any) -> None:
        key = _name(event_type)
        with self._lock:
            # Listeners may (un)subscribe while being called
            callbacks = list(self.listeners.get(key, []))

        if not callbacks:
            return

        logger.debug(f"Delivering {key} to {len(callbacks)} listener(s)")
        for callback in callbacks:
            try:
                callback(**data)
            except Exception as e:
                metrics.record_listener_error(key)
                logger.error(f"Listener for {key} failed: {e}", exc_info=True)

    def clear(self, event_type: str = None) -> None:
        """Drops the listeners of one event, or of every event when none is given."""
        with self._lock:
            if event_type:
                self.listeners.pop(_name(event_type), None)
            else:
                self.listeners.clear()


# Process-wide bus used when no bus is injected
event_bus = EventBus()
