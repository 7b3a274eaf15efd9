"""In-process publish/subscribe bus for progression events."""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Protocol

logger = logging.getLogger(__name__)

Event = Dict[str, Any]
EventHandler = Callable[[Event], None]


class Events:
    STORY_STARTED = "story_started"
    CHOICE_MADE = "choice_made"
    BEAT_REACHED = "beat_reached"
    CONSEQUENCE_TRIGGERED = "consequence_triggered"
    ARC_UNLOCKED = "arc_unlocked"
    ENDING_REACHED = "ending_reached"


class EventSink(Protocol):
    """Anything that accepts published events."""

    def publish(self, event_name: str, payload: Mapping[str, Any] | None = None) -> None:
        ...


class EventBus:
    """Thread-safe pub/sub event bus with replay buffer for late subscribers."""

    def __init__(self, replay_size: int = 50) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, EventHandler] = {}
        self._replay_buffer: Deque[Event] = deque(maxlen=replay_size)
        self._subscriber_counter = 0

    def publish(self, event_name: str, payload: Mapping[str, Any] | None = None) -> None:
        """Deliver an event to every subscriber; handler failures are logged."""
        event: Event = {
            "type": event_name,
            "data": dict(payload or {}),
            "timestamp": time.time(),
        }
        with self._lock:
            self._replay_buffer.append(event)
            handlers = list(self._subscribers.items())
        for sub_id, handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber %s failed handling %s", sub_id, event_name)
        logger.debug("Published: %s", event_name)

    def subscribe(self, handler: EventHandler, *, replay: bool = False) -> str:
        """Register a handler and return its subscription id.

        With ``replay`` the handler first receives the buffered recent events.
        """
        with self._lock:
            self._subscriber_counter += 1
            sub_id = f"sub_{self._subscriber_counter}"
            self._subscribers[sub_id] = handler
            backlog = list(self._replay_buffer) if replay else []
        for event in backlog:
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber %s failed during replay", sub_id)
                break
        logger.info("New subscriber: %s (replay=%s)", sub_id, replay)
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        with self._lock:
            self._subscribers.pop(sub_id, None)

    def recent_events(self) -> List[Event]:
        with self._lock:
            return list(self._replay_buffer)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
