"""One-way mirror bus for secondary displays.

WHY: A presenter window mirrors the operator's prompter. It needs the same
settings, play/pause/reset transitions, slide changes, and scroll targets,
but must never be able to drive the session back.

HOW: MirrorBus is a synchronous in-process fan-out. publish() validates the
event type and calls every subscriber in subscription order. The Control
API subscribes a forwarder that pushes events to WebSocket clients.

RULES:
- Event types: settings_update, play, pause, reset, slide_change,
  scroll_to_word; anything else raises ValueError
- Delivery is in publish order, at most once, with no replay for late
  subscribers
- A subscriber that raises is logged and skipped; other subscribers still
  receive the event
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset({
    "settings_update",
    "play",
    "pause",
    "reset",
    "slide_change",
    "scroll_to_word",
})


@dataclass(frozen=True)
class MirrorEvent:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "payload": dict(self.payload)}


Subscriber = Callable[[MirrorEvent], None]


class MirrorBus:
    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event_type: str, payload: Dict[str, Any] | None = None) -> MirrorEvent:
        if event_type not in EVENT_TYPES:
            raise ValueError("Unknown mirror event type: {}".format(event_type))
        event = MirrorEvent(type=event_type, payload=dict(payload or {}))
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Mirror subscriber failed on %s", event_type)
        return event

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
