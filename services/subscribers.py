from __future__ import annotations

import json
from threading import Lock
from typing import Any, Dict, List


def subscriber_key(subscriber: Any) -> str:
    """Canonical JSON encoding; equal descriptors produce equal keys."""

    return json.dumps(subscriber, sort_keys=True, separators=(",", ":"), default=str)


class SubscriberRegistry:
    """In-memory set of push endpoints with structural equality.

    Dispatch iterates over ``snapshot()`` copies, so subscribe requests and
    pruning can happen while a fan-out is in flight.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, Any] = {}
        self._lock = Lock()

    def add(self, subscriber: Any) -> bool:
        key = subscriber_key(subscriber)
        with self._lock:
            if key in self._subscribers:
                return False
            self._subscribers[key] = subscriber
            return True

    def remove(self, subscriber: Any) -> bool:
        key = subscriber_key(subscriber)
        with self._lock:
            return self._subscribers.pop(key, None) is not None

    def snapshot(self) -> List[Any]:
        with self._lock:
            return list(self._subscribers.values())

    def __contains__(self, subscriber: Any) -> bool:
        key = subscriber_key(subscriber)
        with self._lock:
            return key in self._subscribers

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)
