"""Rain session tracking.

A session is a two-state machine (not raining / raining) driven by the
classifier's per-sample output. Transitions are edge-triggered: only the
sample where the classifier flips matters. When rain resumes within the
cooldown window after an episode ended, the machine re-enters the raining
state without announcing a new episode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock, RLock
from typing import Dict, Optional

from models.records import SessionState

logger = logging.getLogger(__name__)

GLOBAL_SESSION_KEY = "global"


@dataclass(frozen=True)
class Observation:
    is_new_episode: bool


class SessionTracker:
    """Holds the state of one rain session.

    ``lock`` is re-entrant so callers can hold it across ``observe`` and the
    follow-up persistence to keep samples in arrival order.
    """

    def __init__(self, cooldown: timedelta, key: str = GLOBAL_SESSION_KEY) -> None:
        self.cooldown = cooldown
        self.key = key
        self.lock = RLock()
        self._is_raining = False
        self._last_rain_end_time: Optional[datetime] = None

    @property
    def state(self) -> SessionState:
        with self.lock:
            return SessionState(
                is_raining=self._is_raining,
                last_rain_end_time=self._last_rain_end_time,
            )

    def observe(self, detected: bool, now: datetime) -> Observation:
        with self.lock:
            if detected and not self._is_raining:
                is_new = (
                    self._last_rain_end_time is None
                    or now - self._last_rain_end_time > self.cooldown
                )
                self._is_raining = True
                if not is_new:
                    logger.debug(
                        "Rain resumed within cooldown; merged into previous episode",
                        extra={"session_key": self.key},
                    )
                return Observation(is_new_episode=is_new)

            if not detected and self._is_raining:
                self._is_raining = False
                self._last_rain_end_time = now
                logger.debug("Rain episode ended", extra={"session_key": self.key})

            return Observation(is_new_episode=False)


class SessionRegistry:
    """Hands out trackers, one shared session or one per device."""

    def __init__(self, cooldown: timedelta, scope: str = "global") -> None:
        if scope not in ("global", "device"):
            raise ValueError(f"Unknown session scope {scope!r}.")
        self.cooldown = cooldown
        self.scope = scope
        self._trackers: Dict[str, SessionTracker] = {}
        self._lock = Lock()

    def tracker_for(self, device_id: str) -> SessionTracker:
        key = GLOBAL_SESSION_KEY if self.scope == "global" else device_id
        with self._lock:
            tracker = self._trackers.get(key)
            if tracker is None:
                tracker = SessionTracker(cooldown=self.cooldown, key=key)
                self._trackers[key] = tracker
            return tracker

    def snapshot(self) -> Dict[str, SessionState]:
        with self._lock:
            trackers = dict(self._trackers)
        return {key: tracker.state for key, tracker in trackers.items()}
