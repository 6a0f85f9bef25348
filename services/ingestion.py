"""Per-sample orchestration: classify, track the session, persist, announce."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import BackgroundTasks

from app.schemas import Reading
from datastore.reading_store import ReadingStore, StorageError, build_default_store
from models.records import PushMessage, SensorSample
from services.broadcaster import RAIN_ALERT_EVENT, EventBroadcaster, build_default_broadcaster
from services.classifier import ClassifierThresholds, RainClassifier, as_measurement
from services.dispatcher import NotificationDispatcher, build_default_dispatcher
from services.sessions import SessionRegistry
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestOutcome:
    reading: Reading
    is_new_episode: bool


class IngestionService:
    """Coordinates classifier, session state, storage and notifications."""

    def __init__(
        self,
        classifier: RainClassifier,
        sessions: SessionRegistry,
        store: ReadingStore,
        broadcaster: EventBroadcaster,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.classifier = classifier
        self.sessions = sessions
        self.store = store
        self.broadcaster = broadcaster
        self.dispatcher = dispatcher

    def ingest(
        self,
        background_tasks: BackgroundTasks,
        sample: SensorSample,
        now: Optional[datetime] = None,
    ) -> IngestOutcome:
        """Process one sample.

        Raises ``StorageError`` when the reading could not be persisted. The
        broadcast runs as a background task after the response; the push
        fan-out is submitted to the dispatcher pool and never awaited here.
        """
        timestamp = now or datetime.now(timezone.utc)
        tracker = self.sessions.tracker_for(sample.device_id)

        with tracker.lock:
            detected = self.classifier.classify(sample.temperature, sample.humidity)
            observation = tracker.observe(detected, timestamp)
            reading = self.store.insert(
                Reading(
                    timestamp=timestamp,
                    temperature=as_measurement(sample.temperature),
                    humidity=as_measurement(sample.humidity),
                    rain_detected=observation.is_new_episode,
                    alert_sent=False,
                    device_id=sample.device_id,
                )
            )

        logger.debug(
            "Stored reading",
            extra={"device_id": reading.device_id, "reading_id": reading.id},
        )
        background_tasks.add_task(
            self.broadcaster.broadcast, RAIN_ALERT_EVENT, reading.public_fields()
        )

        if not observation.is_new_episode:
            return IngestOutcome(reading=reading, is_new_episode=False)

        logger.info(
            "Rain episode started",
            extra={
                "device_id": reading.device_id,
                "reading_id": reading.id,
                "session_key": tracker.key,
            },
        )
        self.dispatcher.dispatch(
            PushMessage.rain_started(reading.device_id, reading.temperature, reading.humidity)
        )
        try:
            reading = self.store.mark_alert_sent(reading.id)
        except ValueError as exc:
            raise StorageError(str(exc)) from exc
        return IngestOutcome(reading=reading, is_new_episode=True)

    def recent_readings(self, limit: int = 1000) -> list[Reading]:
        return self.store.list_recent(limit=limit)

    def episode_starts_since(self, window: timedelta, now: Optional[datetime] = None) -> list[Reading]:
        since = (now or datetime.now(timezone.utc)) - window
        return self.store.find_episode_starts(since)


@lru_cache
def build_default_sessions() -> SessionRegistry:
    settings = get_settings()
    return SessionRegistry(
        cooldown=timedelta(minutes=settings.cooldown_minutes),
        scope=settings.session_scope,
    )


@lru_cache
def build_default_ingestion() -> IngestionService:
    """Factory that wires the ingestion pipeline with the default components."""
    settings = get_settings()
    return IngestionService(
        classifier=RainClassifier(ClassifierThresholds.from_settings(settings)),
        sessions=build_default_sessions(),
        store=build_default_store(),
        broadcaster=build_default_broadcaster(),
        dispatcher=build_default_dispatcher(),
    )
