"""Service-level tests for the ingestion pipeline."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi import BackgroundTasks

from datastore.reading_store import ReadingStore, StorageError
from models.records import PushMessage, SensorSample
from services.broadcaster import RAIN_ALERT_EVENT, EventBroadcaster
from services.classifier import ClassifierThresholds, RainClassifier
from services.ingestion import IngestionService
from services.sessions import SessionRegistry
from services.subscribers import SubscriberRegistry

START = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
RAINY = SensorSample(temperature=25, humidity=40, device_id="ESP-01")
DRY = SensorSample(temperature=20, humidity=10, device_id="ESP-01")


class RecordingDispatcher:
    def __init__(self) -> None:
        self.registry = SubscriberRegistry()
        self.messages: list[PushMessage] = []

    def dispatch(self, message: PushMessage) -> list[Any]:
        self.messages.append(message)
        return []


class RecordingBroadcaster(EventBroadcaster):
    def __init__(self) -> None:
        super().__init__()
        self.events: list[tuple[str, dict]] = []

    async def broadcast(self, event: str, payload: dict) -> int:
        self.events.append((event, payload))
        return 0


def _service(scope: str = "global", store: ReadingStore | None = None) -> IngestionService:
    if store is None:
        store = ReadingStore(name="test")
        store.connect()
    return IngestionService(
        classifier=RainClassifier(
            ClassifierThresholds(
                temperature_min=24.0,
                temperature_max=28.0,
                humidity_min=30.0,
                humidity_max=55.0,
            )
        ),
        sessions=SessionRegistry(cooldown=timedelta(minutes=30), scope=scope),
        store=store,
        broadcaster=RecordingBroadcaster(),
        dispatcher=RecordingDispatcher(),  # type: ignore[arg-type]
    )


def _ingest(service: IngestionService, sample: SensorSample, minutes: float):
    tasks = BackgroundTasks()
    outcome = service.ingest(tasks, sample, now=START + timedelta(minutes=minutes))
    asyncio.run(tasks())
    return outcome


def test_first_rainy_sample_starts_episode_and_alerts() -> None:
    service = _service()

    outcome = _ingest(service, RAINY, 0)

    assert outcome.is_new_episode is True
    assert outcome.reading.rain_detected is True
    assert outcome.reading.alert_sent is True
    assert len(service.dispatcher.messages) == 1  # type: ignore[attr-defined]
    stored = service.store.get(outcome.reading.id)
    assert stored is not None and stored.alert_sent is True


def test_scenario_repeated_rain_does_not_retrigger() -> None:
    service = _service()

    flags = [_ingest(service, RAINY, minute).is_new_episode for minute in (0, 1, 2)]

    assert flags == [True, False, False]
    assert len(service.dispatcher.messages) == 1  # type: ignore[attr-defined]
    stored = service.store.list_recent()
    assert [reading.rain_detected for reading in stored] == [False, False, True]
    assert [reading.alert_sent for reading in stored] == [False, False, True]


def test_scenario_cooldown_merge_then_new_episode() -> None:
    service = _service()
    _ingest(service, RAINY, 0)
    _ingest(service, DRY, 5)

    merged = _ingest(service, RAINY, 15)
    _ingest(service, DRY, 20)
    fresh = _ingest(service, RAINY, 60)

    assert merged.is_new_episode is False
    assert fresh.is_new_episode is True
    assert len(service.dispatcher.messages) == 2  # type: ignore[attr-defined]


def test_every_sample_is_broadcast_with_public_fields() -> None:
    service = _service()

    _ingest(service, RAINY, 0)
    _ingest(service, DRY, 1)

    events = service.broadcaster.events  # type: ignore[attr-defined]
    assert [event for event, _ in events] == [RAIN_ALERT_EVENT, RAIN_ALERT_EVENT]
    assert set(events[0][1]) == {"timestamp", "temperature", "humidity", "rain_detected", "device_id"}
    assert events[0][1]["rain_detected"] is True
    assert events[1][1]["rain_detected"] is False


def test_malformed_sample_is_stored_as_no_rain() -> None:
    service = _service()

    outcome = _ingest(service, SensorSample(temperature="hot", humidity=None, device_id="ESP-02"), 0)

    assert outcome.is_new_episode is False
    assert outcome.reading.temperature is None
    assert outcome.reading.humidity is None
    assert outcome.reading.device_id == "ESP-02"


def test_alert_sent_implies_rain_detected_for_every_reading() -> None:
    service = _service()
    pattern = [RAINY, RAINY, DRY, RAINY, DRY, DRY, RAINY, RAINY]

    for index, sample in enumerate(pattern):
        _ingest(service, sample, index * 20)

    for reading in service.store.list_recent():
        assert not reading.alert_sent or reading.rain_detected


def test_storage_failure_is_reported_and_nothing_is_announced() -> None:
    unavailable = ReadingStore(name="down")
    service = _service(store=unavailable)
    tasks = BackgroundTasks()

    with pytest.raises(StorageError):
        service.ingest(tasks, RAINY, now=START)

    assert tasks.tasks == []
    assert service.dispatcher.messages == []  # type: ignore[attr-defined]


class FlagUpdateFailingStore(ReadingStore):
    def mark_alert_sent(self, reading_id: str):
        raise StorageError(f"Could not write reading store {self.name!r}: disk full")


def test_flag_update_failure_keeps_reading_and_session_advanced() -> None:
    store = FlagUpdateFailingStore(name="flaky")
    store.connect()
    service = _service(store=store)
    tasks = BackgroundTasks()

    with pytest.raises(StorageError, match="disk full"):
        service.ingest(tasks, RAINY, now=START)

    assert len(service.dispatcher.messages) == 1  # type: ignore[attr-defined]
    [stored] = store.list_recent()
    assert stored.rain_detected is True
    assert stored.alert_sent is False
    assert service.sessions.tracker_for("ESP-01").state.is_raining is True

    retried = _ingest(service, RAINY, 1)

    assert retried.is_new_episode is False
    assert len(service.dispatcher.messages) == 1  # type: ignore[attr-defined]


def test_device_scope_tracks_sensors_independently() -> None:
    service = _service(scope="device")

    first = _ingest(service, RAINY, 0)
    other = _ingest(service, SensorSample(temperature=25, humidity=40, device_id="ESP-02"), 1)

    assert first.is_new_episode is True
    assert other.is_new_episode is True


def test_global_scope_merges_sensors() -> None:
    service = _service(scope="global")

    _ingest(service, RAINY, 0)
    other = _ingest(service, SensorSample(temperature=25, humidity=40, device_id="ESP-02"), 1)

    assert other.is_new_episode is False


def test_episode_starts_since_uses_window() -> None:
    service = _service()
    _ingest(service, RAINY, 0)

    now = START + timedelta(days=31)
    assert service.episode_starts_since(timedelta(days=30), now=now) == []
    assert len(service.episode_starts_since(timedelta(days=32), now=now)) == 1
