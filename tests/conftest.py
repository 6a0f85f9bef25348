from __future__ import annotations

from typing import Iterator

import pytest

from datastore.reading_store import build_default_store
from services.broadcaster import build_default_broadcaster
from services.dispatcher import build_default_dispatcher, build_default_registry
from services.ingestion import build_default_ingestion, build_default_sessions
from settings import get_settings

_ENV_OVERRIDES = {"DATABASE_URL": "memory://"}
_ENV_CLEARED = (
    "VAPID_PUBLIC_KEY",
    "VAPID_PRIVATE_KEY",
    "FRONTEND_URL",
    "SESSION_SCOPE",
    "STATS_WINDOW_DAYS",
    "DEFAULT_DEVICE_ID",
    "CORS_ORIGIN",
)
_FACTORIES = (
    build_default_ingestion,
    build_default_sessions,
    build_default_store,
    build_default_broadcaster,
    build_default_registry,
    get_settings,
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch) -> Iterator[None]:
    for name, value in _ENV_OVERRIDES.items():
        monkeypatch.setenv(name, value)
    for name in _ENV_CLEARED:
        monkeypatch.delenv(name, raising=False)
    for factory in _FACTORIES:
        factory.cache_clear()
    yield
    if build_default_dispatcher.cache_info().currsize:
        build_default_dispatcher().shutdown(wait=False)
    build_default_dispatcher.cache_clear()
    for factory in _FACTORIES:
        factory.cache_clear()
