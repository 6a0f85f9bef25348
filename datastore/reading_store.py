from __future__ import annotations
import json
import logging
import os
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from pydantic import ValidationError

from app.schemas import Reading
from settings import get_settings

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"


class StorageError(RuntimeError):
    """Raised for any failure of the reading store."""


def resolve_persistence_path(database_url: str) -> Optional[Path]:
    """Map a ``memory://`` or ``file:<path>`` URL onto an optional JSON file path."""

    url = database_url.strip()
    if url == MEMORY_URL:
        return None
    if url.startswith("file://"):
        return Path(url[len("file://"):])
    if url.startswith("file:"):
        return Path(url[len("file:"):])
    raise StorageError(f"Unsupported database URL {database_url!r}.")


class ReadingStore:
    """Lock-guarded reading table backed by an append-only JSON-lines journal.

    Each insert or flag update appends one line; on load the last line for an
    id wins. A torn final line from an interrupted write is dropped and the
    journal is compacted with an atomic replace.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        configuration_error: Optional[str] = None,
    ) -> None:
        self.name = name
        self._items: Dict[str, Reading] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        self._connected = False
        self._configuration_error = configuration_error
        self._unavailable_reason: Optional[str] = configuration_error or "not connected"
        self._needs_compaction = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Load persisted readings; the store refuses all operations until this succeeds."""

        with self._lock:
            if self._configuration_error:
                raise StorageError(self._configuration_error)
            try:
                if self.persistence_path:
                    self.persistence_path.parent.mkdir(parents=True, exist_ok=True)
                    self._load_from_disk()
                    if self._needs_compaction:
                        self._compact()
            except (OSError, StorageError, json.JSONDecodeError, ValidationError) as exc:
                self._connected = False
                self._unavailable_reason = str(exc)
                raise StorageError(
                    f"Could not open reading store {self.name!r}: {exc}"
                ) from exc
            self._connected = True
            self._unavailable_reason = None
        logger.info("Reading store %s ready with %d readings", self.name, len(self._items))

    def insert(self, reading: Reading) -> Reading:
        with self._lock:
            self._require_connected()
            if reading.id in self._items:
                raise StorageError(f"Reading {reading.id!r} already exists.")
            self._items[reading.id] = reading.model_copy(deep=True)
            try:
                self._persist(reading)
            except StorageError:
                self._items.pop(reading.id, None)
                raise
            return reading.model_copy(deep=True)

    def get(self, reading_id: str) -> Optional[Reading]:
        with self._lock:
            self._require_connected()
            item = self._items.get(reading_id)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def mark_alert_sent(self, reading_id: str) -> Reading:
        """Flip ``alert_sent`` on an episode-start reading in a single locked update."""

        with self._lock:
            self._require_connected()
            current = self._items.get(reading_id)
            if current is None:
                raise StorageError(f"Reading {reading_id!r} not found.")
            if not current.rain_detected:
                raise ValueError(
                    f"Reading {reading_id!r} is not an episode start; alert_sent requires rain_detected."
                )
            if current.alert_sent:
                return current.model_copy(deep=True)
            updated = current.model_copy(update={"alert_sent": True})
            self._items[reading_id] = updated
            try:
                self._persist(updated)
            except StorageError:
                self._items[reading_id] = current
                raise
            return updated.model_copy(deep=True)

    def list_recent(self, limit: int = 1000) -> list[Reading]:
        """Return up to ``limit`` readings, newest first."""

        with self._lock:
            self._require_connected()
            items = sorted(self._items.values(), key=lambda item: item.timestamp, reverse=True)
            return [item.model_copy(deep=True) for item in items[:limit]]

    def find_episode_starts(self, since: datetime) -> list[Reading]:
        with self._lock:
            self._require_connected()
            matches = [
                item
                for item in self._items.values()
                if item.rain_detected and item.timestamp >= since
            ]
        matches.sort(key=lambda item: item.timestamp, reverse=True)
        return [item.model_copy(deep=True) for item in matches]

    def _require_connected(self) -> None:
        if not self._connected:
            raise StorageError(f"Reading store is unavailable: {self._unavailable_reason}")

    @staticmethod
    def _encode(reading: Reading) -> str:
        return json.dumps(reading.model_dump(mode="json"), sort_keys=True) + "\n"

    def _persist(self, reading: Reading) -> None:
        if not self.persistence_path:
            return
        if self._needs_compaction:
            # A previous append may have left a partial line; rewrite from memory.
            self._compact()
            return
        try:
            with self.persistence_path.open("a", encoding="utf-8") as handle:
                handle.write(self._encode(reading))
        except OSError as exc:
            self._needs_compaction = True
            raise StorageError(f"Could not write reading store {self.name!r}: {exc}") from exc

    def _compact(self) -> None:
        assert self.persistence_path is not None
        temporary = self.persistence_path.with_name(self.persistence_path.name + ".tmp")
        try:
            with temporary.open("w", encoding="utf-8") as handle:
                for item in self._items.values():
                    handle.write(self._encode(item))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temporary, self.persistence_path)
        except OSError as exc:
            raise StorageError(f"Could not write reading store {self.name!r}: {exc}") from exc
        self._needs_compaction = False
        logger.info("Compacted reading store %s to %d readings", self.name, len(self._items))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        lines = self.persistence_path.read_text(encoding="utf-8").split("\n")
        last_index = len(lines) - 1
        for index, line in enumerate(lines):
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                if index != last_index:
                    raise
                # Unterminated tail from an interrupted append.
                logger.warning(
                    "Dropping torn final line of reading store %s",
                    self.name,
                    extra={"reason": f"line {index + 1}"},
                )
                self._needs_compaction = True
                continue
            reading = Reading.model_validate(payload)
            self._items[reading.id] = reading


@lru_cache
def build_default_store(
    name: str = "readings",
    database_url: Optional[str] = None,
) -> ReadingStore:
    settings = get_settings()
    url = settings.database_url if database_url is None else database_url
    try:
        path = resolve_persistence_path(url)
    except StorageError as exc:
        return ReadingStore(name=name, configuration_error=str(exc))
    return ReadingStore(name=name, persistence_path=path)
