"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

ALERT_TITLE = "Rain alert"


@dataclass(slots=True)
class SensorSample:
    """A raw sample as posted by a sensor, measurements not yet validated."""

    temperature: Any
    humidity: Any
    device_id: str


@dataclass(frozen=True, slots=True)
class SessionState:
    """Point-in-time view of one rain session."""

    is_raining: bool = False
    last_rain_end_time: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class PushMessage:
    title: str
    body: str

    @classmethod
    def rain_started(
        cls,
        device_id: str,
        temperature: Optional[float],
        humidity: Optional[float],
    ) -> "PushMessage":
        return cls(
            title=ALERT_TITLE,
            body=(
                f"Rain detected at {device_id}: "
                f"humidity {_format_measurement(humidity, '%')}, "
                f"temperature {_format_measurement(temperature, ' °C')}"
            ),
        )

    def as_payload(self) -> dict[str, str]:
        return {"title": self.title, "body": self.body}


def _format_measurement(value: Optional[float], unit: str) -> str:
    if value is None:
        return "n/a"
    return f"{value:g}{unit}"
