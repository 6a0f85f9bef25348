"""Per-sample rain classification."""

from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real
from typing import Any

from settings import DEFAULT_HUMIDITY_MIN, Settings


@dataclass(frozen=True)
class ClassifierThresholds:
    """Inclusive acceptance region for a "rain now" sample."""

    temperature_min: float = 24.0
    temperature_max: float = 30.0
    humidity_min: float = DEFAULT_HUMIDITY_MIN
    humidity_max: float = 100.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClassifierThresholds":
        return cls(
            temperature_min=settings.temperature_min,
            temperature_max=settings.temperature_max,
            humidity_min=settings.humidity_min,
            humidity_max=settings.humidity_max,
        )


def as_measurement(value: Any) -> float | None:
    """Return ``value`` as a finite float, or ``None`` when it is not a usable number."""

    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    try:
        number = float(value)
    except (OverflowError, ValueError):
        # Integers beyond the float range.
        return None
    if not math.isfinite(number):
        return None
    return number


class RainClassifier:
    """Pure threshold rule; never raises on malformed input."""

    def __init__(self, thresholds: ClassifierThresholds | None = None) -> None:
        self.thresholds = thresholds or ClassifierThresholds()

    def classify(self, temperature: Any, humidity: Any) -> bool:
        temp = as_measurement(temperature)
        hum = as_measurement(humidity)
        if temp is None or hum is None:
            return False
        limits = self.thresholds
        return (
            limits.temperature_min <= temp <= limits.temperature_max
            and limits.humidity_min <= hum <= limits.humidity_max
        )
