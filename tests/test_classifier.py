"""Unit tests for the per-sample rain classifier."""

from __future__ import annotations

import math

import pytest

from services.classifier import ClassifierThresholds, RainClassifier, as_measurement
from settings import DEFAULT_HUMIDITY_MIN, get_settings


def _scenario_classifier() -> RainClassifier:
    return RainClassifier(
        ClassifierThresholds(
            temperature_min=24.0,
            temperature_max=28.0,
            humidity_min=30.0,
            humidity_max=55.0,
        )
    )


def test_classify_inside_region_returns_true() -> None:
    classifier = _scenario_classifier()

    assert classifier.classify(25, 40) is True
    assert classifier.classify(24.0, 30.0) is True
    assert classifier.classify(28.0, 55.0) is True


@pytest.mark.parametrize(
    ("temperature", "humidity"),
    [(23.9, 40), (28.1, 40), (25, 29.9), (25, 55.1), (20, 10)],
)
def test_classify_outside_region_returns_false(temperature, humidity) -> None:
    assert _scenario_classifier().classify(temperature, humidity) is False


@pytest.mark.parametrize(
    ("temperature", "humidity"),
    [
        (math.nan, 40),
        (25, "x"),
        ("25", 40),
        (None, 40),
        (25, None),
        (True, 40),
        (math.inf, 40),
        ({"value": 25}, 40),
        (10**400, 40),
        (25, -(10**400)),
    ],
)
def test_classify_rejects_malformed_input(temperature, humidity) -> None:
    assert _scenario_classifier().classify(temperature, humidity) is False


def test_classify_is_deterministic() -> None:
    classifier = _scenario_classifier()

    results = {classifier.classify(25, 40) for _ in range(10)}

    assert results == {True}


def test_default_thresholds_follow_settings(monkeypatch) -> None:
    monkeypatch.setenv("RAIN_TEMPERATURE_MIN", "10")
    monkeypatch.setenv("RAIN_HUMIDITY_MAX", "not-a-number")
    get_settings.cache_clear()
    try:
        thresholds = ClassifierThresholds.from_settings(get_settings())
    finally:
        get_settings.cache_clear()

    assert thresholds.temperature_min == 10.0
    assert thresholds.temperature_max == 30.0
    assert thresholds.humidity_min == DEFAULT_HUMIDITY_MIN
    assert thresholds.humidity_max == 100.0


def test_as_measurement_coerces_only_finite_numbers() -> None:
    assert as_measurement(25) == 25.0
    assert as_measurement(25.5) == 25.5
    assert as_measurement("25") is None
    assert as_measurement(False) is None
    assert as_measurement(math.nan) is None
    assert as_measurement(10**400) is None


def test_huge_integer_never_raises_with_default_thresholds() -> None:
    assert RainClassifier().classify(10**400, 50) is False


def test_default_humidity_bound_excludes_exactly_eighty_percent() -> None:
    classifier = RainClassifier()

    assert classifier.classify(25, 80) is False
    assert classifier.classify(25, 80.01) is True
    assert classifier.classify(25, 100) is True
    assert classifier.classify(30, 85) is True
    assert classifier.classify(30.5, 85) is False
