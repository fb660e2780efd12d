from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from models.records import DerivedInsight, Reading
from services.throttle import (
    AnalysisFailure,
    AnalysisThrottle,
    fallback_due,
    should_trigger,
    significant_change,
)

_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_first_reading_always_triggers() -> None:
    assert should_trigger(Reading(), None, in_flight=False) is True
    assert should_trigger(Reading(co=1.0), None, in_flight=False) is True


def test_in_flight_never_triggers() -> None:
    assert should_trigger(Reading(co=1.0), None, in_flight=True) is False
    assert should_trigger(Reading(co=100.0), Reading(co=1.0), in_flight=True) is False


def test_small_changes_do_not_trigger() -> None:
    previous = Reading(co=1.0, pm2_5=10.0, vocs=200.0)
    current = Reading(co=1.05, pm2_5=10.3, vocs=219.0)

    assert should_trigger(current, previous, in_flight=False) is False


def test_change_of_exactly_ten_percent_does_not_trigger() -> None:
    assert should_trigger(Reading(pm10_0=110.0), Reading(pm10_0=100.0), in_flight=False) is False
    assert should_trigger(Reading(pm10_0=90.0), Reading(pm10_0=100.0), in_flight=False) is False
    assert should_trigger(Reading(co=1.1), Reading(co=1.0), in_flight=False) is False
    assert should_trigger(Reading(vocs=0.55), Reading(vocs=0.5), in_flight=False) is False
    assert should_trigger(Reading(pm2_5=0.9), Reading(pm2_5=1.0), in_flight=False) is False
    assert significant_change(1.0, 1.1000001) is True


def test_large_change_in_any_field_triggers() -> None:
    previous = Reading(co=1.0, pm2_5=10.0)

    assert should_trigger(Reading(co=2.0, pm2_5=10.0), previous, in_flight=False) is True
    assert should_trigger(Reading(co=1.0, pm2_5=8.0), previous, in_flight=False) is True


def test_zero_transitions() -> None:
    assert significant_change(0.0, 0.0) is False
    assert significant_change(0.0, 0.01) is True
    assert significant_change(5.0, 0.0) is True
    assert should_trigger(Reading(), Reading(), in_flight=False) is False


def test_custom_change_ratio() -> None:
    throttle = AnalysisThrottle(analyzer=None, change_ratio=0.5)  # type: ignore[arg-type]

    assert throttle.should_trigger(Reading(co=1.4), Reading(co=1.0), in_flight=False) is False
    assert throttle.should_trigger(Reading(co=1.6), Reading(co=1.0), in_flight=False) is True


def test_fallback_due_rules() -> None:
    period = timedelta(minutes=30)

    assert fallback_due(_NOW, None, in_flight=False, period=period) is True
    assert fallback_due(_NOW, None, in_flight=True, period=period) is False
    assert fallback_due(_NOW + timedelta(minutes=29), _NOW, in_flight=False, period=period) is False
    assert fallback_due(_NOW + timedelta(minutes=30), _NOW, in_flight=False, period=period) is True
    assert fallback_due(_NOW + timedelta(hours=2), _NOW, in_flight=True, period=period) is False


class _StaticAnalyzer:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[Reading] = []

    async def analyze(self, reading: Reading) -> DerivedInsight:
        self.calls.append(reading)
        if self.error is not None:
            raise self.error
        return DerivedInsight(summary="ok", generated_at=_NOW)


def test_run_returns_insight() -> None:
    analyzer = _StaticAnalyzer()
    throttle = AnalysisThrottle(analyzer)

    insight = asyncio.run(throttle.run(Reading(co=1.0)))

    assert insight.summary == "ok"
    assert analyzer.calls == [Reading(co=1.0)]


def test_run_wraps_failures_without_retry() -> None:
    analyzer = _StaticAnalyzer(error=TimeoutError("slow model"))
    throttle = AnalysisThrottle(analyzer)

    with pytest.raises(AnalysisFailure) as excinfo:
        asyncio.run(throttle.run(Reading(co=1.0)))

    assert isinstance(excinfo.value.cause, TimeoutError)
    assert excinfo.value.reading == Reading(co=1.0)
    assert len(analyzer.calls) == 1
