"""Decides when a reading deserves a fresh analysis, and runs it."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from models.pollutants import Pollutant
from models.records import DerivedInsight, Reading
from services.analysis import Analyzer

CHANGE_RATIO = 0.10
FALLBACK_PERIOD = timedelta(minutes=30)


class AnalysisFailure(Exception):
    """The analysis collaborator failed for one attempt; no retry is made."""

    def __init__(self, reading: Reading, cause: BaseException) -> None:
        super().__init__(f"Analysis failed: {cause}")
        self.reading = reading
        self.cause = cause


def significant_change(previous: float, current: float, change_ratio: float = CHANGE_RATIO) -> bool:
    if previous == 0:
        return current != 0
    ratio = abs(current - previous) / abs(previous)
    # A change of exactly ``change_ratio`` is not significant, even after rounding.
    return ratio > change_ratio and not math.isclose(ratio, change_ratio)


def should_trigger(
    new_reading: Reading,
    last_analyzed: Optional[Reading],
    in_flight: bool,
    change_ratio: float = CHANGE_RATIO,
) -> bool:
    if in_flight:
        return False
    if last_analyzed is None:
        return True
    return any(
        significant_change(last_analyzed.value(pollutant), new_reading.value(pollutant), change_ratio)
        for pollutant in Pollutant
    )


def fallback_due(
    now: datetime,
    last_analysis_at: Optional[datetime],
    in_flight: bool,
    period: timedelta = FALLBACK_PERIOD,
) -> bool:
    if in_flight:
        return False
    if last_analysis_at is None:
        return True
    return now - last_analysis_at >= period


class AnalysisThrottle:
    """Binds the trigger rules to one analyzer and its configuration."""

    def __init__(
        self,
        analyzer: Analyzer,
        change_ratio: float = CHANGE_RATIO,
        fallback_period: timedelta = FALLBACK_PERIOD,
    ) -> None:
        self.analyzer = analyzer
        self.change_ratio = change_ratio
        self.fallback_period = fallback_period

    def should_trigger(self, new_reading: Reading, last_analyzed: Optional[Reading], in_flight: bool) -> bool:
        return should_trigger(new_reading, last_analyzed, in_flight, self.change_ratio)

    def fallback_due(self, now: datetime, last_analysis_at: Optional[datetime], in_flight: bool) -> bool:
        return fallback_due(now, last_analysis_at, in_flight, self.fallback_period)

    async def run(self, reading: Reading) -> DerivedInsight:
        try:
            return await self.analyzer.analyze(reading)
        except Exception as exc:
            raise AnalysisFailure(reading, exc) from exc

    async def aclose(self) -> None:
        await self.analyzer.aclose()
