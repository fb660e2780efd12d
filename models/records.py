"""Domain models shared across services."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from models.pollutants import Pollutant

ThresholdSet = Dict[Pollutant, float]


@dataclass(frozen=True, slots=True)
class Reading:
    """One canonical snapshot of every tracked pollutant concentration."""

    co: float = 0.0
    vocs: float = 0.0
    ch4_lpg: float = 0.0
    pm1_0: float = 0.0
    pm2_5: float = 0.0
    pm10_0: float = 0.0

    def value(self, pollutant: Pollutant) -> float:
        return getattr(self, pollutant.value)

    def as_dict(self) -> Dict[str, float]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass(frozen=True, slots=True)
class HistoricalEntry:
    """A reading paired with the time it was captured."""

    timestamp: datetime
    reading: Reading


@dataclass(frozen=True, slots=True)
class Alert:
    """A threshold breach raised by the alerting engine."""

    id: str
    pollutant: Pollutant
    pollutant_name: str
    value: float
    threshold: float
    created_at: datetime
    message: str


@dataclass(frozen=True)
class DerivedInsight:
    """Latest output of the analysis collaborator for a reading.

    ``risk_level``, ``symptoms`` and the 24-hour ``forecast`` are optional;
    analyzers that cannot provide them leave the defaults.
    """

    summary: str
    generated_at: datetime
    recommendations: List[str] = field(default_factory=list)
    available: bool = True
    risk_level: Optional[str] = None
    symptoms: List[str] = field(default_factory=list)
    forecast: Optional[str] = None
    forecast_confidence: Optional[str] = None

    @classmethod
    def unavailable(cls, generated_at: datetime, reason: Optional[str] = None) -> "DerivedInsight":
        summary = "Analysis unavailable."
        if reason:
            summary = f"Analysis unavailable: {reason}"
        return cls(summary=summary, generated_at=generated_at, available=False)


def default_thresholds() -> ThresholdSet:
    """Thresholds for a freshly provisioned installation: nothing alerts."""
    return {pollutant: math.inf for pollutant in Pollutant}


def complete_thresholds(partial: Mapping[Pollutant, float]) -> ThresholdSet:
    thresholds = default_thresholds()
    thresholds.update(partial)
    return thresholds
