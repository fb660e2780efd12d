"""Typed messages consumed by the session coordinator.

Every change to session state travels through one of these events so that
subscription callbacks, the fallback timer and user actions are applied one
at a time by the coordinator's consumer task.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from models.pollutants import Pollutant
from models.records import DerivedInsight, Reading, ThresholdSet


@dataclass(frozen=True)
class ReadingArrived:
    """Raw telemetry payload pushed by the source; ``None`` means no data."""

    payload: Any
    received_at: datetime


@dataclass(frozen=True)
class TelemetryFailed:
    error: BaseException


@dataclass(frozen=True)
class ThresholdsLoaded:
    thresholds: ThresholdSet


@dataclass(frozen=True)
class ThresholdsFailed:
    error: BaseException


@dataclass(frozen=True)
class AnalysisCompleted:
    generation: int
    reading: Reading
    insight: DerivedInsight


@dataclass(frozen=True)
class AnalysisFailed:
    generation: int
    reading: Reading
    error: BaseException


@dataclass(frozen=True)
class FallbackTick:
    at: datetime


@dataclass(frozen=True)
class AlertDismissed:
    alert_id: str
    reply: Optional[asyncio.Future] = field(default=None, compare=False)


@dataclass(frozen=True)
class ThresholdChanged:
    pollutant: Pollutant
    value: float
    reply: Optional[asyncio.Future] = field(default=None, compare=False)


@dataclass(frozen=True)
class HistoryCleared:
    reply: Optional[asyncio.Future] = field(default=None, compare=False)


CoordinatorEvent = Union[
    ReadingArrived,
    TelemetryFailed,
    ThresholdsLoaded,
    ThresholdsFailed,
    AnalysisCompleted,
    AnalysisFailed,
    FallbackTick,
    AlertDismissed,
    ThresholdChanged,
    HistoryCleared,
]
