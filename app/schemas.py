"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from models.pollutants import Pollutant, PollutantInfo
from models.records import Alert, DerivedInsight, HistoricalEntry, Reading


class SessionState(str, Enum):
    """Coordinator lifecycle states exposed via the API."""

    uninitialized = "uninitialized"
    loading = "loading"
    live = "live"
    degraded = "degraded"
    closed = "closed"


class ReadingSchema(BaseModel):
    """Pollutant concentrations in canonical units."""

    co: float = Field(..., ge=0, description="Carbon monoxide, ppm.")
    vocs: float = Field(..., ge=0, description="Volatile organic compounds, ppb.")
    ch4_lpg: float = Field(..., ge=0, description="Methane/LPG, ppm.")
    pm1_0: float = Field(..., ge=0, description="PM1.0, µg/m³.")
    pm2_5: float = Field(..., ge=0, description="PM2.5, µg/m³.")
    pm10_0: float = Field(..., ge=0, description="PM10, µg/m³.")

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingSchema":
        return cls(**reading.as_dict())


class HistoryEntrySchema(BaseModel):
    timestamp: datetime
    reading: ReadingSchema

    @classmethod
    def from_entry(cls, entry: HistoricalEntry) -> "HistoryEntrySchema":
        return cls(timestamp=entry.timestamp, reading=ReadingSchema.from_reading(entry.reading))


class AlertSchema(BaseModel):
    id: str
    pollutant: Pollutant
    pollutant_name: str
    value: float
    threshold: float
    created_at: datetime
    message: str

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertSchema":
        return cls(
            id=alert.id,
            pollutant=alert.pollutant,
            pollutant_name=alert.pollutant_name,
            value=alert.value,
            threshold=alert.threshold,
            created_at=alert.created_at,
            message=alert.message,
        )


class InsightSchema(BaseModel):
    summary: str
    recommendations: List[str] = Field(default_factory=list)
    generated_at: datetime
    available: bool = True
    risk_level: Optional[str] = None
    symptoms: List[str] = Field(default_factory=list)
    forecast: Optional[str] = None
    forecast_confidence: Optional[str] = None

    @classmethod
    def from_insight(cls, insight: DerivedInsight) -> "InsightSchema":
        return cls(
            summary=insight.summary,
            recommendations=list(insight.recommendations),
            generated_at=insight.generated_at,
            available=insight.available,
            risk_level=insight.risk_level,
            symptoms=list(insight.symptoms),
            forecast=insight.forecast,
            forecast_confidence=insight.forecast_confidence,
        )


class PollutantSchema(BaseModel):
    id: Pollutant
    name: str
    unit: str
    description: str
    who_guideline: Optional[float] = None
    who_guideline_note: Optional[str] = None

    @classmethod
    def from_info(cls, info: PollutantInfo) -> "PollutantSchema":
        return cls(
            id=info.pollutant,
            name=info.name,
            unit=info.unit,
            description=info.description,
            who_guideline=info.who_guideline,
            who_guideline_note=info.who_guideline_note,
        )


def thresholds_to_schema(thresholds: Mapping[Pollutant, float]) -> Dict[str, Optional[float]]:
    """Unset (infinite) limits are reported as ``None``."""
    return {
        pollutant.value: (value if math.isfinite(value) else None)
        for pollutant, value in thresholds.items()
    }


class SessionSnapshot(BaseModel):
    """Read-only view of the coordinator state consumed by dashboards."""

    state: SessionState
    current_reading: Optional[ReadingSchema] = None
    history: List[HistoryEntrySchema] = Field(default_factory=list)
    thresholds: Dict[str, Optional[float]] = Field(default_factory=dict)
    alerts: List[AlertSchema] = Field(default_factory=list)
    derived_insight: Optional[InsightSchema] = None
    is_loading_readings: bool = True
    is_loading_analysis: bool = False
    last_analysis_at: Optional[datetime] = None


class ThresholdUpdateRequest(BaseModel):
    value: Optional[float] = Field(
        default=None,
        ge=0,
        description="New limit in the pollutant's unit; null disables alerting.",
    )


class ThresholdUpdateResponse(BaseModel):
    pollutant: Pollutant
    value: Optional[float] = None
    saved: bool
    warning: Optional[str] = None


class TelemetryIngestResponse(BaseModel):
    accepted: bool
    snapshot: SessionSnapshot


class TelemetryPayload(BaseModel):
    """Raw sensor payload published to the telemetry path; null means offline."""

    payload: Optional[Dict[str, Any]] = None
