"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.schemas import (
    AlertSchema,
    HistoryEntrySchema,
    PollutantSchema,
    SessionSnapshot,
    TelemetryIngestResponse,
    TelemetryPayload,
    ThresholdUpdateRequest,
    ThresholdUpdateResponse,
)
from datastore.mock_realtime_db import MockRealtimeDatabase, build_default_database
from models.pollutants import POLLUTANTS, parse_pollutant
from services.coordinator import SessionCoordinator, build_default_coordinator
from settings import get_settings

router = APIRouter()


def get_coordinator() -> SessionCoordinator:
    return build_default_coordinator()


def get_database() -> MockRealtimeDatabase:
    return build_default_database()


@router.get(
    "/state",
    response_model=SessionSnapshot,
    summary="Current session state: reading, history, thresholds, alerts and insight.",
)
async def get_state(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> SessionSnapshot:
    await coordinator.flush()
    return coordinator.snapshot()


@router.get(
    "/history",
    response_model=List[HistoryEntrySchema],
    summary="Historical readings, oldest first.",
)
async def get_history(
    limit: Optional[int] = Query(None, ge=1, description="Return only the most recent N entries."),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> List[HistoryEntrySchema]:
    history = coordinator.snapshot().history
    if limit is not None:
        history = history[-limit:]
    return history


@router.delete(
    "/history",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear the historical buffer after an upstream reset.",
)
async def clear_history(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> None:
    await coordinator.clear_history()


@router.get(
    "/alerts",
    response_model=List[AlertSchema],
    summary="Active alerts, newest first.",
)
async def get_alerts(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> List[AlertSchema]:
    return coordinator.snapshot().alerts


@router.delete(
    "/alerts/{alert_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Dismiss an alert.",
)
async def dismiss_alert(
    alert_id: str,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> None:
    removed = await coordinator.dismiss_alert(alert_id)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Alert {alert_id!r} not found.",
        )


@router.put(
    "/thresholds/{pollutant}",
    response_model=ThresholdUpdateResponse,
    summary="Set or clear the alert threshold for a pollutant.",
)
async def update_threshold(
    pollutant: str,
    request: ThresholdUpdateRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ThresholdUpdateResponse:
    try:
        target = parse_pollutant(pollutant)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown pollutant {pollutant!r}.",
        ) from exc

    result = await coordinator.set_threshold(target, request.value)
    return ThresholdUpdateResponse(
        pollutant=target,
        value=request.value,
        saved=result.ok,
        warning=None if result.ok else f"Threshold applied but not saved: {result.error}",
    )


@router.get(
    "/pollutants",
    response_model=List[PollutantSchema],
    summary="Catalog of tracked pollutants and their units.",
)
async def list_pollutants() -> List[PollutantSchema]:
    return [PollutantSchema.from_info(info) for info in POLLUTANTS.values()]


@router.post(
    "/telemetry",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=TelemetryIngestResponse,
    summary="Publish a raw sensor payload to the telemetry path.",
)
async def publish_telemetry(
    body: TelemetryPayload = Body(...),
    coordinator: SessionCoordinator = Depends(get_coordinator),
    database: MockRealtimeDatabase = Depends(get_database),
) -> TelemetryIngestResponse:
    database.set(get_settings().sensor_path, body.payload)
    await coordinator.flush()
    return TelemetryIngestResponse(accepted=True, snapshot=coordinator.snapshot())


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> dict[str, str]:
    return {"status": "ok", "session": coordinator.state.value}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /state for the live session."}
