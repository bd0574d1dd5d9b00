"""HTTP route definitions for the service."""

from __future__ import annotations

import asyncio
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from app.presentation import build_latest_response, build_snapshot
from app.schemas import DashboardSnapshot, LatestResponse
from app.stream import SSE_HEADERS, SnapshotStream, stream_snapshots
from models.records import ReadSchema, SensorReading
from services.dashboard import (
    DashboardView,
    RangeState,
    StateListener,
    build_default_manager,
    build_range_state,
)
from services.mapper import InvalidTimeWindow, resolve_timezone
from services.subscriptions import SubscriptionManager
from settings import Settings, get_settings

router = APIRouter()


def get_manager() -> SubscriptionManager:
    return build_default_manager()


def get_app_settings() -> Settings:
    return get_settings()


def parse_range(
    view: DashboardView,
    selector: str,
    start: Optional[date],
    end: Optional[date],
) -> RangeState:
    """Range state for request parameters, raising 400 for unusable input."""
    try:
        target = build_range_state(selector, view.today(), view.tz, start, end)
    except InvalidTimeWindow as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return target


def open_view(
    manager: SubscriptionManager,
    settings: Settings,
    on_change: Optional[StateListener] = None,
) -> DashboardView:
    return DashboardView(
        manager,
        latest_limit=settings.latest_limit,
        tz=resolve_timezone(settings.timezone),
        on_change=on_change,
    )


@router.get(
    "/api/readings/latest",
    response_model=LatestResponse,
    summary="Newest readings and the summary cards for the newest one.",
)
async def latest_readings(
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Number of readings."),
    manager: SubscriptionManager = Depends(get_manager),
    settings: Settings = Depends(get_app_settings),
) -> LatestResponse:
    received: List[SensorReading] = []
    failed: List[Exception] = []

    def on_snapshot(readings: List[SensorReading]) -> None:
        received[:] = readings

    subscription = manager.subscribe_latest(
        limit or settings.latest_limit, on_snapshot, failed.append
    )
    try:
        readings = list(received)
    finally:
        subscription.cancel()
    return build_latest_response(
        readings,
        ReadSchema(settings.variant),
        resolve_timezone(settings.timezone),
        stale=bool(failed),
    )


@router.get(
    "/api/readings",
    response_model=DashboardSnapshot,
    summary="Dashboard snapshot for a time range.",
)
async def range_readings(
    selector: str = Query("24h", alias="range", description="24h, 7d, 30d or custom."),
    start: Optional[date] = Query(None, description="Custom range start date."),
    end: Optional[date] = Query(None, description="Custom range end date."),
    manager: SubscriptionManager = Depends(get_manager),
    settings: Settings = Depends(get_app_settings),
) -> DashboardSnapshot:
    with open_view(manager, settings) as view:
        state = view.open(parse_range(view, selector, start, end))
        return build_snapshot(state, ReadSchema(settings.variant), view.tz)


@router.get(
    "/api/stream",
    summary="Push dashboard snapshots as Server-Sent Events.",
)
async def stream_readings(
    request: Request,
    selector: str = Query("24h", alias="range"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    manager: SubscriptionManager = Depends(get_manager),
    settings: Settings = Depends(get_app_settings),
) -> StreamingResponse:
    stream = SnapshotStream(asyncio.get_running_loop())
    view = open_view(manager, settings, on_change=stream.push)
    try:
        view.open(parse_range(view, selector, start, end))
    except HTTPException:
        view.close()
        raise
    stream.push(view.snapshot())
    return StreamingResponse(
        stream_snapshots(
            request,
            view,
            stream,
            ReadSchema(settings.variant),
            view.tz,
            settings.keepalive_seconds,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(
    manager: SubscriptionManager = Depends(get_manager),
) -> dict[str, object]:
    return {"status": "ok", "subscriptions": manager.active_count}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /ui for the dashboard and /health for service status."}
