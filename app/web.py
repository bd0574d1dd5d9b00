from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.api import get_app_settings, get_manager, open_view
from app.presentation import build_snapshot, format_clock, resolve_skin
from models.records import RangeSelector, ReadSchema
from services.dashboard import RangeState, build_range_state
from services.mapper import InvalidTimeWindow
from services.subscriptions import SubscriptionManager
from settings import Settings


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

HEADINGS = {
    ReadSchema.water: "Water Consumption Monitor",
    ReadSchema.multichannel: "Sensor Readings",
}

RANGE_CHOICES = [
    (RangeSelector.last_24h.value, "Last 24 hours"),
    (RangeSelector.last_7d.value, "Last 7 days"),
    (RangeSelector.last_30d.value, "Last 30 days"),
    (RangeSelector.custom.value, "Custom"),
]


def _stream_url(range_state: RangeState) -> str:
    params = {"range": range_state.selector.value}
    if range_state.selector is RangeSelector.custom:
        params["start"] = range_state.custom_start.isoformat()
        params["end"] = range_state.custom_end.isoformat()
    return f"/api/stream?{urlencode(params)}"


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    selector: str = Query("24h", alias="range"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    skin: Optional[str] = Query(None),
    manager: SubscriptionManager = Depends(get_manager),
    settings: Settings = Depends(get_app_settings),
) -> HTMLResponse:
    variant = ReadSchema(settings.variant)
    error: Optional[str] = None

    with open_view(manager, settings) as view:
        try:
            range_state = build_range_state(selector, view.today(), view.tz, start, end)
        except InvalidTimeWindow as exc:
            error = str(exc)
            range_state = RangeState()
        state = view.open(range_state)
        snapshot = build_snapshot(state, variant, view.tz)
        clock = format_clock(tz=view.tz)

    skin_name = resolve_skin(skin, settings.skin)
    return templates.TemplateResponse(
        request,
        f"ui/skins/{skin_name}.html",
        {
            "heading": HEADINGS[variant],
            "skin": skin_name,
            "snapshot": snapshot,
            "variant": variant.value,
            "ranges": RANGE_CHOICES,
            "error": error,
            "clock": clock,
            "timezone": settings.timezone,
            "stream_url": _stream_url(range_state),
            "snapshot_data": snapshot.model_dump(mode="json"),
        },
        status_code=400 if error else 200,
    )
