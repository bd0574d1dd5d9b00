"""Turn dashboard state into display-ready cards, chart data and snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import List, Optional, Sequence

from app.schemas import (
    ChartData,
    ChartSeries,
    DashboardSnapshot,
    LatestResponse,
    RangeOut,
    ReadingOut,
    SummaryCard,
    TimeWindowOut,
    WindowSummaryOut,
)
from models.records import Granularity, ReadSchema, SensorReading
from services.aggregator import Aggregator
from services.dashboard import DashboardState
from services.mapper import format_epoch_ms, granularity_for, latest_of, tick_label
from settings import SKINS

MISSING_VALUE = "—"


@dataclass(frozen=True)
class Channel:
    key: str
    label: str
    unit: str
    decimals: int
    color: str


CHANNELS = {
    ReadSchema.water: (
        Channel("flow_rate", "Flow rate", "L/min", 3, "#3B82F6"),
        Channel("delta_volume", "Last interval", "mL", 1, "#10B981"),
        Channel("total_volume", "Total consumption", "mL", 1, "#8B5CF6"),
    ),
    ReadSchema.multichannel: (
        Channel("current", "Current", "A", 2, "rgb(75, 192, 192)"),
        Channel("pressure", "Pressure", "bar", 2, "rgb(255, 99, 132)"),
        Channel("temperature", "Temperature", "°C", 1, "rgb(54, 162, 235)"),
    ),
}

CHART_CHANNELS = {
    ReadSchema.water: ("flow_rate",),
    ReadSchema.multichannel: ("current", "pressure", "temperature"),
}


def format_value(value: Optional[float], decimals: int) -> str:
    if value is None:
        return MISSING_VALUE
    return f"{value:.{decimals}f}"


def format_clock(now: Optional[float] = None, tz: tzinfo = timezone.utc) -> str:
    """Initial value of the live clock; the browser keeps it ticking."""
    moment = datetime.now(tz) if now is None else datetime.fromtimestamp(now, tz=tz)
    return moment.strftime("%H:%M:%S")


def resolve_skin(requested: Optional[str], default: str) -> str:
    if requested and requested.lower() in SKINS:
        return requested.lower()
    return default


def build_summary_cards(
    reading: Optional[SensorReading], variant: ReadSchema
) -> List[SummaryCard]:
    """Cards for the newest reading; none at all when there is no reading."""
    if reading is None:
        return []
    return [
        SummaryCard(
            key=channel.key,
            label=channel.label,
            value=format_value(getattr(reading, channel.key), channel.decimals),
            unit=channel.unit,
        )
        for channel in CHANNELS[variant]
    ]


def build_chart(
    readings: Sequence[SensorReading],
    variant: ReadSchema,
    granularity: Granularity,
    tz: tzinfo = timezone.utc,
) -> ChartData:
    plotted = [reading for reading in readings if reading.timestamp_ms is not None]
    channels = {channel.key: channel for channel in CHANNELS[variant]}
    series = []
    for key in CHART_CHANNELS[variant]:
        channel = channels[key]
        series.append(
            ChartSeries(
                key=key,
                label=f"{channel.label} ({channel.unit})",
                color=channel.color,
                data=[getattr(reading, key) for reading in plotted],
            )
        )
    return ChartData(
        granularity=granularity,
        labels=[tick_label(reading.timestamp_ms, granularity, tz) for reading in plotted],
        series=series,
    )


def reading_out(reading: SensorReading) -> ReadingOut:
    return ReadingOut(
        id=reading.doc_id,
        timestamp_ms=reading.timestamp_ms,
        flow_rate=reading.flow_rate,
        delta_volume=reading.delta_volume,
        total_volume=reading.total_volume,
        current=reading.current,
        pressure=reading.pressure,
        temperature=reading.temperature,
        day_key=reading.day_key,
    )


def _last_update(reading: Optional[SensorReading], tz: tzinfo) -> Optional[str]:
    if reading is None or reading.timestamp_ms is None:
        return None
    return format_epoch_ms(reading.timestamp_ms, Granularity.datetime, tz)


def build_latest_response(
    readings: Sequence[SensorReading],
    variant: ReadSchema,
    tz: tzinfo = timezone.utc,
    stale: bool = False,
) -> LatestResponse:
    latest = latest_of(readings)
    return LatestResponse(
        variant=variant,
        readings=[reading_out(reading) for reading in readings],
        cards=build_summary_cards(latest, variant),
        last_update=_last_update(latest, tz),
        stale=stale,
    )


def build_snapshot(
    state: DashboardState,
    variant: ReadSchema,
    tz: tzinfo = timezone.utc,
) -> DashboardSnapshot:
    range_state = state.range
    granularity = granularity_for(range_state.selector)
    summary = Aggregator().aggregate(state.history)
    latest = state.latest_reading
    return DashboardSnapshot(
        variant=variant,
        range=RangeOut(
            selector=range_state.selector,
            custom_start=range_state.custom_start.isoformat() if range_state.custom_start else None,
            custom_end=range_state.custom_end.isoformat() if range_state.custom_end else None,
            window=TimeWindowOut(start=state.window.start, end=state.window.end),
        ),
        readings=[reading_out(reading) for reading in state.history],
        chart=build_chart(state.history, variant, granularity, tz),
        cards=build_summary_cards(latest, variant),
        last_update=_last_update(latest, tz),
        summary=WindowSummaryOut(
            reading_count=summary.reading_count,
            min_flow_rate=summary.min_flow_rate,
            max_flow_rate=summary.max_flow_rate,
            mean_flow_rate=summary.mean_flow_rate,
            consumed_volume=summary.consumed_volume,
            first_timestamp_ms=summary.first_timestamp_ms,
            last_timestamp_ms=summary.last_timestamp_ms,
        ),
        stale=state.stale,
    )
