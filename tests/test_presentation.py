from __future__ import annotations

from datetime import timezone

from app.presentation import (
    MISSING_VALUE,
    build_chart,
    build_latest_response,
    build_snapshot,
    build_summary_cards,
    format_clock,
    resolve_skin,
)
from models.records import Granularity, RangeSelector, ReadSchema, SensorReading, TimeWindow
from services.dashboard import DashboardState, RangeState

INSTANT_MS = 1700000000 * 1000  # 2023-11-14 22:13:20 UTC


def _water(doc_id: str, timestamp_ms, flow=2.5, delta=12.34, total=1500.0) -> SensorReading:
    return SensorReading(
        doc_id=doc_id,
        timestamp_ms=timestamp_ms,
        flow_rate=flow,
        delta_volume=delta,
        total_volume=total,
    )


def _values(cards) -> dict[str, str]:
    return {card.key: card.value for card in cards}


def test_water_cards_use_fixed_precision() -> None:
    cards = build_summary_cards(_water("a", INSTANT_MS), ReadSchema.water)

    assert _values(cards) == {
        "flow_rate": "2.500",
        "delta_volume": "12.3",
        "total_volume": "1500.0",
    }
    assert [card.unit for card in cards] == ["L/min", "mL", "mL"]


def test_multichannel_cards() -> None:
    reading = SensorReading(
        doc_id="m", timestamp_ms=INSTANT_MS, current=3.456, pressure=1.2, temperature=21.56
    )

    cards = build_summary_cards(reading, ReadSchema.multichannel)

    assert _values(cards) == {"current": "3.46", "pressure": "1.20", "temperature": "21.6"}


def test_cards_are_suppressed_without_a_reading() -> None:
    assert build_summary_cards(None, ReadSchema.water) == []


def test_missing_field_renders_placeholder() -> None:
    cards = build_summary_cards(_water("a", INSTANT_MS, flow=None), ReadSchema.water)

    assert _values(cards)["flow_rate"] == MISSING_VALUE


def test_intraday_chart_has_single_line_labels() -> None:
    readings = [_water("a", INSTANT_MS), _water("b", None), _water("c", INSTANT_MS + 10_000, flow=3.0)]

    chart = build_chart(readings, ReadSchema.water, Granularity.time)

    assert chart.labels == ["22:13:20", "22:13:30"]
    assert len(chart.series) == 1
    assert chart.series[0].key == "flow_rate"
    assert chart.series[0].data == [2.5, 3.0]


def test_multi_day_chart_has_two_line_labels_and_three_series() -> None:
    readings = [SensorReading(doc_id="m", timestamp_ms=INSTANT_MS, current=1.0, pressure=2.0, temperature=3.0)]

    chart = build_chart(readings, ReadSchema.multichannel, Granularity.datetime)

    assert chart.labels == [["14.11.2023", "22:13:20"]]
    assert [series.key for series in chart.series] == ["current", "pressure", "temperature"]
    assert [series.data for series in chart.series] == [[1.0], [2.0], [3.0]]


def test_build_snapshot_combines_state() -> None:
    state = DashboardState(
        range=RangeState(selector=RangeSelector.last_7d),
        window=TimeWindow(start=1, end=2),
        latest=[_water("new", INSTANT_MS + 1000, flow=1.0)],
        history=[_water("a", INSTANT_MS, flow=1.0, delta=5.0), _water("b", INSTANT_MS + 1000, flow=3.0, delta=5.0)],
        stale=True,
    )

    snapshot = build_snapshot(state, ReadSchema.water, timezone.utc)

    assert snapshot.range.selector is RangeSelector.last_7d
    assert snapshot.range.window.start == 1
    assert snapshot.chart.granularity is Granularity.datetime
    assert [reading.id for reading in snapshot.readings] == ["a", "b"]
    assert _values(snapshot.cards)["flow_rate"] == "1.000"
    assert snapshot.last_update == "14.11.2023 22:13:21"
    assert snapshot.summary.reading_count == 2
    assert snapshot.summary.mean_flow_rate == 2.0
    assert snapshot.summary.consumed_volume == 10.0
    assert snapshot.stale is True


def test_latest_response_without_readings() -> None:
    response = build_latest_response([], ReadSchema.water)

    assert response.cards == []
    assert response.last_update is None


def test_format_clock_and_skin_resolution() -> None:
    assert format_clock(1700000000, timezone.utc) == "22:13:20"
    assert resolve_skin("Sidebar", "plain") == "sidebar"
    assert resolve_skin("neon", "themed") == "themed"
    assert resolve_skin(None, "plain") == "plain"
