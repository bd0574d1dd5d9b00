from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from datastore.document_store import DocumentSnapshot, StoreTimestamp
from models.records import Granularity, RangeSelector, ReadSchema
from services.mapper import (
    InvalidTimeWindow,
    format_timestamp,
    granularity_for,
    latest_of,
    map_document,
    map_documents,
    resolve_time_window,
    resolve_timezone,
    tick_label,
    to_epoch_ms,
)

INSTANT = 1700000000  # 2023-11-14 22:13:20 UTC


class _ClientTimestamp:
    """Anything exposing ``to_datetime`` is accepted, like the cloud client's type."""

    def __init__(self, moment: datetime) -> None:
        self._moment = moment

    def to_datetime(self) -> datetime:
        return self._moment


def test_map_water_document() -> None:
    document = DocumentSnapshot(
        id="doc-1",
        data={
            "timestamp": INSTANT,
            "flowRate_Lpm": 2.5,
            "delta_mL": 12.34,
            "total_mL": 1500,
            "dayKey": "2023-11-14",
        },
    )

    reading = map_document(document, ReadSchema.water)

    assert reading.doc_id == "doc-1"
    assert reading.timestamp_ms == INSTANT * 1000
    assert reading.flow_rate == 2.5
    assert reading.delta_volume == 12.34
    assert reading.total_volume == 1500.0
    assert reading.day_key == "2023-11-14"
    assert reading.current is None


def test_map_multichannel_document() -> None:
    document = DocumentSnapshot(
        id="doc-2",
        data={"timestamp": StoreTimestamp(INSTANT, 500_000_000), "akim": 3.2, "basinc": 1.1, "sicaklik": 21.5},
    )

    reading = map_document(document, ReadSchema.multichannel)

    assert reading.timestamp_ms == INSTANT * 1000 + 500
    assert (reading.current, reading.pressure, reading.temperature) == (3.2, 1.1, 21.5)
    assert reading.flow_rate is None


def test_malformed_fields_map_to_none() -> None:
    document = DocumentSnapshot(
        id="bad",
        data={"flowRate_Lpm": "n/a", "delta_mL": None, "total_mL": True, "timestamp": "yesterday"},
    )

    reading = map_document(document, ReadSchema.water)

    assert reading.timestamp_ms is None
    assert reading.flow_rate is None
    assert reading.delta_volume is None
    assert reading.total_volume is None


def test_map_documents_preserves_delivery_order() -> None:
    documents = [
        DocumentSnapshot(id=name, data={"timestamp": stamp})
        for name, stamp in (("c", 30), ("a", 10), ("b", 20))
    ]

    readings = map_documents(documents, ReadSchema.water)

    assert [reading.doc_id for reading in readings] == ["c", "a", "b"]


def test_latest_of() -> None:
    readings = map_documents(
        [DocumentSnapshot(id="new", data={"timestamp": 2}), DocumentSnapshot(id="old", data={"timestamp": 1})],
        ReadSchema.water,
    )

    assert latest_of(readings).doc_id == "new"
    assert latest_of([]) is None


def test_to_epoch_ms_accepts_every_representation() -> None:
    moment = datetime.fromtimestamp(INSTANT, tz=timezone.utc)

    assert to_epoch_ms(INSTANT) == INSTANT * 1000
    assert to_epoch_ms(float(INSTANT) + 0.25) == INSTANT * 1000 + 250
    assert to_epoch_ms(StoreTimestamp(INSTANT)) == INSTANT * 1000
    assert to_epoch_ms(moment) == INSTANT * 1000
    assert to_epoch_ms(moment.replace(tzinfo=None)) == INSTANT * 1000
    assert to_epoch_ms(_ClientTimestamp(moment)) == INSTANT * 1000
    assert to_epoch_ms(None) is None
    assert to_epoch_ms(float("nan")) is None


@pytest.mark.parametrize(
    "granularity, expected",
    [
        (Granularity.time, "22:13:20"),
        (Granularity.datetime, "14.11.2023 22:13:20"),
    ],
)
def test_format_timestamp_matches_across_representations(granularity, expected) -> None:
    from_seconds = format_timestamp(INSTANT, granularity)
    from_object = format_timestamp(StoreTimestamp(INSTANT), granularity)

    assert from_seconds == from_object == expected


def test_format_timestamp_uses_display_time_zone() -> None:
    istanbul = ZoneInfo("Europe/Istanbul")

    assert format_timestamp(INSTANT, "time", istanbul) == "01:13:20"
    assert format_timestamp(None, Granularity.time) == ""


def test_tick_label_is_two_lines_for_multi_day_ranges() -> None:
    assert tick_label(INSTANT * 1000, Granularity.time) == "22:13:20"
    assert tick_label(INSTANT * 1000, Granularity.datetime) == ["14.11.2023", "22:13:20"]


def test_granularity_for_selectors() -> None:
    assert granularity_for("24h") is Granularity.time
    assert granularity_for(RangeSelector.last_7d) is Granularity.datetime
    assert granularity_for("30d") is Granularity.datetime
    assert granularity_for("custom") is Granularity.datetime


@pytest.mark.parametrize("selector, days", [("24h", 1), ("7d", 7), ("30d", 30)])
def test_relative_windows_end_now(selector: str, days: int) -> None:
    now = 1704888000.75

    window = resolve_time_window(selector, now=now)

    assert window.end == 1704888000
    assert window.start == 1704888000 - days * 86400


def test_custom_window_spans_whole_days() -> None:
    window = resolve_time_window("custom", date(2024, 1, 10), date(2024, 1, 12))

    assert window.start == 1704844800
    assert window.end == 1705103999


def test_custom_window_single_day_in_local_zone() -> None:
    istanbul = ZoneInfo("Europe/Istanbul")

    window = resolve_time_window("custom", date(2024, 1, 10), date(2024, 1, 10), tz=istanbul)

    assert window.start == 1704844800 - 3 * 3600
    assert window.end == window.start + 86399


def test_inverted_custom_window_is_rejected() -> None:
    with pytest.raises(InvalidTimeWindow, match="before start"):
        resolve_time_window("custom", date(2024, 1, 12), date(2024, 1, 10))


def test_custom_window_requires_both_dates() -> None:
    with pytest.raises(InvalidTimeWindow):
        resolve_time_window("custom", date(2024, 1, 12), None)


def test_unknown_selector_is_rejected() -> None:
    with pytest.raises(InvalidTimeWindow, match="Unknown range"):
        resolve_time_window("90d")

    assert issubclass(InvalidTimeWindow, ValueError)


def test_resolve_timezone_falls_back_to_utc() -> None:
    assert resolve_timezone("UTC") is timezone.utc
    assert resolve_timezone("Not/AZone") is timezone.utc
    assert resolve_timezone("Europe/Istanbul") == ZoneInfo("Europe/Istanbul")
