"""Pure mapping from stored documents to view-model readings."""

from __future__ import annotations

import logging
import math
import time
from datetime import date, datetime, time as dt_time, timedelta, timezone, tzinfo
from typing import Any, Iterable, List, Optional, Sequence, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from datastore.document_store import DocumentSnapshot, StoreTimestamp
from models.records import Granularity, RangeSelector, ReadSchema, SensorReading, TimeWindow

logger = logging.getLogger(__name__)

TIMESTAMP_FIELD = "timestamp"

# reading attribute -> stored field name
SCHEMA_FIELDS = {
    ReadSchema.water: {
        "flow_rate": "flowRate_Lpm",
        "delta_volume": "delta_mL",
        "total_volume": "total_mL",
    },
    ReadSchema.multichannel: {
        "current": "akim",
        "pressure": "basinc",
        "temperature": "sicaklik",
    },
}

_RANGE_DAYS = {
    RangeSelector.last_24h: 1,
    RangeSelector.last_7d: 7,
    RangeSelector.last_30d: 30,
}

_FORMATS = {
    Granularity.time: "%H:%M:%S",
    Granularity.datetime: "%d.%m.%Y %H:%M:%S",
}


class InvalidTimeWindow(ValueError):
    """Raised when a range selection cannot be resolved to a valid window."""


def resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone, falling back to UTC", extra={"reason": name})
        return timezone.utc


def to_epoch_ms(value: Any) -> Optional[int]:
    """Normalize any supported timestamp representation to epoch milliseconds.

    Numbers are epoch seconds. Store timestamps and anything else exposing
    ``to_datetime()`` are converted through their datetime.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, StoreTimestamp):
        return value.to_epoch_ms()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(round(value.timestamp() * 1000))
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(round(value * 1000))
    converter = getattr(value, "to_datetime", None)
    if callable(converter):
        return to_epoch_ms(converter())
    return None


def _to_float(value: Any, doc_id: str, field_name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        logger.debug("Non-numeric field ignored", extra={"doc_id": doc_id, "field": field_name})
        return None
    return parsed if math.isfinite(parsed) else None


def map_document(document: DocumentSnapshot, schema: ReadSchema) -> SensorReading:
    data = document.data
    values = {
        attribute: _to_float(data.get(stored), document.id, stored)
        for attribute, stored in SCHEMA_FIELDS[schema].items()
    }
    day_key = data.get("dayKey")
    return SensorReading(
        doc_id=document.id,
        timestamp_ms=to_epoch_ms(data.get(TIMESTAMP_FIELD)),
        day_key=str(day_key) if day_key is not None else None,
        **values,
    )


def map_documents(
    documents: Iterable[DocumentSnapshot], schema: ReadSchema
) -> List[SensorReading]:
    """Map documents in delivery order."""
    return [map_document(document, schema) for document in documents]


def latest_of(readings: Sequence[SensorReading]) -> Optional[SensorReading]:
    """First element of a newest-first sequence."""
    return readings[0] if readings else None


def format_epoch_ms(
    timestamp_ms: Optional[int],
    granularity: Granularity,
    tz: tzinfo = timezone.utc,
) -> str:
    if timestamp_ms is None:
        return ""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=tz)
    return moment.strftime(_FORMATS[Granularity(granularity)])


def format_timestamp(
    value: Any,
    granularity: Union[Granularity, str],
    tz: tzinfo = timezone.utc,
) -> str:
    return format_epoch_ms(to_epoch_ms(value), Granularity(granularity), tz)


def tick_label(
    timestamp_ms: int, granularity: Granularity, tz: tzinfo = timezone.utc
) -> Union[str, List[str]]:
    """Chart axis label: one line for intraday, ``[date, time]`` otherwise."""
    if granularity is Granularity.time:
        return format_epoch_ms(timestamp_ms, Granularity.time, tz)
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=tz)
    return [moment.strftime("%d.%m.%Y"), moment.strftime("%H:%M:%S")]


def granularity_for(selector: Union[RangeSelector, str]) -> Granularity:
    if parse_selector(selector) is RangeSelector.last_24h:
        return Granularity.time
    return Granularity.datetime


def parse_selector(selector: Union[RangeSelector, str]) -> RangeSelector:
    try:
        return RangeSelector(selector)
    except ValueError as exc:
        choices = ", ".join(item.value for item in RangeSelector)
        raise InvalidTimeWindow(
            f"Unknown range {selector!r}; expected one of: {choices}."
        ) from exc


def start_of_day(day: date, tz: tzinfo = timezone.utc) -> int:
    return int(datetime.combine(day, dt_time.min, tzinfo=tz).timestamp())


def end_of_day(day: date, tz: tzinfo = timezone.utc) -> int:
    return start_of_day(day + timedelta(days=1), tz) - 1


def resolve_time_window(
    selector: Union[RangeSelector, str],
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
    now: Optional[float] = None,
    tz: tzinfo = timezone.utc,
) -> TimeWindow:
    """Resolve a range selector to concrete epoch-second bounds.

    Custom windows span whole days in ``tz``. Inverted or incomplete custom
    ranges raise :class:`InvalidTimeWindow`.
    """
    selected = parse_selector(selector)
    if selected is RangeSelector.custom:
        if custom_start is None or custom_end is None:
            raise InvalidTimeWindow("Custom range requires both a start and an end date.")
        if custom_end < custom_start:
            raise InvalidTimeWindow(
                f"Custom range end {custom_end.isoformat()} is before start "
                f"{custom_start.isoformat()}."
            )
        return TimeWindow(start=start_of_day(custom_start, tz), end=end_of_day(custom_end, tz))

    current = int(time.time() if now is None else now)
    return TimeWindow(start=current - _RANGE_DAYS[selected] * 86400, end=current)
