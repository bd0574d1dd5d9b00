"""Aggregation logic for readings inside a time window."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from models.records import SensorReading


@dataclass
class WindowSummary:
    """Computed statistics for the readings of the active range."""

    reading_count: int = 0
    min_flow_rate: Optional[float] = None
    max_flow_rate: Optional[float] = None
    mean_flow_rate: Optional[float] = None
    consumed_volume: Optional[float] = None
    first_timestamp_ms: Optional[int] = None
    last_timestamp_ms: Optional[int] = None


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, readings: Iterable[SensorReading]) -> WindowSummary:
        summary = WindowSummary()
        flow_total = 0.0
        flow_count = 0

        for reading in readings:
            summary.reading_count += 1

            if reading.timestamp_ms is not None:
                if summary.first_timestamp_ms is None or reading.timestamp_ms < summary.first_timestamp_ms:
                    summary.first_timestamp_ms = reading.timestamp_ms
                if summary.last_timestamp_ms is None or reading.timestamp_ms > summary.last_timestamp_ms:
                    summary.last_timestamp_ms = reading.timestamp_ms

            if reading.delta_volume is not None:
                summary.consumed_volume = (summary.consumed_volume or 0.0) + reading.delta_volume

            value = reading.flow_rate
            if value is None:
                continue
            flow_total += value
            flow_count += 1
            if summary.min_flow_rate is None or value < summary.min_flow_rate:
                summary.min_flow_rate = value
            if summary.max_flow_rate is None or value > summary.max_flow_rate:
                summary.max_flow_rate = value

        if flow_count:
            summary.mean_flow_rate = flow_total / flow_count

        return summary
