"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ReadSchema(str, Enum):
    """Document shapes found in the sensor collection."""

    water = "water"
    multichannel = "multichannel"


class RangeSelector(str, Enum):
    """Symbolic time ranges offered by the filter control."""

    last_24h = "24h"
    last_7d = "7d"
    last_30d = "30d"
    custom = "custom"


class Granularity(str, Enum):
    time = "time"
    datetime = "datetime"


@dataclass(slots=True)
class SensorReading:
    """A single sensor sample, normalized to epoch milliseconds."""

    doc_id: str
    timestamp_ms: Optional[int]
    flow_rate: Optional[float] = None
    delta_volume: Optional[float] = None
    total_volume: Optional[float] = None
    current: Optional[float] = None
    pressure: Optional[float] = None
    temperature: Optional[float] = None
    day_key: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Inclusive bounds in epoch seconds."""

    start: int
    end: int
