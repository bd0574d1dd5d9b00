"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field

from models.records import Granularity, RangeSelector, ReadSchema


class ReadingOut(BaseModel):
    """One mapped reading as exposed over the API."""

    id: str
    timestamp_ms: Optional[int] = Field(
        default=None, description="Measurement time in epoch milliseconds."
    )
    flow_rate: Optional[float] = None
    delta_volume: Optional[float] = None
    total_volume: Optional[float] = None
    current: Optional[float] = None
    pressure: Optional[float] = None
    temperature: Optional[float] = None
    day_key: Optional[str] = None


class SummaryCard(BaseModel):
    """A single formatted value from the latest reading."""

    key: str
    label: str
    value: str
    unit: str


class ChartSeries(BaseModel):
    key: str
    label: str
    color: str
    data: List[Optional[float]] = Field(default_factory=list)


class ChartData(BaseModel):
    granularity: Granularity
    labels: List[Union[str, List[str]]] = Field(default_factory=list)
    series: List[ChartSeries] = Field(default_factory=list)


class TimeWindowOut(BaseModel):
    start: int = Field(..., description="Inclusive lower bound, epoch seconds.")
    end: int = Field(..., description="Inclusive upper bound, epoch seconds.")


class RangeOut(BaseModel):
    selector: RangeSelector
    custom_start: Optional[str] = None
    custom_end: Optional[str] = None
    window: TimeWindowOut


class WindowSummaryOut(BaseModel):
    reading_count: int = Field(..., ge=0)
    min_flow_rate: Optional[float] = None
    max_flow_rate: Optional[float] = None
    mean_flow_rate: Optional[float] = None
    consumed_volume: Optional[float] = None
    first_timestamp_ms: Optional[int] = None
    last_timestamp_ms: Optional[int] = None


class LatestResponse(BaseModel):
    """Newest readings plus the cards derived from the newest one."""

    variant: ReadSchema
    readings: List[ReadingOut] = Field(default_factory=list)
    cards: List[SummaryCard] = Field(default_factory=list)
    last_update: Optional[str] = None
    stale: bool = False


class DashboardSnapshot(BaseModel):
    """Full view-model for one range of the dashboard."""

    variant: ReadSchema
    range: RangeOut
    readings: List[ReadingOut] = Field(default_factory=list)
    chart: ChartData
    cards: List[SummaryCard] = Field(default_factory=list)
    last_update: Optional[str] = None
    summary: WindowSummaryOut
    stale: bool = False
