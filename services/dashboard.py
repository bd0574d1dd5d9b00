"""Dashboard view: owns subscriptions, range selection and view-model state."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from threading import Lock
from typing import Callable, List, Optional, Union

from datastore.document_store import build_default_store
from models.records import RangeSelector, ReadSchema, SensorReading, TimeWindow
from services.mapper import latest_of, parse_selector, resolve_time_window
from services.subscriptions import Subscription, SubscriptionManager
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RangeState:
    """Current position of the range filter control."""

    selector: RangeSelector = RangeSelector.last_24h
    custom_start: Optional[date] = None
    custom_end: Optional[date] = None

    def select(
        self,
        selector: Union[RangeSelector, str],
        today: date,
        custom_start: Optional[date] = None,
        custom_end: Optional[date] = None,
    ) -> "RangeState":
        """Transition to ``selector``.

        Leaving ``custom`` drops the custom bounds. Entering it without dates
        defaults to yesterday through today.
        """
        target = parse_selector(selector)
        if target is not RangeSelector.custom:
            return RangeState(selector=target)

        if self.selector is RangeSelector.custom:
            start = custom_start or self.custom_start
            end = custom_end or self.custom_end
        else:
            start, end = custom_start, custom_end
        return RangeState(
            selector=RangeSelector.custom,
            custom_start=start or today - timedelta(days=1),
            custom_end=end or today,
        )

    def resolve(self, now: float, tz: tzinfo) -> TimeWindow:
        return resolve_time_window(
            self.selector, self.custom_start, self.custom_end, now=now, tz=tz
        )


@dataclass(frozen=True)
class DashboardState:
    range: RangeState
    window: TimeWindow
    latest: List[SensorReading] = field(default_factory=list)
    history: List[SensorReading] = field(default_factory=list)
    stale: bool = False
    version: int = 0

    @property
    def latest_reading(self) -> Optional[SensorReading]:
        return latest_of(self.latest)


StateListener = Callable[[DashboardState], None]


class DashboardView:
    """One displayed dashboard and the two live queries behind it.

    The latest query feeds the summary cards; the range query feeds the chart.
    Callbacks from a range subscription that has been replaced are dropped.
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        latest_limit: int = 10,
        tz: tzinfo = timezone.utc,
        on_change: Optional[StateListener] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.manager = manager
        self.latest_limit = latest_limit
        self.tz = tz
        self._on_change = on_change
        self._clock = clock
        self._lock = Lock()
        self._latest_sub: Optional[Subscription] = None
        self._range_sub: Optional[Subscription] = None
        self._range_generation = 0
        self._opened = False
        self._closed = False
        now = clock()
        initial = RangeState()
        self._state = DashboardState(range=initial, window=initial.resolve(now, tz))

    @property
    def closed(self) -> bool:
        return self._closed

    def today(self) -> date:
        return datetime.fromtimestamp(self._clock(), tz=self.tz).date()

    def snapshot(self) -> DashboardState:
        with self._lock:
            return self._state

    def open(self, range_state: Optional[RangeState] = None) -> DashboardState:
        """Start both subscriptions; ``range_state`` defaults to the last 24 hours.

        A view opens once; use :meth:`select_range` to change the range.
        """
        target = range_state or RangeState()
        window = target.resolve(self._clock(), self.tz)
        with self._lock:
            if self._closed:
                raise RuntimeError("Dashboard view is closed.")
            if self._opened:
                raise RuntimeError("Dashboard view is already open.")
            self._opened = True
            self._state = replace(self._state, range=target, window=window)
        latest = self.manager.subscribe_latest(
            self.latest_limit, self._on_latest, self._on_error
        )
        with self._lock:
            closed = self._closed
            if not closed:
                self._latest_sub = latest
        if closed:
            latest.cancel()
            return self.snapshot()
        self._open_range(window)
        return self.snapshot()

    def select_range(
        self,
        selector: Union[RangeSelector, str],
        custom_start: Optional[date] = None,
        custom_end: Optional[date] = None,
    ) -> DashboardState:
        """Switch the range and re-subscribe.

        The new window is validated before the old subscription is touched, so
        an invalid selection leaves the current one running.
        """
        with self._lock:
            current = self._state.range
        target = current.select(selector, self.today(), custom_start, custom_end)
        window = target.resolve(self._clock(), self.tz)

        with self._lock:
            if self._closed:
                raise RuntimeError("Dashboard view is closed.")
            previous = self._range_sub
            self._range_sub = None
            self._range_generation += 1
            self._state = replace(
                self._state,
                range=target,
                window=window,
                history=[],
                version=self._state.version + 1,
            )
        if previous is not None:
            previous.cancel()
        logger.info("Range changed", extra={"range": target.selector.value})
        self._open_range(window)
        return self.snapshot()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._range_generation += 1
            subscriptions = [self._latest_sub, self._range_sub]
            self._latest_sub = self._range_sub = None
        for subscription in subscriptions:
            if subscription is not None:
                subscription.cancel()

    def __enter__(self) -> "DashboardView":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _open_range(self, window: TimeWindow) -> None:
        with self._lock:
            generation = self._range_generation

        def on_range(readings: List[SensorReading]) -> None:
            self._apply(generation, history=readings)

        subscription = self.manager.subscribe_range(
            window.start, window.end, on_range, self._on_error
        )
        with self._lock:
            if generation == self._range_generation and not self._closed:
                self._range_sub = subscription
                return
        # Superseded while opening.
        subscription.cancel()

    def _on_latest(self, readings: List[SensorReading]) -> None:
        self._apply(None, latest=readings)

    def _on_error(self, error: Exception) -> None:
        with self._lock:
            if self._closed:
                return
            self._state = replace(self._state, stale=True, version=self._state.version + 1)
            state = self._state
        self._notify(state)

    def _apply(self, generation: Optional[int], **changes: List[SensorReading]) -> None:
        with self._lock:
            if self._closed:
                return
            if generation is not None and generation != self._range_generation:
                return
            self._state = replace(self._state, version=self._state.version + 1, **changes)
            state = self._state
        self._notify(state)

    def _notify(self, state: DashboardState) -> None:
        if self._on_change is not None:
            self._on_change(state)


@lru_cache
def build_default_manager() -> SubscriptionManager:
    """Factory that wires the subscription manager with the default store."""
    settings = get_settings()
    return SubscriptionManager(
        store=build_default_store(),
        collection=settings.collection,
        schema=ReadSchema(settings.variant),
    )


def build_range_state(
    selector: Union[RangeSelector, str],
    today: date,
    tz: tzinfo,
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
) -> RangeState:
    """Range state for a fresh view, validated against ``tz``.

    Raises :class:`InvalidTimeWindow` for unknown selectors and unusable
    custom bounds.
    """
    target = RangeState().select(selector, today, custom_start, custom_end)
    target.resolve(time.time(), tz)
    return target
