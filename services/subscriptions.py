"""Live queries against the sensor collection."""

from __future__ import annotations

import itertools
import logging
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from datastore.document_store import DocumentSnapshot, MockDocumentStore, Query, StoreTimestamp
from models.records import ReadSchema, SensorReading
from services.mapper import TIMESTAMP_FIELD, map_documents

logger = logging.getLogger(__name__)

ReadingsCallback = Callable[[List[SensorReading]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """Cancellation handle for one live query."""

    def __init__(self, subscription_id: int, kind: str, query: Query) -> None:
        self.subscription_id = subscription_id
        self.kind = kind
        self.query = query
        self.error: Optional[Exception] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._on_cancel: Optional[Callable[["Subscription"], None]] = None
        self._active = True
        self._lock = Lock()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def failed(self) -> bool:
        return self.error is not None

    def cancel(self) -> None:
        """Stop delivery and release the store listener. Safe to call twice."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            unsubscribe = self._unsubscribe
            on_cancel = self._on_cancel
        if unsubscribe is not None:
            unsubscribe()
        if on_cancel is not None:
            on_cancel(self)
        logger.debug(
            "Subscription cancelled",
            extra={"subscription_id": self.subscription_id, "query": self.query.describe()},
        )

    def _attach(
        self, unsubscribe: Callable[[], None], on_cancel: Callable[["Subscription"], None]
    ) -> None:
        with self._lock:
            self._unsubscribe = unsubscribe
            self._on_cancel = on_cancel
            cancelled_early = not self._active
        if cancelled_early:
            unsubscribe()
            on_cancel(self)

    def _fail(self, error: Exception) -> None:
        with self._lock:
            self.error = error
            self._active = False
            on_cancel = self._on_cancel
        if on_cancel is not None:
            on_cancel(self)


class SubscriptionManager:
    """Opens latest/range queries and maps every delivery to readings.

    Each delivery is a complete snapshot; consumers replace their state with
    it rather than merging.
    """

    def __init__(
        self,
        store: MockDocumentStore,
        collection: str = "sensor",
        schema: ReadSchema = ReadSchema.water,
    ) -> None:
        self.store = store
        self.collection = collection
        self.schema = ReadSchema(schema)
        self._open: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._lock = Lock()

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._open)

    def subscribe_latest(
        self,
        n: int,
        on_snapshot: ReadingsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Newest ``n`` readings, newest first."""
        if n <= 0:
            raise ValueError("Latest subscription limit must be positive.")
        query = (
            Query(self.collection)
            .order_by(TIMESTAMP_FIELD, "desc")
            .limit(n)
        )
        return self._subscribe("latest", query, on_snapshot, on_error)

    def subscribe_range(
        self,
        start: int,
        end: int,
        on_snapshot: ReadingsCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Readings from ``start`` through the whole ``end`` second, oldest first.

        Bounds are epoch seconds. Sub-second timestamps inside the final
        second are included.
        """
        query = (
            Query(self.collection)
            .where(TIMESTAMP_FIELD, ">=", self._bound(start))
            .where(TIMESTAMP_FIELD, "<", self._bound(end + 1))
            .order_by(TIMESTAMP_FIELD, "asc")
        )
        return self._subscribe("range", query, on_snapshot, on_error)

    def shutdown(self) -> None:
        """Cancel every open subscription."""
        with self._lock:
            subscriptions = list(self._open.values())
        for subscription in subscriptions:
            subscription.cancel()
        logger.info("Subscriptions shut down", extra={"listener_count": len(subscriptions)})

    def _bound(self, epoch_seconds: int) -> Any:
        # Bounds must use the stored representation or the store will not match them.
        if self.schema is ReadSchema.multichannel:
            return StoreTimestamp(seconds=int(epoch_seconds))
        return epoch_seconds

    def _subscribe(
        self,
        kind: str,
        query: Query,
        on_snapshot: ReadingsCallback,
        on_error: Optional[ErrorCallback],
    ) -> Subscription:
        subscription = Subscription(next(self._ids), kind, query)
        with self._lock:
            self._open[subscription.subscription_id] = subscription

        def deliver(documents: List[DocumentSnapshot]) -> None:
            if not subscription.active:
                return
            readings = map_documents(documents, self.schema)
            logger.debug(
                "Snapshot delivered",
                extra={
                    "subscription_id": subscription.subscription_id,
                    "reading_count": len(readings),
                },
            )
            on_snapshot(readings)

        def fail(error: Exception) -> None:
            logger.error(
                "Subscription failed",
                extra={
                    "subscription_id": subscription.subscription_id,
                    "query": query.describe(),
                    "reason": str(error),
                },
            )
            subscription._fail(error)
            if on_error is not None:
                on_error(error)

        unsubscribe = self.store.on_snapshot(query, deliver, fail)
        subscription._attach(unsubscribe, self._forget)
        logger.info(
            "Subscription opened",
            extra={
                "subscription_id": subscription.subscription_id,
                "collection": self.collection,
                "query": query.describe(),
            },
        )
        return subscription

    def _forget(self, subscription: Subscription) -> None:
        with self._lock:
            self._open.pop(subscription.subscription_id, None)
