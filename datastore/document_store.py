"""In-memory document store with push-based query listeners.

Stands in for the cloud document database the dashboard reads from. Writes
exist only for the ingestion side (seed files and tests); the dashboard
itself only queries and listens.
"""

from __future__ import annotations

import copy
import itertools
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock, RLock
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from settings import get_settings

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[List["DocumentSnapshot"]], None]
ErrorCallback = Callable[[Exception], None]

_TIMESTAMP_TAG = "__timestamp__"
_FILTER_OPS = ("==", "<", "<=", ">", ">=")


@dataclass(frozen=True, order=True)
class StoreTimestamp:
    """Store-native timestamp, mirroring the cloud client's ``Timestamp``."""

    seconds: int
    nanos: int = 0

    @classmethod
    def from_datetime(cls, value: datetime) -> "StoreTimestamp":
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        epoch_us = int(value.timestamp() * 1_000_000)
        seconds, micros = divmod(epoch_us, 1_000_000)
        return cls(seconds=seconds, nanos=micros * 1000)

    @classmethod
    def from_epoch_seconds(cls, value: float) -> "StoreTimestamp":
        seconds = int(value // 1)
        nanos = int(round((value - seconds) * 1_000_000_000))
        return cls(seconds=seconds, nanos=nanos)

    def to_datetime(self) -> datetime:
        """Return an aware UTC datetime (microsecond precision)."""
        base = datetime.fromtimestamp(self.seconds, tz=timezone.utc)
        return base.replace(microsecond=self.nanos // 1000)

    def to_epoch_ms(self) -> int:
        return self.seconds * 1000 + self.nanos // 1_000_000


@dataclass(frozen=True)
class DocumentSnapshot:
    """Immutable view of a stored document at delivery time."""

    id: str
    data: Dict[str, Any]

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.data.get(field_name, default)


@dataclass(frozen=True)
class Query:
    """Composable collection query: filters, a single ordering and a limit."""

    collection: str
    filters: Tuple[Tuple[str, str, Any], ...] = ()
    order_field: Optional[str] = None
    descending: bool = False
    limit_count: Optional[int] = None

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        if op not in _FILTER_OPS:
            raise ValueError(f"Unsupported filter operator {op!r}.")
        return replace(self, filters=self.filters + ((field_name, op, value),))

    def order_by(self, field_name: str, direction: str = "asc") -> "Query":
        if direction not in {"asc", "desc"}:
            raise ValueError(f"Unsupported order direction {direction!r}.")
        return replace(self, order_field=field_name, descending=direction == "desc")

    def limit(self, count: int) -> "Query":
        if count <= 0:
            raise ValueError("Query limit must be positive.")
        return replace(self, limit_count=count)

    def describe(self) -> str:
        parts = [self.collection]
        parts.extend(f"{name}{op}{value!r}" for name, op, value in self.filters)
        if self.order_field:
            parts.append(f"order={self.order_field}:{'desc' if self.descending else 'asc'}")
        if self.limit_count:
            parts.append(f"limit={self.limit_count}")
        return " ".join(parts)


def _order_key(value: Any) -> tuple:
    # Values of different types sort by type rank first, as the cloud store does.
    if value is None:
        return (0,)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, float(value))
    if isinstance(value, StoreTimestamp):
        return (3, value.seconds, value.nanos)
    if isinstance(value, str):
        return (4, value)
    return (5, repr(value))


def _matches(data: Dict[str, Any], filters: Tuple[Tuple[str, str, Any], ...]) -> bool:
    for field_name, op, bound in filters:
        if field_name not in data:
            return False
        key = _order_key(data[field_name])
        bound_key = _order_key(bound)
        if key[0] != bound_key[0]:
            return False
        if op == "==" and not key == bound_key:
            return False
        if op == "<" and not key < bound_key:
            return False
        if op == "<=" and not key <= bound_key:
            return False
        if op == ">" and not key > bound_key:
            return False
        if op == ">=" and not key >= bound_key:
            return False
    return True


def _encode_value(value: Any) -> Any:
    if isinstance(value, StoreTimestamp):
        return {_TIMESTAMP_TAG: {"seconds": value.seconds, "nanos": value.nanos}}
    return value


def _decode_value(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {_TIMESTAMP_TAG}:
        raw = value[_TIMESTAMP_TAG]
        return StoreTimestamp(seconds=int(raw["seconds"]), nanos=int(raw.get("nanos", 0)))
    return value


@dataclass
class _Listener:
    listener_id: int
    query: Query
    callback: SnapshotCallback
    on_error: Optional[ErrorCallback]
    active: bool = True
    last_delivery: Optional[list] = field(default=None, repr=False)
    # Sequence of the newest collected snapshot, and of the last one delivered.
    sequence: int = 0
    delivered: int = 0
    delivery_lock: RLock = field(default_factory=RLock, repr=False)

    def stamp(self, snapshot: list[DocumentSnapshot]) -> _Pending:
        self.sequence += 1
        return (self, self.sequence, snapshot)


_Pending = Tuple[_Listener, int, List[DocumentSnapshot]]


class MockDocumentStore:

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
            self._persist()
            pending = self._collect_changed(collection)
        self._deliver(pending)

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid4().hex[:20]
        self.set_document(collection, doc_id, data)
        return doc_id

    def delete_document(self, collection: str, doc_id: str) -> None:
        with self._lock:
            documents = self._collections.get(collection, {})
            if documents.pop(doc_id, None) is None:
                raise KeyError(f"Document {doc_id!r} not found in collection {collection!r}.")
            self._persist()
            pending = self._collect_changed(collection)
        self._deliver(pending)

    def get_documents(self, query: Query) -> list[DocumentSnapshot]:
        with self._lock:
            return self._run_query(query)

    def on_snapshot(
        self,
        query: Query,
        callback: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        """Register a listener and deliver the current result set immediately.

        Returns an unsubscribe function; after it returns no further
        callbacks are started for this listener.
        """
        with self._lock:
            listener = _Listener(
                listener_id=next(self._listener_ids),
                query=query,
                callback=callback,
                on_error=on_error,
            )
            self._listeners[listener.listener_id] = listener
            snapshot = self._run_query(query)
            listener.last_delivery = self._fingerprint(snapshot)
            pending = listener.stamp(snapshot)
        logger.debug(
            "Listener registered",
            extra={"query": query.describe(), "listener_count": len(self._listeners)},
        )
        self._deliver([pending])

        def unsubscribe() -> None:
            # Waits for an in-flight callback; lock order is delivery, then store.
            with listener.delivery_lock, self._lock:
                listener.active = False
                self._listeners.pop(listener.listener_id, None)

        return unsubscribe

    def fail_listeners(self, error: Exception, collection: Optional[str] = None) -> int:
        """Terminate listeners with ``error``, as a dropped connection would.

        Returns the number of listeners that were failed.
        """
        with self._lock:
            failed = [
                listener
                for listener in self._listeners.values()
                if collection is None or listener.query.collection == collection
            ]
            for listener in failed:
                listener.active = False
                self._listeners.pop(listener.listener_id, None)
        for listener in failed:
            if listener.on_error is not None:
                listener.on_error(error)
        logger.warning(
            "Listeners failed",
            extra={"collection": collection, "listener_count": len(failed), "reason": str(error)},
        )
        return len(failed)

    def _run_query(self, query: Query) -> list[DocumentSnapshot]:
        documents = self._collections.get(query.collection, {})
        matched = [
            (doc_id, data)
            for doc_id, data in documents.items()
            if _matches(data, query.filters)
        ]
        if query.order_field:
            order_field = query.order_field
            matched = [item for item in matched if order_field in item[1]]
            matched.sort(
                key=lambda item: (_order_key(item[1][order_field]), item[0]),
                reverse=query.descending,
            )
        if query.limit_count:
            matched = matched[: query.limit_count]
        return [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in matched
        ]

    def _collect_changed(self, collection: str) -> list[_Pending]:
        pending = []
        for listener in self._listeners.values():
            if listener.query.collection != collection:
                continue
            snapshot = self._run_query(listener.query)
            fingerprint = self._fingerprint(snapshot)
            if fingerprint == listener.last_delivery:
                continue
            listener.last_delivery = fingerprint
            pending.append(listener.stamp(snapshot))
        return pending

    @staticmethod
    def _fingerprint(snapshot: list[DocumentSnapshot]) -> list:
        return [(doc.id, doc.data) for doc in snapshot]

    @staticmethod
    def _deliver(pending: list[_Pending]) -> None:
        """Run callbacks one at a time per listener, newest snapshot wins.

        Writers deliver on their own threads, so a snapshot collected earlier
        can reach this point after a later one; such snapshots are dropped.
        """
        for listener, sequence, snapshot in pending:
            with listener.delivery_lock:
                if not listener.active or sequence <= listener.delivered:
                    continue
                listener.delivered = sequence
                try:
                    listener.callback(snapshot)
                except Exception:
                    logger.exception(
                        "Snapshot listener raised",
                        extra={"query": listener.query.describe()},
                    )

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            collection: {
                doc_id: {name: _encode_value(value) for name, value in data.items()}
                for doc_id, data in documents.items()
            }
            for collection, documents in self._collections.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable seed file", extra={"reason": str(self.persistence_path)}
            )
            data = {}

        for collection, documents in data.items():
            self._collections[collection] = {
                doc_id: {name: _decode_value(value) for name, value in fields.items()}
                for doc_id, fields in documents.items()
            }


@lru_cache
def build_default_store(path: Optional[str] = None) -> MockDocumentStore:
    settings = get_settings()
    store_path = settings.seed_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return MockDocumentStore(persistence_path=persistence)
