from __future__ import annotations

import asyncio
import json
import threading
from datetime import timezone
from typing import List

from app.stream import SnapshotStream, format_event, stream_snapshots
from datastore.document_store import MockDocumentStore
from models.records import ReadSchema
from services.dashboard import DashboardView
from services.subscriptions import SubscriptionManager

NOW = 1704888000


class FakeRequest:
    def __init__(self, disconnects: List[bool]) -> None:
        self._disconnects = list(disconnects)

    async def is_disconnected(self) -> bool:
        return self._disconnects.pop(0) if self._disconnects else True


def _store() -> MockDocumentStore:
    store = MockDocumentStore()
    store.set_document(
        "sensor",
        "recent",
        {"timestamp": NOW - 60, "flowRate_Lpm": 2.5, "delta_mL": 12.34, "total_mL": 1500.0},
    )
    return store


def test_format_event_splits_multiline_data() -> None:
    assert format_event("snapshot", '{"a": 1}') == 'event: snapshot\ndata: {"a": 1}\n\n'
    assert format_event("note", "one\ntwo") == "event: note\ndata: one\ndata: two\n\n"
    assert format_event("empty", "") == "event: empty\ndata: \n\n"


def test_snapshot_stream_keeps_only_newest_state() -> None:
    view = DashboardView(SubscriptionManager(_store()), clock=lambda: NOW)
    first = view.open()
    second = view.select_range("7d")

    async def scenario():
        stream = SnapshotStream(asyncio.get_running_loop())
        stream.push(first)
        stream.push(second)
        await asyncio.sleep(0)
        return await stream.next(timeout=1.0), await stream.next(timeout=0.01)

    newest, nothing = asyncio.run(scenario())
    view.close()

    assert newest is second
    assert nothing is None


def test_snapshot_stream_accepts_pushes_from_other_threads() -> None:
    view = DashboardView(SubscriptionManager(_store()), clock=lambda: NOW)
    state = view.open()
    view.close()

    async def scenario():
        stream = SnapshotStream(asyncio.get_running_loop())
        worker = threading.Thread(target=stream.push, args=(state,))
        worker.start()
        received = await stream.next(timeout=2.0)
        worker.join()
        return received

    assert asyncio.run(scenario()) is state


def test_stream_snapshots_emits_events_and_closes_view() -> None:
    manager = SubscriptionManager(_store())
    view = DashboardView(manager, clock=lambda: NOW)

    async def scenario() -> List[str]:
        stream = SnapshotStream(asyncio.get_running_loop())
        view.open()
        stream.push(view.snapshot())
        request = FakeRequest([False, False, True])
        return [
            chunk
            async for chunk in stream_snapshots(
                request, view, stream, ReadSchema.water, timezone.utc, 0.01
            )
        ]

    chunks = asyncio.run(scenario())

    assert chunks[0] == "retry: 2000\n\n"
    assert chunks[1].startswith("event: snapshot\ndata: ")
    payload = json.loads(chunks[1].split("data: ", 1)[1])
    assert payload["cards"][0]["value"] == "2.500"
    assert payload["range"]["selector"] == "24h"
    assert chunks[2] == ": keepalive\n\n"
    assert len(chunks) == 3
    assert view.closed
    assert manager.active_count == 0
