"""Server-Sent Events bridge between a dashboard view and the browser."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import tzinfo
from typing import AsyncIterator, Optional

from fastapi import Request

from app.presentation import build_snapshot
from models.records import ReadSchema
from services.dashboard import DashboardState, DashboardView

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


class SnapshotStream:
    """Holds the newest dashboard state until the event loop picks it up.

    ``push`` may be called from any thread. States that arrive faster than
    they are consumed are superseded, never queued.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._latest: Optional[DashboardState] = None
        self._ready = asyncio.Event()

    def push(self, state: DashboardState) -> None:
        try:
            self._loop.call_soon_threadsafe(self._store, state)
        except RuntimeError:
            logger.debug("Dropping snapshot for closed event loop")

    def _store(self, state: DashboardState) -> None:
        self._latest = state
        self._ready.set()

    async def next(self, timeout: float) -> Optional[DashboardState]:
        """Newest state, or ``None`` when nothing arrived within ``timeout``."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return None
        self._ready.clear()
        state, self._latest = self._latest, None
        return state


def format_event(event: str, data: str) -> str:
    lines = "".join(f"data: {line}\n" for line in data.splitlines() or [""])
    return f"event: {event}\n{lines}\n"


async def stream_snapshots(
    request: Request,
    view: DashboardView,
    stream: SnapshotStream,
    variant: ReadSchema,
    tz: tzinfo,
    keepalive_seconds: float,
) -> AsyncIterator[str]:
    """Yield a ``snapshot`` event per state change until the client leaves."""
    try:
        yield "retry: 2000\n\n"
        while not view.closed:
            if await request.is_disconnected():
                break
            state = await stream.next(keepalive_seconds)
            if state is None:
                yield ": keepalive\n\n"
                continue
            payload = build_snapshot(state, variant, tz).model_dump(mode="json")
            yield format_event("snapshot", json.dumps(payload, ensure_ascii=False))
    finally:
        view.close()
        logger.info("Stream closed", extra={"range": view.snapshot().range.selector.value})
