"""Websocket change feed for observers of a session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ...models.domain import ChangeEvent
from ...persistence.rows import incident_to_row, log_to_row, movement_to_row
from ...persistence.store import MovementStore
from ..dependencies import get_store

router = APIRouter(tags=["feed"])

logger = logging.getLogger(__name__)


def _snapshot(store: MovementStore, session_id: str) -> dict[str, Any]:
    return {
        "type": "snapshot",
        "session_id": session_id,
        "movements": [movement_to_row(state) for state in store.list_movements(session_id)],
        "incidents": [incident_to_row(incident) for incident in store.list_incidents(session_id)],
        "logs": [log_to_row(entry) for entry in store.list_logs(session_id)],
    }


def _event_message(event: ChangeEvent) -> dict[str, Any]:
    return {"type": "change", "kind": event.kind, "table": event.table, "row": event.row}


async def _drain(websocket: WebSocket) -> None:
    """Consume client frames until the socket closes."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/sessions/{session_id}/feed")
async def session_feed(websocket: WebSocket, session_id: str, store: MovementStore = Depends(get_store)) -> None:
    """Send a snapshot, then every insert/update/delete of the session as it happens."""
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

    def _enqueue(event: ChangeEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    # subscribe before reading the snapshot so no change falls in between
    unsubscribe = await asyncio.to_thread(store.subscribe, session_id, _enqueue)
    receiver = asyncio.create_task(_drain(websocket))
    try:
        snapshot = await asyncio.to_thread(_snapshot, store, session_id)
        await websocket.send_json(snapshot)
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            await websocket.send_json(_event_message(getter.result()))
    except (WebSocketDisconnect, RuntimeError) as exc:
        logger.debug(f"Feed for session {session_id} closed: {exc}")
    finally:
        unsubscribe()
        receiver.cancel()
