"""Process-local implementation of the replicated store."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from ..models.domain import ChangeEvent, Incident, LatLng, LogEntry, MovementState, MovementStatus
from .rows import (
    arrival_update,
    incident_from_row,
    incident_to_row,
    log_from_row,
    log_to_row,
    movement_from_row,
    movement_to_row,
)
from .store import INCIDENTS, LOGS, MOVEMENTS, ChangeCallback, MovementStore, Unsubscribe

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryStore(MovementStore):
    """Rows kept in dictionaries behind one re-entrant lock.

    Change events are published while the lock is held, so subscribers see
    the writes to each row in the order they were applied. Subscribers must
    return quickly.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._movements: dict[tuple[str, str], dict] = {}
        self._incidents: dict[str, dict[str, dict]] = defaultdict(dict)
        self._logs: dict[str, list[dict]] = defaultdict(list)
        self._subscribers: dict[str, list[ChangeCallback]] = defaultdict(list)

    # ------------------------------------------------------------------ movements
    def get_movement(self, session_id: str, resource_id: str) -> Optional[MovementState]:
        with self._lock:
            row = self._movements.get((session_id, resource_id))
            return movement_from_row(row) if row else None

    def list_movements(self, session_id: str) -> list[MovementState]:
        with self._lock:
            rows = [row for (sid, _), row in self._movements.items() if sid == session_id]
            return [movement_from_row(row) for row in rows]

    def upsert_movement(self, state: MovementState) -> MovementState:
        row = movement_to_row(state)
        row["updated_at"] = _now_iso()
        key = (state.session_id, state.resource_id)
        with self._lock:
            kind = "update" if key in self._movements else "insert"
            self._movements[key] = row
            self._publish(state.session_id, ChangeEvent(kind=kind, table=MOVEMENTS, row=dict(row)))
        return state

    def finalize_movement(self, session_id: str, resource_id: str, epoch_start: int, position: LatLng) -> bool:
        key = (session_id, resource_id)
        with self._lock:
            row = self._movements.get(key)
            if (
                row is None
                or row.get("status") != MovementStatus.MOVING.value
                or row.get("epoch_start") != epoch_start
            ):
                return False
            updated = {**row, **arrival_update(position), "updated_at": _now_iso()}
            self._movements[key] = updated
            self._publish(session_id, ChangeEvent(kind="update", table=MOVEMENTS, row=dict(updated)))
            return True

    # ------------------------------------------------------------------ incidents
    def insert_incident(self, incident: Incident) -> Incident:
        if incident.created_at is None:
            incident.created_at = datetime.now(timezone.utc)
        row = incident_to_row(incident)
        with self._lock:
            self._incidents[incident.session_id][incident.incident_id] = row
            self._publish(incident.session_id, ChangeEvent(kind="insert", table=INCIDENTS, row=dict(row)))
        return incident

    def solve_incident(self, session_id: str, incident_id: str) -> Optional[Incident]:
        with self._lock:
            row = self._incidents[session_id].get(incident_id)
            if row is None:
                return None
            row = {**row, "solved": True}
            self._incidents[session_id][incident_id] = row
            self._publish(session_id, ChangeEvent(kind="update", table=INCIDENTS, row=dict(row)))
            return incident_from_row(row)

    def list_incidents(self, session_id: str) -> list[Incident]:
        with self._lock:
            return [incident_from_row(row) for row in self._incidents[session_id].values()]

    def clear_incidents(self, session_id: str) -> int:
        with self._lock:
            rows = list(self._incidents.pop(session_id, {}).values())
            for row in rows:
                self._publish(session_id, ChangeEvent(kind="delete", table=INCIDENTS, row=dict(row)))
            return len(rows)

    # ------------------------------------------------------------------ logs
    def append_log(self, entry: LogEntry) -> LogEntry:
        if entry.created_at is None:
            entry.created_at = datetime.now(timezone.utc)
        row = log_to_row(entry)
        with self._lock:
            self._logs[entry.session_id].append(row)
            self._publish(entry.session_id, ChangeEvent(kind="insert", table=LOGS, row=dict(row)))
        return entry

    def list_logs(self, session_id: str) -> list[LogEntry]:
        with self._lock:
            return [log_from_row(row) for row in self._logs[session_id]]

    # ------------------------------------------------------------------ feed
    def subscribe(self, session_id: str, callback: ChangeCallback) -> Unsubscribe:
        with self._lock:
            self._subscribers[session_id].append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(session_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return _unsubscribe

    def _publish(self, session_id: str, event: ChangeEvent) -> None:
        for callback in list(self._subscribers.get(session_id, ())):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Change subscriber failed for session {session_id} ({event.table} {event.kind})")
