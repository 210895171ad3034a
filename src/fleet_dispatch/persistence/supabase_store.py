"""Supabase-backed replicated store."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..config import settings
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
from .store import INCIDENTS, LOGS, MOVEMENTS, ChangeCallback, MovementStore, StoreWriteError, Unsubscribe

logger = logging.getLogger(__name__)

# logical table -> primary key column inside a session
_ROW_KEYS = {MOVEMENTS: "resource_id", INCIDENTS: "incident_id", LOGS: "log_id"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabaseStore(MovementStore):
    def __init__(self, client: Any, poll_seconds: float | None = None) -> None:
        self._client = client
        self._poll_seconds = poll_seconds if poll_seconds is not None else settings.feed_poll_seconds
        self._tables = {
            MOVEMENTS: settings.movements_table,
            INCIDENTS: settings.incidents_table,
            LOGS: settings.logs_table,
        }
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[ChangeCallback]] = defaultdict(list)
        self._pollers: dict[str, SupabaseChangePoller] = {}

    def _table(self, logical: str):
        return self._client.table(self._tables[logical])

    def _select_session(self, logical: str, session_id: str) -> list[dict]:
        response = self._table(logical).select("*").eq("session_id", session_id).execute()
        return list(response.data or [])

    # ------------------------------------------------------------------ movements
    def get_movement(self, session_id: str, resource_id: str) -> Optional[MovementState]:
        response = (
            self._table(MOVEMENTS)
            .select("*")
            .eq("session_id", session_id)
            .eq("resource_id", resource_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return movement_from_row(rows[0]) if rows else None

    def list_movements(self, session_id: str) -> list[MovementState]:
        states: list[MovementState] = []
        for row in self._select_session(MOVEMENTS, session_id):
            try:
                states.append(movement_from_row(row))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping invalid movement row {row.get('resource_id')}: {e}")
        return states

    def upsert_movement(self, state: MovementState) -> MovementState:
        row = movement_to_row(state)
        row["updated_at"] = _now_iso()
        try:
            self._table(MOVEMENTS).upsert(row, on_conflict="session_id,resource_id").execute()
        except Exception as e:
            raise StoreWriteError(f"Failed to write movement for {state.resource_id}: {e}") from e
        return state

    def finalize_movement(self, session_id: str, resource_id: str, epoch_start: int, position: LatLng) -> bool:
        payload = {**arrival_update(position), "updated_at": _now_iso()}
        try:
            response = (
                self._table(MOVEMENTS)
                .update(payload)
                .eq("session_id", session_id)
                .eq("resource_id", resource_id)
                .eq("status", MovementStatus.MOVING.value)
                .eq("epoch_start", epoch_start)
                .execute()
            )
        except Exception as e:
            raise StoreWriteError(f"Failed to finalize movement for {resource_id}: {e}") from e
        return bool(response.data)

    # ------------------------------------------------------------------ incidents
    def insert_incident(self, incident: Incident) -> Incident:
        if incident.created_at is None:
            incident.created_at = datetime.now(timezone.utc)
        try:
            self._table(INCIDENTS).insert(incident_to_row(incident)).execute()
        except Exception as e:
            raise StoreWriteError(f"Failed to insert incident {incident.incident_id}: {e}") from e
        return incident

    def solve_incident(self, session_id: str, incident_id: str) -> Optional[Incident]:
        try:
            response = (
                self._table(INCIDENTS)
                .update({"solved": True})
                .eq("session_id", session_id)
                .eq("incident_id", incident_id)
                .execute()
            )
        except Exception as e:
            raise StoreWriteError(f"Failed to solve incident {incident_id}: {e}") from e
        rows = response.data or []
        return incident_from_row(rows[0]) if rows else None

    def list_incidents(self, session_id: str) -> list[Incident]:
        return [incident_from_row(row) for row in self._select_session(INCIDENTS, session_id)]

    def clear_incidents(self, session_id: str) -> int:
        try:
            response = self._table(INCIDENTS).delete().eq("session_id", session_id).execute()
        except Exception as e:
            raise StoreWriteError(f"Failed to clear incidents of session {session_id}: {e}") from e
        return len(response.data or [])

    # ------------------------------------------------------------------ logs
    def append_log(self, entry: LogEntry) -> LogEntry:
        if entry.created_at is None:
            entry.created_at = datetime.now(timezone.utc)
        try:
            self._table(LOGS).insert(log_to_row(entry)).execute()
        except Exception as e:
            raise StoreWriteError(f"Failed to append log {entry.log_id}: {e}") from e
        return entry

    def list_logs(self, session_id: str) -> list[LogEntry]:
        rows = self._select_session(LOGS, session_id)
        rows.sort(key=lambda row: row.get("created_at") or "")
        return [log_from_row(row) for row in rows]

    # ------------------------------------------------------------------ feed
    def subscribe(self, session_id: str, callback: ChangeCallback) -> Unsubscribe:
        with self._lock:
            self._subscribers[session_id].append(callback)
            poller = self._pollers.get(session_id)
            if poller is None:
                poller = SupabaseChangePoller(
                    fetch=lambda table: self._select_session(table, session_id),
                    publish=lambda event: self._publish(session_id, event),
                    interval=self._poll_seconds,
                )
                # seed with the current rows so subscribers only get changes
                poller.poll_once(emit=False)
                self._pollers[session_id] = poller
                poller.start()

        def _unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(session_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks and session_id in self._pollers:
                    self._pollers.pop(session_id).stop()

        return _unsubscribe

    def _publish(self, session_id: str, event: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(session_id, ()))
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Change subscriber failed for session {session_id} ({event.table} {event.kind})")


class SupabaseChangePoller:
    """Turn periodic session snapshots into insert/update/delete events.

    Events for one row are emitted in the order its versions are observed;
    intermediate versions written between two polls are not replayed.
    """

    def __init__(
        self,
        fetch: Callable[[str], list[dict]],
        publish: Callable[[ChangeEvent], None],
        interval: float,
    ) -> None:
        self._fetch = fetch
        self._publish = publish
        self._interval = interval
        self._seen: dict[str, dict[str, dict]] = {table: {} for table in _ROW_KEYS}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="supabase-change-poller", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.poll_once()
            except Exception as e:
                logger.warning(f"Change feed poll failed, retrying in {self._interval:.1f}s: {e}")

    def poll_once(self, emit: bool = True) -> list[ChangeEvent]:
        events: list[ChangeEvent] = []
        for table, key_column in _ROW_KEYS.items():
            current = {str(row[key_column]): row for row in self._fetch(table)}
            previous = self._seen[table]
            for key, row in current.items():
                if key not in previous:
                    events.append(ChangeEvent(kind="insert", table=table, row=row))
                elif previous[key] != row:
                    events.append(ChangeEvent(kind="update", table=table, row=row))
            for key, row in previous.items():
                if key not in current:
                    events.append(ChangeEvent(kind="delete", table=table, row=row))
            self._seen[table] = current
        if emit:
            for event in events:
                self._publish(event)
        return events
