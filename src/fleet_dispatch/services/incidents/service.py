"""Incident board and operator log."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from ...models.domain import Incident, LatLng, LogEntry
from ...persistence.store import MovementStore
from ..movement.clock import EpochClock

logger = logging.getLogger(__name__)


def _incident_id(epoch: int) -> str:
    return f"H{str(epoch)[-6:]}"


class IncidentService:
    def __init__(self, store: MovementStore, clock: EpochClock | None = None) -> None:
        self.store = store
        self.clock = clock or EpochClock()

    def create(self, session_id: str, title: str, position: LatLng) -> Incident:
        """Open an incident at ``position``; ids are "H" + the last six clock digits."""
        cleaned = (title or "").strip()
        if not cleaned:
            raise ValueError("Incident title must not be empty.")
        taken = {item.incident_id for item in self.store.list_incidents(session_id)}
        incident_id = _incident_id(self.clock.next_epoch())
        while incident_id in taken:
            incident_id = _incident_id(self.clock.next_epoch())
        incident = Incident(
            incident_id=incident_id,
            session_id=session_id,
            title=cleaned,
            latitude=float(position[0]),
            longitude=float(position[1]),
        )
        self.store.insert_incident(incident)
        logger.info(f"Incident {incident.incident_id} '{cleaned}' opened in session {session_id}")
        return incident

    def solve(self, session_id: str, incident_id: str) -> Optional[Incident]:
        incident = self.store.solve_incident(session_id, incident_id)
        if incident is None:
            logger.debug(f"Incident {incident_id} not found in session {session_id}")
        return incident

    def list(self, session_id: str) -> list[Incident]:
        return sorted(self.store.list_incidents(session_id), key=lambda item: item.incident_id)


class LogService:
    def __init__(self, store: MovementStore) -> None:
        self.store = store

    def append(self, session_id: str, message: str, resource_id: str | None = None) -> LogEntry:
        cleaned = (message or "").strip()
        if not cleaned:
            raise ValueError("Log message must not be empty.")
        entry = LogEntry(log_id=uuid.uuid4().hex, session_id=session_id, message=cleaned, resource_id=resource_id)
        return self.store.append_log(entry)

    def list(self, session_id: str) -> list[LogEntry]:
        return self.store.list_logs(session_id)
