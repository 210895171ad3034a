"""Contract of the replicated movement store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..models.domain import ChangeEvent, Incident, LatLng, LogEntry, MovementState

MOVEMENTS = "movement_states"
INCIDENTS = "incidents"
LOGS = "logs"

ChangeCallback = Callable[[ChangeEvent], None]
Unsubscribe = Callable[[], None]


class StoreWriteError(RuntimeError):
    """The store rejected or could not apply a write."""


class MovementStore(ABC):
    """Replicated row store shared by every observer of a session.

    Writes are whole-row and last-writer-wins, except ``finalize_movement``
    which only applies while the stored row still matches the epoch the
    caller computed arrival against.
    """

    @abstractmethod
    def get_movement(self, session_id: str, resource_id: str) -> Optional[MovementState]:
        raise NotImplementedError

    @abstractmethod
    def list_movements(self, session_id: str) -> list[MovementState]:
        raise NotImplementedError

    @abstractmethod
    def upsert_movement(self, state: MovementState) -> MovementState:
        raise NotImplementedError

    @abstractmethod
    def finalize_movement(self, session_id: str, resource_id: str, epoch_start: int, position: LatLng) -> bool:
        """Settle a movement as DEPLOYED at ``position``.

        Applies only if the row is MOVING with ``epoch_start``; returns whether
        it did. A miss means another observer already finalized, or a redirect
        superseded the epoch.
        """
        raise NotImplementedError

    @abstractmethod
    def insert_incident(self, incident: Incident) -> Incident:
        raise NotImplementedError

    @abstractmethod
    def solve_incident(self, session_id: str, incident_id: str) -> Optional[Incident]:
        raise NotImplementedError

    @abstractmethod
    def list_incidents(self, session_id: str) -> list[Incident]:
        raise NotImplementedError

    @abstractmethod
    def clear_incidents(self, session_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def append_log(self, entry: LogEntry) -> LogEntry:
        raise NotImplementedError

    @abstractmethod
    def list_logs(self, session_id: str) -> list[LogEntry]:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, session_id: str, callback: ChangeCallback) -> Unsubscribe:
        """Deliver every change of ``session_id`` to ``callback`` in write order per row."""
        raise NotImplementedError
