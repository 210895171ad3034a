"""Domain models for stations, resources and replicated movement state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional, Union

LatLng = tuple[float, float]


@dataclass(frozen=True, slots=True)
class Station:
    """Home station a resource returns to when recalled."""

    station_id: str
    name: str
    latitude: float
    longitude: float

    @property
    def position(self) -> LatLng:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Resource:
    """Movable vehicle; reference data that never changes at runtime."""

    resource_id: str
    call_sign: str
    category: str
    station_id: str


@dataclass(frozen=True, slots=True)
class Catalog:
    stations: tuple[Station, ...]
    resources: tuple[Resource, ...]

    def resource(self, resource_id: str) -> Optional[Resource]:
        for resource in self.resources:
            if resource.resource_id == resource_id:
                return resource
        return None

    def station(self, station_id: str) -> Optional[Station]:
        for station in self.stations:
            if station.station_id == station_id:
                return station
        return None

    def home_station(self, resource_id: str) -> Optional[Station]:
        resource = self.resource(resource_id)
        return self.station(resource.station_id) if resource else None

    def resources_by_station(self) -> dict[str, list[Resource]]:
        grouped: dict[str, list[Resource]] = {station.station_id: [] for station in self.stations}
        for resource in self.resources:
            grouped.setdefault(resource.station_id, []).append(resource)
        for members in grouped.values():
            members.sort(key=lambda item: item.call_sign)
        return grouped


class MovementStatus(str, Enum):
    AT_BASE = "AT_BASE"
    DEPLOYED = "DEPLOYED"
    MOVING = "MOVING"


@dataclass(frozen=True, slots=True)
class Motion:
    """Parameters of one uninterrupted movement attempt.

    ``epoch_start`` (epoch milliseconds) identifies the attempt and is the
    version token checked by finalization.
    """

    origin: LatLng
    destination: LatLng
    epoch_start: int
    speed: float


@dataclass(frozen=True, slots=True)
class AtBase:
    session_id: str
    resource_id: str
    status: ClassVar[MovementStatus] = MovementStatus.AT_BASE

    @property
    def position(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class Deployed:
    session_id: str
    resource_id: str
    position: LatLng
    status: ClassVar[MovementStatus] = MovementStatus.DEPLOYED


@dataclass(frozen=True, slots=True)
class Moving:
    session_id: str
    resource_id: str
    motion: Motion
    # Last settled checkpoint; the live position is derived from ``motion``.
    position: LatLng
    status: ClassVar[MovementStatus] = MovementStatus.MOVING

    @property
    def epoch_start(self) -> int:
        return self.motion.epoch_start


MovementState = Union[AtBase, Deployed, Moving]


@dataclass(slots=True)
class Incident:
    incident_id: str
    session_id: str
    title: str
    latitude: float
    longitude: float
    solved: bool = False
    created_at: Optional[datetime] = None

    @property
    def position(self) -> LatLng:
        return (self.latitude, self.longitude)


@dataclass(slots=True)
class LogEntry:
    log_id: str
    session_id: str
    message: str
    resource_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One insert/update/delete notification from the replicated store."""

    kind: str
    table: str
    row: dict = field(default_factory=dict)

    @property
    def session_id(self) -> Optional[str]:
        return self.row.get("session_id")
