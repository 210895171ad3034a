"""Movement request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import AtBase, MovementState, MovementStatus, Moving, Resource, Station


class LatLngModel(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)

    @classmethod
    def from_tuple(cls, value: Optional[tuple[float, float]]) -> Optional["LatLngModel"]:
        if value is None:
            return None
        return cls(lat=value[0], lng=value[1])


class DispatchRequest(BaseModel):
    destination: LatLngModel
    speed: Optional[float] = Field(default=None, gt=0, description="Meters per second; default speed when omitted.")


class FinalizeRequest(BaseModel):
    epoch_start: int = Field(..., ge=0, description="Epoch the caller computed arrival against.")


class FinalizeResponse(BaseModel):
    resource_id: str
    epoch_start: int
    applied: bool


class MovementStateModel(BaseModel):
    resource_id: str
    status: MovementStatus
    position: Optional[LatLngModel] = None
    origin: Optional[LatLngModel] = None
    destination: Optional[LatLngModel] = None
    epoch_start: Optional[int] = None
    speed: Optional[float] = None

    @classmethod
    def from_state(cls, state: MovementState) -> "MovementStateModel":
        if isinstance(state, Moving):
            return cls(
                resource_id=state.resource_id,
                status=state.status,
                position=LatLngModel.from_tuple(state.position),
                origin=LatLngModel.from_tuple(state.motion.origin),
                destination=LatLngModel.from_tuple(state.motion.destination),
                epoch_start=state.motion.epoch_start,
                speed=state.motion.speed,
            )
        position = None if isinstance(state, AtBase) else state.position
        return cls(resource_id=state.resource_id, status=state.status, position=LatLngModel.from_tuple(position))


class PositionResponse(BaseModel):
    resource_id: str
    status: MovementStatus
    position: Optional[LatLngModel] = None


class ResetResponse(BaseModel):
    session_id: str
    recalled: int


class StationModel(BaseModel):
    station_id: str
    name: str
    lat: float
    lng: float

    @classmethod
    def from_domain(cls, station: Station) -> "StationModel":
        return cls(station_id=station.station_id, name=station.name, lat=station.latitude, lng=station.longitude)


class ResourceModel(BaseModel):
    resource_id: str
    call_sign: str
    category: str
    station_id: str

    @classmethod
    def from_domain(cls, resource: Resource) -> "ResourceModel":
        return cls(
            resource_id=resource.resource_id,
            call_sign=resource.call_sign,
            category=resource.category,
            station_id=resource.station_id,
        )


class MovementListResponse(BaseModel):
    session_id: str
    movements: List[MovementStateModel]
