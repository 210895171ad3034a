"""Incident and log schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.domain import Incident, LogEntry
from .movements import LatLngModel


class IncidentCreate(BaseModel):
    title: str = Field(..., min_length=1, description="Headline, e.g. 'Brann i bolig'.")
    position: LatLngModel


class IncidentModel(BaseModel):
    incident_id: str
    title: str
    lat: float
    lng: float
    solved: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, incident: Incident) -> "IncidentModel":
        return cls(
            incident_id=incident.incident_id,
            title=incident.title,
            lat=incident.latitude,
            lng=incident.longitude,
            solved=incident.solved,
            created_at=incident.created_at,
        )


class LogCreate(BaseModel):
    message: str = Field(..., min_length=1)
    resource_id: Optional[str] = None


class LogModel(BaseModel):
    log_id: str
    message: str
    resource_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, entry: LogEntry) -> "LogModel":
        return cls(
            log_id=entry.log_id,
            message=entry.message,
            resource_id=entry.resource_id,
            created_at=entry.created_at,
        )


class GeocodeResultModel(BaseModel):
    display_name: str
    lat: float
    lon: float
