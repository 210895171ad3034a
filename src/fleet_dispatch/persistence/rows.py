"""Conversion between domain records and flat store rows."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..config import settings
from ..models.domain import (
    AtBase,
    Deployed,
    Incident,
    LatLng,
    LogEntry,
    Motion,
    MovementState,
    MovementStatus,
    Moving,
)

MOTION_COLUMNS = ("origin_lat", "origin_lng", "dest_lat", "dest_lng", "epoch_start", "speed")


def _pair(row: dict, lat_key: str, lng_key: str) -> Optional[LatLng]:
    lat, lng = row.get(lat_key), row.get(lng_key)
    if lat is None or lng is None:
        return None
    return (float(lat), float(lng))


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def movement_to_row(state: MovementState) -> dict[str, Any]:
    """Flatten a movement variant; motion columns are always written together."""
    row: dict[str, Any] = {
        "session_id": state.session_id,
        "resource_id": state.resource_id,
        "status": state.status.value,
        "lat": None,
        "lng": None,
        **{column: None for column in MOTION_COLUMNS},
    }
    if isinstance(state, (Deployed, Moving)):
        row["lat"], row["lng"] = state.position
    if isinstance(state, Moving):
        motion = state.motion
        row["origin_lat"], row["origin_lng"] = motion.origin
        row["dest_lat"], row["dest_lng"] = motion.destination
        row["epoch_start"] = motion.epoch_start
        row["speed"] = motion.speed
    return row


def movement_from_row(row: dict[str, Any]) -> MovementState:
    """Rebuild the movement variant stored in ``row``.

    Raises:
        ValueError: unknown status, or a MOVING/DEPLOYED row missing the
            fields its status requires.
    """
    session_id = str(row["session_id"])
    resource_id = str(row["resource_id"])
    status = MovementStatus(row.get("status"))

    if status is MovementStatus.AT_BASE:
        return AtBase(session_id=session_id, resource_id=resource_id)

    position = _pair(row, "lat", "lng")
    if status is MovementStatus.DEPLOYED:
        if position is None:
            raise ValueError(f"DEPLOYED row for {resource_id} has no position")
        return Deployed(session_id=session_id, resource_id=resource_id, position=position)

    origin = _pair(row, "origin_lat", "origin_lng")
    destination = _pair(row, "dest_lat", "dest_lng")
    epoch_start = row.get("epoch_start")
    if origin is None or destination is None or epoch_start is None:
        raise ValueError(f"MOVING row for {resource_id} is missing motion fields")
    speed = row.get("speed")
    motion = Motion(
        origin=origin,
        destination=destination,
        epoch_start=int(epoch_start),
        speed=float(speed) if speed else settings.default_speed_mps,
    )
    return Moving(
        session_id=session_id,
        resource_id=resource_id,
        motion=motion,
        position=position or origin,
    )


def arrival_update(position: LatLng) -> dict[str, Any]:
    """Column values written by a successful finalization."""
    return {
        "status": MovementStatus.DEPLOYED.value,
        "lat": position[0],
        "lng": position[1],
        **{column: None for column in MOTION_COLUMNS},
    }


def incident_to_row(incident: Incident) -> dict[str, Any]:
    return {
        "incident_id": incident.incident_id,
        "session_id": incident.session_id,
        "title": incident.title,
        "lat": incident.latitude,
        "lng": incident.longitude,
        "solved": incident.solved,
        "created_at": incident.created_at.isoformat() if incident.created_at else None,
    }


def incident_from_row(row: dict[str, Any]) -> Incident:
    return Incident(
        incident_id=str(row["incident_id"]),
        session_id=str(row["session_id"]),
        title=str(row["title"]),
        latitude=float(row["lat"]),
        longitude=float(row["lng"]),
        solved=bool(row.get("solved")),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def log_to_row(entry: LogEntry) -> dict[str, Any]:
    return {
        "log_id": entry.log_id,
        "session_id": entry.session_id,
        "message": entry.message,
        "resource_id": entry.resource_id,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


def log_from_row(row: dict[str, Any]) -> LogEntry:
    return LogEntry(
        log_id=str(row["log_id"]),
        session_id=str(row["session_id"]),
        message=str(row["message"]),
        resource_id=row.get("resource_id"),
        created_at=_parse_timestamp(row.get("created_at")),
    )
