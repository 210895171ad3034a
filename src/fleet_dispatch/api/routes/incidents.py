"""Incident board and operator log endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...persistence.store import StoreWriteError
from ...schemas.incidents import IncidentCreate, IncidentModel, LogCreate, LogModel
from ...services.incidents.service import IncidentService, LogService
from ..dependencies import get_incident_service, get_log_service

router = APIRouter(prefix="/sessions/{session_id}", tags=["incidents"])


@router.get("/incidents", response_model=List[IncidentModel])
def list_incidents(session_id: str, service: IncidentService = Depends(get_incident_service)) -> List[IncidentModel]:
    return [IncidentModel.from_domain(incident) for incident in service.list(session_id)]


@router.post("/incidents", response_model=IncidentModel, status_code=status.HTTP_201_CREATED)
def create_incident(
    session_id: str,
    payload: IncidentCreate,
    service: IncidentService = Depends(get_incident_service),
) -> IncidentModel:
    try:
        incident = service.create(session_id, payload.title, payload.position.as_tuple())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreWriteError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return IncidentModel.from_domain(incident)


@router.post("/incidents/{incident_id}/solve", response_model=IncidentModel)
def solve_incident(
    session_id: str,
    incident_id: str,
    service: IncidentService = Depends(get_incident_service),
) -> IncidentModel:
    try:
        incident = service.solve(session_id, incident_id)
    except StoreWriteError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if incident is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Incident {incident_id} not found")
    return IncidentModel.from_domain(incident)


@router.get("/logs", response_model=List[LogModel])
def list_logs(session_id: str, service: LogService = Depends(get_log_service)) -> List[LogModel]:
    return [LogModel.from_domain(entry) for entry in service.list(session_id)]


@router.post("/logs", response_model=LogModel, status_code=status.HTTP_201_CREATED)
def append_log(session_id: str, payload: LogCreate, service: LogService = Depends(get_log_service)) -> LogModel:
    try:
        entry = service.append(session_id, payload.message, payload.resource_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreWriteError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return LogModel.from_domain(entry)
