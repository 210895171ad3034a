"""Movement endpoints: dispatch, redirect, recall, finalize."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...persistence.store import StoreWriteError
from ...schemas.movements import (
    DispatchRequest,
    FinalizeRequest,
    FinalizeResponse,
    LatLngModel,
    MovementListResponse,
    MovementStateModel,
    PositionResponse,
    ResetResponse,
)
from ...models.domain import AtBase
from ...services.movement.service import DispatchError, MovementService, UnknownResourceError
from ..dependencies import get_movement_service

router = APIRouter(prefix="/sessions/{session_id}", tags=["movements"])


@router.get("/movements", response_model=MovementListResponse)
def list_movements(session_id: str, service: MovementService = Depends(get_movement_service)) -> MovementListResponse:
    states = service.store.list_movements(session_id)
    return MovementListResponse(
        session_id=session_id,
        movements=[MovementStateModel.from_state(state) for state in states],
    )


@router.post("/movements/{resource_id}/dispatch", response_model=MovementStateModel, status_code=status.HTTP_200_OK)
def dispatch(
    session_id: str,
    resource_id: str,
    payload: DispatchRequest,
    service: MovementService = Depends(get_movement_service),
) -> MovementStateModel:
    try:
        state = service.dispatch(session_id, resource_id, payload.destination.as_tuple(), payload.speed)
        return MovementStateModel.from_state(state)
    except UnknownResourceError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DispatchError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error dispatching {resource_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to dispatch resource: {str(exc)}"
        ) from exc


@router.post("/movements/{resource_id}/recall", response_model=MovementStateModel, status_code=status.HTTP_200_OK)
def recall(
    session_id: str,
    resource_id: str,
    service: MovementService = Depends(get_movement_service),
) -> MovementStateModel:
    try:
        return MovementStateModel.from_state(service.recall(session_id, resource_id))
    except UnknownResourceError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DispatchError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post("/movements/{resource_id}/finalize", response_model=FinalizeResponse, status_code=status.HTTP_200_OK)
def finalize(
    session_id: str,
    resource_id: str,
    payload: FinalizeRequest,
    service: MovementService = Depends(get_movement_service),
) -> FinalizeResponse:
    """Propose arrival for one epoch. ``applied`` is False when another observer won or the epoch is stale."""
    try:
        applied = service.finalize(session_id, resource_id, payload.epoch_start)
    except StoreWriteError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return FinalizeResponse(resource_id=resource_id, epoch_start=payload.epoch_start, applied=applied)


@router.get("/movements/{resource_id}/position", response_model=PositionResponse)
def position(
    session_id: str,
    resource_id: str,
    service: MovementService = Depends(get_movement_service),
) -> PositionResponse:
    try:
        current = service.current_position(session_id, resource_id)
    except UnknownResourceError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    state = service.store.get_movement(session_id, resource_id) or AtBase(session_id=session_id, resource_id=resource_id)
    return PositionResponse(resource_id=resource_id, status=state.status, position=LatLngModel.from_tuple(current))


@router.post("/reset", response_model=ResetResponse, status_code=status.HTTP_200_OK)
def reset(session_id: str, service: MovementService = Depends(get_movement_service)) -> ResetResponse:
    try:
        recalled = service.reset_session(session_id)
    except DispatchError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return ResetResponse(session_id=session_id, recalled=recalled)
