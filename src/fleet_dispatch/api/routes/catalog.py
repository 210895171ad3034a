"""Station and resource catalog endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from ...models.domain import Catalog
from ...schemas.movements import ResourceModel, StationModel
from ..dependencies import get_catalog

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/stations", response_model=List[StationModel])
def list_stations(catalog: Catalog = Depends(get_catalog)) -> List[StationModel]:
    return [StationModel.from_domain(station) for station in catalog.stations]


@router.get("/resources", response_model=List[ResourceModel])
def list_resources(catalog: Catalog = Depends(get_catalog)) -> List[ResourceModel]:
    """Resources grouped by home station, call signs sorted within each station."""
    grouped = catalog.resources_by_station()
    return [ResourceModel.from_domain(resource) for members in grouped.values() for resource in members]
