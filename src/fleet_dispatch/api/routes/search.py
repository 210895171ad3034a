"""Address search endpoint."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Query, status

from ...schemas.incidents import GeocodeResultModel
from ...services.geocoding.nominatim import GeocodingError, NominatimClient

router = APIRouter(tags=["search"])


def get_geocoder() -> NominatimClient:
    return NominatimClient()


@router.get("/search", response_model=List[GeocodeResultModel])
def search(q: str = Query(..., min_length=1), limit: int = Query(10, ge=1, le=50)) -> List[GeocodeResultModel]:
    try:
        results = get_geocoder().search(q, limit=limit)
    except GeocodingError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [GeocodeResultModel(display_name=item.display_name, lat=item.lat, lon=item.lon) for item in results]
