"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, NamedTuple, Optional

from ...models.domain import LatLng


class RouteKey(NamedTuple):
    """Cache key of one movement epoch's route."""

    resource_id: str
    epoch_start: int
    destination: LatLng


@dataclass(slots=True)
class ProviderRoute:
    points: List[LatLng]
    distance_m: Optional[float] = None
    duration_s: Optional[float] = None


@dataclass(frozen=True, slots=True)
class ResolvedRoute:
    """Polyline with its cumulative-distance table, ready for interpolation."""

    points: tuple[LatLng, ...]
    cumulative: tuple[float, ...]
    total_length: float
    fallback: bool = False
    source: str = "osrm"
