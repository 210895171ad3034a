"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from ..models.domain import LatLng

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in meters between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance(a: LatLng, b: LatLng) -> float:
    """Great-circle distance in meters between two (lat, lng) pairs."""

    return haversine_m(a[0], a[1], b[0], b[1])


def cumulative_distances(points: Sequence[LatLng]) -> list[float]:
    """Running distance along ``points``; the first entry is always 0."""

    if not points:
        return []
    table = [0.0]
    for previous, current in zip(points, points[1:]):
        table.append(table[-1] + distance(previous, current))
    return table


def polyline_length(cumulative: Sequence[float]) -> float:
    return cumulative[-1] if cumulative else 0.0


def position_at_distance(points: Sequence[LatLng], cumulative: Sequence[float], traveled: float) -> LatLng:
    """Return the coordinate reached after ``traveled`` meters along the polyline.

    Clamps to the first point for ``traveled <= 0`` and to the last point once
    the total length is reached. In between, the bracketing segment is found
    by scanning the cumulative table and interpolated linearly.
    """
    if not points:
        raise ValueError("At least one point is required to interpolate a position.")
    if len(points) != len(cumulative):
        raise ValueError("Cumulative table must have one entry per point.")

    if traveled <= 0:
        return points[0]
    total = polyline_length(cumulative)
    if traveled >= total:
        return points[-1]

    for index in range(1, len(points)):
        if cumulative[index] < traveled:
            continue
        segment = cumulative[index] - cumulative[index - 1]
        if segment <= 0:
            continue
        fraction = (traveled - cumulative[index - 1]) / segment
        start, end = points[index - 1], points[index]
        return (
            start[0] + (end[0] - start[0]) * fraction,
            start[1] + (end[1] - start[1]) * fraction,
        )
    return points[-1]
