"""Station and resource master data, database first with CSV fallback."""

from __future__ import annotations

import csv
import functools
import logging
from pathlib import Path
from typing import Optional

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import Catalog, Resource, Station


def _load_from_database() -> Optional[Catalog]:
    """Load stations and resources from Supabase. Returns None if not available or empty."""
    supabase = get_supabase_client()
    if not supabase:
        return None

    try:
        station_rows = supabase.table("stations").select("*").execute().data or []
        resource_rows = supabase.table("resources").select("*").execute().data or []
    except Exception as e:
        logging.debug(f"Catalog query failed, falling back to files: {e}")
        return None
    if not station_rows or not resource_rows:
        return None

    stations: list[Station] = []
    for row in station_rows:
        try:
            stations.append(
                Station(
                    station_id=str(row["station_id"]).strip(),
                    name=str(row.get("name") or row["station_id"]).strip(),
                    latitude=float(row["latitude"]),
                    longitude=float(row["longitude"]),
                )
            )
        except (KeyError, ValueError, TypeError) as e:
            logging.warning(f"Skipping invalid station row: {e}")
    resources = [_resource_from_row(row) for row in resource_rows if row.get("resource_id")]
    return Catalog(stations=tuple(stations), resources=tuple(resources))


def _resource_from_row(row: dict) -> Resource:
    resource_id = str(row["resource_id"]).strip()
    return Resource(
        resource_id=resource_id,
        call_sign=(row.get("call_sign") or resource_id).strip(),
        category=(row.get("category") or "").strip(),
        station_id=str(row["station_id"]).strip(),
    )


def _read_csv(path: Path) -> list[dict]:
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")
    with path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"Catalog file '{path}' is missing a header row.")
        return list(reader)


def _load_from_files(stations_source: Path, resources_source: Path) -> Catalog:
    stations = []
    for row in _read_csv(stations_source):
        if not row.get("station_id"):
            continue
        stations.append(
            Station(
                station_id=row["station_id"].strip(),
                name=(row.get("name") or row["station_id"]).strip(),
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
            )
        )
    resources = [_resource_from_row(row) for row in _read_csv(resources_source) if row.get("resource_id")]

    known = {station.station_id for station in stations}
    orphans = [resource.resource_id for resource in resources if resource.station_id not in known]
    if orphans:
        logging.warning(f"Resources without a known home station: {orphans}")
    return Catalog(stations=tuple(stations), resources=tuple(resources))


@functools.lru_cache(maxsize=1)
def load_catalog(stations_source: Optional[Path] = None, resources_source: Optional[Path] = None) -> Catalog:
    """Get the catalog from the database first, falling back to the bundled CSV files."""
    if stations_source is None and resources_source is None:
        db_catalog = _load_from_database()
        if db_catalog:
            return db_catalog
    return _load_from_files(
        stations_source or settings.stations_file,
        resources_source or settings.resources_file,
    )
