"""Shared service instances for the HTTP layer."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends

from ..data.catalog_repository import load_catalog
from ..db.supabase import get_supabase_client
from ..models.domain import Catalog
from ..persistence.memory import InMemoryStore
from ..persistence.store import MovementStore
from ..persistence.supabase_store import SupabaseStore
from ..services.incidents.service import IncidentService, LogService
from ..services.movement.clock import EpochClock
from ..services.movement.service import MovementService
from ..services.routing.resolver import RouteResolver


@lru_cache()
def get_store() -> MovementStore:
    """Supabase when configured, otherwise one in-memory store for the process."""
    client = get_supabase_client()
    if client is not None:
        return SupabaseStore(client)
    logging.info("Supabase not configured - using in-memory movement store")
    return InMemoryStore()


def get_catalog() -> Catalog:
    return load_catalog()


@lru_cache()
def get_resolver() -> RouteResolver:
    return RouteResolver()


@lru_cache()
def get_clock() -> EpochClock:
    return EpochClock()


def get_movement_service(
    store: MovementStore = Depends(get_store),
    catalog: Catalog = Depends(get_catalog),
    resolver: RouteResolver = Depends(get_resolver),
    clock: EpochClock = Depends(get_clock),
) -> MovementService:
    return MovementService(store, catalog, resolver=resolver, clock=clock)


def get_incident_service(
    store: MovementStore = Depends(get_store),
    clock: EpochClock = Depends(get_clock),
) -> IncidentService:
    return IncidentService(store, clock=clock)


def get_log_service(store: MovementStore = Depends(get_store)) -> LogService:
    return LogService(store)
