"""Supabase client for the replicated movement store."""

import logging
from functools import lru_cache
from supabase import create_client, Client
from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Get cached Supabase client instance.

    Returns:
        Supabase Client instance if configured, None otherwise.
        Note: This does not test the connection - actual queries may fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.info("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
        return client
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None


# Expected schema (one row per session/resource pair):
#
# create table movement_states (
#     session_id   text not null,
#     resource_id  text not null,
#     status       text not null check (status in ('AT_BASE', 'DEPLOYED', 'MOVING')),
#     lat          double precision,
#     lng          double precision,
#     origin_lat   double precision,
#     origin_lng   double precision,
#     dest_lat     double precision,
#     dest_lng     double precision,
#     epoch_start  bigint,
#     speed        double precision,
#     updated_at   timestamptz default now(),
#     primary key (session_id, resource_id)
# );
#
# -- incident ids ("H" + six clock digits) repeat over time, so they are unique per session only
# create table incidents (
#     incident_id text not null, session_id text not null, title text not null,
#     lat double precision, lng double precision, solved boolean default false,
#     created_at timestamptz default now(),
#     primary key (session_id, incident_id)
# );
#
# create table logs (
#     log_id text primary key, session_id text not null, message text not null,
#     resource_id text, created_at timestamptz default now()
# );
