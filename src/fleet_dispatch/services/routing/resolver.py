"""Per-epoch route resolution with straight-line fallback."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future
from typing import Callable, Optional, Protocol

from ...config import settings
from ...models.domain import LatLng
from ..geospatial import cumulative_distances, polyline_length
from .models import ProviderRoute, ResolvedRoute, RouteKey

logger = logging.getLogger(__name__)


class RouteProvider(Protocol):
    def route(self, origin: LatLng, destination: LatLng) -> ProviderRoute:
        ...


def build_route(points: list[LatLng], *, fallback: bool, source: str) -> ResolvedRoute:
    cumulative = cumulative_distances(points)
    return ResolvedRoute(
        points=tuple(points),
        cumulative=tuple(cumulative),
        total_length=polyline_length(cumulative),
        fallback=fallback,
        source=source,
    )


def straight_line(
    origin: Optional[LatLng],
    destination: Optional[LatLng],
    anchor: Optional[LatLng] = None,
) -> ResolvedRoute:
    """Two-point fallback polyline; missing endpoints are replaced by the anchor."""
    anchor = anchor or settings.default_anchor
    start = origin or anchor
    end = destination or anchor
    return build_route([start, end], fallback=True, source="straight_line")


class RouteResolver:
    """Resolve and memoize one polyline per movement epoch.

    Entries are keyed by ``RouteKey`` so a redirect (new epoch) never reuses
    the previous leg. The cache is local to one client and purely a
    performance aid; nothing authoritative depends on it.
    """

    def __init__(
        self,
        provider_factory: Callable[[], RouteProvider] | None = None,
        executor: Executor | None = None,
        anchor: LatLng | None = None,
    ) -> None:
        self._provider_factory = provider_factory or _default_provider
        self._provider: RouteProvider | None = None
        self._executor = executor
        self._anchor = anchor or settings.default_anchor
        self._cache: dict[RouteKey, ResolvedRoute] = {}
        self._pending: dict[RouteKey, Future] = {}
        self._lock = threading.Lock()

    def peek(self, key: RouteKey) -> Optional[ResolvedRoute]:
        with self._lock:
            return self._cache.get(key)

    def resolve(self, key: RouteKey, origin: Optional[LatLng], destination: Optional[LatLng]) -> ResolvedRoute:
        """Blocking resolution; returns the cached route when one exists."""
        with self._lock:
            cached = self._cache.get(key)
            pending = self._pending.get(key)
        if cached is not None:
            return cached
        if pending is not None:
            return pending.result()
        return self._resolve_and_store(key, origin, destination)

    def prefetch(self, key: RouteKey, origin: Optional[LatLng], destination: Optional[LatLng]) -> Future:
        """Schedule resolution without blocking; concurrent calls share one request."""
        with self._lock:
            cached = self._cache.get(key)
            if cached is None:
                pending = self._pending.get(key)
                if pending is not None:
                    return pending
                future: Future = Future()
                self._pending[key] = future
        if cached is not None:
            done: Future = Future()
            done.set_result(cached)
            return done

        def _run() -> None:
            try:
                future.set_result(self._resolve_and_store(key, origin, destination))
            except Exception as exc:  # waiters must never hang
                logger.exception(f"Route resolution for {key.resource_id}@{key.epoch_start} failed")
                future.set_exception(exc)
            finally:
                with self._lock:
                    self._pending.pop(key, None)

        if self._executor is None:
            _run()
        else:
            self._executor.submit(_run)
        return future

    def forget(self, resource_id: str, keep_epoch: Optional[int] = None) -> None:
        """Drop cached legs of ``resource_id`` other than ``keep_epoch``."""
        with self._lock:
            stale = [
                key for key in self._cache
                if key.resource_id == resource_id and key.epoch_start != keep_epoch
            ]
            for key in stale:
                del self._cache[key]

    def _resolve_and_store(
        self, key: RouteKey, origin: Optional[LatLng], destination: Optional[LatLng]
    ) -> ResolvedRoute:
        route = self._fetch(origin, destination)
        with self._lock:
            # first writer wins so every caller of this epoch sees the same polyline
            return self._cache.setdefault(key, route)

    def _fetch(self, origin: Optional[LatLng], destination: Optional[LatLng]) -> ResolvedRoute:
        if origin is None or destination is None:
            logger.warning(
                f"Route endpoint missing (origin={origin}, destination={destination}); using straight-line fallback"
            )
            return straight_line(origin, destination, self._anchor)

        try:
            provider = self._get_provider()
            provider_route = provider.route(origin, destination)
        except Exception as e:
            # any provider failure, including malformed bodies, settles the epoch on the fallback
            logger.warning(
                f"Route lookup {origin} -> {destination} failed ({type(e).__name__}: {e}). Using straight-line fallback."
            )
            return straight_line(origin, destination, self._anchor)

        if len(provider_route.points) < 2:
            logger.warning("Routing provider returned an empty geometry. Using straight-line fallback.")
            return straight_line(origin, destination, self._anchor)
        return build_route(list(provider_route.points), fallback=False, source="osrm")

    def _get_provider(self) -> RouteProvider:
        if self._provider is None:
            self._provider = self._provider_factory()
        return self._provider


def _default_provider() -> RouteProvider:
    from .osrm_client import OSRMClient

    return OSRMClient()
