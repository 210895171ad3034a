import threading
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest
from conftest import ROUTE_POINTS, DummyOSRM

from fleet_dispatch.services.geospatial import cumulative_distances
from fleet_dispatch.services.routing.models import RouteKey
from fleet_dispatch.services.routing.osrm_client import OSRMClient
from fleet_dispatch.services.routing.resolver import RouteResolver, straight_line

ORIGIN = (59.70, 10.80)
DESTINATION = (59.72, 10.84)
ANCHOR = (59.9139, 10.7522)


def _key(epoch: int = 1000, destination=DESTINATION) -> RouteKey:
    return RouteKey("S11", epoch, destination)


def test_resolve_uses_provider_geometry(resolver, osrm):
    route = resolver.resolve(_key(), ORIGIN, DESTINATION)

    assert route.points == tuple(ROUTE_POINTS)
    assert route.cumulative == pytest.approx(cumulative_distances(ROUTE_POINTS))
    assert route.total_length == pytest.approx(route.cumulative[-1])
    assert route.fallback is False
    assert osrm.calls == [(ORIGIN, DESTINATION)]


def test_same_epoch_is_never_fetched_twice(resolver, osrm):
    first = resolver.resolve(_key(), ORIGIN, DESTINATION)
    second = resolver.resolve(_key(), ORIGIN, DESTINATION)
    prefetched = resolver.prefetch(_key(), ORIGIN, DESTINATION).result()

    assert first is second is prefetched
    assert len(osrm.calls) == 1


def test_new_epoch_is_a_new_cache_entry(resolver, osrm):
    resolver.resolve(_key(epoch=1000), ORIGIN, DESTINATION)
    resolver.resolve(_key(epoch=2000), ORIGIN, DESTINATION)

    assert len(osrm.calls) == 2


def test_peek_never_fetches(resolver, osrm):
    assert resolver.peek(_key()) is None
    assert osrm.calls == []


def test_empty_geometry_from_provider_falls_back_to_straight_line(monkeypatch):
    def handler(request):
        return httpx.Response(200, json={"code": "Ok", "routes": [{"geometry": {"coordinates": []}}]})

    client = OSRMClient(base_url="http://osrm.test", max_retries=0, backoff_seconds=0)
    monkeypatch.setattr(client, "_get_client", lambda: httpx.Client(transport=httpx.MockTransport(handler)))
    resolver = RouteResolver(provider_factory=lambda: client)

    route = resolver.resolve(_key(), ORIGIN, DESTINATION)

    assert route.points == (ORIGIN, DESTINATION)
    assert route.fallback is True
    assert route.source == "straight_line"


def test_provider_returning_too_few_points_falls_back():
    provider = DummyOSRM(points=[ORIGIN])
    resolver = RouteResolver(provider_factory=lambda: provider)

    route = resolver.resolve(_key(), ORIGIN, DESTINATION)

    assert route.fallback is True
    assert route.points == (ORIGIN, DESTINATION)


@pytest.mark.parametrize(
    "error",
    [ConnectionError("unreachable"), ValueError("NoRoute"), httpx.ReadTimeout("slow")],
)
def test_provider_failure_falls_back(error):
    provider = DummyOSRM(error=error)
    resolver = RouteResolver(provider_factory=lambda: provider)

    route = resolver.resolve(_key(), ORIGIN, DESTINATION)

    assert route.fallback is True
    assert route.points == (ORIGIN, DESTINATION)
    # the fallback is cached for the epoch as well
    assert resolver.resolve(_key(), ORIGIN, DESTINATION) is route
    assert len(provider.calls) == 1


def test_unconfigured_provider_falls_back():
    def factory():
        raise ValueError("OSRM base URL is not configured.")

    resolver = RouteResolver(provider_factory=factory)

    assert resolver.resolve(_key(), ORIGIN, DESTINATION).fallback is True


def test_missing_endpoints_use_the_anchor(osrm):
    resolver = RouteResolver(provider_factory=lambda: osrm, anchor=ANCHOR)

    no_origin = resolver.resolve(_key(epoch=1), None, DESTINATION)
    no_destination = resolver.resolve(_key(epoch=2), ORIGIN, None)

    assert no_origin.points == (ANCHOR, DESTINATION)
    assert no_destination.points == (ORIGIN, ANCHOR)
    assert no_origin.fallback and no_destination.fallback
    assert osrm.calls == []


def test_straight_line_without_any_endpoint_is_a_zero_length_route():
    route = straight_line(None, None, ANCHOR)

    assert route.points == (ANCHOR, ANCHOR)
    assert route.total_length == 0.0


def test_prefetch_shares_one_in_flight_request():
    release = threading.Event()

    class SlowOSRM(DummyOSRM):
        def route(self, origin, destination):
            release.wait(5)
            return super().route(origin, destination)

    provider = SlowOSRM(points=ROUTE_POINTS)
    with ThreadPoolExecutor(max_workers=2) as executor:
        resolver = RouteResolver(provider_factory=lambda: provider, executor=executor)

        first = resolver.prefetch(_key(), ORIGIN, DESTINATION)
        second = resolver.prefetch(_key(), ORIGIN, DESTINATION)
        assert first is second
        assert resolver.peek(_key()) is None

        release.set()
        route = first.result(timeout=5)

    assert resolver.peek(_key()) is route
    assert len(provider.calls) == 1


def test_forget_drops_superseded_epochs(resolver):
    resolver.resolve(_key(epoch=1000), ORIGIN, DESTINATION)
    resolver.resolve(_key(epoch=2000), ORIGIN, DESTINATION)

    resolver.forget("S11", keep_epoch=2000)

    assert resolver.peek(_key(epoch=1000)) is None
    assert resolver.peek(_key(epoch=2000)) is not None



def test_non_object_provider_body_falls_back_once(monkeypatch):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=[])

    client = OSRMClient(base_url="http://osrm.test", max_retries=0, backoff_seconds=0)
    monkeypatch.setattr(client, "_get_client", lambda: httpx.Client(transport=httpx.MockTransport(handler)))
    resolver = RouteResolver(provider_factory=lambda: client)

    route = resolver.prefetch(_key(), ORIGIN, DESTINATION).result()

    assert route.fallback is True
    assert route.points == (ORIGIN, DESTINATION)
    assert resolver.resolve(_key(), ORIGIN, DESTINATION) is route
    assert len(calls) == 1


def test_unexpected_provider_exception_falls_back():
    provider = DummyOSRM(error=RuntimeError("provider bug"))
    resolver = RouteResolver(provider_factory=lambda: provider)

    route = resolver.resolve(_key(), ORIGIN, DESTINATION)
    resolver.prefetch(_key(), ORIGIN, DESTINATION)

    assert route.fallback is True
    assert len(provider.calls) == 1
