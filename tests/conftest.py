import pytest

from fleet_dispatch.models.domain import Catalog, Resource, Station
from fleet_dispatch.persistence.memory import InMemoryStore
from fleet_dispatch.services.movement.clock import EpochClock
from fleet_dispatch.services.routing.models import ProviderRoute
from fleet_dispatch.services.routing.resolver import RouteResolver

ROUTE_POINTS = [(59.70, 10.80), (59.71, 10.82), (59.72, 10.84)]


class FakeTime:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, milliseconds: int) -> None:
        self.now += milliseconds


class DummyOSRM:
    """Returns a fixed polyline (or the straight request line) and counts calls."""

    def __init__(self, points=None, error: Exception | None = None):
        self.points = points
        self.error = error
        self.calls = []

    def route(self, origin, destination):
        self.calls.append((origin, destination))
        if self.error is not None:
            raise self.error
        points = self.points if self.points is not None else [origin, destination]
        return ProviderRoute(points=list(points))


@pytest.fixture
def catalog() -> Catalog:
    return Catalog(
        stations=(
            Station(station_id="S1", name="S1 Ski", latitude=59.7195, longitude=10.8350),
            Station(station_id="T1", name="T1 Lørenskog", latitude=59.9326, longitude=10.9650),
        ),
        resources=(
            Resource(resource_id="S11", call_sign="S11", category="Mannskapsbil", station_id="S1"),
            Resource(resource_id="S14", call_sign="S14", category="Tankbil", station_id="S1"),
            Resource(resource_id="T11", call_sign="T11", category="Mannskapsbil", station_id="T1"),
            Resource(resource_id="X99", call_sign="X99", category="Reserve", station_id="NOPE"),
        ),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def clock(fake_time: FakeTime) -> EpochClock:
    return EpochClock(time_source=fake_time)


@pytest.fixture
def osrm() -> DummyOSRM:
    return DummyOSRM(points=ROUTE_POINTS)


@pytest.fixture
def resolver(osrm: DummyOSRM) -> RouteResolver:
    return RouteResolver(provider_factory=lambda: osrm)
