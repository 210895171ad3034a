"""Per-client animation of resources in motion.

Every observer runs its own ``LocalAnimator``. Positions are never
replicated while a resource moves: each client derives them from the
movement's epoch, speed and route, so all observers agree up to clock skew.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ...config import settings
from ...models.domain import (
    AtBase,
    ChangeEvent,
    Deployed,
    Incident,
    LatLng,
    LogEntry,
    MovementState,
    Moving,
)
from ...persistence.rows import incident_from_row, log_from_row, movement_from_row
from ...persistence.store import INCIDENTS, LOGS, MOVEMENTS
from ..geospatial import position_at_distance
from ..routing.models import ResolvedRoute, RouteKey
from ..routing.resolver import RouteResolver
from .clock import EpochClock

logger = logging.getLogger(__name__)

Finalizer = Callable[[str, str, int, LatLng], bool]


@dataclass(frozen=True, slots=True)
class FramePosition:
    position: LatLng
    traveled: float
    arrived: bool


def route_key(state: Moving) -> RouteKey:
    return RouteKey(state.resource_id, state.motion.epoch_start, state.motion.destination)


def interpolate(state: Moving, route: ResolvedRoute, now_ms: int, tolerance: float = 0.0) -> FramePosition:
    """Position of ``state`` at ``now_ms`` along ``route`` at constant speed."""
    elapsed_s = max(0, now_ms - state.motion.epoch_start) / 1000.0
    traveled = elapsed_s * state.motion.speed
    position = position_at_distance(route.points, route.cumulative, traveled)
    return FramePosition(
        position=position,
        traveled=traveled,
        arrived=traveled >= route.total_length - tolerance,
    )


class MarkerSurface(Protocol):
    """On-screen representation of resources."""

    def move(self, resource_id: str, position: LatLng) -> None:
        ...

    def remove(self, resource_id: str) -> None:
        ...

    def position_of(self, resource_id: str) -> Optional[LatLng]:
        ...


class InMemoryMarkerSurface:
    """Marker positions kept in a dict, for headless observers."""

    def __init__(self) -> None:
        self._positions: dict[str, LatLng] = {}
        self._lock = threading.Lock()

    def move(self, resource_id: str, position: LatLng) -> None:
        with self._lock:
            self._positions[resource_id] = position

    def remove(self, resource_id: str) -> None:
        with self._lock:
            self._positions.pop(resource_id, None)

    def position_of(self, resource_id: str) -> Optional[LatLng]:
        with self._lock:
            return self._positions.get(resource_id)

    def snapshot(self) -> dict[str, LatLng]:
        with self._lock:
            return dict(self._positions)


class SessionMirror:
    """Local, eventually consistent copy of one session's replicated rows."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._movements: dict[str, MovementState] = {}
        self._incidents: dict[str, Incident] = {}
        self._logs: list[LogEntry] = []
        self._lock = threading.Lock()

    def load(
        self,
        movements: list[MovementState],
        incidents: list[Incident] | None = None,
        logs: list[LogEntry] | None = None,
    ) -> None:
        with self._lock:
            self._movements = {state.resource_id: state for state in movements}
            self._incidents = {incident.incident_id: incident for incident in incidents or []}
            self._logs = list(logs or [])

    def apply(self, event: ChangeEvent) -> Optional[MovementState]:
        """Fold one change into the mirror; returns the movement state it produced."""
        if event.session_id not in (None, self.session_id):
            return None
        try:
            if event.table == MOVEMENTS:
                return self._apply_movement(event)
            if event.table == INCIDENTS:
                self._apply_incident(event)
            elif event.table == LOGS and event.kind == "insert":
                entry = log_from_row(event.row)
                with self._lock:
                    self._logs.append(entry)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Skipping invalid {event.table} change ({event.kind}): {e}")
        return None

    def _apply_movement(self, event: ChangeEvent) -> Optional[MovementState]:
        resource_id = str(event.row["resource_id"])
        if event.kind == "delete":
            with self._lock:
                self._movements.pop(resource_id, None)
            return AtBase(session_id=self.session_id, resource_id=resource_id)
        state = movement_from_row(event.row)
        with self._lock:
            self._movements[resource_id] = state
        return state

    def _apply_incident(self, event: ChangeEvent) -> None:
        incident_id = str(event.row["incident_id"])
        with self._lock:
            if event.kind == "delete":
                self._incidents.pop(incident_id, None)
                return
        incident = incident_from_row(event.row)
        with self._lock:
            self._incidents[incident_id] = incident

    def movement(self, resource_id: str) -> Optional[MovementState]:
        with self._lock:
            return self._movements.get(resource_id)

    def movements(self) -> list[MovementState]:
        with self._lock:
            return list(self._movements.values())

    def moving(self) -> list[Moving]:
        with self._lock:
            return [state for state in self._movements.values() if isinstance(state, Moving)]

    def incidents(self) -> list[Incident]:
        with self._lock:
            return list(self._incidents.values())

    def logs(self) -> list[LogEntry]:
        with self._lock:
            return list(self._logs)


class LocalAnimator:
    """Frame-by-frame position updates for every moving resource.

    ``tick`` only reads the mirror and the route cache. Route lookups and
    finalization writes are handed to executors so a frame never waits on
    the network.
    """

    def __init__(
        self,
        mirror: SessionMirror,
        resolver: RouteResolver,
        surface: MarkerSurface,
        finalizer: Finalizer,
        clock: EpochClock | None = None,
        executor: Executor | None = None,
        tolerance: float | None = None,
    ) -> None:
        self.mirror = mirror
        self.resolver = resolver
        self.surface = surface
        self._finalizer = finalizer
        self._clock = clock or EpochClock()
        self._executor = executor
        self._tolerance = tolerance if tolerance is not None else settings.arrival_tolerance_m
        self._proposed: set[tuple[str, int]] = set()
        self._lock = threading.Lock()

    def tick(self, now_ms: int | None = None) -> dict[str, FramePosition]:
        now = now_ms if now_ms is not None else self._clock.now_ms()
        frames: dict[str, FramePosition] = {}
        for state in self.mirror.moving():
            key = route_key(state)
            route = self.resolver.peek(key)
            if route is None:
                self.resolver.prefetch(key, state.motion.origin, state.motion.destination)
                route = self.resolver.peek(key)
                if route is None:
                    continue  # hold the marker until the route is known

            frame = interpolate(state, route, now, self._tolerance)
            if frame.arrived:
                self.surface.move(state.resource_id, state.motion.destination)
                self._propose_finalization(state)
            else:
                self.surface.move(state.resource_id, frame.position)
            frames[state.resource_id] = frame
        return frames

    def on_change(self, event: ChangeEvent) -> None:
        """Apply a replicated change to the mirror and to the markers."""
        state = self.mirror.apply(event)
        if event.table != MOVEMENTS or state is None:
            return
        resource_id = state.resource_id
        if isinstance(state, Moving):
            # epoch changed or movement started: old legs and proposals are stale
            self.resolver.forget(resource_id, keep_epoch=state.epoch_start)
            self._drop_proposals(resource_id, keep_epoch=state.epoch_start)
            self.resolver.prefetch(route_key(state), state.motion.origin, state.motion.destination)
            return
        self.resolver.forget(resource_id)
        self._drop_proposals(resource_id)
        if isinstance(state, Deployed):
            self.surface.move(resource_id, state.position)
        else:
            self.surface.remove(resource_id)

    def live_position(self, state: Moving, now_ms: int | None = None) -> Optional[LatLng]:
        """Interpolated position of ``state`` without touching the network.

        Uses the cached route of that epoch, then the rendered marker if the
        mirror shows the same epoch; ``None`` when neither is available.
        """
        now = now_ms if now_ms is not None else self._clock.now_ms()
        route = self.resolver.peek(route_key(state))
        if route is not None:
            return interpolate(state, route, now, self._tolerance).position
        mirrored = self.mirror.movement(state.resource_id)
        if isinstance(mirrored, Moving) and mirrored.epoch_start == state.epoch_start:
            return self.surface.position_of(state.resource_id)
        return None

    def _propose_finalization(self, state: Moving) -> None:
        token = (state.resource_id, state.epoch_start)
        with self._lock:
            if token in self._proposed:
                return
            self._proposed.add(token)

        def _finalize() -> None:
            try:
                self._finalizer(state.session_id, state.resource_id, state.epoch_start, state.motion.destination)
            except Exception as e:
                logger.warning(f"Finalization of {state.resource_id}@{state.epoch_start} failed, will retry: {e}")
                with self._lock:
                    self._proposed.discard(token)

        if self._executor is None:
            _finalize()
        else:
            self._executor.submit(_finalize)

    def _drop_proposals(self, resource_id: str, keep_epoch: Optional[int] = None) -> None:
        with self._lock:
            self._proposed = {
                token for token in self._proposed
                if token[0] != resource_id or token[1] == keep_epoch
            }


class AnimationLoop:
    """Drive ``LocalAnimator.tick`` at a fixed frame rate on a background thread."""

    def __init__(self, animator: LocalAnimator, frame_rate_hz: float | None = None) -> None:
        self._animator = animator
        self._interval = 1.0 / (frame_rate_hz or settings.frame_rate_hz)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="animation-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 1.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._animator.tick()
            except Exception:
                logger.exception("Animation frame failed")
