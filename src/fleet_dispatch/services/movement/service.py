"""Dispatch, redirect, recall and finalization of resource movements."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Optional

from ...config import settings
from ...models.domain import (
    AtBase,
    Catalog,
    Deployed,
    LatLng,
    LogEntry,
    Motion,
    MovementState,
    Moving,
    Resource,
)
from ...persistence.store import MovementStore, StoreWriteError
from ..routing.resolver import RouteResolver
from .animator import interpolate, route_key
from .clock import EpochClock

if TYPE_CHECKING:
    from .animator import LocalAnimator

logger = logging.getLogger(__name__)


class UnknownResourceError(LookupError):
    pass


class DispatchError(RuntimeError):
    """A dispatch, redirect or recall could not be written; nothing changed."""


class MovementService:
    """Write side of the movement protocol.

    Every mutation is a single whole-row write. Finalization is the only
    conditional write: it applies while the row is still MOVING with the
    epoch the caller saw arrive. Cached routes of superseded or settled
    epochs are dropped after each write.
    """

    def __init__(
        self,
        store: MovementStore,
        catalog: Catalog,
        resolver: RouteResolver | None = None,
        clock: EpochClock | None = None,
        animator: Optional["LocalAnimator"] = None,
        default_speed: float | None = None,
        anchor: LatLng | None = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.resolver = resolver or RouteResolver()
        self.clock = clock or EpochClock()
        self.animator = animator
        self.default_speed = default_speed or settings.default_speed_mps
        self.anchor = anchor or settings.default_anchor

    def attach_animator(self, animator: "LocalAnimator") -> None:
        self.animator = animator

    # ------------------------------------------------------------------ dispatch / redirect
    def dispatch(
        self,
        session_id: str,
        resource_id: str,
        destination: LatLng,
        speed: float | None = None,
    ) -> Moving:
        """Start a movement towards ``destination`` or redirect the current one.

        A redirect starts from the live interpolated position, so the
        resource does not jump back to its last replicated checkpoint. The
        new epoch supersedes the old one; finalizations pending for it will
        no longer match.

        Raises:
            UnknownResourceError: resource not in the catalog.
            DispatchError: the store rejected the write.
        """
        resource = self._require_resource(resource_id)
        current = self._current_state(session_id, resource_id)
        now = self.clock.now_ms()

        origin = self.resolve_origin(current, resource, now)
        previous_epoch = current.epoch_start if isinstance(current, Moving) else None
        motion = Motion(
            origin=origin,
            destination=(float(destination[0]), float(destination[1])),
            epoch_start=self.clock.next_epoch(previous_epoch),
            speed=float(speed) if speed else self.default_speed,
        )
        state = Moving(session_id=session_id, resource_id=resource_id, motion=motion, position=origin)
        try:
            self.store.upsert_movement(state)
        except StoreWriteError as e:
            logger.warning(f"Dispatch of {resource_id} rejected by store: {e}")
            raise DispatchError(f"Could not dispatch {resource.call_sign}: {e}") from e
        self.resolver.forget(resource_id, keep_epoch=motion.epoch_start)

        verb = "redirected" if isinstance(current, Moving) else "dispatched"
        logger.info(f"{resource.call_sign} {verb} (epoch {motion.epoch_start}) {origin} -> {motion.destination}")
        self._append_log(
            session_id,
            f"{resource.call_sign} {verb} to {motion.destination[0]:.5f}, {motion.destination[1]:.5f}",
            resource_id,
        )
        return state

    def resolve_origin(self, current: Optional[MovementState], resource: Resource, now_ms: int) -> LatLng:
        """Origin of a new leg: live position, last replicated coordinate, home station, anchor."""
        if isinstance(current, Moving):
            live = self.live_position(current, now_ms)
            if live is not None:
                return live
        if isinstance(current, (Moving, Deployed)):
            return current.position
        station = self.catalog.station(resource.station_id)
        if station is not None:
            return station.position
        return self.anchor

    def live_position(self, state: Moving, now_ms: int | None = None) -> Optional[LatLng]:
        """Where ``state`` is right now.

        With an attached animator only local knowledge is used (cached route
        or rendered marker). Without one the route is resolved, blocking.
        """
        now = now_ms if now_ms is not None else self.clock.now_ms()
        if self.animator is not None:
            return self.animator.live_position(state, now)
        route = self.resolver.resolve(route_key(state), state.motion.origin, state.motion.destination)
        return interpolate(state, route, now, settings.arrival_tolerance_m).position

    def current_position(self, session_id: str, resource_id: str) -> Optional[LatLng]:
        self._require_resource(resource_id)
        state = self._current_state(session_id, resource_id)
        if isinstance(state, Moving):
            return self.live_position(state) or state.position
        if isinstance(state, Deployed):
            return state.position
        return None

    # ------------------------------------------------------------------ finalization
    def finalize(
        self,
        session_id: str,
        resource_id: str,
        epoch_start: int,
        destination: LatLng | None = None,
    ) -> bool:
        """Settle the movement identified by ``epoch_start`` as DEPLOYED.

        Safe to call from any number of observers: exactly one call per epoch
        succeeds, the rest return False. Raises StoreWriteError only when the
        store cannot be reached.
        """
        if destination is None:
            current = self._current_state(session_id, resource_id)
            if not isinstance(current, Moving) or current.epoch_start != epoch_start:
                logger.debug(f"Finalization of {resource_id}@{epoch_start} skipped: epoch no longer current")
                return False
            destination = current.motion.destination

        applied = self.store.finalize_movement(session_id, resource_id, epoch_start, destination)
        if not applied:
            logger.debug(f"Finalization of {resource_id}@{epoch_start} was a no-op")
            return False
        self.resolver.forget(resource_id)

        resource = self.catalog.resource(resource_id)
        call_sign = resource.call_sign if resource else resource_id
        logger.info(f"{call_sign} arrived (epoch {epoch_start}) at {destination}")
        self._append_log(session_id, f"{call_sign} arrived at {destination[0]:.5f}, {destination[1]:.5f}", resource_id)
        return True

    # ------------------------------------------------------------------ recall / reset
    def recall(self, session_id: str, resource_id: str) -> AtBase:
        """Send a resource home; motion fields go away with the same write."""
        resource = self._require_resource(resource_id)
        state = AtBase(session_id=session_id, resource_id=resource_id)
        try:
            self.store.upsert_movement(state)
        except StoreWriteError as e:
            logger.warning(f"Recall of {resource_id} rejected by store: {e}")
            raise DispatchError(f"Could not recall {resource.call_sign}: {e}") from e
        self.resolver.forget(resource_id)
        logger.info(f"{resource.call_sign} recalled to station {resource.station_id}")
        self._append_log(session_id, f"{resource.call_sign} returned to station {resource.station_id}", resource_id)
        return state

    def reset_session(self, session_id: str) -> int:
        """Recall every resource that is out and clear the incident board."""
        recalled = 0
        for state in self.store.list_movements(session_id):
            if isinstance(state, AtBase) or self.catalog.resource(state.resource_id) is None:
                continue
            self.recall(session_id, state.resource_id)
            recalled += 1
        try:
            cleared = self.store.clear_incidents(session_id)
        except StoreWriteError as e:
            raise DispatchError(f"Could not clear incidents: {e}") from e
        logger.info(f"Session {session_id} reset: {recalled} resources recalled, {cleared} incidents cleared")
        return recalled

    # ------------------------------------------------------------------ helpers
    def _require_resource(self, resource_id: str) -> Resource:
        resource = self.catalog.resource(resource_id)
        if resource is None:
            raise UnknownResourceError(f"Unknown resource '{resource_id}'")
        return resource

    def _current_state(self, session_id: str, resource_id: str) -> Optional[MovementState]:
        try:
            return self.store.get_movement(session_id, resource_id)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Stored movement for {resource_id} is invalid, treating as unknown: {e}")
            return None

    def _append_log(self, session_id: str, message: str, resource_id: str | None = None) -> None:
        entry = LogEntry(log_id=uuid.uuid4().hex, session_id=session_id, message=message, resource_id=resource_id)
        try:
            self.store.append_log(entry)
        except StoreWriteError as e:
            logger.warning(f"Failed to append log entry '{message}': {e}")
