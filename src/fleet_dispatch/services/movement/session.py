"""Per-client session context for an observer/operator."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ...models.domain import Catalog, Incident, LatLng, Moving
from ...persistence.store import MovementStore, Unsubscribe
from ..incidents.service import IncidentService
from ..routing.resolver import RouteResolver
from .animator import AnimationLoop, InMemoryMarkerSurface, LocalAnimator, MarkerSurface, SessionMirror
from .clock import EpochClock
from .service import MovementService

logger = logging.getLogger(__name__)


class ClientSession:
    """Everything one connected client owns: selection, mode flags, mirror and animator.

    Nothing in here is shared between clients; they only meet in the store.
    """

    def __init__(
        self,
        session_id: str,
        store: MovementStore,
        catalog: Catalog,
        surface: MarkerSurface | None = None,
        resolver: RouteResolver | None = None,
        clock: EpochClock | None = None,
        background: bool = True,
    ) -> None:
        self.session_id = session_id
        self.store = store
        self.catalog = catalog
        self.clock = clock or EpochClock()
        self.surface = surface or InMemoryMarkerSurface()
        # background=False keeps route lookups and finalization inline (deterministic, for tests)
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix=f"client-{session_id}") if background else None
        self.resolver = resolver or RouteResolver(executor=self._executor)
        self.mirror = SessionMirror(session_id)
        self.movements = MovementService(store, catalog, resolver=self.resolver, clock=self.clock)
        self.incidents = IncidentService(store, clock=self.clock)
        self.animator = LocalAnimator(
            self.mirror,
            self.resolver,
            self.surface,
            finalizer=self.movements.finalize,
            clock=self.clock,
            executor=self._executor,
        )
        self.movements.attach_animator(self.animator)
        self.loop = AnimationLoop(self.animator)

        self.selected_resource_id: Optional[str] = None
        self.incident_mode = False
        self._unsubscribe: Optional[Unsubscribe] = None

    # ------------------------------------------------------------------ lifecycle
    def connect(self, start_loop: bool = True) -> None:
        """Subscribe to the change feed, load the current rows and start animating."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.store.subscribe(self.session_id, self.animator.on_change)
        self.mirror.load(
            self.store.list_movements(self.session_id),
            self.store.list_incidents(self.session_id),
            self.store.list_logs(self.session_id),
        )
        for state in self.mirror.movements():
            if isinstance(state, Moving):
                continue
            if state.position is not None:
                self.surface.move(state.resource_id, state.position)
        if start_loop:
            self.loop.start()
        logger.info(f"Client connected to session {self.session_id}")

    def close(self) -> None:
        self.loop.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)

    def __enter__(self) -> "ClientSession":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------ UI intents
    def select_resource(self, resource_id: Optional[str]) -> Optional[str]:
        """Toggle the selected resource; selecting leaves incident mode."""
        self.incident_mode = False
        if resource_id is not None and self.catalog.resource(resource_id) is None:
            raise ValueError(f"Unknown resource '{resource_id}'")
        self.selected_resource_id = None if resource_id == self.selected_resource_id else resource_id
        return self.selected_resource_id

    def toggle_incident_mode(self) -> bool:
        self.selected_resource_id = None
        self.incident_mode = not self.incident_mode
        return self.incident_mode

    def handle_map_click(self, position: LatLng, title: str | None = None) -> Moving | Incident | None:
        """Map click: open an incident in incident mode, otherwise send the selected resource."""
        if self.incident_mode:
            if not title or not title.strip():
                return None
            incident = self.incidents.create(self.session_id, title, position)
            self.incident_mode = False
            return incident

        resource_id = self.selected_resource_id
        if resource_id is None:
            return None
        state = self.movements.dispatch(self.session_id, resource_id, position)
        self.selected_resource_id = None
        return state

    def recall(self, resource_id: str) -> None:
        self.movements.recall(self.session_id, resource_id)
        self.selected_resource_id = None

    def reset(self) -> None:
        self.movements.reset_session(self.session_id)
        self.selected_resource_id = None
        self.incident_mode = False
