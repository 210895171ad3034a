from types import SimpleNamespace

import pytest

from fleet_dispatch.models.domain import AtBase, Deployed, Incident, Motion, Moving
from fleet_dispatch.persistence.store import StoreWriteError
from fleet_dispatch.persistence.supabase_store import SupabaseStore

SESSION = "demo"


class DummyQuery:
    """Enough of the postgrest builder to run filters against in-memory rows."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.filters = []
        self.action = "select"
        self.payload = None
        self.on_conflict = None
        self.row_limit = None

    def select(self, *_columns):
        self.action = "select"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.action, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload):
        self.action, self.payload = "update", payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        if self.client.fail_writes and self.action != "select":
            raise RuntimeError("database unavailable")
        rows = self.client.tables.setdefault(self.table, [])
        self.client.calls.append((self.table, self.action, tuple(self.filters), self.on_conflict))

        if self.action == "select":
            data = [dict(row) for row in rows if self._matches(row)]
            return SimpleNamespace(data=data[: self.row_limit] if self.row_limit else data)
        if self.action == "insert":
            rows.append(dict(self.payload))
            return SimpleNamespace(data=[dict(self.payload)])
        if self.action == "upsert":
            keys = self.on_conflict.split(",")
            for row in rows:
                if all(row.get(key) == self.payload.get(key) for key in keys):
                    row.update(self.payload)
                    return SimpleNamespace(data=[dict(row)])
            rows.append(dict(self.payload))
            return SimpleNamespace(data=[dict(self.payload)])
        if self.action == "update":
            touched = []
            for row in rows:
                if self._matches(row):
                    row.update(self.payload)
                    touched.append(dict(row))
            return SimpleNamespace(data=touched)
        removed = [row for row in rows if self._matches(row)]
        self.client.tables[self.table] = [row for row in rows if not self._matches(row)]
        return SimpleNamespace(data=removed)


class DummySupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.fail_writes = False

    def table(self, name):
        return DummyQuery(self, name)


@pytest.fixture
def client():
    return DummySupabase()


@pytest.fixture
def supabase_store(client):
    return SupabaseStore(client, poll_seconds=60)


def _moving(epoch: int = 1000) -> Moving:
    motion = Motion(origin=(59.70, 10.80), destination=(59.72, 10.84), epoch_start=epoch, speed=20.0)
    return Moving(session_id=SESSION, resource_id="S11", motion=motion, position=motion.origin)


def test_upsert_targets_session_and_resource_key(supabase_store, client):
    supabase_store.upsert_movement(_moving(epoch=1000))
    supabase_store.upsert_movement(_moving(epoch=2000))

    assert len(client.tables["movement_states"]) == 1
    assert client.calls[0][3] == "session_id,resource_id"
    assert supabase_store.get_movement(SESSION, "S11").epoch_start == 2000


def test_finalize_is_conditional_on_status_and_epoch(supabase_store, client):
    supabase_store.upsert_movement(_moving(epoch=1000))

    assert supabase_store.finalize_movement(SESSION, "S11", 999, (59.72, 10.84)) is False
    assert supabase_store.finalize_movement(SESSION, "S11", 1000, (59.72, 10.84)) is True
    assert supabase_store.finalize_movement(SESSION, "S11", 1000, (59.72, 10.84)) is False

    update_filters = [call[2] for call in client.calls if call[1] == "update"][0]
    assert ("status", "MOVING") in update_filters
    assert ("epoch_start", 999) in update_filters
    assert supabase_store.get_movement(SESSION, "S11") == Deployed(
        session_id=SESSION, resource_id="S11", position=(59.72, 10.84)
    )


def test_write_failures_raise_store_write_error(supabase_store, client):
    client.fail_writes = True

    with pytest.raises(StoreWriteError):
        supabase_store.upsert_movement(AtBase(session_id=SESSION, resource_id="S11"))
    with pytest.raises(StoreWriteError):
        supabase_store.finalize_movement(SESSION, "S11", 1000, (59.72, 10.84))


def test_invalid_rows_are_skipped_when_listing(supabase_store, client):
    supabase_store.upsert_movement(_moving())
    client.tables["movement_states"].append({"session_id": SESSION, "resource_id": "S14", "status": "MOVING"})

    assert [state.resource_id for state in supabase_store.list_movements(SESSION)] == ["S11"]


def test_incident_lifecycle(supabase_store):
    supabase_store.insert_incident(
        Incident(incident_id="H123456", session_id=SESSION, title="Trafikkulykke", latitude=59.9, longitude=10.7)
    )

    solved = supabase_store.solve_incident(SESSION, "H123456")

    assert solved.solved is True
    assert supabase_store.solve_incident(SESSION, "H000000") is None
    assert supabase_store.clear_incidents(SESSION) == 1
    assert supabase_store.list_incidents(SESSION) == []


def test_subscribe_seeds_poller_and_publishes_changes(supabase_store, monkeypatch):
    from fleet_dispatch.persistence import supabase_store as module

    monkeypatch.setattr(module.SupabaseChangePoller, "start", lambda self: None)
    supabase_store.upsert_movement(AtBase(session_id=SESSION, resource_id="S11"))

    events = []
    unsubscribe = supabase_store.subscribe(SESSION, events.append)
    poller = supabase_store._pollers[SESSION]

    supabase_store.upsert_movement(_moving())
    poller.poll_once()

    assert [(event.kind, event.row["status"]) for event in events] == [("update", "MOVING")]

    unsubscribe()
    assert SESSION not in supabase_store._pollers


def test_incident_ids_are_scoped_to_their_session(supabase_store):
    for session_id in (SESSION, "other"):
        supabase_store.insert_incident(
            Incident(incident_id="H123456", session_id=session_id, title="Brann", latitude=59.9, longitude=10.7)
        )

    supabase_store.solve_incident(SESSION, "H123456")

    assert [incident.solved for incident in supabase_store.list_incidents(SESSION)] == [True]
    assert [incident.solved for incident in supabase_store.list_incidents("other")] == [False]
