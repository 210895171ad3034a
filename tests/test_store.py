import pytest

from fleet_dispatch.models.domain import (
    AtBase,
    ChangeEvent,
    Deployed,
    Incident,
    LogEntry,
    Motion,
    Moving,
)
from fleet_dispatch.persistence.rows import MOTION_COLUMNS, movement_from_row, movement_to_row
from fleet_dispatch.persistence.store import INCIDENTS, LOGS, MOVEMENTS
from fleet_dispatch.persistence.supabase_store import SupabaseChangePoller

SESSION = "demo"


def _moving(epoch: int = 1000, resource_id: str = "S11") -> Moving:
    motion = Motion(origin=(59.70, 10.80), destination=(59.72, 10.84), epoch_start=epoch, speed=20.0)
    return Moving(session_id=SESSION, resource_id=resource_id, motion=motion, position=motion.origin)


def test_movement_row_keeps_motion_fields_together():
    moving_row = movement_to_row(_moving())
    deployed_row = movement_to_row(Deployed(session_id=SESSION, resource_id="S11", position=(59.72, 10.84)))
    base_row = movement_to_row(AtBase(session_id=SESSION, resource_id="S11"))

    assert all(moving_row[column] is not None for column in MOTION_COLUMNS)
    assert all(deployed_row[column] is None for column in MOTION_COLUMNS)
    assert all(base_row[column] is None for column in MOTION_COLUMNS)
    assert base_row["lat"] is None and base_row["lng"] is None
    assert movement_from_row(moving_row) == _moving()


def test_moving_row_without_motion_fields_is_rejected():
    row = movement_to_row(_moving())
    row["epoch_start"] = None

    with pytest.raises(ValueError):
        movement_from_row(row)


def test_deployed_row_without_position_is_rejected():
    with pytest.raises(ValueError):
        movement_from_row({"session_id": SESSION, "resource_id": "S11", "status": "DEPLOYED"})


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        movement_from_row({"session_id": SESSION, "resource_id": "S11", "status": "PARKED"})


def test_upsert_keeps_one_row_per_resource(store):
    store.upsert_movement(_moving(epoch=1000))
    store.upsert_movement(_moving(epoch=2000))
    store.upsert_movement(_moving(epoch=1000, resource_id="S14"))

    movements = store.list_movements(SESSION)

    assert len(movements) == 2
    assert store.get_movement(SESSION, "S11").epoch_start == 2000
    assert store.get_movement("other", "S11") is None


def test_subscribers_receive_inserts_then_updates(store):
    events: list[ChangeEvent] = []
    store.subscribe(SESSION, events.append)
    store.subscribe("other", lambda event: pytest.fail("wrong session"))

    store.upsert_movement(_moving(epoch=1000))
    store.upsert_movement(AtBase(session_id=SESSION, resource_id="S11"))

    assert [(event.kind, event.table) for event in events] == [("insert", MOVEMENTS), ("update", MOVEMENTS)]
    assert events[1].row["status"] == "AT_BASE"
    assert all(events[1].row[column] is None for column in MOTION_COLUMNS)


def test_unsubscribe_stops_delivery(store):
    events = []
    unsubscribe = store.subscribe(SESSION, events.append)
    unsubscribe()

    store.upsert_movement(_moving())

    assert events == []


def test_failing_subscriber_does_not_block_others(store):
    events = []

    def broken(event):
        raise RuntimeError("boom")

    store.subscribe(SESSION, broken)
    store.subscribe(SESSION, events.append)
    store.upsert_movement(_moving())

    assert len(events) == 1


def test_finalize_applies_only_to_matching_epoch(store):
    store.upsert_movement(_moving(epoch=1000))

    assert store.finalize_movement(SESSION, "S11", 999, (59.72, 10.84)) is False
    assert store.finalize_movement(SESSION, "S11", 1000, (59.72, 10.84)) is True
    assert store.finalize_movement(SESSION, "S11", 1000, (59.72, 10.84)) is False

    state = store.get_movement(SESSION, "S11")
    assert state == Deployed(session_id=SESSION, resource_id="S11", position=(59.72, 10.84))


def test_finalize_of_missing_row_is_a_no_op(store):
    assert store.finalize_movement(SESSION, "S11", 1000, (59.72, 10.84)) is False


def test_incidents_and_logs(store):
    events = []
    store.subscribe(SESSION, events.append)

    store.insert_incident(Incident(incident_id="H000001", session_id=SESSION, title="Brann", latitude=59.9, longitude=10.7))
    solved = store.solve_incident(SESSION, "H000001")
    store.append_log(LogEntry(log_id="a", session_id=SESSION, message="S11 dispatched", resource_id="S11"))

    assert solved.solved is True
    assert store.solve_incident(SESSION, "missing") is None
    assert [incident.solved for incident in store.list_incidents(SESSION)] == [True]
    assert [entry.message for entry in store.list_logs(SESSION)] == ["S11 dispatched"]
    assert store.list_logs(SESSION)[0].created_at is not None

    assert store.clear_incidents(SESSION) == 1
    assert store.list_incidents(SESSION) == []
    assert [(event.table, event.kind) for event in events] == [
        (INCIDENTS, "insert"),
        (INCIDENTS, "update"),
        (LOGS, "insert"),
        (INCIDENTS, "delete"),
    ]


class TestChangePoller:
    def _poller(self, tables):
        published = []
        poller = SupabaseChangePoller(fetch=lambda table: list(tables[table]), publish=published.append, interval=1)
        return poller, published

    def test_seed_poll_emits_nothing(self):
        tables = {MOVEMENTS: [{"resource_id": "S11", "status": "AT_BASE"}], INCIDENTS: [], LOGS: []}
        poller, published = self._poller(tables)

        events = poller.poll_once(emit=False)

        assert len(events) == 1
        assert published == []
        assert poller.poll_once() == []

    def test_diff_reports_insert_update_and_delete(self):
        tables = {
            MOVEMENTS: [{"resource_id": "S11", "status": "AT_BASE"}],
            INCIDENTS: [{"incident_id": "H1", "solved": False}],
            LOGS: [],
        }
        poller, published = self._poller(tables)
        poller.poll_once(emit=False)

        tables[MOVEMENTS] = [
            {"resource_id": "S11", "status": "MOVING"},
            {"resource_id": "S14", "status": "AT_BASE"},
        ]
        tables[INCIDENTS] = []
        tables[LOGS] = [{"log_id": "a", "message": "hello"}]
        poller.poll_once()

        summary = sorted((event.table, event.kind, event.row.get("resource_id")) for event in published)
        assert summary == [
            (INCIDENTS, "delete", None),
            (LOGS, "insert", None),
            (MOVEMENTS, "insert", "S14"),
            (MOVEMENTS, "update", "S11"),
        ]
