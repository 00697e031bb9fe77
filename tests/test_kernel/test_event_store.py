"""
Tests for SQLite Event Store

Verifies core event sourcing properties:
- Append-only semantics
- Idempotency via command_id
- Optimistic locking via stream versioning
- Atomic multi-stream writes
- Global append positions for catch-up reads
"""

import threading
from datetime import datetime, timezone

import pytest

from parkops.kernel.errors import IdempotencyConflict, StreamVersionConflict
from parkops.kernel.event_store import SQLiteEventStore, StreamWrite
from parkops.kernel.events import Event, create_event
from parkops.kernel.ids import generate_id


def make_event(
    stream_id: str,
    version: int,
    command_id: str | None = None,
    payload: dict | None = None,
    stream_type: str = "test",
) -> Event:
    return create_event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type=stream_type,
        event_type="TestEvent",
        occurred_at=datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
        command_id=command_id or generate_id(),
        actor_id="tester",
        payload=payload or {},
        version=version,
    )


def test_append_and_load_single_event(event_store: SQLiteEventStore) -> None:
    """Test appending and loading a single event"""
    event = make_event("stream-1", 1, payload={"amount": "5000"})

    appended = event_store.append("stream-1", 0, [event])
    assert len(appended) == 1
    assert appended[0].event_id == event.event_id

    loaded = event_store.load_stream("stream-1")
    assert len(loaded) == 1
    assert loaded[0].event_id == event.event_id
    assert loaded[0].payload == {"amount": "5000"}
    assert loaded[0].occurred_at == event.occurred_at
    assert loaded[0].position is not None


def test_stream_versioning(event_store: SQLiteEventStore) -> None:
    """Each append advances the stream version"""
    event_store.append("stream-2", 0, [make_event("stream-2", 1)])
    assert event_store.get_stream_version("stream-2") == 1

    event_store.append("stream-2", 1, [make_event("stream-2", 2)])
    assert event_store.get_stream_version("stream-2") == 2

    events = event_store.load_stream("stream-2")
    assert [e.version for e in events] == [1, 2]


def test_unknown_stream_has_version_zero(event_store: SQLiteEventStore) -> None:
    assert event_store.get_stream_version("nope") == 0
    assert event_store.load_stream("nope") == []


def test_optimistic_locking_conflict(event_store: SQLiteEventStore) -> None:
    """A stale expected version is rejected and nothing is written"""
    event_store.append("stream-3", 0, [make_event("stream-3", 1)])

    with pytest.raises(StreamVersionConflict) as exc_info:
        event_store.append("stream-3", 0, [make_event("stream-3", 2)])

    assert exc_info.value.stream_id == "stream-3"
    assert exc_info.value.expected_version == 0
    assert exc_info.value.actual_version == 1
    assert len(event_store.load_stream("stream-3")) == 1


def test_command_idempotency_returns_original_events(event_store: SQLiteEventStore) -> None:
    """Re-sending a command id returns what it produced the first time"""
    command_id = "pay-1"
    first = make_event("stream-4", 1, command_id=command_id, payload={"n": 1})
    event_store.append("stream-4", 0, [first])

    retry = make_event("stream-4", 2, command_id=command_id, payload={"n": 2})
    result = event_store.append("stream-4", 1, [retry])

    assert len(result) == 1
    assert result[0].event_id == first.event_id
    assert event_store.get_stream_version("stream-4") == 1


def test_unique_command_refuses_other_stream(event_store: SQLiteEventStore) -> None:
    """A command id held by one stream cannot be appended to another"""
    event_store.append("shift-a", 0, [make_event("shift-a", 1, command_id="pay-9")])

    with pytest.raises(IdempotencyConflict) as exc_info:
        event_store.append(
            "shift-b", 0, [make_event("shift-b", 1, command_id="pay-9")], unique_command=True
        )

    assert exc_info.value.idempotency_key == "pay-9"
    assert "shift-a" in str(exc_info.value)
    assert event_store.load_stream("shift-b") == []


def test_unique_command_still_replays_same_stream(event_store: SQLiteEventStore) -> None:
    first = make_event("shift-c", 1, command_id="pay-10")
    event_store.append("shift-c", 0, [first], unique_command=True)

    result = event_store.append(
        "shift-c", 1, [make_event("shift-c", 2, command_id="pay-10")], unique_command=True
    )

    assert [e.event_id for e in result] == [first.event_id]


def test_append_batch_is_atomic(event_store: SQLiteEventStore) -> None:
    """If one stream's version check fails, no stream is written"""
    event_store.append("custody", 0, [make_event("custody", 1)])

    command_id = generate_id()
    with pytest.raises(StreamVersionConflict):
        event_store.append_batch(
            [
                StreamWrite("shift-a", 0, [make_event("shift-a", 1, command_id)]),
                StreamWrite("custody", 0, [make_event("custody", 1, command_id)]),
            ]
        )

    assert event_store.load_stream("shift-a") == []
    assert event_store.get_stream_version("custody") == 1


def test_append_batch_writes_all_streams(event_store: SQLiteEventStore) -> None:
    command_id = generate_id()
    appended = event_store.append_batch(
        [
            StreamWrite("shift-b", 0, [make_event("shift-b", 1, command_id)]),
            StreamWrite("custody-b", 0, [make_event("custody-b", 1, command_id)]),
        ]
    )

    assert len(appended) == 2
    assert event_store.get_stream_version("shift-b") == 1
    assert event_store.get_stream_version("custody-b") == 1
    assert len(event_store.get_events_by_command_id(command_id)) == 2


def test_load_all_events_in_append_order_with_positions(
    event_store: SQLiteEventStore,
) -> None:
    event_store.append("b", 0, [make_event("b", 1)])
    event_store.append("a", 0, [make_event("a", 1)])
    event_store.append("b", 1, [make_event("b", 2)])

    events = event_store.load_all_events()
    assert [(e.stream_id, e.version) for e in events] == [("b", 1), ("a", 1), ("b", 2)]

    positions = [e.position for e in events]
    assert positions == sorted(positions)

    later = event_store.load_all_events(after_position=positions[0])
    assert [(e.stream_id, e.version) for e in later] == [("a", 1), ("b", 2)]


def test_counts(event_store: SQLiteEventStore) -> None:
    event_store.append("x", 0, [make_event("x", 1), make_event("x", 2)])
    event_store.append("y", 0, [make_event("y", 1)])

    assert event_store.count_events() == 3
    assert event_store.count_streams() == 2


def test_concurrent_appends_to_one_stream_admit_one_winner(temp_db) -> None:
    """Writers racing on the same expected version: exactly one succeeds"""
    stores = [SQLiteEventStore(temp_db) for _ in range(8)]
    results: list[str] = []
    barrier = threading.Barrier(8)

    def writer(store: SQLiteEventStore) -> None:
        barrier.wait()
        try:
            store.append("race", 0, [make_event("race", 1)])
            results.append("ok")
        except StreamVersionConflict:
            results.append("conflict")

    threads = [threading.Thread(target=writer, args=(store,)) for store in stores]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 1
    assert results.count("conflict") == 7
    assert SQLiteEventStore(temp_db).get_stream_version("race") == 1
