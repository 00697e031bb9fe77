"""
SQLite Event Store - Append-only event log with idempotency

The event store is the source of truth for assignments and cash custody.
It provides:
- Append-only semantics (ledger entries are never modified or deleted)
- Idempotency via command_id (a retried command returns its original events)
- Optimistic locking via stream versioning
- Atomic multi-stream writes (a shift and its custody claim move together)

Fun fact: double-entry bookkeepers have corrected mistakes with new
entries instead of erasers since Pacioli wrote it down in 1494.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, NamedTuple

from parkops.kernel.errors import EventStoreError, IdempotencyConflict, StreamVersionConflict
from parkops.kernel.events import Event
from parkops.kernel.logging import get_logger
from parkops.kernel.metrics import events_appended_total, stream_version_conflicts_total
from parkops.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_EVENT_COLUMNS = """
    rowid AS position, event_id, stream_id, stream_type, version,
    command_id, event_type, occurred_at, actor_id, payload_json
"""


class StreamWrite(NamedTuple):
    """Events destined for one stream, guarded by its expected version"""

    stream_id: str
    expected_version: int
    events: list[Event]


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    WAL mode gives crash safety and lets readers proceed while one writer
    holds the lock. Writes take the lock up front (BEGIN IMMEDIATE), so the
    version check and the insert are one serialized step.

    Schema:
    - events table: append-only event log
    - Unique constraint: (stream_id, version)
    - Indices: stream, event_type, command_id
    """

    def __init__(self, db_path: str | Path, busy_timeout: float = 5.0) -> None:
        """
        Initialize event store with SQLite database

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds a connection waits on a locked database
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    event_id TEXT PRIMARY KEY,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    command_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream "
                "ON events(stream_id, version)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database connections

        One connection per operation; callers on different threads never
        share a connection.
        """
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
        unique_command: bool = False,
    ) -> list[Event]:
        """
        Append events to a single stream with optimistic locking

        Args:
            stream_id: Aggregate identifier
            expected_version: Expected current stream version
            events: Events to append (must have sequential versions)
            unique_command: The command id may not appear on any other stream

        Returns:
            The appended events (the original ones if the command was already applied)

        Raises:
            StreamVersionConflict: If stream version doesn't match expected
            IdempotencyConflict: If unique_command and another stream holds the command id
            EventStoreError: On other database errors
        """
        return self.append_batch(
            [StreamWrite(stream_id, expected_version, events)], unique_command=unique_command
        )

    @retry_on_sqlite_lock()
    def append_batch(
        self, writes: list[StreamWrite], unique_command: bool = False
    ) -> list[Event]:
        """
        Append to several streams in one transaction

        Either every stream passes its version check and all events land,
        or nothing is written. This is the conditional write behind the
        one-open-shift-per-operator/device rule.

        Idempotency: if the first write's command_id already produced events
        in its stream, the command was applied before (atomically, with all
        its sibling writes) and those original events are returned.
        With unique_command, the command id must also be absent from every
        other stream; the check runs inside the write transaction so two
        writers cannot both pass it.

        Raises:
            StreamVersionConflict: If any stream version doesn't match expected
            IdempotencyConflict: If unique_command and another stream holds the command id
            EventStoreError: On other database errors
        """
        writes = [w for w in writes if w.events]
        if not writes:
            return []

        first = writes[0]
        first_command_id = first.events[0].command_id

        with self._connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")

                existing = self._events_by_command(conn, first_command_id, first.stream_id)
                if existing:
                    conn.rollback()
                    logger.debug(
                        "Command already applied, returning original events",
                        command_id=first_command_id,
                        stream_id=first.stream_id,
                    )
                    return existing

                if unique_command:
                    elsewhere = self._stream_holding_command(conn, first_command_id)
                    if elsewhere is not None:
                        conn.rollback()
                        raise IdempotencyConflict(
                            first_command_id, f"already used on stream {elsewhere}"
                        )

                for write in writes:
                    current_version = self._get_stream_version(conn, write.stream_id)
                    if current_version != write.expected_version:
                        raise StreamVersionConflict(
                            write.stream_id, write.expected_version, current_version
                        )

                appended: list[Event] = []
                for write in writes:
                    for event in write.events:
                        self._insert(conn, event)
                        appended.append(event)

                conn.commit()

            except StreamVersionConflict as e:
                conn.rollback()
                stream_type = next(
                    (w.events[0].stream_type for w in writes if w.stream_id == e.stream_id),
                    "unknown",
                )
                stream_version_conflicts_total.labels(stream_type=stream_type).inc()
                raise

            except sqlite3.IntegrityError as e:
                conn.rollback()
                error_msg = str(e).lower()
                if "stream_id" in error_msg and "version" in error_msg:
                    stream_version_conflicts_total.labels(
                        stream_type=first.events[0].stream_type
                    ).inc()
                    current = self._get_stream_version(conn, first.stream_id)
                    raise StreamVersionConflict(
                        first.stream_id, first.expected_version, current
                    ) from e
                raise EventStoreError(f"Failed to append events: {e}") from e

            except sqlite3.OperationalError:
                # Lock contention - let the retry decorator have another go
                conn.rollback()
                raise

        for event in appended:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        return appended

    def _insert(self, conn: sqlite3.Connection, event: Event) -> None:
        conn.execute(
            """
            INSERT INTO events (
                event_id, stream_id, stream_type, version,
                command_id, event_type, occurred_at, actor_id, payload_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                event.event_id,
                event.stream_id,
                event.stream_type,
                event.version,
                event.command_id,
                event.event_type,
                event.occurred_at.isoformat(),
                event.actor_id,
                json.dumps(event.payload),
            ),
        )

    def load_stream(self, stream_id: str) -> list[Event]:
        """
        Load all events for a stream in version order

        Used to reconstruct a shift (or a custody pair) by replaying events.

        Args:
            stream_id: Aggregate identifier

        Returns:
            List of events in version order (empty if stream doesn't exist)
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events "
                "WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def load_all_events(self, after_position: int = 0) -> list[Event]:
        """
        Load events in append order (for projection building)

        Args:
            after_position: Only events appended after this position

        Returns:
            List of events in the order they were committed
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events "
                "WHERE rowid > ? ORDER BY rowid ASC",
                (after_position,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_events_by_command_id(self, command_id: str) -> list[Event]:
        """All events produced by a command, across streams"""
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events "
                "WHERE command_id = ? ORDER BY rowid ASC",
                (command_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_stream_version(self, stream_id: str) -> int:
        """
        Get current version of a stream

        Returns:
            Current stream version (0 if stream doesn't exist)
        """
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        cursor = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        )
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def _events_by_command(
        self, conn: sqlite3.Connection, command_id: str, stream_id: str
    ) -> list[Event]:
        cursor = conn.execute(
            f"SELECT {_EVENT_COLUMNS} FROM events "
            "WHERE command_id = ? AND stream_id = ? ORDER BY version ASC",
            (command_id, stream_id),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def _stream_holding_command(
        self, conn: sqlite3.Connection, command_id: str
    ) -> str | None:
        row = conn.execute(
            "SELECT stream_id FROM events WHERE command_id = ? ORDER BY rowid ASC LIMIT 1",
            (command_id,),
        ).fetchone()
        return row[0] if row is not None else None

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        """Convert SQLite row to Event object"""
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
            position=row["position"],
        )

    def count_events(self) -> int:
        """Get total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        """Get total number of distinct streams"""
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(DISTINCT stream_id) FROM events"
            ).fetchone()[0]
