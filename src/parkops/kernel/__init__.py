"""
Kernel - Core event sourcing infrastructure

The kernel provides the append-only event log, the clock, the error
hierarchy and the ambient plumbing (logging, metrics, retries) that the
access and shift modules build upon.

Fun fact: the word "custody" comes from the Latin custos, a guard. The
kernel is the guard of the guard: it watches who held the cash drawer.
"""

from parkops.kernel.errors import (
    EventStoreError,
    IdempotencyConflict,
    InvariantViolation,
    NotFound,
    ParkOpsError,
    StreamVersionConflict,
)
from parkops.kernel.event_store import SQLiteEventStore, StreamWrite
from parkops.kernel.events import Event, create_event
from parkops.kernel.ids import generate_id
from parkops.kernel.policy import OperationsPolicy
from parkops.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events & storage
    "Event",
    "create_event",
    "SQLiteEventStore",
    "StreamWrite",
    # Configuration
    "OperationsPolicy",
    # Errors
    "ParkOpsError",
    "EventStoreError",
    "StreamVersionConflict",
    "IdempotencyConflict",
    "NotFound",
    "InvariantViolation",
]
