"""
Pytest configuration and shared fixtures

Fun fact: conftest.py fixtures are visible to every test module below this
directory, so the whole suite shares one frozen clock by default.
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from parkops.kernel.event_store import SQLiteEventStore
from parkops.kernel.policy import OperationsPolicy
from parkops.kernel.time import TestTimeProvider
from parkops.ops import ParkOps


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL mode leaves -wal/-shm siblings)
    for suffix in ("", "-wal", "-shm"):
        path = Path(f"{db_path}{suffix}")
        if path.exists():
            path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> OperationsPolicy:
    """Provide default operations policy for tests"""
    return OperationsPolicy()


@pytest.fixture
def ops(temp_db: Path, test_time: TestTimeProvider, policy: OperationsPolicy) -> ParkOps:
    """Provide a ParkOps façade on a fresh database with a frozen clock"""
    return ParkOps(temp_db, policy=policy, time_provider=test_time)


@pytest.fixture
def seeded_ops(ops: ParkOps) -> ParkOps:
    """
    ParkOps with a small tenant:

    - operators O1, O2 (ACTIVE), O3 (INACTIVE)
    - public sector S1 with streets T1, T2; public sector S2 with street T3
    - private sector P1
    """
    ops.register_operator("O1", "Operator One")
    ops.register_operator("O2", "Operator Two")
    ops.register_operator("O3", "Operator Three")
    ops.set_operator_status("O3", "INACTIVE")

    ops.register_sector("S1", "Centro")
    ops.register_sector("S2", "Norte")
    ops.register_sector("P1", "Private Lot", is_private=True)

    ops.register_street("T1", "S1", "Calle Uno")
    ops.register_street("T2", "S1", "Calle Dos")
    ops.register_street("T3", "S2", "Calle Tres")
    return ops
