"""
Tests for health server

Flask liveness, readiness and detailed endpoints, with and without an
attached ParkOps instance.
"""

import sqlite3
import tempfile
from pathlib import Path

import pytest

from parkops import __version__, health_server
from parkops.health_server import app, initialize_health_server
from parkops.ops import ParkOps


@pytest.fixture
def events_db():
    """Minimal events table with three events in two streams"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    conn = sqlite3.connect(str(db_path))
    conn.execute("""
        CREATE TABLE events (
            event_id TEXT PRIMARY KEY,
            stream_id TEXT NOT NULL
        )
    """)
    conn.execute("INSERT INTO events (event_id, stream_id) VALUES ('evt-1', 'shift-1')")
    conn.execute("INSERT INTO events (event_id, stream_id) VALUES ('evt-2', 'shift-1')")
    conn.execute("INSERT INTO events (event_id, stream_id) VALUES ('evt-3', 'custody:O1:pos-1')")
    conn.commit()
    conn.close()

    yield db_path

    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def client():
    """Flask test client with global state reset afterwards"""
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client
    health_server._db_path = None
    health_server._ops_instance = None


# =============================================================================
# Initialization Tests
# =============================================================================


def test_initialize_accepts_string_path(events_db):
    initialize_health_server(str(events_db))
    assert health_server._db_path == events_db


def test_initialize_stores_ops_instance(events_db):
    marker = object()
    initialize_health_server(events_db, ops_instance=marker)
    assert health_server._ops_instance is marker


# =============================================================================
# Liveness
# =============================================================================


def test_liveness_works_without_initialization(client):
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.get_json() == {"status": "alive", "service": "parkops"}


# =============================================================================
# Readiness
# =============================================================================


def test_readiness_returns_event_count(client, events_db):
    initialize_health_server(events_db)

    response = client.get("/health/ready")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "ready"
    assert data["event_count"] == 3


def test_readiness_not_initialized(client):
    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_path_not_initialized"


def test_readiness_missing_file(client):
    initialize_health_server("/nonexistent/path/to/parkops.db")

    response = client.get("/health/ready")

    assert response.status_code == 503
    data = response.get_json()
    assert data["reason"] == "database_file_not_found"
    assert "/nonexistent/path/to/parkops.db" in data["db_path"]


def test_readiness_database_error(client, events_db):
    initialize_health_server(events_db)
    conn = sqlite3.connect(str(events_db))
    conn.execute("DROP TABLE events")
    conn.commit()
    conn.close()

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_operational_error"


# =============================================================================
# Detailed health
# =============================================================================


def test_detailed_health_database_figures(client, events_db):
    initialize_health_server(events_db)

    response = client.get("/health")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "healthy"
    assert data["version"] == __version__
    assert data["database"]["event_count"] == 3
    assert data["database"]["stream_count"] == 2
    assert "size_mb" in data["database"]
    assert "custody" not in data


def test_detailed_health_degraded_without_database(client):
    response = client.get("/health")

    assert response.status_code == 503
    data = response.get_json()
    assert data["status"] == "degraded"
    assert data["database"]["status"] == "not_initialized"


def test_detailed_health_degraded_on_query_error(client, events_db):
    initialize_health_server(events_db)
    conn = sqlite3.connect(str(events_db))
    conn.execute("DROP TABLE events")
    conn.commit()
    conn.close()

    response = client.get("/health")

    assert response.status_code == 503
    assert response.get_json()["database"]["status"] == "unhealthy"


def test_detailed_health_reports_custody(client, seeded_ops: ParkOps, temp_db, test_time):
    """Custody counts include writes made by another instance"""
    initialize_health_server(temp_db, ops_instance=seeded_ops)
    writer = ParkOps(temp_db, time_provider=test_time)
    writer.open_shift("O1", "pos-1", "0")
    writer.open_shift("O2", "pos-2", "0")

    response = client.get("/health")

    assert response.status_code == 200
    custody = response.get_json()["custody"]
    assert custody["open_shifts"] == 2
    assert custody["operators"] == 3
    assert custody["assignments"] == 0
