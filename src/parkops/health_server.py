"""
Health check HTTP server for liveness and readiness probes.

Readiness means the event log answers queries; the detailed endpoint adds
custody figures (open shifts) when a ParkOps instance is attached.
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, jsonify

from parkops import __version__
from parkops.kernel.logging import get_logger

logger = get_logger(__name__)

app = Flask(__name__)

# Global state - set by initialize_health_server()
_db_path: Path | None = None
_ops_instance: Any = None  # ParkOps instance for detailed checks


def initialize_health_server(db_path: str | Path, ops_instance: Any = None) -> None:
    """
    Initialize the health server with a database path and optional ParkOps.

    Args:
        db_path: Path to SQLite database
        ops_instance: Optional ParkOps instance for detailed health checks
    """
    global _db_path, _ops_instance
    _db_path = Path(db_path)
    _ops_instance = ops_instance
    logger.info("Health server initialized", db_path=str(_db_path))


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Any, int]:
    """Liveness probe - the process is running."""
    return jsonify({"status": "alive", "service": "parkops"}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Any, int]:
    """
    Readiness probe - the event log is reachable.

    Checks:
    - Database path is configured
    - Database file exists
    - The events table answers a query

    Returns:
        200 when ready, 503 otherwise
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return (
            jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}),
            503,
        )

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_operational_error",
                    "error": str(e),
                }
            ),
            503,
        )

    logger.debug("Readiness check passed", event_count=event_count)
    return (
        jsonify({"status": "ready", "database": "accessible", "event_count": event_count}),
        200,
    )


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Any, int]:
    """
    Detailed health check - database figures plus custody state.

    Returns:
        200 when healthy, 503 when degraded
    """
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": "parkops",
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            conn = sqlite3.connect(str(_db_path), timeout=1.0)
            try:
                event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
                stream_count = conn.execute(
                    "SELECT COUNT(DISTINCT stream_id) FROM events"
                ).fetchone()[0]
                page_count = conn.execute("PRAGMA page_count").fetchone()[0]
                page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            finally:
                conn.close()

            health_data["database"] = {
                "status": "healthy",
                "path": str(_db_path),
                "event_count": event_count,
                "stream_count": stream_count,
                "size_mb": round((page_count * page_size) / (1024 * 1024), 2),
            }
        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    if _ops_instance is not None:
        summary = _ops_instance.health()
        health_data["custody"] = {
            "open_shifts": summary["open_shifts"],
            "operators": summary["operators"],
            "assignments": summary["assignments"],
        }

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)
