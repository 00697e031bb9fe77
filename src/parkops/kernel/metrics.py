"""
Prometheus metrics collection for parkops.

Counts what the custody desk cares about: authorization decisions,
shift transitions, ledger writes, and close-out discrepancies.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "parkops_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

stream_version_conflicts_total = Counter(
    "parkops_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["stream_type"],
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "parkops_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

commands_processed_total = Counter(
    "parkops_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, failure
)

# ============================================================================
# Access Metrics
# ============================================================================

access_decisions_total = Counter(
    "parkops_access_decisions_total",
    "Authorization decisions by outcome",
    ["decision"],  # granted, denied, private_sector
)

# ============================================================================
# Custody Metrics
# ============================================================================

open_shifts = Gauge(
    "parkops_open_shifts",
    "Number of shifts currently OPEN",
)

movements_posted_total = Counter(
    "parkops_movements_posted_total",
    "Cash movements appended to shift ledgers",
    ["kind", "category"],  # category: payment method or adjustment type
)

idempotent_replays_total = Counter(
    "parkops_idempotent_replays_total",
    "Movement posts answered from an existing idempotency key",
)

shift_close_difference = Histogram(
    "parkops_shift_close_difference",
    "Declared minus expected cash at shift close",
    buckets=(-10000, -1000, -100, -1, 0, 1, 100, 1000, 10000),
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track command processing duration and outcome.

    Args:
        command_type: Type of command being processed

    Returns:
        Decorated function that tracks duration
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                duration = time.perf_counter() - start
                command_duration_seconds.labels(command_type=command_type).observe(duration)
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)
