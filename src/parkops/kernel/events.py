"""
Base Event model for event sourcing

Events are immutable facts: a shift was opened, a payment was captured,
an assignment was revoked. The append-only log of events is the source of
truth; every balance and every authorization decision is recomputable from it.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Base event class - all domain events are stored in this envelope

    Events are:
    - Immutable (never modified after creation)
    - Append-only (never deleted)
    - Versioned per stream (optimistic locking)
    - Keyed by command_id (idempotency)
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (UUIDv7 for time-ordering)",
    )

    stream_id: str = Field(
        ...,
        description="Aggregate identifier - groups related events",
    )

    stream_type: str = Field(
        ...,
        description="Type of aggregate: 'shift', 'custody', 'assignment', etc.",
    )

    event_type: str = Field(
        ...,
        description="Specific event type: 'ShiftOpened', 'PaymentCaptured', etc.",
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when event occurred",
    )

    actor_id: str | None = Field(
        default=None,
        description="ID of actor who triggered this event (None for system events)",
    )

    command_id: str = Field(
        ...,
        description="ID of command that caused this event (idempotency key)",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (must be JSON-serializable)",
    )

    version: int = Field(
        ...,
        description="Stream version after this event (monotonically increasing)",
        ge=1,
    )

    position: int | None = Field(
        default=None,
        description="Global append position, assigned by the store on load",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "01908e9a-3b80-7000-8000-aaaaaaaaaaaa",
                    "stream_type": "shift",
                    "event_type": "PaymentCaptured",
                    "occurred_at": "2024-06-01T10:30:00Z",
                    "actor_id": "op-17",
                    "command_id": "pay-5f1c",
                    "payload": {"method": "CASH", "amount": "5000"},
                    "version": 2,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Factory function for creating events with all required fields"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
