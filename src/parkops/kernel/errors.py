"""
Custom exceptions for parkops

Every failure the access and custody engines can produce has its own type,
so callers (and the UI collaborator) can map each kind to a distinct message
instead of parsing strings.
"""


class ParkOpsError(Exception):
    """Base exception for all parkops errors"""

    pass


class EventStoreError(ParkOpsError):
    """Base class for event store errors"""

    pass


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Indicates concurrent modification - nothing was written, the caller
    should reload and re-validate.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


class IdempotencyConflict(ParkOpsError):
    """Raised when an idempotency key is reused with a different payload"""

    def __init__(self, idempotency_key: str, reason: str) -> None:
        self.idempotency_key = idempotency_key
        self.reason = reason
        super().__init__(f"Idempotency key {idempotency_key} already used: {reason}")


# Lookup failures


class NotFound(ParkOpsError):
    """Base class for unknown operator/sector/street/shift/assignment"""

    pass


class OperatorNotFound(NotFound):
    """Raised when operator does not exist"""

    def __init__(self, operator_id: str) -> None:
        self.operator_id = operator_id
        super().__init__(f"Operator {operator_id} not found")


class SectorNotFound(NotFound):
    """Raised when sector does not exist"""

    def __init__(self, sector_id: str) -> None:
        self.sector_id = sector_id
        super().__init__(f"Sector {sector_id} not found")


class StreetNotFound(NotFound):
    """Raised when street does not exist"""

    def __init__(self, street_id: str) -> None:
        self.street_id = street_id
        super().__init__(f"Street {street_id} not found")


class ShiftNotFound(NotFound):
    """Raised when shift does not exist"""

    def __init__(self, shift_id: str) -> None:
        self.shift_id = shift_id
        super().__init__(f"Shift {shift_id} not found")


class AssignmentNotFound(NotFound):
    """Raised when operator assignment does not exist"""

    def __init__(self, assignment_id: str) -> None:
        self.assignment_id = assignment_id
        super().__init__(f"Assignment {assignment_id} not found")


# Invariant violations


class InvariantViolation(ParkOpsError):
    """
    Raised when a domain invariant would be violated

    Examples: a street outside its sector, a negative opening float,
    an assignment window that ends before it starts.
    """

    pass


class InvalidHierarchy(InvariantViolation):
    """Raised when a street does not belong to the given sector"""

    def __init__(self, street_id: str, sector_id: str, actual_sector_id: str) -> None:
        self.street_id = street_id
        self.sector_id = sector_id
        self.actual_sector_id = actual_sector_id
        super().__init__(
            f"Street {street_id} belongs to sector {actual_sector_id}, not {sector_id}"
        )


class InvalidAmount(InvariantViolation):
    """Raised when a monetary amount is outside its allowed range"""

    def __init__(self, field: str, amount: str, requirement: str) -> None:
        self.field = field
        self.amount = amount
        self.requirement = requirement
        super().__init__(f"Invalid {field} {amount}: must be {requirement}")


class InvalidAssignmentWindow(InvariantViolation):
    """Raised when valid_to does not come strictly after valid_from"""

    def __init__(self, valid_from: str, valid_to: str) -> None:
        self.valid_from = valid_from
        self.valid_to = valid_to
        super().__init__(
            f"Assignment window invalid: valid_to {valid_to} must be after "
            f"valid_from {valid_from}"
        )


class UnsupportedPaymentMethod(InvariantViolation):
    """Raised when a payment method is not accepted by the operations policy"""

    def __init__(self, method: str, accepted: list[str]) -> None:
        self.method = method
        self.accepted = accepted
        super().__init__(f"Payment method {method} not accepted (accepted: {accepted})")


# Access failures


class OperatorInactive(ParkOpsError):
    """Raised when an operator exists but is not ACTIVE"""

    def __init__(self, operator_id: str, status: str) -> None:
        self.operator_id = operator_id
        self.status = status
        super().__init__(f"Operator {operator_id} is {status}, must be ACTIVE")


class Unauthorized(ParkOpsError):
    """Raised when the operator holds no effective assignment for the location"""

    def __init__(self, operator_id: str, sector_id: str, street_id: str | None) -> None:
        self.operator_id = operator_id
        self.sector_id = sector_id
        self.street_id = street_id
        location = f"sector {sector_id}"
        if street_id:
            location += f" / street {street_id}"
        super().__init__(f"Operator {operator_id} has no valid assignment for {location}")


# Shift lifecycle failures


class ShiftAlreadyOpen(ParkOpsError):
    """Raised when an OPEN shift already exists for the operator/device pair"""

    def __init__(self, operator_id: str, device_id: str, shift_id: str) -> None:
        self.operator_id = operator_id
        self.device_id = device_id
        self.shift_id = shift_id
        super().__init__(
            f"Operator {operator_id} already has open shift {shift_id} "
            f"on device {device_id}"
        )


class ShiftNotOpen(ParkOpsError):
    """Raised when an operation requires an OPEN shift"""

    def __init__(self, shift_id: str, current_status: str) -> None:
        self.shift_id = shift_id
        self.current_status = current_status
        super().__init__(f"Shift {shift_id} is {current_status}, must be OPEN")
