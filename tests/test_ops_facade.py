"""
Tests for the ParkOps façade - payment authorization, catch-up and health
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from parkops import ParkOps
from parkops.kernel.errors import (
    IdempotencyConflict,
    InvalidHierarchy,
    InvariantViolation,
    OperatorInactive,
    ShiftAlreadyOpen,
    ShiftNotFound,
    StreetNotFound,
    Unauthorized,
)
from parkops.shift.models import ShiftStatus

JAN_1 = datetime(2025, 1, 1, tzinfo=timezone.utc)


class TestPaymentAuthorization:
    """A payment is only captured where the shift's operator may work"""

    def test_payment_uses_shift_sector_by_default(self, seeded_ops: ParkOps) -> None:
        seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O1", "pos-1", "0", sector_id="S1")

        movement = seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1")
        assert movement.sequence == 1

    def test_payment_refused_without_assignment(self, seeded_ops: ParkOps) -> None:
        shift = seeded_ops.open_shift("O1", "pos-1", "0", sector_id="S1")

        with pytest.raises(Unauthorized):
            seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1")

        assert seeded_ops.movements(shift.shift_id) == []

    def test_street_grant_limits_payment_location(self, seeded_ops: ParkOps) -> None:
        seeded_ops.grant_assignment("O1", "S1", "T1", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O1", "pos-1", "0")

        seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1", street_id="T1")

        with pytest.raises(Unauthorized):
            seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-2", street_id="T2")

    def test_street_implies_its_sector(self, seeded_ops: ParkOps) -> None:
        seeded_ops.grant_assignment("O1", "S2", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O1", "pos-1", "0", sector_id="S1")

        movement = seeded_ops.capture_payment(
            shift.shift_id, "CASH", "100", "k-1", street_id="T3"
        )
        assert movement.amount == Decimal("100")

    def test_street_and_sector_must_agree(self, seeded_ops: ParkOps) -> None:
        seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O1", "pos-1", "0")

        with pytest.raises(InvalidHierarchy):
            seeded_ops.capture_payment(
                shift.shift_id, "CASH", "100", "k-1", sector_id="S1", street_id="T3"
            )

    def test_unknown_street(self, seeded_ops: ParkOps) -> None:
        shift = seeded_ops.open_shift("O1", "pos-1", "0")

        with pytest.raises(StreetNotFound):
            seeded_ops.capture_payment(
                shift.shift_id, "CASH", "100", "k-1", street_id="no-street"
            )

    def test_payment_needs_a_location(self, seeded_ops: ParkOps) -> None:
        shift = seeded_ops.open_shift("O1", "pos-1", "0")

        with pytest.raises(InvariantViolation, match="no sector"):
            seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1")

    def test_private_sector_payment(self, seeded_ops: ParkOps) -> None:
        shift = seeded_ops.open_shift("O1", "pos-1", "0", sector_id="P1")

        movement = seeded_ops.capture_payment(shift.shift_id, "CARD", "100", "k-1")
        assert movement.method == "CARD"

    def test_expired_assignment_blocks_payment(self, seeded_ops: ParkOps, test_time) -> None:
        assignment = seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O1", "pos-1", "0", sector_id="S1")
        seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1")

        seeded_ops.revoke_assignment(assignment.assignment_id)
        test_time.advance_seconds(1)

        with pytest.raises(Unauthorized):
            seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-2")

    def test_retry_after_revoke_returns_recorded_payment(
        self, seeded_ops: ParkOps, test_time
    ) -> None:
        """A collaborator retrying after a timeout gets the movement, not Unauthorized"""
        assignment = seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O1", "pos-1", "0", sector_id="S1")
        first = seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1")

        seeded_ops.revoke_assignment(assignment.assignment_id)
        test_time.advance_seconds(1)

        retried = seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1")
        assert retried == first
        assert len(seeded_ops.movements(shift.shift_id)) == 1

        with pytest.raises(Unauthorized):
            seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-2")

    def test_retry_after_deactivation_returns_recorded_payment(
        self, seeded_ops: ParkOps
    ) -> None:
        seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O1", "pos-1", "0", sector_id="S1")
        first = seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1")

        seeded_ops.set_operator_status("O1", "INACTIVE")

        assert seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1") == first
        with pytest.raises(OperatorInactive):
            seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-2")

    def test_retry_with_different_amount_still_conflicts(
        self, seeded_ops: ParkOps, test_time
    ) -> None:
        assignment = seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O1", "pos-1", "0", sector_id="S1")
        seeded_ops.capture_payment(shift.shift_id, "CASH", "100", "k-1")
        seeded_ops.revoke_assignment(assignment.assignment_id)
        test_time.advance_seconds(1)

        with pytest.raises(IdempotencyConflict):
            seeded_ops.capture_payment(shift.shift_id, "CASH", "999", "k-1")

    def test_unknown_shift(self, seeded_ops: ParkOps) -> None:
        with pytest.raises(ShiftNotFound):
            seeded_ops.capture_payment("missing", "CASH", "100", "k-1", sector_id="S1")


class TestCatchUp:
    """Two façades on one database see each other's writes before deciding"""

    def test_other_writer_seen_without_manual_refresh(
        self, seeded_ops: ParkOps, temp_db, test_time
    ) -> None:
        other = ParkOps(temp_db, time_provider=test_time)

        seeded_ops.grant_assignment("O2", "S2", valid_from=JAN_1)
        shift = seeded_ops.open_shift("O2", "pos-9", "50", sector_id="S2")

        assert other.can_access("O2", "S2") is True
        assert other.list_shifts(status=ShiftStatus.OPEN)[0].shift_id == shift.shift_id
        assert other.refresh() == 0

    def test_revocation_by_other_writer_denies_access(
        self, seeded_ops: ParkOps, temp_db, test_time
    ) -> None:
        other = ParkOps(temp_db, time_provider=test_time)
        assignment = seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
        assert other.can_access("O1", "S1") is True

        seeded_ops.revoke_assignment(assignment.assignment_id)
        test_time.advance_seconds(1)

        assert other.can_access("O1", "S1") is False
        with pytest.raises(Unauthorized):
            other.require_access("O1", "S1")

    def test_deactivation_by_other_writer_blocks_open_and_payment(
        self, seeded_ops: ParkOps, temp_db, test_time
    ) -> None:
        other = ParkOps(temp_db, time_provider=test_time)
        seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
        shift = other.open_shift("O1", "pos-1", "0", sector_id="S1")

        seeded_ops.set_operator_status("O1", "INACTIVE")

        with pytest.raises(OperatorInactive):
            other.open_shift("O1", "pos-7", "0")
        with pytest.raises(OperatorInactive):
            other.capture_payment(shift.shift_id, "CASH", "10", "k-1")

    def test_refresh_is_idempotent(self, seeded_ops: ParkOps) -> None:
        assert seeded_ops.refresh() > 0
        assert seeded_ops.refresh() == 0
        assert len(seeded_ops.list_operators()) == 3

    def test_decisions_do_not_wait_for_refresh(
        self, seeded_ops: ParkOps, temp_db, test_time
    ) -> None:
        """Shift decisions replay the store, so a stale façade still refuses a second open"""
        other = ParkOps(temp_db, time_provider=test_time)
        seeded_ops.open_shift("O1", "pos-1", "0")

        with pytest.raises(ShiftAlreadyOpen):
            other.open_shift("O1", "pos-1", "0")


def test_health_counts(seeded_ops: ParkOps) -> None:
    seeded_ops.grant_assignment("O1", "S1", valid_from=JAN_1)
    shift = seeded_ops.open_shift("O1", "pos-1", "0")

    health = seeded_ops.health()
    assert health["operators"] == 3
    assert health["sectors"] == 3
    assert health["assignments"] == 1
    assert health["open_shifts"] == 1

    seeded_ops.close_shift(shift.shift_id, "0")
    assert seeded_ops.health()["open_shifts"] == 0
    assert seeded_ops.health()["event_count"] == seeded_ops.event_store.count_events()
