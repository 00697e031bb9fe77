"""
Shift Examples - access checks and cash custody end to end

This example demonstrates:
- Registering operators, sectors and streets
- Sector-wide versus street-scoped assignments
- Revoking an assignment and checking at the boundary
- Opening a shift, capturing payments, recording a withdrawal
- Idempotent payment retries
- Closing with a declared count and reading the reconciliation
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

from parkops import ParkOps
from parkops.kernel.errors import ShiftAlreadyOpen, ShiftNotOpen, Unauthorized


def example_1_assignments():
    """
    Example 1: Who may work where

    Demonstrates:
    - A sector-wide grant covering every street
    - A street grant that does not cover its sibling
    - A revoke that ends access at an exact instant
    """
    print("\n=== Example 1: Assignments ===\n")

    with tempfile.TemporaryDirectory() as tmpdir:
        ops = ParkOps(Path(tmpdir) / "example1.db")

        ops.register_operator("ana", "Ana")
        ops.register_operator("luis", "Luis")
        ops.register_sector("centro", "Centro")
        ops.register_street("alameda", "centro", "Alameda")
        ops.register_street("prat", "centro", "Prat")

        ana = ops.grant_assignment(
            "ana", "centro", valid_from=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        ops.grant_assignment(
            "luis", "centro", "alameda", valid_from=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )

        june = datetime(2024, 6, 1, tzinfo=timezone.utc)
        print(f"Ana on Prat in June:   {ops.can_access('ana', 'centro', 'prat', at=june)}")
        print(f"Luis on Alameda:       {ops.can_access('luis', 'centro', 'alameda', at=june)}")
        print(f"Luis on Prat:          {ops.can_access('luis', 'centro', 'prat', at=june)}")

        ops.revoke_assignment(ana.assignment_id, datetime(2024, 5, 1, tzinfo=timezone.utc))
        print("\nAna revoked as of 2024-05-01")
        print(f"Ana in June:           {ops.can_access('ana', 'centro', at=june)}")
        decision = ops.explain_access(
            "ana", "centro", at=datetime(2024, 5, 1, tzinfo=timezone.utc)
        )
        print(f"Ana at 2024-05-01:     {decision.allowed} ({decision.reason})")


def example_2_shift_custody():
    """
    Example 2: A shift from float to close

    Demonstrates:
    - One open shift per operator and device
    - Payments checked against the operator's assignments
    - A retried payment recorded once
    - A balanced close and a rejected second close
    """
    print("\n=== Example 2: Shift custody ===\n")

    with tempfile.TemporaryDirectory() as tmpdir:
        ops = ParkOps(Path(tmpdir) / "example2.db")
        ops.register_operator("ana", "Ana")
        ops.register_sector("centro", "Centro")
        ops.register_sector("norte", "Norte")
        ops.grant_assignment("ana", "centro", valid_from=datetime(2024, 1, 1, tzinfo=timezone.utc))

        shift = ops.open_shift("ana", "pos-3", "10000", sector_id="centro")
        print(f"✓ Shift opened: {shift.shift_id}")
        print(f"  Opening float: {shift.opening_float}")

        try:
            ops.open_shift("ana", "pos-3", "0")
        except ShiftAlreadyOpen as e:
            print(f"✗ {e}")

        ops.capture_payment(shift.shift_id, "CASH", "5000", "session-1001")
        ops.capture_payment(shift.shift_id, "CARD", "3200", "session-1002")
        retried = ops.capture_payment(shift.shift_id, "CASH", "5000", "session-1001")
        print(f"✓ Retried session-1001 returned movement #{retried.sequence}")

        try:
            ops.capture_payment(shift.shift_id, "CASH", "700", "session-1003", sector_id="norte")
        except Unauthorized as e:
            print(f"✗ {e}")

        ops.record_adjustment(
            shift.shift_id, "WITHDRAWAL", "2000", "supervisor pickup", approved_by="sup-1"
        )

        preview = ops.preview_reconciliation(shift.shift_id)
        print(f"\nExpected cash so far: {preview.expected_cash}")

        report = ops.close_shift(shift.shift_id, "13000")
        print("\nShift closed")
        for method, total in report.payments.items():
            print(f"  {method}: {total.total} ({total.count})")
        print(f"  Expected: {report.expected_cash}")
        print(f"  Declared: {report.declared_cash}")
        print(f"  Difference: {report.difference}")

        try:
            ops.close_shift(shift.shift_id, "13000")
        except ShiftNotOpen as e:
            print(f"✗ {e}")


if __name__ == "__main__":
    example_1_assignments()
    example_2_shift_custody()
