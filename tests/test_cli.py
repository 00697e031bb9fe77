"""
CLI integration tests

Drives every command group through Typer's CliRunner against a real
database file.
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from parkops.cli.main import app


@pytest.fixture
def runner() -> CliRunner:
    """Typer CLI test runner"""
    return CliRunner()


@pytest.fixture
def db(runner: CliRunner, tmp_path: Path) -> str:
    """Initialized database with operator O1, sector S1 (street T1) and private P1"""
    db_path = str(tmp_path / "parkops.db")
    commands = [
        ["init", "--db", db_path],
        ["operator", "register", "--id", "O1", "--name", "Ana", "--db", db_path],
        ["sector", "register", "--id", "S1", "--name", "Centro", "--db", db_path],
        ["sector", "register", "--id", "P1", "--name", "Lot", "--private", "--db", db_path],
        ["street", "register", "--id", "T1", "--sector", "S1", "--name", "Uno", "--db", db_path],
    ]
    for command in commands:
        result = runner.invoke(app, command)
        assert result.exit_code == 0, result.output
    return db_path


def last_token(output: str, prefix: str) -> str:
    """Pull the id printed after a '✓ ...:' confirmation line"""
    for line in output.splitlines():
        if line.startswith(prefix):
            return line.split(":", 1)[1].strip()
    raise AssertionError(f"{prefix!r} not in output: {output}")


# =============================================================================
# Initialization
# =============================================================================


def test_init_creates_database(runner: CliRunner, tmp_path: Path) -> None:
    db_path = tmp_path / "fresh.db"

    result = runner.invoke(app, ["init", "--db", str(db_path)])

    assert result.exit_code == 0
    assert db_path.exists()
    assert "initialized" in result.stdout.lower()


def test_init_refuses_existing_database(runner: CliRunner, db: str) -> None:
    result = runner.invoke(app, ["init", "--db", db])
    assert result.exit_code == 1


def test_missing_database(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(app, ["operator", "list", "--db", str(tmp_path / "nope.db")])

    assert result.exit_code == 1
    assert "Database not found" in result.output


# =============================================================================
# Directory
# =============================================================================


def test_directory_listings(runner: CliRunner, db: str) -> None:
    operators = runner.invoke(app, ["operator", "list", "--db", db])
    sectors = runner.invoke(app, ["sector", "list", "--db", db])
    streets = runner.invoke(app, ["street", "list", "--sector", "S1", "--db", db])

    assert "O1: Ana [ACTIVE]" in operators.stdout
    assert "P1: Lot [private]" in sectors.stdout
    assert "T1: Uno (sector S1)" in streets.stdout


def test_operator_status_change(runner: CliRunner, db: str) -> None:
    result = runner.invoke(
        app, ["operator", "status", "--id", "O1", "--status", "INACTIVE", "--db", db]
    )

    assert result.exit_code == 0
    assert "O1 is INACTIVE" in result.stdout


def test_duplicate_registration_is_an_error(runner: CliRunner, db: str) -> None:
    result = runner.invoke(
        app, ["operator", "register", "--id", "O1", "--name", "Again", "--db", db]
    )

    assert result.exit_code == 1
    assert "already registered" in result.output


def test_street_in_unknown_sector(runner: CliRunner, db: str) -> None:
    result = runner.invoke(
        app, ["street", "register", "--id", "T9", "--sector", "S9", "--name", "X", "--db", db]
    )

    assert result.exit_code == 1
    assert "Sector S9 not found" in result.output


# =============================================================================
# Assignments and access
# =============================================================================


def test_grant_check_revoke(runner: CliRunner, db: str) -> None:
    denied = runner.invoke(
        app, ["access", "check", "--operator", "O1", "--sector", "S1", "--db", db]
    )
    assert denied.exit_code == 0
    assert "DENIED (no_assignment)" in denied.stdout

    granted = runner.invoke(
        app,
        ["assignment", "grant", "--operator", "O1", "--sector", "S1", "--from", "2024-01-01", "--db", db],
    )
    assert granted.exit_code == 0, granted.output
    assignment_id = last_token(granted.stdout, "✓ Granted assignment")

    allowed = runner.invoke(
        app,
        ["access", "check", "--operator", "O1", "--sector", "S1", "--street", "T1", "--db", db],
    )
    assert "ALLOWED (assignment)" in allowed.stdout
    assert assignment_id in allowed.stdout

    revoked = runner.invoke(
        app, ["assignment", "revoke", "--id", assignment_id, "--at", "2024-05-01", "--db", db]
    )
    assert revoked.exit_code == 0, revoked.output

    after = runner.invoke(
        app,
        ["access", "check", "--operator", "O1", "--sector", "S1", "--at", "2024-06-01", "--json", "--db", db],
    )
    decision = json.loads(after.stdout)
    assert decision["allowed"] is False
    assert decision["reason"] == "no_assignment"

    before = runner.invoke(
        app,
        ["access", "check", "--operator", "O1", "--sector", "S1", "--at", "2024-04-30", "--json", "--db", db],
    )
    assert json.loads(before.stdout)["allowed"] is True


def test_private_sector_check(runner: CliRunner, db: str) -> None:
    result = runner.invoke(
        app, ["access", "check", "--operator", "O1", "--sector", "P1", "--db", db]
    )
    assert "ALLOWED (private_sector)" in result.stdout


def test_access_check_unknown_street(runner: CliRunner, db: str) -> None:
    result = runner.invoke(
        app,
        ["access", "check", "--operator", "O1", "--sector", "S1", "--street", "T9", "--db", db],
    )

    assert result.exit_code == 1
    assert "Street T9 not found" in result.output


def test_assignment_list_json(runner: CliRunner, db: str) -> None:
    runner.invoke(
        app,
        ["assignment", "grant", "--operator", "O1", "--sector", "S1", "--street", "T1", "--db", db],
    )

    result = runner.invoke(app, ["assignment", "list", "--operator", "O1", "--json", "--db", db])

    assignments = json.loads(result.stdout)
    assert len(assignments) == 1
    assert assignments[0]["street_id"] == "T1"
    assert assignments[0]["valid_to"] is None


def test_invalid_window_is_an_error(runner: CliRunner, db: str) -> None:
    result = runner.invoke(
        app,
        [
            "assignment", "grant", "--operator", "O1", "--sector", "S1",
            "--from", "2024-02-01", "--to", "2024-01-01", "--db", db,
        ],
    )

    assert result.exit_code == 1
    assert "Assignment window invalid" in result.output


# =============================================================================
# Shifts
# =============================================================================


def open_shift(runner: CliRunner, db: str, float_: str = "10000") -> str:
    result = runner.invoke(
        app,
        ["shift", "open", "--operator", "O1", "--device", "pos-1", "--float", float_, "--sector", "S1", "--db", db],
    )
    assert result.exit_code == 0, result.output
    return last_token(result.stdout, "✓ Opened shift")


def test_shift_full_cycle(runner: CliRunner, db: str) -> None:
    runner.invoke(
        app, ["assignment", "grant", "--operator", "O1", "--sector", "S1", "--from", "2024-01-01", "--db", db]
    )
    shift_id = open_shift(runner, db)

    pay = runner.invoke(
        app,
        ["shift", "pay", "--shift", shift_id, "--method", "cash", "--amount", "5000", "--key", "pay-1", "--db", db],
    )
    assert pay.exit_code == 0, pay.output
    assert "payment #1: CASH 5000" in pay.stdout

    adjust = runner.invoke(
        app,
        [
            "shift", "adjust", "--shift", shift_id, "--type", "withdrawal",
            "--amount", "2000", "--reason", "pickup", "--db", db,
        ],
    )
    assert adjust.exit_code == 0, adjust.output
    assert "adjustment #2: WITHDRAWAL 2000" in adjust.stdout

    preview = runner.invoke(app, ["shift", "preview", "--shift", shift_id, "--json", "--db", db])
    assert json.loads(preview.stdout)["declared_cash"] is None

    close = runner.invoke(
        app, ["shift", "close", "--shift", shift_id, "--declared", "13000", "--json", "--db", db]
    )
    assert close.exit_code == 0, close.output
    report = json.loads(close.stdout)
    assert report["expected_cash"] == "13000"
    assert report["difference"] == "0"

    again = runner.invoke(
        app, ["shift", "close", "--shift", shift_id, "--declared", "13000", "--db", db]
    )
    assert again.exit_code == 1
    assert "must be OPEN" in again.output

    show = runner.invoke(app, ["shift", "show", "--shift", shift_id, "--json", "--db", db])
    shown = json.loads(show.stdout)
    assert shown["status"] == "CLOSED"
    assert [m["sequence"] for m in shown["movements"]] == [1, 2]


def test_pay_without_assignment_is_refused(runner: CliRunner, db: str) -> None:
    shift_id = open_shift(runner, db)

    result = runner.invoke(
        app,
        ["shift", "pay", "--shift", shift_id, "--method", "CASH", "--amount", "10", "--key", "k", "--db", db],
    )

    assert result.exit_code == 1
    assert "no valid assignment" in result.output


def test_second_open_is_refused(runner: CliRunner, db: str) -> None:
    open_shift(runner, db)

    result = runner.invoke(
        app, ["shift", "open", "--operator", "O1", "--device", "pos-1", "--float", "0", "--db", db]
    )

    assert result.exit_code == 1
    assert "already has open shift" in result.output


def test_negative_float_is_refused(runner: CliRunner, db: str) -> None:
    result = runner.invoke(
        app, ["shift", "open", "--operator", "O1", "--device", "pos-1", "--float", "-1", "--db", db]
    )

    assert result.exit_code == 1
    assert "opening_float" in result.output


def test_bad_amount_is_refused(runner: CliRunner, db: str) -> None:
    result = runner.invoke(
        app, ["shift", "open", "--operator", "O1", "--device", "pos-1", "--float", "lots", "--db", db]
    )

    assert result.exit_code == 1
    assert "Invalid input" in result.output


def test_current_and_list(runner: CliRunner, db: str) -> None:
    shift_id = open_shift(runner, db)

    current = runner.invoke(
        app, ["shift", "current", "--operator", "O1", "--device", "pos-1", "--db", db]
    )
    listing = runner.invoke(app, ["shift", "list", "--status", "OPEN", "--db", db])
    none = runner.invoke(
        app, ["shift", "current", "--operator", "O1", "--device", "pos-2", "--db", db]
    )

    assert shift_id in current.stdout
    assert shift_id in listing.stdout
    assert "No open shift" in none.stdout


def test_policy_option_restricts_methods(runner: CliRunner, db: str, tmp_path: Path) -> None:
    policy_path = tmp_path / "policy.json"
    policy_path.write_text('{"accepted_payment_methods": ["CASH"]}')
    runner.invoke(
        app, ["assignment", "grant", "--operator", "O1", "--sector", "S1", "--from", "2024-01-01", "--db", db]
    )
    shift_id = open_shift(runner, db)

    result = runner.invoke(
        app,
        [
            "--policy", str(policy_path),
            "shift", "pay", "--shift", shift_id, "--method", "CARD",
            "--amount", "10", "--key", "k-card", "--db", db,
        ],
    )

    assert result.exit_code == 1
    assert "not accepted" in result.output


def test_health_json(runner: CliRunner, db: str) -> None:
    open_shift(runner, db)

    result = runner.invoke(app, ["health", "--json", "--db", db])

    summary = json.loads(result.stdout)
    assert summary["operators"] == 1
    assert summary["sectors"] == 2
    assert summary["open_shifts"] == 1
