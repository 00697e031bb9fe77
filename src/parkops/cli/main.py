"""
ParkOps CLI

Command-line interface for the access and custody core.
Provides commands for the tenant directory, assignments, access checks
and the shift lifecycle.

Usage:
    parkops init --db parkops.db
    parkops operator register --id op-17 --name "Ana"
    parkops sector register --id centro --name "Centro"
    parkops assignment grant --operator op-17 --sector centro --from 2024-06-01
    parkops access check --operator op-17 --sector centro
    parkops shift open --operator op-17 --device pos-3 --float 10000
    parkops shift pay --shift <id> --method CASH --amount 2500 --key pay-1
    parkops shift close --shift <id> --declared 12500
"""

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from parkops.access.models import OperatorStatus
from parkops.kernel.errors import ParkOpsError
from parkops.kernel.logging import configure_logging, is_production
from parkops.kernel.policy import OperationsPolicy
from parkops.ops import ParkOps
from parkops.shift.models import ShiftStatus
from parkops.shift.reconciliation import ReconciliationReport

# Configure logging to stderr (avoids polluting stdout for JSON output)
configure_logging(json_output=is_production(), log_level=os.getenv("LOG_LEVEL", "INFO"))

app = typer.Typer(
    name="parkops",
    help="ParkOps - operator access and shift cash custody",
    add_completion=False,
)

# Sub-apps
operator_app = typer.Typer(help="Operator directory commands")
sector_app = typer.Typer(help="Sector directory commands")
street_app = typer.Typer(help="Street directory commands")
assignment_app = typer.Typer(help="Operator assignment commands")
access_app = typer.Typer(help="Authorization checks")
shift_app = typer.Typer(help="Shift lifecycle and cash ledger commands")

app.add_typer(operator_app, name="operator")
app.add_typer(sector_app, name="sector")
app.add_typer(street_app, name="street")
app.add_typer(assignment_app, name="assignment")
app.add_typer(access_app, name="access")
app.add_typer(shift_app, name="shift")

# Global state
DEFAULT_DB = Path(".parkops.db")
_options: dict[str, Optional[Path]] = {"policy": None}

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


@app.callback()
def main_options(
    policy: Annotated[
        Optional[Path],
        typer.Option(
            "--policy",
            envvar="PARKOPS_POLICY",
            help="Operations policy JSON file",
        ),
    ] = None,
) -> None:
    """ParkOps - operator access and shift cash custody"""
    _options["policy"] = policy


def get_ops(db_path: Optional[Path] = None) -> ParkOps:
    """Get ParkOps instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'parkops init --db {db}' to initialize", err=True)
        raise typer.Exit(1)

    policy_path = _options["policy"]
    try:
        policy = OperationsPolicy.from_file(policy_path) if policy_path else None
    except (OSError, ValidationError) as e:
        typer.echo(f"Error: Invalid policy file {policy_path}: {e}", err=True)
        raise typer.Exit(1)
    return ParkOps(db, policy=policy)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn domain errors into a one-line message and exit code 1"""
    try:
        yield
    except ParkOpsError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ValidationError as e:
        typer.echo(f"Error: Invalid input: {e.errors()[0]['msg']}", err=True)
        raise typer.Exit(1)


def echo_report(report: ReconciliationReport, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps(report.model_dump(mode="json"), indent=2))
        return

    typer.echo(f"Shift {report.shift_id} ({report.operator_id} on {report.device_id})")
    typer.echo(f"  Opening float: {report.opening_float}")
    typer.echo("  Payments:")
    for method, total in report.payments.items():
        typer.echo(f"    {method}: {total.total} ({total.count})")
    typer.echo("  Adjustments:")
    for adjustment_type, total in report.adjustments.items():
        typer.echo(f"    {adjustment_type}: {total.total} ({total.count})")
    typer.echo(f"  Cash collected: {report.cash_collected}")
    typer.echo(f"  Total collected: {report.total_collected}")
    typer.echo(f"  Expected cash: {report.expected_cash}")
    if report.declared_cash is not None:
        typer.echo(f"  Declared cash: {report.declared_cash}")
        typer.echo(f"  Difference: {report.difference}")


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new ParkOps database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    ParkOps(db)
    typer.echo(f"✓ Initialized ParkOps database: {db}")


# Operator commands


@operator_app.command("register")
def operator_register(
    operator_id: Annotated[str, typer.Option("--id", help="Operator id")],
    name: Annotated[str, typer.Option("--name", help="Operator name")],
    inactive: Annotated[
        bool, typer.Option("--inactive", help="Register as INACTIVE")
    ] = False,
    db: DbOption = None,
) -> None:
    """Register an operator"""
    ops = get_ops(db)
    status = OperatorStatus.INACTIVE if inactive else OperatorStatus.ACTIVE
    with handle_errors():
        operator = ops.register_operator(operator_id, name, status=status)
    typer.echo(f"✓ Registered operator: {operator.operator_id}")
    typer.echo(f"  Name: {operator.name}")
    typer.echo(f"  Status: {operator.status.value}")


@operator_app.command("status")
def operator_status(
    operator_id: Annotated[str, typer.Option("--id", help="Operator id")],
    status: Annotated[
        OperatorStatus, typer.Option("--status", help="ACTIVE or INACTIVE")
    ],
    db: DbOption = None,
) -> None:
    """Activate or deactivate an operator"""
    ops = get_ops(db)
    with handle_errors():
        operator = ops.set_operator_status(operator_id, status)
    typer.echo(f"✓ Operator {operator.operator_id} is {operator.status.value}")


@operator_app.command("list")
def operator_list(db: DbOption = None) -> None:
    """List operators"""
    ops = get_ops(db)
    operators = ops.list_operators()
    if not operators:
        typer.echo("No operators")
        return

    typer.echo(f"Operators ({len(operators)}):")
    for operator in operators:
        typer.echo(f"  {operator.operator_id}: {operator.name} [{operator.status.value}]")


# Sector commands


@sector_app.command("register")
def sector_register(
    sector_id: Annotated[str, typer.Option("--id", help="Sector id")],
    name: Annotated[str, typer.Option("--name", help="Sector name")],
    private: Annotated[
        bool, typer.Option("--private", help="Private sector (no assignment needed)")
    ] = False,
    db: DbOption = None,
) -> None:
    """Register a sector"""
    ops = get_ops(db)
    with handle_errors():
        sector = ops.register_sector(sector_id, name, is_private=private)
    typer.echo(f"✓ Registered sector: {sector.sector_id}")
    if sector.is_private:
        typer.echo("  Private: yes")


@sector_app.command("list")
def sector_list(db: DbOption = None) -> None:
    """List sectors"""
    ops = get_ops(db)
    sectors = ops.list_sectors()
    if not sectors:
        typer.echo("No sectors")
        return

    typer.echo(f"Sectors ({len(sectors)}):")
    for sector in sectors:
        suffix = " [private]" if sector.is_private else ""
        typer.echo(f"  {sector.sector_id}: {sector.name}{suffix}")


# Street commands


@street_app.command("register")
def street_register(
    street_id: Annotated[str, typer.Option("--id", help="Street id")],
    sector_id: Annotated[str, typer.Option("--sector", help="Parent sector id")],
    name: Annotated[str, typer.Option("--name", help="Street name")],
    db: DbOption = None,
) -> None:
    """Register a street under a sector"""
    ops = get_ops(db)
    with handle_errors():
        street = ops.register_street(street_id, sector_id, name)
    typer.echo(f"✓ Registered street: {street.street_id} (sector {street.sector_id})")


@street_app.command("list")
def street_list(
    sector_id: Annotated[
        Optional[str], typer.Option("--sector", help="Only streets of this sector")
    ] = None,
    db: DbOption = None,
) -> None:
    """List streets"""
    ops = get_ops(db)
    streets = ops.list_streets(sector_id)
    if not streets:
        typer.echo("No streets")
        return

    typer.echo(f"Streets ({len(streets)}):")
    for street in streets:
        typer.echo(f"  {street.street_id}: {street.name} (sector {street.sector_id})")


# Assignment commands


@assignment_app.command("grant")
def assignment_grant(
    operator_id: Annotated[str, typer.Option("--operator", help="Operator id")],
    sector_id: Annotated[str, typer.Option("--sector", help="Sector id")],
    street_id: Annotated[
        Optional[str], typer.Option("--street", help="Street id (omit for whole sector)")
    ] = None,
    valid_from: Annotated[
        Optional[datetime], typer.Option("--from", help="Start (defaults to now, UTC)")
    ] = None,
    valid_to: Annotated[
        Optional[datetime], typer.Option("--to", help="End (omit for open-ended, UTC)")
    ] = None,
    db: DbOption = None,
) -> None:
    """Grant an operator a sector or street"""
    ops = get_ops(db)
    with handle_errors():
        assignment = ops.grant_assignment(
            operator_id,
            sector_id,
            street_id=street_id,
            valid_from=valid_from,
            valid_to=valid_to,
        )
    typer.echo(f"✓ Granted assignment: {assignment.assignment_id}")
    typer.echo(f"  Location: {assignment.sector_id}/{assignment.street_id or '*'}")
    typer.echo(f"  From: {assignment.valid_from.isoformat()}")
    typer.echo(
        f"  To: {assignment.valid_to.isoformat() if assignment.valid_to else 'open-ended'}"
    )


@assignment_app.command("revoke")
def assignment_revoke(
    assignment_id: Annotated[str, typer.Option("--id", help="Assignment id")],
    valid_to: Annotated[
        Optional[datetime], typer.Option("--at", help="End instant (defaults to now, UTC)")
    ] = None,
    db: DbOption = None,
) -> None:
    """End an assignment"""
    ops = get_ops(db)
    with handle_errors():
        assignment = ops.revoke_assignment(assignment_id, valid_to=valid_to)
    typer.echo(f"✓ Revoked assignment: {assignment.assignment_id}")
    typer.echo(f"  Valid to: {assignment.valid_to.isoformat()}")


@assignment_app.command("list")
def assignment_list(
    operator_id: Annotated[str, typer.Option("--operator", help="Operator id")],
    active: Annotated[
        bool, typer.Option("--active", help="Only assignments in effect now")
    ] = False,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """List an operator's assignments"""
    ops = get_ops(db)
    assignments = ops.active_assignments(operator_id) if active else ops.list_assignments(
        operator_id
    )

    if json_output:
        typer.echo(json.dumps([a.model_dump(mode="json") for a in assignments], indent=2))
        return

    if not assignments:
        typer.echo(f"No assignments for {operator_id}")
        return

    typer.echo(f"Assignments for {operator_id} ({len(assignments)}):")
    for a in assignments:
        until = a.valid_to.isoformat() if a.valid_to else "open-ended"
        typer.echo(
            f"  {a.assignment_id}: {a.sector_id}/{a.street_id or '*'} "
            f"{a.valid_from.isoformat()} → {until}"
        )


# Access commands


@access_app.command("check")
def access_check(
    operator_id: Annotated[str, typer.Option("--operator", help="Operator id")],
    sector_id: Annotated[str, typer.Option("--sector", help="Sector id")],
    street_id: Annotated[Optional[str], typer.Option("--street", help="Street id")] = None,
    at: Annotated[
        Optional[datetime], typer.Option("--at", help="Instant to check (defaults to now, UTC)")
    ] = None,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Check whether an operator may act on a location"""
    ops = get_ops(db)
    with handle_errors():
        decision = ops.explain_access(operator_id, sector_id, street_id, at)

    if json_output:
        typer.echo(json.dumps(decision.model_dump(mode="json"), indent=2))
        return

    verdict = "ALLOWED" if decision.allowed else "DENIED"
    typer.echo(f"{verdict} ({decision.reason})")
    for assignment_id in decision.assignment_ids:
        typer.echo(f"  via {assignment_id}")


# Shift commands


@shift_app.command("open")
def shift_open(
    operator_id: Annotated[str, typer.Option("--operator", help="Operator id")],
    device_id: Annotated[str, typer.Option("--device", help="Device id")],
    opening_float: Annotated[str, typer.Option("--float", help="Opening cash float")] = "0",
    sector_id: Annotated[Optional[str], typer.Option("--sector", help="Sector id")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Opening notes")] = None,
    db: DbOption = None,
) -> None:
    """Open a shift"""
    ops = get_ops(db)
    with handle_errors():
        shift = ops.open_shift(operator_id, device_id, opening_float, sector_id, notes)
    typer.echo(f"✓ Opened shift: {shift.shift_id}")
    typer.echo(f"  Operator: {shift.operator_id} on {shift.device_id}")
    typer.echo(f"  Opening float: {shift.opening_float}")


@shift_app.command("pay")
def shift_pay(
    shift_id: Annotated[str, typer.Option("--shift", help="Shift id")],
    method: Annotated[str, typer.Option("--method", help="CASH, CARD, WEBPAY or TRANSFER")],
    amount: Annotated[str, typer.Option("--amount", help="Payment amount")],
    idempotency_key: Annotated[str, typer.Option("--key", help="Idempotency key")],
    sector_id: Annotated[Optional[str], typer.Option("--sector", help="Sector id")] = None,
    street_id: Annotated[Optional[str], typer.Option("--street", help="Street id")] = None,
    reference: Annotated[
        Optional[str], typer.Option("--reference", help="External reference")
    ] = None,
    db: DbOption = None,
) -> None:
    """Capture a payment on a shift"""
    ops = get_ops(db)
    with handle_errors():
        movement = ops.capture_payment(
            shift_id,
            method.upper(),
            amount,
            idempotency_key,
            sector_id=sector_id,
            street_id=street_id,
            reference=reference,
        )
    typer.echo(f"✓ Recorded payment #{movement.sequence}: {movement.method} {movement.amount}")


@shift_app.command("adjust")
def shift_adjust(
    shift_id: Annotated[str, typer.Option("--shift", help="Shift id")],
    adjustment_type: Annotated[str, typer.Option("--type", help="WITHDRAWAL or DEPOSIT")],
    amount: Annotated[str, typer.Option("--amount", help="Adjustment amount")],
    reason: Annotated[str, typer.Option("--reason", help="Why the cash moved")],
    receipt_number: Annotated[
        Optional[str], typer.Option("--receipt", help="Receipt number")
    ] = None,
    approved_by: Annotated[
        Optional[str], typer.Option("--approved-by", help="Approving supervisor")
    ] = None,
    db: DbOption = None,
) -> None:
    """Record a cash withdrawal or deposit"""
    ops = get_ops(db)
    with handle_errors():
        movement = ops.record_adjustment(
            shift_id,
            adjustment_type.upper(),
            amount,
            reason,
            receipt_number=receipt_number,
            approved_by=approved_by,
        )
    typer.echo(
        f"✓ Recorded adjustment #{movement.sequence}: "
        f"{movement.adjustment_type.value} {movement.amount}"
    )


@shift_app.command("close")
def shift_close(
    shift_id: Annotated[str, typer.Option("--shift", help="Shift id")],
    declared: Annotated[str, typer.Option("--declared", help="Counted cash")],
    notes: Annotated[Optional[str], typer.Option("--notes", help="Closing notes")] = None,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Close a shift against the declared cash"""
    ops = get_ops(db)
    with handle_errors():
        report = ops.close_shift(shift_id, declared, notes)
    if not json_output:
        typer.echo(f"✓ Closed shift: {shift_id}")
    echo_report(report, json_output)


@shift_app.command("preview")
def shift_preview(
    shift_id: Annotated[str, typer.Option("--shift", help="Shift id")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Show the reconciliation of a shift without closing it"""
    ops = get_ops(db)
    with handle_errors():
        report = ops.preview_reconciliation(shift_id)
    echo_report(report, json_output)


@shift_app.command("show")
def shift_show(
    shift_id: Annotated[str, typer.Option("--shift", help="Shift id")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Show a shift and its ledger"""
    ops = get_ops(db)
    with handle_errors():
        shift = ops.get_shift(shift_id)
        movements = ops.movements(shift_id)

    if json_output:
        data = shift.model_dump(mode="json")
        data["movements"] = [m.model_dump(mode="json") for m in movements]
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo(f"Shift {shift.shift_id} [{shift.status.value}]")
    typer.echo(f"  Operator: {shift.operator_id} on {shift.device_id}")
    typer.echo(f"  Opened: {shift.opened_at.isoformat()}")
    if shift.closed_at:
        typer.echo(f"  Closed: {shift.closed_at.isoformat()}")
    typer.echo(f"  Movements ({len(movements)}):")
    for m in movements:
        typer.echo(f"    #{m.sequence} {m.kind.value} {m.category()} {m.amount}")


@shift_app.command("list")
def shift_list(
    status: Annotated[
        Optional[ShiftStatus], typer.Option("--status", help="OPEN or CLOSED")
    ] = None,
    operator_id: Annotated[
        Optional[str], typer.Option("--operator", help="Operator id")
    ] = None,
    db: DbOption = None,
) -> None:
    """List shifts"""
    ops = get_ops(db)
    shifts = ops.list_shifts(status=status, operator_id=operator_id)
    if not shifts:
        typer.echo("No shifts")
        return

    typer.echo(f"Shifts ({len(shifts)}):")
    for shift in shifts:
        typer.echo(
            f"  {shift.shift_id}: {shift.operator_id} on {shift.device_id} "
            f"[{shift.status.value}] {shift.movement_count} movements"
        )


@shift_app.command("current")
def shift_current(
    operator_id: Annotated[str, typer.Option("--operator", help="Operator id")],
    device_id: Annotated[str, typer.Option("--device", help="Device id")],
    db: DbOption = None,
) -> None:
    """Show the open shift of an operator on a device"""
    ops = get_ops(db)
    shift = ops.current_shift(operator_id, device_id)
    if shift is None:
        typer.echo(f"No open shift for {operator_id} on {device_id}")
        return
    typer.echo(f"Open shift: {shift.shift_id} (since {shift.opened_at.isoformat()})")


# Monitoring commands


@app.command()
def health(
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show store and custody counts"""
    ops = get_ops(db)
    summary = ops.health()

    if json_output:
        typer.echo(json.dumps(summary, indent=2))
        return

    typer.echo("ParkOps Health:")
    typer.echo(f"  Events: {summary['event_count']} in {summary['stream_count']} streams")
    typer.echo(f"  Operators: {summary['operators']}")
    typer.echo(f"  Sectors: {summary['sectors']}")
    typer.echo(f"  Assignments: {summary['assignments']}")
    typer.echo(f"  Open shifts: {summary['open_shifts']}")


@app.command()
def serve(
    db: DbOption = None,
    port: Annotated[int, typer.Option("--port", help="Health server port")] = 8080,
    metrics_port: Annotated[
        Optional[int], typer.Option("--metrics-port", help="Prometheus metrics port")
    ] = None,
) -> None:
    """Run the health endpoints (and optionally Prometheus metrics)"""
    from parkops.health_server import initialize_health_server, run_health_server
    from parkops.kernel.metrics import start_metrics_server

    ops = get_ops(db)
    if metrics_port is not None:
        start_metrics_server(metrics_port)
    initialize_health_server(ops.sqlite_path, ops)
    run_health_server(port=port)


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
