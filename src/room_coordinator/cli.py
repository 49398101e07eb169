"""CLI entry point for the room coordinator."""

import json
import logging
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import ConfigLoader
from .constants import SYSTEM_ACTOR_ID, SYSTEM_ACTOR_NAME
from .engine import CoordinationService, JsonFileStore, JsonLinesAuditLog, RetryPolicy
from .exceptions import CoordinationError, MemberNotFoundError
from .exporters import export_allocation_report, generate_room_workbook, get_exporter
from .models import AssignmentMode, ChainAction, RequestType, ResponseAction, TravelMode
from .utils import minutes_to_time, parse_date, parse_datetime

app = typer.Typer(
    name="room-coordinator",
    help="Allocate, exchange and confirm room time slots",
    add_completion=False,
)
console = Console()

AUDIT_FILENAME = "audit.jsonl"

DataDirOption = Annotated[
    Path,
    typer.Option("--data-dir", "-d", help="Directory holding rooms/ and members/ JSON records"),
]
ConfigDirOption = Annotated[
    Optional[Path],
    typer.Option("--config-dir", help="Directory containing coordination.json"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("-v", "--verbose", help="Show detailed output"),
]


class OutputFormat(str, Enum):
    """Output format options."""

    json = "json"
    csv = "csv"
    excel = "excel"
    workbook = "workbook"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _service(data_dir: Path, config_dir: Optional[Path], verbose: bool) -> CoordinationService:
    _setup_logging(verbose)
    config = ConfigLoader(config_dir).config
    return CoordinationService(
        JsonFileStore(data_dir),
        audit=JsonLinesAuditLog(data_dir / AUDIT_FILENAME),
        config=config,
        retry=RetryPolicy(config.max_commit_attempts, config.commit_backoff_seconds),
    )


def _actor_name(service: CoordinationService, actor_id: str) -> str:
    if actor_id == SYSTEM_ACTOR_ID:
        return SYSTEM_ACTOR_NAME
    try:
        return service.store.get_member(actor_id).display_name
    except MemberNotFoundError:
        return actor_id


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _parse_day(value: str) -> date:
    try:
        return parse_date(value)
    except CoordinationError as e:
        raise typer.BadParameter(str(e))


def _print_outcome(outcome) -> None:
    request = outcome.request
    console.print(f"\n[bold]Request:[/bold] {request.id} ({request.type.value})")
    console.print(f"  Status: [cyan]{request.status.value}[/cyan]")
    if request.response:
        console.print(f"  Response: {request.response}")
    if request.chain_data:
        chain = request.chain_data
        console.print(f"  Chain hops: {chain.hop}")
        for hop in chain.path:
            console.print(f"    - {hop.member_id}: {hop.from_slot} -> {hop.to_slot}")
    if outcome.created_request:
        created = outcome.created_request
        console.print(
            f"  Opened request {created.id} for member '{created.target_member_id}'"
        )


@app.command()
def allocate(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    week: Annotated[str, typer.Option("--week", "-w", help="Week start date (YYYY-MM-DD)")],
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    mode: Annotated[
        Optional[AssignmentMode],
        typer.Option("--mode", "-m", help="Assignment mode, defaults to the configured one"),
    ] = None,
    today: Annotated[
        Optional[str],
        typer.Option("--today", help="Reference date for from_today mode"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Write the allocation report (.csv or .xlsx)"),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Allocate a week of slots to the room's members."""
    service = _service(data_dir, config_dir, verbose)
    week_start = _parse_day(week)

    with console.status("[bold green]Allocating slots..."):
        try:
            report = service.allocate(
                room_id, week_start, mode, _parse_day(today) if today else None
            )
        except CoordinationError as e:
            _fail(e)

    console.print(f"\n[bold]Allocation for:[/bold] {room_id}, week of {week_start.isoformat()}")
    console.print(f"  Mode: {report.mode.value}")
    console.print(f"  Slots created: {len(report.slots)}")

    table = Table(title="Members")
    table.add_column("Member", style="cyan")
    table.add_column("Required", style="green")
    table.add_column("Assigned", style="green")
    table.add_column("Available", style="blue")
    table.add_column("Shortfall (h)", style="red")
    for member in report.members:
        table.add_row(
            member.member_id,
            str(member.required_minutes),
            str(member.already_assigned_minutes + member.assigned_minutes),
            str(member.available_minutes),
            f"{member.shortfall_hours:g}",
        )
    console.print(table)

    if report.warnings:
        console.print(f"\n[bold yellow]Warnings ({len(report.warnings)}):[/bold yellow]")
        for warning in report.warnings:
            console.print(f"  [yellow]• {warning.message}[/yellow]")

    for update in report.advisories:
        console.print(
            f"  [yellow]• Member '{update.member_id}' carried hours over "
            f"two weeks running[/yellow]"
        )

    if output:
        path = export_allocation_report(report, output)
        console.print(f"\n[bold green]✓[/bold green] Report exported to: {path}")


@app.command()
def simulate(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    member_id: Annotated[str, typer.Argument(help="Candidate member")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Proposed start (HH:MM)")],
    duration: Annotated[int, typer.Argument(help="Duration in minutes")],
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Check whether a member can take a slot without breaking the day."""
    service = _service(data_dir, config_dir, verbose)
    try:
        result = service.simulate(room_id, member_id, _parse_day(day), start, duration)
    except CoordinationError as e:
        _fail(e)

    if result.is_valid:
        console.print("[bold green]✓ Slot fits[/bold green]")
    else:
        console.print(f"[bold red]✗ {result.reason}[/bold red]")
        if result.suggested_earliest_time:
            console.print(f"  Suggested earliest start: {result.suggested_earliest_time}")

    if verbose and result.timeline:
        table = Table(title="Timeline")
        table.add_column("Member", style="cyan")
        table.add_column("Travel", style="blue")
        table.add_column("Class", style="green")
        for entry in result.timeline:
            table.add_row(
                entry.member_id + (" *" if entry.is_candidate else ""),
                f"{entry.travel_minutes} min",
                f"{minutes_to_time(entry.class_start)}-{minutes_to_time(entry.class_end)}",
            )
        console.print(table)

    if not result.is_valid:
        raise typer.Exit(1)


@app.command("travel-mode")
def travel_mode(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    mode: Annotated[TravelMode, typer.Argument(help="Travel mode to apply")],
    actor_id: Annotated[str, typer.Argument(help="Room owner")],
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Apply a travel mode and write the owner's travel legs into the room."""
    service = _service(data_dir, config_dir, verbose)
    try:
        plan = service.apply_travel_mode(
            room_id, mode, actor_id, _actor_name(service, actor_id)
        )
    except CoordinationError as e:
        _fail(e)

    if not plan.is_feasible:
        console.print(f"[bold red]✗ {mode.value} travel would move stored classes[/bold red]")
        for entry in plan.shifted:
            console.print(
                f"  - {entry.member_id} on {plan.shifted_dates[entry.slot_id]}: "
                f"{minutes_to_time(entry.nominal_start)} -> "
                f"{minutes_to_time(entry.class_start)}"
            )
        raise typer.Exit(1)

    console.print(
        f"[bold green]✓[/bold green] {mode.value} travel: {len(plan.legs)} leg(s), "
        f"{plan.travel_minutes} minute(s)"
    )
    if verbose and plan.legs:
        table = Table(title="Travel legs")
        table.add_column("Date", style="blue")
        table.add_column("To", style="cyan")
        table.add_column("Time", style="yellow")
        for leg in plan.legs:
            table.add_row(leg.date.isoformat(), leg.member_id, f"{leg.start}-{leg.end}")
        console.print(table)


@app.command()
def request(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    requester_id: Annotated[str, typer.Argument(help="Requesting member")],
    target_member_id: Annotated[str, typer.Argument(help="Member addressed by the request")],
    slot_id: Annotated[str, typer.Argument(help="Slot the request is about")],
    request_type: Annotated[
        RequestType,
        typer.Option("--type", "-t", help="Request type"),
    ] = RequestType.SLOT_REQUEST,
    offer: Annotated[
        Optional[list[str]],
        typer.Option("--offer", help="Requester slot offered in a swap (repeatable)"),
    ] = None,
    message: Annotated[str, typer.Option("--message", help="Note for the target")] = "",
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Create an exchange request."""
    service = _service(data_dir, config_dir, verbose)
    try:
        outcome = service.create_request(
            room_id, requester_id, target_member_id, slot_id, request_type, offer, message
        )
    except CoordinationError as e:
        _fail(e)
    _print_outcome(outcome)


@app.command()
def respond(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    request_id: Annotated[str, typer.Argument(help="Exchange request")],
    responder_id: Annotated[str, typer.Argument(help="Responding member")],
    action: Annotated[ResponseAction, typer.Argument(help="approve or reject")],
    message: Annotated[str, typer.Option("--message", help="Response note")] = "",
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Approve or reject a pending request."""
    service = _service(data_dir, config_dir, verbose)
    try:
        outcome = service.respond(room_id, request_id, responder_id, action, message)
    except CoordinationError as e:
        _fail(e)
    _print_outcome(outcome)


@app.command("chain-confirm")
def chain_confirm(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    request_id: Annotated[str, typer.Argument(help="Request awaiting chain confirmation")],
    actor_id: Annotated[str, typer.Argument(help="Original requester")],
    action: Annotated[ChainAction, typer.Argument(help="proceed or cancel")],
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Proceed with or cancel a proposed chain."""
    service = _service(data_dir, config_dir, verbose)
    try:
        outcome = service.confirm_chain(room_id, request_id, actor_id, action)
    except CoordinationError as e:
        _fail(e)
    _print_outcome(outcome)


@app.command()
def cancel(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    request_id: Annotated[str, typer.Argument(help="Exchange request")],
    actor_id: Annotated[str, typer.Argument(help="Requester withdrawing the request")],
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Withdraw an open request."""
    service = _service(data_dir, config_dir, verbose)
    try:
        outcome = service.cancel_request(room_id, request_id, actor_id)
    except CoordinationError as e:
        _fail(e)
    _print_outcome(outcome)


@app.command()
def confirm(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    actor_id: Annotated[str, typer.Argument(help="Room owner")],
    travel_mode: Annotated[
        Optional[TravelMode],
        typer.Option("--travel-mode", help="Travel mode to lock in"),
    ] = None,
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Write pending slots to member calendars."""
    service = _service(data_dir, config_dir, verbose)
    with console.status("[bold green]Confirming schedule..."):
        try:
            result = service.confirm(
                room_id, actor_id, _actor_name(service, actor_id), travel_mode
            )
        except CoordinationError as e:
            _fail(e)

    if not result.committed:
        console.print("[bold yellow]Nothing to confirm[/bold yellow]")
        return

    console.print(
        f"\n[bold green]✓[/bold green] Confirmed {result.slot_count} slot(s) "
        f"in {len(result.blocks)} block(s)"
    )
    if verbose:
        table = Table(title="Calendar blocks")
        table.add_column("Member", style="cyan")
        table.add_column("Date", style="blue")
        table.add_column("Class", style="green")
        table.add_column("Travel", style="yellow")
        for block in result.blocks:
            table.add_row(
                block.member_id,
                block.date.isoformat(),
                str(block.class_ref()),
                f"{block.travel_minutes} min",
            )
        console.print(table)


@app.command()
def reset(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    actor_id: Annotated[str, typer.Argument(help="Room owner")],
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Clear the room's slots and restore member preferences."""
    service = _service(data_dir, config_dir, verbose)
    try:
        result = service.reset_schedule(room_id, actor_id, _actor_name(service, actor_id))
    except CoordinationError as e:
        _fail(e)
    console.print(
        f"\n[bold green]✓[/bold green] Removed {result.removed_slot_count} slot(s), "
        f"restored preferences for {len(result.restored_member_ids)} member(s)"
    )


@app.command("arm-deadline")
def arm_deadline(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    minutes: Annotated[
        Optional[int],
        typer.Option("--minutes", help="Minutes until auto-confirm"),
    ] = None,
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Arm (or re-arm) the room's auto-confirm deadline."""
    service = _service(data_dir, config_dir, verbose)
    try:
        deadline = service.arm_auto_confirm(room_id, minutes)
    except CoordinationError as e:
        _fail(e)
    console.print(f"[bold green]✓[/bold green] Auto-confirm at {deadline.isoformat()}")


@app.command("cancel-deadline")
def cancel_deadline(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Cancel the room's auto-confirm deadline."""
    service = _service(data_dir, config_dir, verbose)
    try:
        cancelled = service.cancel_auto_confirm(room_id)
    except CoordinationError as e:
        _fail(e)
    if cancelled:
        console.print("[bold green]✓[/bold green] Deadline cancelled")
    else:
        console.print("[bold yellow]No deadline was armed[/bold yellow]")


@app.command("fire-deadlines")
def fire_deadlines(
    room: Annotated[
        Optional[list[str]],
        typer.Option("--room", help="Room to check (repeatable), defaults to all rooms"),
    ] = None,
    now: Annotated[
        Optional[str],
        typer.Option("--now", help="Current time as ISO datetime"),
    ] = None,
    data_dir: DataDirOption = Path("data"),
    config_dir: ConfigDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Auto-confirm every room whose deadline has passed."""
    service = _service(data_dir, config_dir, verbose)
    try:
        current = parse_datetime(now, "now")
    except CoordinationError as e:
        raise typer.BadParameter(str(e))
    report = service.fire_due_deadlines(room or None, current)

    console.print(f"\n[bold]Confirmed:[/bold] {len(report.confirmed_room_ids)}")
    for room_id in report.confirmed_room_ids:
        console.print(f"  - {room_id}")
    if report.cleared_room_ids:
        console.print(f"[bold]Cleared (nothing pending):[/bold] {len(report.cleared_room_ids)}")
    if report.failed:
        console.print(f"\n[bold red]Failed ({len(report.failed)}):[/bold red]")
        for room_id, error in report.failed.items():
            console.print(f"  [red]• {room_id}: {error}[/red]")
        raise typer.Exit(1)


@app.command()
def export(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    output: Annotated[Path, typer.Option("-o", "--output", help="Output file or directory")],
    format: Annotated[
        OutputFormat,
        typer.Option("-f", "--format", help="Output format"),
    ] = OutputFormat.json,
    week: Annotated[
        Optional[str],
        typer.Option("--week", "-w", help="Week start for the workbook grid"),
    ] = None,
    data_dir: DataDirOption = Path("data"),
    verbose: VerboseOption = False,
) -> None:
    """Export a room's slots and requests."""
    _setup_logging(verbose)
    store = JsonFileStore(data_dir)
    try:
        room = store.get_room(room_id)
    except CoordinationError as e:
        _fail(e)
    members = store.get_members(room.member_ids)

    if format == OutputFormat.workbook:
        if not week:
            console.print("[bold red]Error:[/bold red] --week is required for workbook output")
            raise typer.Exit(1)
        output_path = output if output.suffix else output.with_suffix(".xlsx")
        generate_room_workbook(room, _parse_day(week), output_path, members)
    else:
        exporter = get_exporter(format.value)
        if format == OutputFormat.csv:
            output_path = output if output.is_dir() else output.parent / output.stem
        else:
            suffix = ".xlsx" if format == OutputFormat.excel else ".json"
            output_path = output if output.suffix else output.with_suffix(suffix)
        with console.status(f"[bold green]Exporting to {format.value}..."):
            exporter.export(room, output_path, members)

    console.print(f"\n[bold green]✓[/bold green] Exported to: {output_path}")


@app.command()
def show(
    room_id: Annotated[str, typer.Argument(help="Room identifier")],
    data_dir: DataDirOption = Path("data"),
) -> None:
    """Print a room record as JSON."""
    store = JsonFileStore(data_dir)
    try:
        room = store.get_room(room_id)
    except CoordinationError as e:
        _fail(e)
    console.print_json(json.dumps(room.to_dict(), ensure_ascii=False))


if __name__ == "__main__":
    app()
