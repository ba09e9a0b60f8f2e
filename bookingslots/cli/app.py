"""
Main CLI application using Typer.
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.table import Table

from ..config import AppConfig, get_default_config_path
from ..context import SchedulingContext, build_context
from ..domain.exceptions import SchedulingError, SlotConflict
from ..domain.models import BookingRequest
from ..logging_setup import configure_logging

app = typer.Typer(
    name="bookingslots",
    help="Compute bookable slots and book them without double-booking",
    add_completion=False,
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    try:
        return AppConfig.load_from_yaml(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _load_context(config_file: Optional[Path], verbose: bool = False) -> SchedulingContext:
    configure_logging("DEBUG" if verbose else "WARNING", console=console)
    return build_context(_load_config(config_file))


def _parse_start(value: str, timezone: str) -> pendulum.DateTime:
    """ISO-8601 with offset, or a wall-clock time read in the user's zone."""
    try:
        parsed = pendulum.parse(value, tz=timezone)
    except ValueError as e:
        console.print(f"[red]Could not parse start time '{value}': {e}[/red]")
        raise typer.Exit(1)

    if not isinstance(parsed, pendulum.DateTime):
        console.print(f"[red]Start time '{value}' must include a date and a time[/red]")
        raise typer.Exit(1)
    return parsed


@app.command()
def slots(
    user_id: Annotated[str, typer.Argument(help="User whose booking page is browsed")],
    config_file: ConfigOption = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Slot length in minutes")] = None,
    count: Annotated[Optional[int], typer.Option("--count", "-n", help="Maximum number of slots")] = None,
    start: Annotated[Optional[str], typer.Option("--date", help="First date to scan (YYYY-MM-DD)")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """
    Show the next bookable slots of a user.

    Examples:

        bookingslots slots alice

        bookingslots slots alice --duration 60 --count 5 --date 2024-11-25
    """
    context = _load_context(config_file, verbose)

    start_date = None
    if start:
        try:
            start_date = pendulum.from_format(start, "YYYY-MM-DD").date()
        except ValueError as e:
            console.print(f"[red]Could not parse date '{start}': {e}[/red]")
            raise typer.Exit(1)

    try:
        result = asyncio.run(context.slot_finder.find_slots(
            user_id,
            duration_minutes=duration,
            count=count,
            start_date=start_date,
        ))
    except (SchedulingError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if result.partial:
        console.print(
            f"[yellow]⚠ Calendars not reachable, shown without them: "
            f"{', '.join(result.degraded_providers)}[/yellow]"
        )

    if result.out_of_horizon:
        console.print(
            f"[yellow]No free slots between {result.searched_from} and {result.searched_until}.[/yellow]\n"
            "Try a shorter duration or a later date."
        )
        return

    timezone = context.store.get_schedule(user_id).timezone
    table = Table(title=f"Available slots for {user_id}", header_style="bold cyan")
    table.add_column("When", style="bold")
    table.add_column(f"Local ({timezone})")
    table.add_column("UTC", style="dim")

    for slot in result.slots:
        local_start = slot.start.in_timezone(timezone)
        local_end = slot.end.in_timezone(timezone)
        table.add_row(
            slot.label,
            f"{local_start.format('ddd YYYY-MM-DD HH:mm')} - {local_end.format('HH:mm')}",
            slot.start.to_iso8601_string(),
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def book(
    user_id: Annotated[str, typer.Argument(help="User to book with")],
    start: Annotated[str, typer.Argument(help="Start time, ISO-8601 or 'YYYY-MM-DD HH:mm' in the user's zone")],
    attendee_email: Annotated[str, typer.Option("--email", "-e", help="Attendee email")],
    config_file: ConfigOption = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Meeting length in minutes")] = None,
    attendee_name: Annotated[str, typer.Option("--name", help="Attendee name")] = "",
    title: Annotated[str, typer.Option("--title", help="Meeting title")] = "",
    requires_approval: Annotated[bool, typer.Option("--requires-approval", help="Create as pending approval")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """
    Book a time after re-checking it against live busy data.
    """
    context = _load_context(config_file, verbose)

    try:
        schedule = context.store.get_schedule(user_id)
    except SchedulingError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    start_time = _parse_start(start, schedule.timezone)
    minutes = duration or context.slot_finder.defaults.duration_minutes
    request = BookingRequest(
        user_id=user_id,
        start_time=start_time,
        end_time=start_time.add(minutes=minutes),
        attendee_email=attendee_email,
        attendee_name=attendee_name,
        title=title,
        requires_approval=requires_approval,
    )

    try:
        booking = asyncio.run(context.validator.confirm(request))
    except SlotConflict as e:
        console.print(f"[bold red]✗ {e.describe()}[/bold red]")
        alternatives = asyncio.run(context.slot_finder.suggest_alternatives(
            user_id, after=start_time, duration_minutes=minutes
        ))
        if alternatives:
            console.print("Free alternatives:")
            for slot in alternatives:
                console.print(f"  • {slot.label}")
        raise typer.Exit(2)
    except SchedulingError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    local = booking.start_time.in_timezone(schedule.timezone)
    console.print(
        f"[bold green]✓ Booked[/bold green] {local.format('ddd YYYY-MM-DD HH:mm')} "
        f"({minutes} min) with {booking.attendee_email} "
        f"[dim]id={booking.id} status={booking.status.value}[/dim]"
    )


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    config_file: ConfigOption = None,
):
    """
    Cancel a booking (needs a database_url to outlive the process).
    """
    context = _load_context(config_file)
    try:
        booking = context.validator.cancel(booking_id)
    except SchedulingError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓ Booking {booking.id} cancelled.[/green]")


@app.command()
def users(config_file: ConfigOption = None):
    """
    List all configured users and their weekly hours.
    """
    config = _load_config(config_file)

    if not config.users:
        console.print("[yellow]No users defined in the config file.[/yellow]")
        return

    table = Table(title="Configured users", show_header=True, header_style="bold cyan")
    table.add_column("Id", style="bold yellow")
    table.add_column("Email", style="dim")
    table.add_column("Time zone")
    table.add_column("Rules")
    table.add_column("Calendars")

    day_names = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    for user in config.users:
        rules = "\n".join(
            f"{','.join(day_names[d] for d in rule.days)} {rule.start:%H:%M}-{rule.end:%H:%M}"
            for rule in user.rules
        )
        calendars = ", ".join(f"{c.provider}:{c.calendar_id}" for c in user.calendars)
        table.add_row(user.id, user.email, user.timezone or config.timezone, rules or "-", calendars or "-")

    console.print()
    console.print(table)
    console.print()


@app.command("sync-config")
def sync_config(config_file: ConfigOption = None):
    """
    Write the configured users' schedules into the database.
    """
    config = _load_config(config_file)
    if not config.database_url:
        console.print("[red]database_url is not set; nothing to sync.[/red]")
        raise typer.Exit(1)

    context = build_context(config)
    for schedule in config.schedules():
        context.store.save_schedule(schedule)
    console.print(f"[green]✓ Synced {len(config.users)} user(s).[/green]")


@app.command()
def serve(
    config_file: ConfigOption = None,
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", help="Bind port")] = 8000,
    log_level: Annotated[str, typer.Option("--log-level", help="Logging level")] = "INFO",
):
    """
    Serve the REST API.
    """
    import uvicorn

    from ..api.app import create_app_from_config

    configure_logging(log_level, console=console)
    try:
        application = create_app_from_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    uvicorn.run(application, host=host, port=port, log_config=None)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
