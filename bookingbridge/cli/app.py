"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..bootstrap import build_services
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookingBridgeError

app = typer.Typer(
    name="bookingbridge",
    help="Landing-page backend for SimplyBook.me bookings and Facebook conversions",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


def configure_logging(verbose: bool = False) -> None:
    """Route standard logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    try:
        return AppConfig.load_from_yaml(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _parse_date(value: str, label: str) -> str:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").to_date_string()
    except ValueError as e:
        console.print(f"[red]Could not parse {label} date: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def serve(
    config_file: ConfigOption = None,
    host: Annotated[str, typer.Option("--host", help="Interface to bind")] = "0.0.0.0",
    port: Annotated[int, typer.Option("--port", "-p", help="Port to listen on")] = 3000,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
):
    """
    Run the HTTP API with uvicorn.
    """
    import uvicorn

    from ..web.app import create_app

    configure_logging(verbose)
    config = _load_config(config_file)

    console.print(f"[bold cyan]🚀 Server running at http://{host}:{port}[/bold cyan]")
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


@app.command()
def slots(
    service_id: Annotated[int, typer.Option("--service", "-s", help="SimplyBook service id")],
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
):
    """
    Show bookable slots for all configured units.

    Examples:

        # Next seven days
        bookingbridge slots --service 2

        # Custom date range
        bookingbridge slots --service 2 --start 2024-11-25 --end 2024-11-29
    """
    configure_logging(verbose)
    config = _load_config(config_file)

    start_date = _parse_date(start, "start") if start else pendulum.today().to_date_string()
    end_date = (
        _parse_date(end, "end")
        if end
        else pendulum.parse(start_date).add(days=7).to_date_string()
    )

    services = build_services(config)

    try:
        available = services.availability.find_available_slots(
            start_date=start_date,
            end_date=end_date,
            service_id=service_id,
        )
    except BookingBridgeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print()
    if not available:
        console.print(
            "[yellow]⚠ No available slots found.[/yellow]\n"
            "Try a longer date range."
        )
        return

    table = Table(
        title=f"Available slots {start_date} – {end_date}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold")
    table.add_column("Time")
    table.add_column("Coach", style="bold yellow")
    table.add_column("Unit", style="dim")

    for entry in available:
        table.add_row(
            f"{pendulum.parse(entry.slot.date).format('ddd DD.MM.YYYY')}",
            entry.slot.time,
            entry.unit.name,
            str(entry.unit.unit_id),
        )

    console.print(table)
    console.print(f"\n[bold green]✓ {len(available)} slot(s)[/bold green]\n")


@app.command()
def booking_status(
    booking_id: Annotated[str, typer.Argument(help="Booking id or hash")],
    config_file: ConfigOption = None,
):
    """
    Look up a booking.
    """
    config = _load_config(config_file)
    services = build_services(config)

    try:
        booking = services.lookups.get_booking_status(booking_id)
    except BookingBridgeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    lines = [f"[bold]{key}:[/bold] {value}" for key, value in sorted(booking.items())]
    console.print(Panel.fit("\n".join(lines), title=f"Booking {booking_id}"))


@app.command()
def check_config(config_file: ConfigOption = None):
    """
    Validate the configuration and print a summary.
    """
    config = _load_config(config_file)

    table = Table(
        title="Configured units",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Unit", style="dim")
    table.add_column("Coach", style="bold yellow")
    for unit in config.units:
        table.add_row(str(unit.unit_id), unit.name)

    hours = config.working_hours
    ttl = config.simplybook.token_ttl_seconds
    token_cache = f"{ttl}s" if ttl else "off"
    facebook_ready = bool(config.facebook.pixel_id and config.facebook.access_token)
    console.print(Panel.fit(
        f"[bold]Company:[/bold] {config.simplybook.company_login}\n"
        f"[bold]Environment:[/bold] {config.environment}\n"
        f"[bold]Working days:[/bold] {', '.join(hours.days)}\n"
        f"[bold]Working hours:[/bold] {hours.start.strftime('%H:%M')} - {hours.end.strftime('%H:%M')}\n"
        f"[bold]Service duration:[/bold] {config.service_duration} min\n"
        f"[bold]Booking retries:[/bold] {config.booking.max_attempts} x "
        f"{config.booking.retry_delay_seconds}s\n"
        f"[bold]Token cache:[/bold] {token_cache}",
        title="✓ Configuration valid"
    ))
    console.print(table)
    if not facebook_ready:
        console.print("[yellow]⚠ Facebook pixel id or access token missing; conversions will fail.[/yellow]")
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingbridge[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
