"""
Developer CLI for exercising the availability engine against the API.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Annotated

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.api_client import AsyncBookingClient, BookingApiClient, RetryPolicy
from ..adapters.mock_api_client import MockApiClient
from ..config import AppConfig, get_default_config_path
from ..domain.calendar import DayState, MonthCursor
from ..domain.exceptions import BookingValidationError, SalonBookError
from ..services.booking_session import BookingSession, SlotListState
from ..services.widget import WidgetContext, load_widget

app = typer.Typer(
    name="salonbook",
    help="Query salon availability and book appointments from the terminal",
    add_completion=False
)

console = Console()

MOCK_SALON_SLUG = "studio-lana"

_STATE_STYLES = {
    DayState.PAST: "dim",
    DayState.OPEN: "yellow",
    DayState.CLOSED: "red",
    DayState.AVAILABLE: "bold green",
    DayState.UNAVAILABLE: "red",
}

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
MockOption = Annotated[bool, typer.Option("--mock", help="Use bundled mock data instead of the API.")]
ServicesOption = Annotated[List[int], typer.Option("--service", "-s", help="Service id (repeatable)")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config(config_file: Optional[Path], mock: bool) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if mock and not config_path.exists():
        return AppConfig(salon_slug=MOCK_SALON_SLUG)
    return AppConfig.load_from_yaml(config_path)


def _build_client(config: AppConfig, mock: bool) -> AsyncBookingClient:
    if mock:
        return AsyncBookingClient(MockApiClient(
            granularity_minutes=config.booking.slot_granularity_minutes,
            timezone=config.timezone,
        ))
    return AsyncBookingClient(BookingApiClient(
        config.api_url,
        api_key=config.api_key or None,
        token=config.token or None,
        retry_policy=RetryPolicy(
            max_retries=config.retry.max_retries,
            base_delay=config.retry.base_delay_seconds,
        ),
        timeout=config.request_timeout_seconds,
    ))


async def _open_session(
    config: AppConfig,
    client: AsyncBookingClient,
    staff_id: int,
    service_ids: List[int],
    month: Optional[str],
) -> tuple[WidgetContext, BookingSession]:
    """Bootstrap the salon and walk the session to the requested month."""
    context = await load_widget(client, config.salon_slug)

    services = []
    for service_id in service_ids:
        service = context.find_service(service_id)
        if service is None:
            raise typer.BadParameter(f"Unknown service id {service_id}")
        services.append(service)

    session = context.new_session(
        client,
        timezone=config.timezone,
        min_lead_minutes=config.booking.min_lead_minutes,
    )
    session.select_services(services)
    await session.select_staff(staff_id)

    if month:
        year, month_number = (int(part) for part in month.split("-"))
        target = MonthCursor(year, month_number)
        while (session.cursor.year, session.cursor.month) < (target.year, target.month):
            await session.next_month()
        while (session.cursor.year, session.cursor.month) > (target.year, target.month):
            await session.previous_month()

    return context, session


def _print_month(session: BookingSession) -> None:
    view = session.month_view
    if view is None:
        return

    source = "server" if view.authoritative else "working days only"
    table = Table(title=f"{view.cursor} ({source})", show_header=True, header_style="bold cyan")
    for name in ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"):
        table.add_column(name, justify="right")

    row: List[str] = [""] * view.cells[0].date.weekday()
    for cell in view.cells:
        label = f"[{_STATE_STYLES[cell.state]}]{cell.date.day}[/]"
        row.append(f"[underline]{label}[/underline]" if cell.is_today else label)
        if len(row) == 7:
            table.add_row(*row)
            row = []
    if row:
        table.add_row(*(row + [""] * (7 - len(row))))

    console.print(table)
    if view.load_failed:
        console.print("[yellow]⚠ Availability could not be loaded; showing working days only.[/yellow]")


def _print_slots(session: BookingSession) -> None:
    slots = session.slots
    if slots.state is SlotListState.FAILED:
        console.print(f"[red]✗ {slots.error}[/red]")
    elif slots.state is SlotListState.EMPTY:
        console.print("[yellow]No available times on this date.[/yellow]")
    elif slots.state is SlotListState.POPULATED:
        console.print(f"[bold green]✓ {len(slots.slots)} available time(s):[/bold green] " + "  ".join(slots.slots))


@app.command()
def dates(
    staff_id: Annotated[int, typer.Argument(help="Staff member id")],
    service: ServicesOption,
    month: Annotated[Optional[str], typer.Option("--month", "-m", help="Month (YYYY-MM), defaults to the current month")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Show which dates of a month have bookable times.
    """
    _setup_logging(verbose)
    try:
        config = _load_config(config_file, mock)
        client = _build_client(config, mock)

        async def run():
            _, session = await _open_session(config, client, staff_id, service, month)
            _print_month(session)

        asyncio.run(run())

    except (FileNotFoundError, SalonBookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def slots(
    staff_id: Annotated[int, typer.Argument(help="Staff member id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    service: ServicesOption,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    List bookable start times for one date.
    """
    _setup_logging(verbose)
    try:
        config = _load_config(config_file, mock)
        client = _build_client(config, mock)
        day = pendulum.from_format(date, "YYYY-MM-DD").date()

        async def run():
            _, session = await _open_session(config, client, staff_id, service, f"{day.year:04d}-{day.month:02d}")
            await session.select_date(day)
            _print_slots(session)

        asyncio.run(run())

    except (FileNotFoundError, ValueError, SalonBookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def book(
    staff_id: Annotated[int, typer.Argument(help="Staff member id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    service: ServicesOption,
    name: Annotated[str, typer.Option("--name", help="Guest name")],
    phone: Annotated[str, typer.Option("--phone", help="Guest phone")],
    email: Annotated[str, typer.Option("--email", help="Guest email")] = "",
    address: Annotated[str, typer.Option("--address", help="Guest address")] = "",
    notes: Annotated[str, typer.Option("--notes", help="Notes for the salon")] = "",
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Book an appointment as a guest.
    """
    _setup_logging(verbose)
    try:
        config = _load_config(config_file, mock)
        client = _build_client(config, mock)
        day = pendulum.from_format(date, "YYYY-MM-DD").date()

        async def run():
            context, session = await _open_session(config, client, staff_id, service, f"{day.year:04d}-{day.month:02d}")
            await session.select_date(day)
            session.select_time(time)
            session.confirm_date_time()
            session.enter_details(name, phone, email, address, notes)
            review = session.state

            outcome = await session.submit_booking()

            if outcome is None:
                return
            if outcome.ok:
                console.print(Panel.fit(
                    f"[bold green]✓ Booked![/bold green]\n\n"
                    f"[bold]Salon:[/bold] {context.salon_name}\n"
                    f"[bold]When:[/bold] {day.format('DD.MM.YYYY')} {time}\n"
                    f"[bold]Guest:[/bold] {name}\n"
                    f"[bold]Total:[/bold] {review.total_price:.2f} KM",
                    title="Booking"
                ))
                return

            console.print(f"[bold red]✗[/bold red] {outcome.message}")
            if outcome.slot_taken:
                _print_slots(session)
            raise typer.Exit(1)

        asyncio.run(run())

    except BookingValidationError as e:
        console.print(f"[bold red]Invalid {e.field}:[/bold red] {e.message}")
        raise typer.Exit(2)

    except (FileNotFoundError, ValueError, SalonBookError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]salonbook[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
