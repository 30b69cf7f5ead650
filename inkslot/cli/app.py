"""
Main CLI application using Typer.
"""

import asyncio
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.mock_backend import InMemoryStore, MockIdentityProvider, MockPaymentGateway
from ..adapters.postgrest_store import PostgrestStore
from ..adapters.session_authenticator import SessionAuthenticator
from ..adapters.stripe_gateway import StripeGateway
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SchedulingError, ValidationFailed
from ..domain.models import weekday_index
from ..domain.slot_generator import SlotGenerator
from ..services.availability import AvailabilityService, WeeklyWindow
from ..services.protocols import AvailabilityStore, IdentityProvider, PaymentGateway
from ..services.reservation import ReservationRequest, ReservationService, combine_slot

app = typer.Typer(
    name="inkslot",
    help="Artist availability, bookable slots and deposit bookings",
    add_completion=False
)

console = Console()

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Use the in-memory backend with bundled sample data."),
]
MockUserOption = Annotated[
    str,
    typer.Option("--as", help="Signed-in user id in mock mode."),
]


def _load_config(config_file: Optional[Path], mock: bool) -> AppConfig:
    config_path = config_file or get_default_config_path()

    if mock and not config_path.exists():
        config = AppConfig()
    else:
        config = AppConfig.load_from_yaml(config_path)

    config.configure_logging()
    return config


def _build_backend(
    config: AppConfig,
    mock: bool,
    mock_user: Optional[str] = "mock-client",
) -> Tuple[AvailabilityStore, PaymentGateway, IdentityProvider]:
    """
    Wire up store, payment gateway and identity provider.

    Mock mode never touches the network; state lives only for this command.
    """
    if mock:
        console.print("[yellow]⚠  MOCK MODE: using sample data[/yellow]\n")
        return InMemoryStore.from_json(), MockPaymentGateway(), MockIdentityProvider(mock_user)

    authenticator = SessionAuthenticator(
        base_url=config.store.url,
        api_key=config.store.api_key,
    )
    # Resolve (and refresh) the session before the store picks up the token.
    asyncio.run(authenticator.current_user())

    store = PostgrestStore(
        base_url=config.store.url,
        api_key=config.store.api_key,
        access_token=authenticator.access_token,
    )
    return store, StripeGateway(secret_key=config.payments.secret_key), authenticator


def _slot_generator(config: AppConfig) -> SlotGenerator:
    return SlotGenerator(
        slot_duration_minutes=config.scheduling.slot_duration_minutes,
        timezone=config.timezone,
        detect_overlaps=config.scheduling.detect_overlaps,
    )


def _parse_date(value: str, tz: str):
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        raise ValidationFailed(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def _parse_day_option(value: str) -> WeeklyWindow:
    """
    Parse ``DAY=HH:MM-HH:MM`` where DAY is 0-6 (0 = Sunday) or a weekday name.
    """
    try:
        day_part, window_part = value.split("=", 1)
        start, end = window_part.split("-", 1)
    except ValueError:
        raise ValidationFailed(f"Invalid --day value {value!r}, expected DAY=HH:MM-HH:MM") from None

    day_part = day_part.strip()
    if day_part.isdigit():
        day_of_week = int(day_part)
    else:
        names = [name.lower() for name in DAY_NAMES]
        prefix_matches = [i for i, name in enumerate(names) if name.startswith(day_part.lower())]
        if len(day_part) < 2 or len(prefix_matches) != 1:
            raise ValidationFailed(f"Unknown weekday {day_part!r}")
        day_of_week = prefix_matches[0]

    return WeeklyWindow.parse(day_of_week, start, end)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    detail = getattr(error, "detail", None)
    if detail:
        console.print(f"[dim]{detail}[/dim]")
    raise typer.Exit(1)


@app.command()
def slots(
    artist_id: Annotated[str, typer.Argument(help="Artist whose slots to show")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD), defaults to today")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show the bookable slots of an artist on one day.

    Examples:

        inkslot slots artist-luna --date 2026-10-26 --mock
    """
    try:
        config = _load_config(config_file, mock)
        tz = config.timezone
        target = _parse_date(date, tz) if date else pendulum.today(tz).date()

        store, _, identity = _build_backend(config, mock)
        service = AvailabilityService(store, _slot_generator(config), identity)

        day_slots = asyncio.run(service.get_slots(artist_id, target))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print(f"[bold cyan]🗓️  {artist_id}[/bold cyan] on {DAY_NAMES[weekday_index(target)]}, {target.isoformat()}\n")

    if not day_slots:
        console.print("[yellow]⚠ No available slots for this date.[/yellow]\n")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Time", style="bold")
    table.add_column("Status")

    for slot in day_slots:
        status = "[green]available[/green]" if slot.available else "[dim strike]booked[/dim strike]"
        table.add_row(slot.time, status)

    console.print(table)
    console.print()


@app.command()
def calendar(
    artist_id: Annotated[str, typer.Argument(help="Artist whose calendar to show")],
    start: Annotated[Optional[str], typer.Option("--start", help="First date (YYYY-MM-DD), defaults to today")] = None,
    days: Annotated[int, typer.Option("--days", help="Number of days to show")] = 14,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    List the dates a client can pick for an artist.
    """
    try:
        config = _load_config(config_file, mock)
        tz = config.timezone
        first_day = _parse_date(start, tz) if start else pendulum.today(tz).date()

        store, _, identity = _build_backend(config, mock)
        service = AvailabilityService(store, _slot_generator(config), identity)

        dates = asyncio.run(service.get_calendar(artist_id, first_day, days))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    if not dates:
        console.print("[yellow]⚠ No selectable dates in this period.[/yellow]\n")
        return

    console.print(f"[bold green]✓ {len(dates)} selectable date(s):[/bold green]\n")
    for day in dates:
        console.print(f"  {DAY_NAMES[weekday_index(day)]}, {day.isoformat()}")
    console.print()


@app.command()
def availability(
    artist_id: Annotated[str, typer.Argument(help="Artist whose weekly schedule to show")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show an artist's recurring weekly schedule.
    """
    try:
        config = _load_config(config_file, mock)
        store, _, identity = _build_backend(config, mock)
        service = AvailabilityService(store, _slot_generator(config), identity)

        rules = asyncio.run(service.get_schedule(artist_id))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    table = Table(title="Weekly Availability", show_header=True, header_style="bold cyan")
    table.add_column("Day", style="bold yellow")
    table.add_column("Hours")

    by_day = {rule.day_of_week: rule for rule in reversed(rules)}
    for index, name in enumerate(DAY_NAMES):
        rule = by_day.get(index)
        if rule is None:
            table.add_row(name, "[dim italic]Unavailable[/dim italic]")
        else:
            table.add_row(name, f"{rule.start_time:%H:%M} - {rule.end_time:%H:%M}")

    console.print()
    console.print(table)
    console.print()


@app.command()
def set_availability(
    artist_id: Annotated[str, typer.Argument(help="Artist whose schedule to replace")],
    day: Annotated[Optional[List[str]], typer.Option("--day", help="Enabled day as DAY=HH:MM-HH:MM, repeatable")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Replace the whole weekly schedule. Days not given become unavailable.

    Examples:

        inkslot set-availability artist-luna --day mon=10:00-18:00 --day 6=11:00-15:00
    """
    try:
        config = _load_config(config_file, mock)
        windows = [_parse_day_option(value) for value in day or []]

        store, _, identity = _build_backend(config, mock, mock_user=artist_id)
        service = AvailabilityService(store, _slot_generator(config), identity)

        asyncio.run(service.set_availability(artist_id, windows))
        saved = asyncio.run(service.get_schedule(artist_id))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print("[bold green]✓ Availability saved successfully![/bold green]")
    for rule in saved:
        console.print(f"  {DAY_NAMES[rule.day_of_week]}: {rule.start_time:%H:%M} - {rule.end_time:%H:%M}")
    console.print()


@app.command()
def book(
    title: Annotated[str, typer.Option("--title", prompt="Project title")],
    description: Annotated[str, typer.Option("--description", prompt="Describe your idea")],
    placement: Annotated[str, typer.Option("--placement", help="Body zone")] = "Arm",
    budget_min: Annotated[int, typer.Option("--budget-min")] = 100,
    budget_max: Annotated[int, typer.Option("--budget-max")] = 500,
    artist: Annotated[Optional[str], typer.Option("--artist", help="Book this artist directly")] = None,
    studio: Annotated[Optional[str], typer.Option("--studio", help="Book this studio directly")] = None,
    date: Annotated[Optional[str], typer.Option("--date", help="Slot date (YYYY-MM-DD)")] = None,
    time: Annotated[Optional[str], typer.Option("--time", help="Slot start (HH:MM)")] = None,
    image: Annotated[Optional[List[str]], typer.Option("--image", help="Reference image URL, repeatable")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Post a project; with --artist/--studio also reserve a slot and a deposit.

    Without a provider the project is published to the marketplace.
    """
    try:
        config = _load_config(config_file, mock)
        tz = config.timezone

        slot_datetime = None
        if artist or studio:
            slot_datetime = combine_slot(_parse_date(date, tz) if date else None, time, tz)

        request = ReservationRequest(
            title=title,
            description=description,
            body_zone=placement,
            budget_min=budget_min,
            budget_max=budget_max,
            concept_images=list(image or []),
            artist_id=artist,
            studio_id=studio,
            slot_datetime=slot_datetime,
        )

        store, gateway, identity = _build_backend(config, mock)
        service = ReservationService(
            store,
            gateway,
            identity,
            deposit_amount=config.payments.deposit_amount,
            currency=config.payments.currency,
            proceed_without_payment_on_gateway_failure=config.payments.proceed_without_payment_on_gateway_failure,
        )

        result = asyncio.run(service.reserve(request))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    if result.booking is None:
        console.print(Panel.fit(
            f"[bold green]✓ Project posted![/bold green]\n\n"
            f"[bold]Dossier:[/bold] {result.dossier.id}\n"
            f"[bold]Status:[/bold] {result.dossier.status.value}\n"
            "Artists can now contact you.",
            title="Marketplace"
        ))
        return

    booking = result.booking
    deposit = f"{booking.deposit_amount / 100:.2f} {config.payments.currency.upper()}"
    lines = [
        "[bold green]✓ Booking request created![/bold green]\n",
        f"[bold]Booking:[/bold] {booking.id}",
        f"[bold]Slot:[/bold] {booking.date.in_timezone(tz).format('YYYY-MM-DD HH:mm') if booking.date else 'unscheduled'}",
        f"[bold]Deposit:[/bold] {deposit}",
    ]
    if result.client_secret:
        lines.append(f"[bold]Client secret:[/bold] {result.client_secret}")
    else:
        lines.append("[yellow]Payment could not be prepared; the studio will follow up.[/yellow]")

    console.print(Panel.fit("\n".join(lines), title="Booking"))


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking to cancel")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_user: MockUserOption = "mock-client",
):
    """
    Cancel a booking as its client or provider and free its slot.
    """
    try:
        config = _load_config(config_file, mock)
        store, gateway, identity = _build_backend(config, mock, mock_user=mock_user)
        service = ReservationService(store, gateway, identity)

        booking = asyncio.run(service.cancel_booking(booking_id))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print(f"[green]✓ Booking {booking.id} cancelled.[/green]")


@app.command()
def confirm_deposit(
    booking_id: Annotated[str, typer.Argument(help="Booking whose deposit was confirmed")],
    failed: Annotated[bool, typer.Option("--failed", help="Record a failed confirmation")] = False,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_user: MockUserOption = "mock-client",
):
    """
    Record the outcome of the client-side deposit confirmation.
    """
    try:
        config = _load_config(config_file, mock)
        store, gateway, identity = _build_backend(config, mock, mock_user=mock_user)
        service = ReservationService(store, gateway, identity)

        booking = asyncio.run(service.confirm_deposit(booking_id, succeeded=not failed))
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print(f"Booking {booking.id} is now [bold]{booking.status.value}[/bold].")


@app.command()
def login(
    email: Annotated[str, typer.Argument(help="Account email")],
    password: Annotated[str, typer.Option("--password", prompt=True, hide_input=True)],
    config_file: ConfigOption = None,
):
    """
    Sign in and cache the session.
    """
    try:
        config = _load_config(config_file, mock=False)
        authenticator = SessionAuthenticator(base_url=config.store.url, api_key=config.store.api_key)
        user = authenticator.sign_in(email, password)
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print(f"[bold green]✓ Signed in as {user.email}[/bold green] ({authenticator.cache_backend} cache)")
    if authenticator.insecure_storage_warning:
        console.print(f"[yellow]{authenticator.insecure_storage_warning}[/yellow]")


@app.command()
def logout(config_file: ConfigOption = None):
    """
    Clear the cached session.
    """
    try:
        config = _load_config(config_file, mock=False)
        SessionAuthenticator(base_url=config.store.url, api_key=config.store.api_key).clear_cache()
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print("[green]✓ Session cleared.[/green]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]inkslot[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
