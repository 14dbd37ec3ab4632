"""Command-line interface for Meter."""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from meter import __version__
from meter.domain.errors import MeterError
from meter.domain.models import Client, PomodoroPhase, TimerState, utcnow
from meter.infra.config import get_settings
from meter.infra.db import dispose_engine, init_db
from meter.infra.logging_config import configure_logging
from meter.infra.repository import (
    ClientRepository, ProjectRepository, SettingsRepository, TimeEntryRepository,
)
from meter.services.invoice_service import INVOICE_FORMATS, InvoiceService
from meter.services.notification_service import RecordingNotifier
from meter.services.tracking_service import TrackingService, TrackingStatus
from meter.utils import format_elapsed

app = typer.Typer(
    name="meter",
    help="Track time per project, run Pomodoro cycles and generate invoices",
    no_args_is_help=True,
)
client_app = typer.Typer(help="Manage invoice recipients", no_args_is_help=True)
pomodoro_app = typer.Typer(help="Pomodoro work/break cycles", no_args_is_help=True)
settings_app = typer.Typer(help="Business details printed on invoices", no_args_is_help=True)

app.add_typer(client_app, name="client")
app.add_typer(pomodoro_app, name="pomodoro")
app.add_typer(settings_app, name="settings")

console = Console()

INVOICE_SETTING_FIELDS = (
    "business_name", "address_street", "address_city", "address_postal_code",
    "address_country", "email", "phone", "tax_id", "default_payment_terms",
    "default_tax_rate", "payment_instructions", "next_invoice_number",
)


@app.callback()
def main():
    """Meter - time tracking with Pomodoro cycles and invoicing."""
    configure_logging(get_settings())


def _run(func, *args, **kwargs):
    """Run an async operation against the database and report domain errors"""

    async def runner():
        try:
            await init_db()
            return await func(*args, **kwargs)
        finally:
            await dispose_engine()

    try:
        return asyncio.run(runner())
    except (MeterError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _tracking(notifier=None) -> TrackingService:
    settings = get_settings()
    prefs = settings.preferences
    return TrackingService(
        notifier=notifier,
        settings_repo=SettingsRepository(seed_config=prefs.pomodoro),
        default_description=prefs.default_description,
        default_currency=prefs.default_currency,
    )


def _parse_decimal(value: str, name: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        console.print(f"[red]Error:[/red] {name} must be a number, got '{value}'")
        raise typer.Exit(1)


def _print_status(status: TrackingStatus):
    if status.state == TimerState.IDLE and status.phase == PomodoroPhase.IDLE:
        console.print("[dim]No timer running[/dim]")
        return

    if status.state != TimerState.IDLE:
        color = "green" if status.state == TimerState.RUNNING else "yellow"
        console.print(
            f"[{color}]{status.state.value.title()}[/{color}] "
            f"[bold]{status.project}[/bold] - {status.description} "
            f"[cyan]{format_elapsed(status.elapsed)}[/cyan]"
        )

    if status.pomodoro_enabled and status.phase != PomodoroPhase.IDLE:
        line = f"Pomodoro: {status.phase.value.replace('_', ' ')}"
        if status.pending:
            line += f" (next: {status.pending.value}, run 'meter pomodoro ack')"
        if status.remaining is not None:
            line += f", {format_elapsed(status.remaining)} left"
        line += (f", {status.completed_work_cycles}/{status.cycles_before_long_break}"
                 " cycles before long break")
        console.print(line)


# Timer

@app.command()
def start(
    project: str = typer.Option(..., "--project", "-p", help="Project to track"),
    desc: Optional[str] = typer.Option(None, "--desc", "-d", help="What you are working on"),
):
    """Start a timer for a project."""
    session = _run(_tracking().start, project, desc)
    console.print(f"[green]Started timer for project '{session.project}'[/green]")


@app.command()
def stop():
    """Stop the timer and record the entry."""
    entry = _run(_tracking().stop)
    console.print(
        f"[green]Stopped timer for project '{entry.project}', "
        f"duration {entry.duration_hours:.2f} hrs[/green]"
    )


@app.command()
def pause():
    """Pause the running timer."""
    if _run(_tracking().pause):
        console.print("[yellow]Timer paused[/yellow]")
    else:
        console.print("[dim]Timer is already paused[/dim]")


@app.command()
def resume():
    """Resume a paused timer."""
    if _run(_tracking().resume):
        console.print("[green]Timer resumed[/green]")
    else:
        console.print("[dim]Nothing to resume[/dim]")


@app.command()
def status():
    """Show the running timer and Pomodoro phase."""
    notifier = RecordingNotifier()
    service = _tracking(notifier)

    async def _status():
        await service.tick()
        return await service.status()

    current = _run(_status)
    for title, message in notifier.sent:
        console.print(f"[bold magenta]{title}:[/bold magenta] {message}")
    _print_status(current)


@app.command()
def discard():
    """Throw away the running timer without recording it."""
    session = _run(_tracking().discard)
    if session:
        console.print(f"[yellow]Discarded timer for project '{session.project}'[/yellow]")
    else:
        console.print("[dim]No timer running[/dim]")


# Entries

@app.command()
def add(
    project: str = typer.Option(..., "--project", "-p", help="Project name"),
    desc: str = typer.Option("", "--desc", "-d", help="Description"),
    duration: str = typer.Option(..., "--duration", help="Duration in hours, e.g. 1.5"),
):
    """Add a manual entry ending now."""
    hours = _parse_decimal(duration, "Duration")
    entry = _run(_tracking().add_manual, project, desc, hours)
    console.print(
        f"[green]Added manual entry for project '{entry.project}', "
        f"duration {entry.duration_hours:.2f} hrs[/green]"
    )


@app.command("list")
def list_entries(
    billed: bool = typer.Option(False, "--billed", help="Show billed entries instead of pending ones"),
    show_all: bool = typer.Option(False, "--all", help="Show every entry"),
):
    """List time entries (pending by default)."""
    filter_billed = None if show_all else billed
    entries = _run(TimeEntryRepository().list, filter_billed)

    if not entries:
        console.print("[dim]No entries[/dim]")
        return

    table = Table(title="Time Entries")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Project", style="bold")
    table.add_column("Description")
    table.add_column("Ended")
    table.add_column("Hours", justify="right")
    table.add_column("Status")
    for e in entries:
        table.add_row(
            str(e.id),
            e.project,
            e.description,
            e.ended_at.astimezone().strftime("%Y-%m-%d %H:%M"),
            f"{e.duration_hours:.2f}",
            "[green]billed[/green]" if e.billed else "[yellow]pending[/yellow]",
        )
    console.print(table)


@app.command()
def delete(entry_id: int = typer.Option(..., "--id", help="Entry ID")):
    """Delete an entry."""
    if _run(TimeEntryRepository().delete, entry_id):
        console.print(f"Deleted entry {entry_id}")
    else:
        console.print(f"[red]Error:[/red] Entry {entry_id} not found")
        raise typer.Exit(1)


@app.command()
def bill(entry_id: Optional[int] = typer.Option(None, "--id", help="Entry ID (all pending if omitted)")):
    """Mark entries as billed."""
    repo = TimeEntryRepository()
    if entry_id is None:
        count = _run(repo.mark_all_billed)
        console.print(f"Marked {count} pending entries as billed")
    elif _run(repo.mark_billed, entry_id):
        console.print(f"Marked entry {entry_id} as billed")
    else:
        console.print(f"[red]Error:[/red] Entry {entry_id} not found")
        raise typer.Exit(1)


@app.command()
def unbill(entry_id: Optional[int] = typer.Option(None, "--id", help="Entry ID (all billed if omitted)")):
    """Mark entries as pending again."""
    repo = TimeEntryRepository()
    if entry_id is None:
        count = _run(repo.unmark_all_billed)
        console.print(f"Marked {count} billed entries as unbilled")
    elif _run(repo.unmark_billed, entry_id):
        console.print(f"Marked entry {entry_id} as unbilled")
    else:
        console.print(f"[red]Error:[/red] Entry {entry_id} not found")
        raise typer.Exit(1)


# Invoicing

@app.command()
def invoice(
    month: Optional[int] = typer.Option(None, "--month", min=1, max=12, help="Month (default: current)"),
    year: Optional[int] = typer.Option(None, "--year", help="Year (default: current)"),
    client: Optional[str] = typer.Option(None, "--client", help="Only this client's projects"),
    fmt: Optional[str] = typer.Option(None, "--format", help="text or pdf (default from preferences)"),
    tax_rate: Optional[str] = typer.Option(None, "--tax-rate", help="Tax percent (default from settings)"),
    pending: bool = typer.Option(False, "--pending", help="Invoice pending entries instead of billed ones"),
    mark_billed: bool = typer.Option(False, "--mark-billed", help="Mark the invoiced entries as billed"),
):
    """Generate an invoice for a month."""
    settings = get_settings()
    now = utcnow()
    fmt = fmt or settings.preferences.invoice_format
    if fmt not in INVOICE_FORMATS:
        console.print(f"[red]Error:[/red] Unknown format '{fmt}' (use text or pdf)")
        raise typer.Exit(1)

    service = InvoiceService(settings.invoice_dir)
    result = _run(
        service.generate,
        year or now.year,
        month or now.month,
        fmt=fmt,
        client_name=client,
        tax_rate=_parse_decimal(tax_rate, "Tax rate") if tax_rate is not None else None,
        billed=not pending,
        mark_billed=mark_billed,
    )
    inv = result.invoice
    console.print(f"[green]Invoice #{inv.number:04d} saved to {result.file_path}[/green]")
    if inv.has_rates:
        console.print(f"Total: {inv.total_hours:.2f} hrs | {inv.currency}{inv.total:,.2f}")
    else:
        console.print(f"Total: {inv.total_hours:.2f} hrs")


@app.command()
def rate(
    project: str = typer.Argument(..., help="Project name"),
    value: Optional[str] = typer.Option(None, "--rate", help="Hourly rate"),
    currency: Optional[str] = typer.Option(None, "--currency", help="Currency symbol"),
):
    """Show or set the hourly rate of a project."""
    repo = ProjectRepository()
    if value is None:
        found = _run(repo.get_by_name, project)
        if not found:
            console.print(f"[red]Error:[/red] Project '{project}' not found")
            raise typer.Exit(1)
        console.print(f"{found.name}: {found.formatted_rate() or 'no rate set'}")
        return

    amount = _parse_decimal(value, "Rate")
    if amount < 0:
        console.print("[red]Error:[/red] Rate must not be negative")
        raise typer.Exit(1)
    updated = _run(repo.set_rate, project, amount,
                   currency or get_settings().preferences.default_currency)
    console.print(f"[green]Set rate for '{updated.name}' to {updated.formatted_rate()}[/green]")


@app.command()
def projects():
    """List projects with their rates and clients."""
    project_repo = ProjectRepository()
    client_repo = ClientRepository()

    async def _load():
        await project_repo.sync_from_entries()
        return await project_repo.get_all(), await client_repo.get_all()

    all_projects, clients = _run(_load)
    if not all_projects:
        console.print("[dim]No projects yet[/dim]")
        return

    client_names = {c.id: c.name for c in clients}
    table = Table(title="Projects")
    table.add_column("Project", style="bold")
    table.add_column("Rate", justify="right")
    table.add_column("Client")
    for p in all_projects:
        table.add_row(p.name, p.formatted_rate() or "-", client_names.get(p.client_id, "-"))
    console.print(table)


# Clients

@client_app.command("add")
def client_add(
    name: str = typer.Argument(..., help="Client name"),
    contact: str = typer.Option("", "--contact", help="Contact person"),
    email: str = typer.Option("", "--email"),
    street: str = typer.Option("", "--street"),
    city: str = typer.Option("", "--city"),
    postal_code: str = typer.Option("", "--postal-code"),
    country: str = typer.Option("", "--country"),
):
    """Add a client."""
    created = _run(ClientRepository().create, Client(
        name=name, contact_person=contact, email=email, address_street=street,
        address_city=city, address_postal_code=postal_code, address_country=country,
    ))
    console.print(f"[green]Added client '{created.name}' (id {created.id})[/green]")


@client_app.command("list")
def client_list():
    """List clients."""
    clients = _run(ClientRepository().get_all)
    if not clients:
        console.print("[dim]No clients yet[/dim]")
        return

    table = Table(title="Clients")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Contact")
    table.add_column("Email")
    table.add_column("Address")
    for c in clients:
        table.add_row(str(c.id), c.name, c.contact_person, c.email,
                      c.formatted_address().replace("\n", ", "))
    console.print(table)


@client_app.command("remove")
def client_remove(name: str = typer.Argument(..., help="Client name")):
    """Remove a client and unlink its projects."""
    repo = ClientRepository()

    async def _remove():
        found = await repo.get_by_name(name)
        return found is not None and await repo.delete(found.id)

    if _run(_remove):
        console.print(f"Removed client '{name}'")
    else:
        console.print(f"[red]Error:[/red] Client '{name}' not found")
        raise typer.Exit(1)


@client_app.command("assign")
def client_assign(
    project: str = typer.Argument(..., help="Project name"),
    name: Optional[str] = typer.Argument(None, help="Client name (omit to unassign)"),
):
    """Assign a project to a client."""
    client_repo = ClientRepository()
    project_repo = ProjectRepository()

    async def _assign():
        client_id = None
        if name:
            found = await client_repo.get_by_name(name)
            if not found:
                console.print(f"[red]Error:[/red] Client '{name}' not found")
                return None
            client_id = found.id
        await project_repo.sync_from_entries()
        return await project_repo.assign_client(project, client_id)

    updated = _run(_assign)
    if updated is None:
        raise typer.Exit(1)
    if name:
        console.print(f"[green]Assigned '{updated.name}' to client '{name}'[/green]")
    else:
        console.print(f"Unassigned '{updated.name}'")


# Pomodoro

@pomodoro_app.command("show")
def pomodoro_show():
    """Show the Pomodoro configuration and current phase."""
    service = _tracking()

    async def _show():
        return await service.settings_repo.load_config(), await service.status()

    config, current = _run(_show)
    console.print(f"Pomodoro: {'[green]on[/green]' if config.enabled else '[dim]off[/dim]'}")
    console.print(f"Work: {config.work_minutes} min")
    console.print(f"Short break: {config.short_break_minutes} min")
    console.print(f"Long break: {config.long_break_minutes} min")
    console.print(f"Cycles before long break: {config.cycles_before_long_break}")
    if current.phase != PomodoroPhase.IDLE:
        _print_status(current)


@pomodoro_app.command("on")
def pomodoro_on():
    """Turn Pomodoro mode on."""
    _run(_tracking().set_pomodoro_enabled, True)
    console.print("[green]Pomodoro mode enabled[/green]")


@pomodoro_app.command("off")
def pomodoro_off():
    """Turn Pomodoro mode off."""
    _run(_tracking().set_pomodoro_enabled, False)
    console.print("Pomodoro mode disabled")


@pomodoro_app.command("set")
def pomodoro_set(
    work: Optional[int] = typer.Option(None, "--work", help="Work period in minutes"),
    short_break: Optional[int] = typer.Option(None, "--short-break", help="Short break in minutes"),
    long_break: Optional[int] = typer.Option(None, "--long-break", help="Long break in minutes"),
    cycles: Optional[int] = typer.Option(None, "--cycles", help="Work periods before a long break"),
):
    """Change Pomodoro durations."""
    service = _tracking()
    changes = {
        key: value for key, value in (
            ("work_minutes", work),
            ("short_break_minutes", short_break),
            ("long_break_minutes", long_break),
            ("cycles_before_long_break", cycles),
        ) if value is not None
    }

    async def _update():
        current = await service.settings_repo.load_config()
        data = current.model_dump()
        data.update(changes)
        return await service.update_pomodoro_config(type(current)(**data))

    config = _run(_update)
    console.print(
        f"Work {config.work_minutes} min, short break {config.short_break_minutes} min, "
        f"long break {config.long_break_minutes} min every {config.cycles_before_long_break} cycles"
    )


@pomodoro_app.command("ack")
def pomodoro_ack():
    """Start the pending break or resume work."""
    service = _tracking()

    async def _ack():
        await service.tick()
        changed = await service.acknowledge()
        return changed, await service.status()

    changed, current = _run(_ack)
    if not changed:
        console.print("[dim]Nothing to acknowledge[/dim]")
        return
    _print_status(current)


# Invoice settings

@settings_app.command("show")
def settings_show():
    """Show invoice settings."""
    current = _run(SettingsRepository().load_invoice_settings)
    table = Table(title="Invoice Settings", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for field in INVOICE_SETTING_FIELDS:
        table.add_row(field, str(getattr(current, field)))
    console.print(table)


@settings_app.command("set")
def settings_set(
    field: str = typer.Argument(..., help="Setting name (see 'meter settings show')"),
    value: str = typer.Argument(..., help="New value"),
):
    """Change one invoice setting."""
    if field not in INVOICE_SETTING_FIELDS:
        console.print(f"[red]Error:[/red] Unknown setting '{field}'")
        raise typer.Exit(1)

    repo = SettingsRepository()

    async def _set():
        current = await repo.load_invoice_settings()
        data = current.model_dump()
        data[field] = value
        updated = type(current)(**data)
        await repo.save_invoice_settings(updated)
        return updated

    updated = _run(_set)
    console.print(f"[green]{field} = {getattr(updated, field)}[/green]")


# Desktop

@app.command()
def tray():
    """Run the system tray app."""
    from meter.ui import SystemTrayApp

    tray_app = SystemTrayApp()
    raise typer.Exit(tray_app.run())


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]Meter[/bold] version [cyan]{__version__}[/cyan]")
