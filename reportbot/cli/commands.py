"""CLI commands for reportbot."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from reportbot import __logo__, __version__

app = typer.Typer(
    name="reportbot",
    help=f"{__logo__} reportbot - scheduled dashboard reports by e-mail",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} reportbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """reportbot - scheduled dashboard reports by e-mail."""
    from reportbot.logging_config import setup_logging

    setup_logging("DEBUG" if verbose else None)


def _load_store():
    from reportbot.app import store_path
    from reportbot.config.loader import load_config
    from reportbot.schedule.storage import JsonScheduleStore

    return JsonScheduleStore(store_path(load_config()))


# ============================================================================
# Onboard / Serve
# ============================================================================


@app.command()
def onboard():
    """Write a default configuration file."""
    from reportbot.config.loader import get_config_path, get_data_dir, save_config
    from reportbot.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print(f"[green]✓[/green] Data directory: {get_data_dir(config)}")

    console.print("\nNext steps:")
    console.print("  1. Set [cyan]renderer.baseUrl[/cyan], [cyan]renderer.username[/cyan] and the Graph "
                  "[cyan]delivery[/cyan] settings")
    console.print("     (secrets can come from REPORTBOT_RENDERER__PASSWORD and REPORTBOT_DELIVERY__CLIENT_SECRET)")
    console.print('  2. Add a schedule: [cyan]reportbot schedule add --subject-id ... --to ops@example.com[/cyan]')
    console.print("  3. Start: [cyan]reportbot serve[/cyan]")


@app.command()
def serve(
    port: int = typer.Option(None, "--port", "-p", help="Admin HTTP port"),
    no_admin: bool = typer.Option(False, "--no-admin", help="Do not start the admin HTTP server"),
):
    """Run the scheduler (and the admin HTTP server) until interrupted."""
    from reportbot.app import ReportApp
    from reportbot.config.loader import load_config

    config = load_config()
    if port is not None:
        config.admin.port = port

    report_app = ReportApp(config, with_admin=not no_admin)

    console.print(f"{__logo__} Starting reportbot ({config.scheduler.timezone})...")
    if report_app.channel.is_configured():
        console.print(f"[green]✓[/green] Delivery: {report_app.channel.name} as {config.delivery.sender_email}")
    else:
        console.print("[yellow]Warning: delivery is not configured, runs will fail[/yellow]")
    if report_app.admin:
        console.print(f"[green]✓[/green] Admin: http://{config.admin.host}:{config.admin.port}")

    async def run():
        await report_app.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await report_app.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


@app.command()
def render(
    subject_id: str = typer.Argument(..., help="Subject whose print view is rendered"),
    out: Path = typer.Option(None, "--out", "-o", help="Output file"),
    screenshot: bool = typer.Option(False, "--screenshot", help="Full-page PNG instead of PDF"),
):
    """Render one report to a file without sending it."""
    from reportbot.config.loader import load_config
    from reportbot.errors import ReportbotError
    from reportbot.render.engine import BrowserEngine
    from reportbot.render.orchestrator import ReportRenderer

    config = load_config()
    engine = BrowserEngine(headless=config.renderer.headless, launch_args=config.renderer.launch_args)
    renderer = ReportRenderer(engine, config.renderer)
    out = out or Path(f"report_{subject_id}.{'png' if screenshot else 'pdf'}")

    async def run() -> bytes:
        try:
            if screenshot:
                return await renderer.render_screenshot(subject_id)
            return await renderer.render_pdf(subject_id)
        finally:
            await engine.shutdown()

    try:
        data = asyncio.run(run())
    except ReportbotError as e:
        console.print(f"[red]Render failed ({e.kind}, {e.step}): {e}[/red]")
        raise typer.Exit(1)

    out.write_bytes(data)
    console.print(f"[green]✓[/green] Wrote {out} ({len(data)} bytes)")


# ============================================================================
# Schedule Commands
# ============================================================================

schedule_app = typer.Typer(help="Manage report schedules")
app.add_typer(schedule_app, name="schedule")


@schedule_app.command("list")
def schedule_list(
    all: bool = typer.Option(False, "--all", "-a", help="Include inactive schedules"),
):
    """List report schedules."""
    store = _load_store()
    schedules = store.list_schedules(include_inactive=all)

    if not schedules:
        console.print("No schedules.")
        return

    table = Table(title="Report Schedules")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Subject")
    table.add_column("When")
    table.add_column("Recipients")
    table.add_column("Status")

    for schedule in schedules:
        status = "[green]active[/green]" if schedule.is_active else "[dim]inactive[/dim]"
        table.add_row(
            schedule.id,
            schedule.name,
            f"{schedule.subject_name} ({schedule.subject_id})",
            schedule.describe(),
            ", ".join(schedule.recipients),
            status,
        )

    console.print(table)


@schedule_app.command("add")
def schedule_add(
    subject_id: str = typer.Option(..., "--subject-id", "-s", help="Subject id of the print view"),
    subject_name: str = typer.Option("", "--subject-name", help="Display name of the subject"),
    to: list[str] = typer.Option(..., "--to", "-t", help="Recipient e-mail (repeatable)"),
    frequency: str = typer.Option("weekly", "--frequency", "-f", help="daily, weekly or monthly"),
    at: str = typer.Option("08:00", "--at", help="Time of day HH:MM in the business timezone"),
    day_of_week: int = typer.Option(None, "--day-of-week", "-w", help="0=Sunday .. 6=Saturday (weekly)"),
    day_of_month: int = typer.Option(None, "--day-of-month", "-d", help="1..31 (monthly)"),
    name: str = typer.Option("", "--name", "-n", help="Schedule name"),
):
    """Add a report schedule."""
    from pydantic import ValidationError
    from rich.markup import escape

    from reportbot.schedule.types import Schedule

    try:
        hour_str, minute_str = at.split(":", 1)
        hour, minute = int(hour_str), int(minute_str)
    except ValueError:
        console.print(f"[red]Error: --at must be HH:MM, got {at!r}[/red]")
        raise typer.Exit(1)

    recipients = [r.strip() for r in to if r.strip()]
    if not recipients:
        console.print("[red]Error: at least one --to recipient is required[/red]")
        raise typer.Exit(1)

    try:
        schedule = Schedule(
            name=name,
            frequency=frequency,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
            hour=hour,
            minute=minute,
            subject_id=subject_id,
            subject_name=subject_name,
            recipients=recipients,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid schedule:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    _load_store().add_schedule(schedule)
    console.print(f"[green]✓[/green] Added schedule '{schedule.name}' ({schedule.id}), {schedule.describe()}")


@schedule_app.command("remove")
def schedule_remove(
    schedule_id: str = typer.Argument(..., help="Schedule ID to remove"),
):
    """Remove a schedule and its run history."""
    if _load_store().remove_schedule(schedule_id):
        console.print(f"[green]✓[/green] Removed schedule {schedule_id}")
    else:
        console.print(f"[red]Schedule {schedule_id} not found[/red]")


@schedule_app.command("enable")
def schedule_enable(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    disable: bool = typer.Option(False, "--disable", help="Deactivate instead of activate"),
):
    """Activate or deactivate a schedule."""
    schedule = _load_store().set_active(schedule_id, active=not disable)
    if schedule:
        status = "deactivated" if disable else "activated"
        console.print(f"[green]✓[/green] Schedule '{schedule.name}' {status}")
    else:
        console.print(f"[red]Schedule {schedule_id} not found[/red]")


@schedule_app.command("run")
def schedule_run(
    schedule_id: str = typer.Argument(..., help="Schedule ID to run now"),
):
    """Render and send a schedule's report right now.

    Goes through the admin server of a running ``reportbot serve`` when one is
    reachable, so the run shares its execution lock with the tick loop.
    """
    from loguru import logger

    from reportbot.admin.client import request_run_now
    from reportbot.app import ReportApp
    from reportbot.config.loader import load_config

    config = load_config()

    result = None
    if config.admin.enabled:
        result = asyncio.run(request_run_now(config.admin, schedule_id))

    if result is None:
        logger.warning(
            f"No reportbot server reachable; running {schedule_id} in this process. "
            "A server started with --no-admin could run the same schedule at the same time"
        )
        report_app = ReportApp(config, with_admin=False)

        async def run():
            try:
                return await report_app.executor.run_now(schedule_id)
            finally:
                await report_app.channel.close()
                if report_app.engine.is_running:
                    await report_app.engine.shutdown()

        result = asyncio.run(run())

    if result.success:
        console.print(f"[green]✓[/green] {result.message}")
    else:
        console.print(f"[red]{result.message}[/red]")
        raise typer.Exit(1)


# ============================================================================
# Runs / Status
# ============================================================================


@app.command()
def runs(
    schedule_id: str = typer.Option(None, "--schedule", "-s", help="Only runs of this schedule"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of runs to show"),
):
    """Show recent runs, newest first."""
    store = _load_store()
    history = store.list_runs(schedule_id, limit=limit)

    if not history:
        console.print("No runs recorded.")
        return

    table = Table(title="Runs")
    table.add_column("Run", style="cyan")
    table.add_column("Schedule")
    table.add_column("Trigger")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Recipients", justify="right")
    table.add_column("Error")

    colors = {"success": "green", "failed": "red", "running": "yellow"}
    for run in history:
        table.add_row(
            run.id,
            run.schedule_id,
            run.trigger,
            run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{colors[run.status]}]{run.status}[/{colors[run.status]}]",
            str(run.recipient_count),
            run.error_message or "",
        )

    console.print(table)


@app.command()
def status():
    """Show configuration and schedule summary."""
    from reportbot.app import store_path
    from reportbot.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()
    store = _load_store()
    schedules = store.list_schedules()

    console.print(f"{__logo__} reportbot status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Store: {store_path(config)}")
    console.print(f"Timezone: {config.scheduler.timezone}")
    console.print(f"Dashboard: {config.renderer.base_url}")

    delivery = config.delivery
    configured = all([delivery.tenant_id, delivery.client_id, delivery.client_secret, delivery.sender_email])
    console.print(
        f"Delivery: {'[green]✓ ' + delivery.sender_email + '[/green]' if configured else '[dim]not configured[/dim]'}"
    )
    active = sum(1 for s in schedules if s.is_active)
    console.print(f"Schedules: {len(schedules)} ({active} active)")
