"""Click CLI commands for tixsnatch."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import datetime

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tixsnatch.api import GatewayClient
from tixsnatch.auth import SessionManager
from tixsnatch.config import load_purchase_task, save_purchase_task
from tixsnatch.errors import TixsnatchError
from tixsnatch.models import OutcomeStatus, PurchaseTask, SnatchOutcome
from tixsnatch.notifications import display_outcome
from tixsnatch.scheduler import PrecisionScheduler
from tixsnatch.snatcher import SnatchOrchestrator
from tixsnatch.tokens import TokenStore

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _fmt_ms(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _client() -> GatewayClient:
    session = SessionManager().load_session()
    return GatewayClient(TokenStore(session))


def _choose(title: str, labels: list[str]) -> int:
    """Numbered pick list. Returns the zero-based index."""
    if not labels:
        raise click.ClickException(f"Nothing to choose from: {title}")
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    for i, label in enumerate(labels, 1):
        table.add_row(str(i), label)
    console.print(table)
    return click.prompt("Choice", type=click.IntRange(1, len(labels))) - 1


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """tixsnatch: timed ticket ordering against the mtop gateway."""
    _setup_logging(verbose)


@main.command()
def configure() -> None:
    """Store a logged-in session cookie in the OS keyring."""
    cookie = click.prompt("Cookie header (from a logged-in m.damai.cn session)", hide_input=True)
    nickname = click.prompt("Nickname", default="")
    try:
        session = SessionManager().store_session(cookie, nickname)
    except TixsnatchError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    console.print(f"[green]Session stored for {session.nickname or 'anonymous'}.[/green]")


@main.command()
def logout() -> None:
    """Remove the stored session."""
    SessionManager().clear_session()
    console.print("Session removed.")


@main.command()
def events() -> None:
    """List concerts on sale today or opening soon."""

    async def _events() -> None:
        async with _client() as client:
            tickets = await client.fetch_tickets()

        table = Table(title="Concerts")
        table.add_column("Ticket ID")
        table.add_column("Name")
        table.add_column("Sale time")
        for t in tickets:
            table.add_row(t.ticket_id, t.ticket_name, _fmt_ms(t.sale_time) if t.sale_time else "-")
        console.print(table)

    try:
        asyncio.run(_events())
    except TixsnatchError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)


@main.command()
@click.argument("output", type=click.Path(dir_okay=False))
def pick(output: str) -> None:
    """Interactively choose ticket, show and tier, then write a task file."""

    async def _pick() -> PurchaseTask:
        async with _client() as client:
            tickets = await client.fetch_tickets()
            t_idx = _choose(
                "Concert",
                [f"{t.ticket_name}, sale opens {_fmt_ms(t.sale_time)}" for t in tickets],
            )
            ticket = tickets[t_idx]

            performs = await client.fetch_performs(ticket.ticket_id)
            perform = performs[_choose("Show", [p.perform_name for p in performs])]

            skus = await client.fetch_skus(ticket.ticket_id, perform.perform_id)
            sku = skus[_choose("Price tier", [s.sku_name for s in skus])]

        quantity = click.prompt("Quantity", default=1, type=click.IntRange(1, 4))
        retry_count = click.prompt("Retry count", default=5, type=click.IntRange(1, 10))
        retry_interval = click.prompt(
            "Retry interval (ms)", default=100, type=click.IntRange(10, 1000)
        )
        think_time = click.prompt(
            "Create -> submit interval (ms)", default=30, type=click.IntRange(min=10)
        )
        offset = click.prompt("Clock offset (ms)", default=0, type=click.IntRange(-100, 1000))
        priority = click.prompt(
            "Priority window (minutes)", default=0, type=click.IntRange(0, 60)
        )
        names = click.prompt("Real names (comma separated)", default="")

        return PurchaseTask(
            ticket_id=ticket.ticket_id,
            perform_id=perform.perform_id,
            sku_id=sku.sku_id,
            quantity=quantity,
            sale_time=ticket.sale_time,
            priority_window_minutes=priority,
            clock_offset_ms=offset,
            think_time_ms=think_time,
            retry_count=retry_count,
            retry_interval_ms=retry_interval,
            real_names=[n.strip() for n in names.split(",") if n.strip()],
            ticket_name=ticket.ticket_name,
            perform_name=perform.perform_name,
            sku_name=sku.sku_name,
        )

    try:
        task = asyncio.run(_pick())
    except TixsnatchError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    path = save_purchase_task(task, output)
    console.print(f"[green]Task written to {path}[/green]. Run: tixsnatch snatch {path}")


def _report_clock(scheduler: PrecisionScheduler) -> None:
    offset = scheduler.check_ntp_offset()
    if offset is None:
        return
    if abs(offset) > 0.5:
        console.print(
            f"[red]Warning: System clock is off by {offset:.1f}s! "
            f"Consider syncing with NTP.[/red]"
        )
    else:
        console.print(f"Clock offset: {offset*1000:.0f}ms (OK)")


async def _run_snatch(task: PurchaseTask, scheduler: PrecisionScheduler) -> SnatchOutcome:
    session = SessionManager().load_session()
    tokens = TokenStore(session)
    cancel = asyncio.Event()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except NotImplementedError:
        pass  # Windows: Ctrl-C falls back to KeyboardInterrupt

    async with GatewayClient(tokens, snipe_mode=True) as client:
        return await SnatchOrchestrator(client, scheduler).run(task, cancel)


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
def snatch(config_file: str) -> None:
    """Execute a timed snatch from a YAML task file."""
    try:
        task = load_purchase_task(config_file)
    except TixsnatchError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    scheduler = PrecisionScheduler()
    target = scheduler.window_target_ms(task)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Ticket", task.ticket_name or task.ticket_id)
    table.add_row("Show", task.perform_name or task.perform_id)
    table.add_row("Tier", task.sku_name or task.sku_id)
    table.add_row("Quantity", str(task.quantity))
    table.add_row("Sale time", _fmt_ms(task.sale_time))
    table.add_row("Fire at", _fmt_ms(target))
    table.add_row("Retries", f"{task.retry_count} x {task.retry_interval_ms}ms")
    table.add_row("Think time", f"{task.think_time_ms}ms")
    console.print(Panel(table, title="Snatch Configuration"))

    wait_ms = target - scheduler.now_ms()
    if wait_ms <= 0:
        console.print("[yellow]Sale window already open. Running immediately...[/yellow]")
    else:
        hours, remainder = divmod(wait_ms // 1000, 3600)
        minutes, seconds = divmod(remainder, 60)
        console.print(f"Snatch starts in [bold]{hours}h {minutes}m {seconds}s[/bold]")

    try:
        _report_clock(scheduler)
        outcome = asyncio.run(_run_snatch(task, scheduler))
    except KeyboardInterrupt:
        console.print("\n[yellow]Snatch cancelled.[/yellow]")
        sys.exit(130)
    except TixsnatchError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    display_outcome(outcome)
    if outcome.status is OutcomeStatus.CANCELLED:
        sys.exit(130)
    if not outcome.success:
        sys.exit(1)
