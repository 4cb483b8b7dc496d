"""Post-snatch notifications: Rich console output + macOS notification."""

from __future__ import annotations

import subprocess
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tixsnatch.models import OutcomeStatus, SnatchOutcome

console = Console()


def display_outcome(outcome: SnatchOutcome) -> None:
    """Display the snatch outcome with Rich formatting."""
    if outcome.status is OutcomeStatus.SUCCESS:
        _display_success(outcome)
    elif outcome.status is OutcomeStatus.CANCELLED:
        _display_cancelled(outcome)
    else:
        _display_failure(outcome)


def _table() -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    return table


def _display_success(outcome: SnatchOutcome) -> None:
    table = _table()
    table.add_row("Order", outcome.order_ref or "?")
    table.add_row("Attempts", str(outcome.attempts))
    table.add_row("Elapsed", f"{outcome.elapsed_seconds:.3f}s")

    console.print(Panel(table, title="ORDER PLACED", border_style="green"))
    _macos_notify(
        "Tickets ordered!",
        f"Order {outcome.order_ref}. Pay in the app before it expires.",
    )


def _display_cancelled(outcome: SnatchOutcome) -> None:
    table = _table()
    table.add_row("Attempts", str(outcome.attempts))
    table.add_row("Elapsed", f"{outcome.elapsed_seconds:.3f}s")
    console.print(Panel(table, title="SNATCH CANCELLED", border_style="yellow"))


def _display_failure(outcome: SnatchOutcome) -> None:
    table = _table()
    reason = outcome.reason.value if outcome.reason else "unknown"
    table.add_row("Reason", reason)
    if outcome.detail:
        table.add_row("Last error", outcome.detail)
    table.add_row("Attempts", str(outcome.attempts))
    table.add_row("Elapsed", f"{outcome.elapsed_seconds:.3f}s")

    console.print(Panel(table, title="SNATCH FAILED", border_style="red"))
    _macos_notify("Snatch failed", reason)


def _macos_notify(title: str, message: str) -> None:
    """Send a macOS notification via osascript."""
    if sys.platform != "darwin":
        return
    try:
        script = f'display notification "{message}" with title "{title}"'
        subprocess.run(
            ["osascript", "-e", script],
            capture_output=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        pass  # Non-critical
