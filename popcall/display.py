"""Rich terminal output for popcall."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table
from rich.text import Text

from popcall.config import LATENCY_THRESHOLDS
from popcall.models import ProbeResult

console = Console()


def _color_for_ms(value: float) -> str:
    """Return a Rich color name based on latency thresholds."""
    if value <= LATENCY_THRESHOLDS["fast"]:
        return "green"
    elif value <= LATENCY_THRESHOLDS["medium"]:
        return "yellow"
    return "red"


def _fmt_latency(result: ProbeResult) -> Text:
    if not result.is_reachable:
        return Text("unreachable", style="red")
    return Text(f"{result.latency_ms}ms", style=_color_for_ms(result.latency_ms))


# ── Probe results ─────────────────────────────────────────────────────


def render_results(results: list[ProbeResult], best: ProbeResult) -> None:
    """Render probe results sorted by latency, marking the selected POP."""
    if not results:
        console.print("[dim]No POPs probed.[/dim]")
    else:
        ranked = sorted(
            enumerate(results),
            key=lambda item: (not item[1].is_reachable, item[1].latency_ms, item[0]),
        )

        table = Table(
            show_header=True,
            border_style="bright_black",
            expand=False,
            header_style="bold",
            title="[bold]POP Latency[/bold] [dim](sorted by latency)[/dim]",
            title_style="",
        )
        table.add_column("#", justify="right", width=3, style="dim")
        table.add_column("POP", style="bold", min_width=6)
        table.add_column("Latency", justify="right")
        table.add_column("", min_width=8)

        selected = False
        for rank, (_, result) in enumerate(ranked, 1):
            marker = ""
            if not selected and result == best:
                marker = "[green]selected[/green]"
                selected = True
            table.add_row(str(rank), result.name, _fmt_latency(result), marker)

        console.print()
        console.print(table)
        console.print()

    if best.is_reachable:
        console.print(f"[bold]Best POP:[/bold] [green]{best.name}[/green] ({best.latency_ms}ms)")
    else:
        render_warning(f"No POP reachable, falling back to {best.name}")


def render_support(supported: bool) -> None:
    if supported:
        console.print("[green]Supported[/green]")
    else:
        console.print("[red]Not supported[/red]")


def render_error(message: str) -> None:
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")
