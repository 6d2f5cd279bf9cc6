"""Rich terminal output for ispedge."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ispedge.addresses import classify
from ispedge.config import UNKNOWN
from ispedge.export import hint_for, summary_rows
from ispedge.models import ResolutionResult, TargetReport

console = Console()
err_console = Console(stderr=True)


def _fmt_rtt(value: Optional[float]) -> Text:
    if value is None:
        return Text("*", style="dim")
    return Text(f"{value:.1f}ms")


def _label_style(label: str) -> str:
    if label == "public":
        return "green"
    if label == "unknown":
        return "dim"
    return "yellow"


# ── Summary ───────────────────────────────────────────────────────────


def render_summary(result: ResolutionResult) -> None:
    """Gateway / provider key-value table."""
    table = Table(show_header=False, border_style="dim", expand=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for label, value in summary_rows(result):
        style = "dim" if value == UNKNOWN else ""
        table.add_row(label, Text(value, style=style))
    console.print(table)

    if result.error:
        render_warning(result.error)
    hint = hint_for(result)
    if hint:
        console.print(f"[dim]Hint: {hint}[/dim]")


# ── Verbose details ───────────────────────────────────────────────────


def render_hops(report: TargetReport) -> None:
    """Hop table for one target with the gateway and provider marked."""
    title = f"{report.target}"
    if report.hops.source:
        title += f" via {report.hops.source} ({report.hops.vantage})"
    table = Table(title=title, show_header=True, border_style="dim", title_justify="left")
    table.add_column("#", justify="right", style="dim")
    table.add_column("IP")
    table.add_column("Class")
    table.add_column("RTT", justify="right")
    table.add_column("")

    edge = report.edge
    gateway = edge.gateway if edge else None
    provider = edge.provider if edge else None

    for i, hop in enumerate(report.hops, 1):
        if hop.is_timeout:
            table.add_row(str(i), Text("*", style="dim"), "", _fmt_rtt(None), "")
            continue
        label = classify(hop.ip)
        mark = ""
        if provider is not None and hop is provider:
            mark = "[bold cyan]provider[/bold cyan]"
        elif gateway is not None and hop is gateway:
            mark = "[bold]gateway[/bold]"
        table.add_row(str(i), hop.ip, Text(label, style=_label_style(label)), _fmt_rtt(hop.rtt_ms), mark)

    console.print(table)
    if report.error:
        console.print(f"[dim]  {report.target}: {report.error}[/dim]")


def render_attempts(result: ResolutionResult) -> None:
    """Every strategy tried, in order."""
    if not result.diagnostics:
        return
    table = Table(title="Trace attempts", show_header=True, border_style="dim", title_justify="left")
    table.add_column("Target")
    table.add_column("Strategy")
    table.add_column("OK", justify="center")
    table.add_column("Hops", justify="right")
    table.add_column("Note")

    for attempt in result.diagnostics:
        ok = Text("yes", style="green") if attempt.ok else Text("no", style="red")
        table.add_row(
            attempt.target,
            attempt.strategy,
            ok,
            str(attempt.hop_count),
            attempt.note or "",
        )
    console.print(table)


def render_result(result: ResolutionResult, verbose: bool = False) -> None:
    """Render the complete result to the terminal."""
    if verbose:
        for report in result.traces:
            render_hops(report)
            console.print()
        render_attempts(result)
        console.print()
    render_summary(result)


# ── Messages ──────────────────────────────────────────────────────────


def render_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")
