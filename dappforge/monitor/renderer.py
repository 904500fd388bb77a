"""Rich terminal renderer for resource reports and run summaries.

Color scheme
------------
- green     : PASSED
- red       : FAILED
- yellow    : RUNNING
- dim       : NOT_STARTED / SKIPPED
- bold red  : BLOCKED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dappforge.core.packager import human_size
from dappforge.models.reports import ResourceReport, RunSummary
from dappforge.models.stages import StageState

# ---------------------------------------------------------------------------
# State -> Rich markup
# ---------------------------------------------------------------------------

_STATE_ICONS: dict[StageState, str] = {
    StageState.PASSED: "[green]PASSED[/green]",
    StageState.FAILED: "[bold red]FAILED[/bold red]",
    StageState.RUNNING: "[yellow]RUNNING[/yellow]",
    StageState.NOT_STARTED: "[dim]NOT STARTED[/dim]",
    StageState.BLOCKED: "[bold red]BLOCKED[/bold red]",
    StageState.SKIPPED: "[dim]SKIPPED[/dim]",
}


def _mb(value: int | None) -> str:
    return f"{value}MB" if value is not None else "unknown"


class MonitorRenderer:
    """Renders reports as Rich renderables.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Resource report
    # ------------------------------------------------------------------

    def render_resources(self, report: ResourceReport) -> Panel:
        mem_style = "bold red" if report.is_low_memory else "green"
        disk_style = "bold red" if report.is_low_disk else "green"
        lines = [
            f"[bold]Available memory:[/bold] [{mem_style}]{_mb(report.available_memory_mb)}"
            f"[/{mem_style}] (warn below {report.low_memory_mb}MB)",
            f"[bold]Available disk:[/bold]   [{disk_style}]{_mb(report.available_disk_mb)}"
            f"[/{disk_style}] (warn below {report.low_disk_mb}MB)",
        ]
        for warning in report.warnings:
            lines.append(f"[yellow]WARNING:[/yellow] {warning}")
        border = "yellow" if report.warnings else "green"
        return Panel(
            Text.from_markup("\n".join(lines)),
            title="[bold]Resources[/bold]",
            border_style=border,
        )

    def print_resources(self, report: ResourceReport) -> None:
        self.console.print(self.render_resources(report))

    # ------------------------------------------------------------------
    # Run summary
    # ------------------------------------------------------------------

    def render_summary(self, summary: RunSummary) -> Panel:
        table = Table(show_header=True, header_style="bold", expand=True)
        table.add_column("Stage", style="cyan", no_wrap=True)
        table.add_column("State", justify="center")
        table.add_column("Files", justify="right")
        table.add_column("Time", justify="right")

        for result in summary.results:
            table.add_row(
                result.stage_id,
                _STATE_ICONS.get(result.state, result.state.value),
                str(len(result.installed_files)),
                f"{result.elapsed_seconds:.1f}s",
            )

        footer: list[str] = []
        if summary.package is not None:
            pkg = summary.package
            footer.append(
                f"[bold]Package:[/bold] {escape(str(pkg.archive_path))} "
                f"({human_size(pkg.size_bytes)}, {pkg.member_count} entries)"
            )
            if pkg.strip_failures:
                footer.append(
                    f"[yellow]strip failed for {len(pkg.strip_failures)} file(s)[/yellow]"
                )
        if summary.log_path is not None:
            footer.append(f"[dim]Log: {escape(str(summary.log_path))}[/dim]")

        content = Group(table, Text(""), Text.from_markup("\n".join(footer)))
        return Panel(
            content,
            title=f"[bold]dappforge[/bold] {' '.join(summary.tokens) or 'all'}",
            border_style="green" if summary.succeeded else "red",
        )

    def print_summary(self, summary: RunSummary) -> None:
        self.console.print(self.render_summary(summary))
