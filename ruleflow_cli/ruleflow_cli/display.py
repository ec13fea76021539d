"""Rich output formatting for the Ruleflow CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ruleflow_engine.checks.models import CheckStatus, OverallStatus

if TYPE_CHECKING:
    from ruleflow_engine.checks.models import Check
    from ruleflow_engine.pipeline.executor import PlannedStage
    from ruleflow_engine.report.models import Report


# ---------------------------------------------------------------------------
# Status colour mapping
# ---------------------------------------------------------------------------

_STATUS_COLOURS: dict[str, str] = {
    CheckStatus.PASS.value: "green",
    CheckStatus.FIXED.value: "cyan",
    CheckStatus.FAIL.value: "red",
    CheckStatus.ERROR.value: "bold red",
    CheckStatus.SKIPPED.value: "dim",
}

_OVERALL_COLOURS: dict[OverallStatus, str] = {
    OverallStatus.PASS: "green",
    OverallStatus.WARN: "yellow",
    OverallStatus.FAIL: "red",
    OverallStatus.ERROR: "bold red",
}

_SEVERITY_COLOURS: dict[str, str] = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "blue",
    "info": "dim",
}


def _coloured_status(status: str) -> str:
    """Return a Rich markup string with the status colour-coded."""
    colour = _STATUS_COLOURS.get(status, "white")
    return f"[{colour}]{status.upper()}[/{colour}]"


def _coloured_severity(severity: str) -> str:
    colour = _SEVERITY_COLOURS.get(severity, "white")
    return f"[{colour}]{severity}[/{colour}]"


# ---------------------------------------------------------------------------
# Run report
# ---------------------------------------------------------------------------


def display_report(console: Console, report: Report) -> None:
    """Render a run report: header panel, one table per stage, self-heal log.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    report:
        The report to display.  It is only read.
    """
    colour = _OVERALL_COLOURS[report.overall_status]
    counts = ", ".join(f"{report.count(s)} {s.value}" for s in CheckStatus if report.count(s))
    header_lines = [
        f"[bold]Pipeline:[/bold] {report.pipeline or '(unnamed)'}",
        f"[bold]Verdict:[/bold]  [{colour}]{report.overall_status.value.upper()}[/{colour}]",
        f"[bold]Checks:[/bold]   {counts or 'none'}",
        f"[bold]Duration:[/bold] {report.duration_ms}ms",
    ]
    if report.aborted_stage:
        header_lines.append(f"[yellow]Stages after '{report.aborted_stage}' were skipped.[/yellow]")
    if report.cancelled:
        header_lines.append("[yellow]Run was cancelled.[/yellow]")

    console.print(Panel("\n".join(header_lines), title="Ruleflow Report", border_style=colour))

    for stage, results in report.by_stage().items():
        table = Table(title=f"Stage: {stage}", show_lines=False, pad_edge=True, expand=False)
        table.add_column("Check", style="bold")
        table.add_column("Severity")
        table.add_column("Status", justify="center")
        table.add_column("Duration", justify="right")
        table.add_column("Message")

        for result in results:
            table.add_row(
                result.check_id,
                _coloured_severity(result.severity.value),
                _coloured_status(result.status.value),
                f"{result.duration_ms}ms",
                result.message or "-",
            )
        console.print(table)

    if report.self_heal_log:
        heal_table = Table(title="Self-Heal Attempts", show_lines=False, pad_edge=True, expand=False)
        heal_table.add_column("Check", style="bold")
        heal_table.add_column("#", justify="right")
        heal_table.add_column("Result")
        for attempt in report.self_heal_log:
            if attempt.success:
                outcome = "[green]fixed[/green]"
            elif attempt.error:
                outcome = f"[red]autofix error:[/red] {attempt.error}"
            else:
                outcome = "[yellow]still failing[/yellow]"
            heal_table.add_row(attempt.check_id, str(attempt.attempt), outcome)
        console.print(heal_table)


# ---------------------------------------------------------------------------
# Registry listing and plans
# ---------------------------------------------------------------------------


def display_check_list(console: Console, checks: Sequence[Check]) -> None:
    """Render registered checks as a table."""
    if not checks:
        console.print("[dim]No checks registered.[/dim]")
        return

    table = Table(title="Registered Checks", show_lines=False, pad_edge=True, expand=False)
    table.add_column("ID", style="bold")
    table.add_column("Stage")
    table.add_column("Severity")
    table.add_column("Autofix", justify="center")
    table.add_column("Description")

    for check in checks:
        table.add_row(
            check.id,
            check.stage,
            _coloured_severity(check.severity.value),
            "[green]yes[/green]" if check.fixable else "[dim]-[/dim]",
            check.description or "-",
        )
    console.print(table)
    console.print(f"[bold]{len(checks)}[/bold] check(s)")


def display_plan(console: Console, pipeline_name: str, planned: Sequence[PlannedStage]) -> None:
    """Render a resolved pipeline plan without running it."""
    table = Table(title=f"Pipeline: {pipeline_name}", show_lines=False, pad_edge=True, expand=False)
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("Stage", style="bold")
    table.add_column("Kind")
    table.add_column("Abort At")
    table.add_column("Checks")

    for idx, planned_stage in enumerate(planned, start=1):
        stage = planned_stage.stage
        kind_style = "cyan" if stage.kind.value == "parallel" else "magenta"
        abort = planned_stage.abort_severity.value
        if stage.continue_on_failure:
            abort += " (continue)"
        table.add_row(
            str(idx),
            stage.name,
            f"[{kind_style}]{stage.kind.value}[/{kind_style}]",
            abort,
            ", ".join(c.id for c in planned_stage.checks),
        )
    console.print(table)
