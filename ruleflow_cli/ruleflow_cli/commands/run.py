"""``ruleflow run`` -- execute a pipeline against a project directory.

Loads the rule file and pipeline definition, builds an execution context
from the project directory and environment, runs every stage and prints
the report.  Human-readable output goes to stderr via Rich; JSON and
Markdown output go to stdout.

Exit codes: 0 pass, 1 warn, 2 fail, 3 error, 4 configuration error.
"""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from ruleflow_engine.cancellation import CancellationToken
from ruleflow_engine.checks.models import ExecutionContext
from ruleflow_engine.config import load_settings
from ruleflow_engine.errors import RuleflowError
from ruleflow_engine.git import GitClientError, get_changed_files
from ruleflow_engine.logging_config import configure_logging
from ruleflow_engine.pipeline.executor import PipelineExecutor
from ruleflow_engine.report.render import RENDERERS

from ruleflow_cli.project import (
    describe_settings,
    load_definition,
    load_registry,
    resolve_file,
    select_profile,
)

logger = logging.getLogger(__name__)

console = Console(stderr=True)

_FORMATS = ("text", "json", "markdown")


def run_command(
    project: Path = typer.Argument(
        Path("."),
        help="Project directory checks operate on.",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
    pipeline: Path | None = typer.Option(
        None,
        "--pipeline",
        "-p",
        help="Pipeline definition file (default: RULEFLOW_PIPELINE_FILE or ruleflow.yaml).",
    ),
    rules: Path | None = typer.Option(
        None,
        "--rules",
        "-r",
        help="Rule file (default: RULEFLOW_RULES_FILE or ruleflow.rules.yaml).",
    ),
    fix: bool = typer.Option(
        False,
        "--fix",
        help="Enable self-heal: run autofixes for failing checks and re-check.",
    ),
    quick: bool = typer.Option(False, "--quick", help="Run only the stages in the 'quick' profile."),
    full: bool = typer.Option(False, "--full", help="Run every stage (the 'full' profile)."),
    profile: str | None = typer.Option(None, "--profile", help="Run only the stages in this profile."),
    changed_only: bool = typer.Option(
        False,
        "--changed-only",
        help="Populate the changed-file list from git (diff against HEAD plus untracked files).",
    ),
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json, or markdown.",
    ),
    report_file: Path | None = typer.Option(
        None,
        "--report-file",
        help="Also write the JSON report to this path.",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Per-check timeout in seconds.",
    ),
    max_workers: int | None = typer.Option(
        None,
        "--max-workers",
        help="Maximum number of checks running concurrently in a parallel stage.",
    ),
    max_attempts: int | None = typer.Option(
        None,
        "--max-attempts",
        help="Maximum self-heal attempts per check.",
    ),
) -> None:
    """Run a check pipeline and report the verdict.

    Examples::

        ruleflow run .
        ruleflow run ./service --fix
        ruleflow run . --quick --changed-only
        ruleflow run . --format json --report-file report.json
    """
    # Import app-level globals from the parent module.
    from ruleflow_cli.app import CONFIG_ERROR_EXIT, _emit_metrics, _json_output, _settings_overrides

    if _json_output:
        output_format = "json"
    if output_format not in _FORMATS:
        console.print(f"[red]Invalid format '{output_format}'. Must be one of: {', '.join(_FORMATS)}.[/red]")
        raise typer.Exit(code=CONFIG_ERROR_EXIT)

    try:
        settings = load_settings(
            **_settings_overrides(
                check_timeout_seconds=timeout,
                max_parallel_checks=max_workers,
                max_heal_attempts=max_attempts,
                self_heal=True if fix else None,
            )
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid settings: {exc}[/red]")
        raise typer.Exit(code=CONFIG_ERROR_EXIT) from exc
    configure_logging(settings)

    selected = select_profile(quick, full, profile, console, CONFIG_ERROR_EXIT)
    registry = load_registry(console, resolve_file(project, rules, settings.rules_file), CONFIG_ERROR_EXIT)
    definition = load_definition(
        console,
        resolve_file(project, pipeline, settings.pipeline_file),
        CONFIG_ERROR_EXIT,
        profile=selected,
    )

    changed_files: list[str] = []
    if changed_only:
        try:
            changed_files = get_changed_files(project)
        except GitClientError as exc:
            console.print(f"[red]Cannot determine changed files: {exc}[/red]")
            raise typer.Exit(code=CONFIG_ERROR_EXIT) from exc

    context = ExecutionContext.from_environment(project, changed_files=changed_files)
    executor = PipelineExecutor(registry, settings)

    # Resolve every check id before anything runs.
    try:
        executor.plan(definition)
    except RuleflowError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=CONFIG_ERROR_EXIT) from exc

    token = CancellationToken()
    previous_handler = _install_interrupt_handler(token)
    try:
        report = executor.run_sync(definition, context, cancel_token=token)
    finally:
        _restore_interrupt_handler(previous_handler)

    _emit_metrics(
        "run_complete",
        {
            "run_id": report.run_id,
            "pipeline": report.pipeline,
            "overall_status": report.overall_status.value,
            "counts": report.counts,
            "self_heal_attempts": len(report.self_heal_log),
            "aborted_stage": report.aborted_stage,
            "cancelled": report.cancelled,
            "duration_ms": report.duration_ms,
            "profile": selected,
            "changed_files": len(changed_files),
            **describe_settings(settings),
        },
    )

    if report_file is not None:
        report_file.parent.mkdir(parents=True, exist_ok=True)
        report_file.write_text(RENDERERS["json"](report) + "\n", encoding="utf-8")

    if output_format == "text":
        from ruleflow_cli.display import display_report

        display_report(console, report)
    else:
        sys.stdout.write(RENDERERS[output_format](report).rstrip("\n") + "\n")

    if report.exit_code != 0:
        raise typer.Exit(code=report.exit_code)


def _install_interrupt_handler(token: CancellationToken):
    """Route Ctrl-C to the run's cancellation token.

    Returns the previous handler, or ``None`` when not on the main thread.
    """

    def _handler(signum, frame) -> None:  # noqa: ARG001
        console.print("[yellow]Interrupted: cancelling remaining checks...[/yellow]")
        token.cancel("interrupted")

    try:
        return signal.signal(signal.SIGINT, _handler)
    except ValueError:
        return None


def _restore_interrupt_handler(previous) -> None:
    if previous is not None:
        signal.signal(signal.SIGINT, previous)
