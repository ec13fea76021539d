"""Locate and load a project's rule file and pipeline definition."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console

from ruleflow_engine.checks.loader import load_rules
from ruleflow_engine.checks.registry import CheckRegistry
from ruleflow_engine.config import Settings
from ruleflow_engine.errors import RuleflowError
from ruleflow_engine.pipeline.definition import PipelineDefinition
from ruleflow_engine.pipeline.loader import load_pipeline

logger = logging.getLogger(__name__)


def resolve_file(project: Path, explicit: Path | None, default: Path) -> Path:
    """Return *explicit* if given, else *default* relative to *project*."""
    if explicit is not None:
        return explicit
    return default if default.is_absolute() else project / default


def load_registry(console: Console, rules_path: Path, exit_code: int) -> CheckRegistry:
    """Load the rule file, printing a readable error and exiting on failure."""
    if not rules_path.is_file():
        console.print(f"[red]Rule file not found: {rules_path}[/red]")
        raise typer.Exit(code=exit_code)
    try:
        return load_rules(rules_path)
    except RuleflowError as exc:
        console.print(f"[red]Invalid rule file {rules_path}: {exc}[/red]")
        raise typer.Exit(code=exit_code) from exc


def load_definition(
    console: Console,
    pipeline_path: Path,
    exit_code: int,
    *,
    profile: str | None = None,
) -> PipelineDefinition:
    """Load the pipeline definition and apply *profile*, exiting on failure."""
    if not pipeline_path.is_file():
        console.print(f"[red]Pipeline file not found: {pipeline_path}[/red]")
        raise typer.Exit(code=exit_code)
    try:
        definition = load_pipeline(pipeline_path)
        if profile is not None:
            definition = definition.select(profile)
    except RuleflowError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=exit_code) from exc
    return definition


def select_profile(quick: bool, full: bool, profile: str | None, console: Console, exit_code: int) -> str | None:
    """Collapse ``--quick`` / ``--full`` / ``--profile`` into one profile name."""
    chosen = [name for name, flag in (("quick", quick), ("full", full)) if flag]
    if profile is not None:
        chosen.append(profile)
    if len(chosen) > 1:
        console.print("[red]--quick, --full and --profile are mutually exclusive.[/red]")
        raise typer.Exit(code=exit_code)
    return chosen[0] if chosen else None


def describe_settings(settings: Settings) -> dict[str, object]:
    return {
        "max_parallel_checks": settings.max_parallel_checks,
        "check_timeout_seconds": settings.check_timeout_seconds,
        "self_heal": settings.self_heal,
        "max_heal_attempts": settings.max_heal_attempts,
    }
