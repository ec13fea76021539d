"""``ruleflow validate`` and ``ruleflow list-checks`` -- inspect without running.

``validate`` loads the rule file and pipeline definition and resolves
every stage against the registry, exactly as ``run`` would before
executing anything.  ``list-checks`` prints the registry contents.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import typer
from rich.console import Console

from ruleflow_engine.config import load_settings
from ruleflow_engine.errors import RuleflowError
from ruleflow_engine.pipeline.executor import PipelineExecutor

from ruleflow_cli.project import load_definition, load_registry, resolve_file, select_profile

console = Console(stderr=True)


def validate_command(
    project: Path = typer.Argument(
        Path("."),
        help="Project directory containing the pipeline and rule files.",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
    pipeline: Path | None = typer.Option(None, "--pipeline", "-p", help="Pipeline definition file."),
    rules: Path | None = typer.Option(None, "--rules", "-r", help="Rule file."),
    quick: bool = typer.Option(False, "--quick", help="Validate the 'quick' profile."),
    full: bool = typer.Option(False, "--full", help="Validate every stage."),
    profile: str | None = typer.Option(None, "--profile", help="Validate this profile."),
) -> None:
    """Check that the pipeline and rule files load and every check id resolves."""
    from ruleflow_cli.app import CONFIG_ERROR_EXIT, _json_output, _settings_overrides

    settings = load_settings(**_settings_overrides())
    selected = select_profile(quick, full, profile, console, CONFIG_ERROR_EXIT)
    registry = load_registry(console, resolve_file(project, rules, settings.rules_file), CONFIG_ERROR_EXIT)
    definition = load_definition(
        console,
        resolve_file(project, pipeline, settings.pipeline_file),
        CONFIG_ERROR_EXIT,
        profile=selected,
    )

    try:
        planned = PipelineExecutor(registry, settings).plan(definition)
    except RuleflowError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=CONFIG_ERROR_EXIT) from exc

    if _json_output:
        output = {
            "pipeline": definition.name,
            "stages": [
                {
                    "name": p.stage.name,
                    "kind": p.stage.kind.value,
                    "abort_severity": p.abort_severity.value,
                    "continue_on_failure": p.stage.continue_on_failure,
                    "checks": [c.id for c in p.checks],
                }
                for p in planned
            ],
        }
        sys.stdout.write(json.dumps(output, indent=2, sort_keys=True) + "\n")
        return

    from ruleflow_cli.display import display_plan

    display_plan(console, definition.name, planned)
    total = sum(len(p.checks) for p in planned)
    console.print(f"[green]Pipeline is valid:[/green] {len(planned)} stage(s), {total} check(s)")


def list_checks_command(
    project: Path = typer.Argument(
        Path("."),
        help="Project directory containing the rule file.",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
    rules: Path | None = typer.Option(None, "--rules", "-r", help="Rule file."),
    stage: str | None = typer.Option(None, "--stage", help="Only list checks declared for this stage."),
) -> None:
    """List the checks defined by the rule file."""
    from ruleflow_cli.app import CONFIG_ERROR_EXIT, _json_output, _settings_overrides

    settings = load_settings(**_settings_overrides())
    registry = load_registry(console, resolve_file(project, rules, settings.rules_file), CONFIG_ERROR_EXIT)
    checks = registry.list_by_stage(stage) if stage is not None else registry.get_all()

    if _json_output:
        output = [
            {
                "id": c.id,
                "stage": c.stage,
                "severity": c.severity.value,
                "fixable": c.fixable,
                "description": c.description,
                "tags": list(c.tags),
            }
            for c in checks
        ]
        sys.stdout.write(json.dumps(output, indent=2, sort_keys=True) + "\n")
        return

    from ruleflow_cli.display import display_check_list

    display_check_list(console, checks)
