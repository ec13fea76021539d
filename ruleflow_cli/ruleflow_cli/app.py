"""Ruleflow CLI application -- Typer-based developer interface.

Provides commands for running a rule pipeline, validating pipeline and
rule files, and listing registered checks.  Human-readable output goes to
*stderr* via Rich; machine-readable reports (JSON, Markdown) go to stdout
or to files on disk so that pipelines can compose cleanly.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="ruleflow",
    help="Ruleflow - staged check pipelines with self-healing.",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Exit code for malformed pipelines, rule files and settings.
CONFIG_ERROR_EXIT = 4

# Register the run, validate, and list-checks commands.
from ruleflow_cli.commands.inspect import list_checks_command, validate_command  # noqa: E402
from ruleflow_cli.commands.run import run_command  # noqa: E402

app.command(name="run")(run_command)
app.command(name="validate")(validate_command)
app.command(name="list-checks")(list_checks_command)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_metrics_file: Path | None = None
_log_level: str | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    metrics_file: Path | None = typer.Option(
        None,
        "--metrics-file",
        help="Write metrics events to this file (JSONL).",
        envvar="RULEFLOW_METRICS_FILE",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Override RULEFLOW_LOG_LEVEL (DEBUG, INFO, WARNING, ...).",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _metrics_file, _log_level  # noqa: PLW0603
    _json_output = json_mode
    _metrics_file = metrics_file
    _log_level = log_level


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_metrics(event: str, data: dict[str, Any]) -> None:
    """Append a timestamped metrics event to the metrics file, if configured.

    Failures are swallowed: metrics emission must never break the main
    command execution.
    """
    if _metrics_file is None:
        return
    record = {
        "event": event,
        "timestamp": datetime.now(UTC).isoformat(),
        "data": data,
    }
    try:
        with _metrics_file.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, sort_keys=True, default=str) + "\n")
    except OSError:
        # Read-only filesystem, disk full, permission denied, etc.
        pass


def _settings_overrides(**values: Any) -> dict[str, Any]:
    """Drop unset CLI options so environment settings still apply."""
    overrides = {k: v for k, v in values.items() if v is not None}
    if _log_level is not None:
        overrides["log_level"] = _log_level
    return overrides
