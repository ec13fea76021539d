"""Pure renderers from :class:`Report` to text formats.

None of these functions re-run checks or alter the report.
"""

from __future__ import annotations

import json
from typing import Any

from ruleflow_engine.checks.models import CheckResult, CheckStatus
from ruleflow_engine.report.models import Report

_STATUS_MARKERS: dict[CheckStatus, str] = {
    CheckStatus.PASS: "PASS",
    CheckStatus.FIXED: "FIXED",
    CheckStatus.FAIL: "FAIL",
    CheckStatus.ERROR: "ERROR",
    CheckStatus.SKIPPED: "SKIP",
}


def report_to_dict(report: Report) -> dict[str, Any]:
    """Return a JSON-compatible dict with sorted, stable keys."""
    data = report.model_dump(mode="json")
    data["exit_code"] = report.exit_code
    return data


def render_json(report: Report, *, indent: int | None = 2) -> str:
    return json.dumps(report_to_dict(report), indent=indent, sort_keys=True)


def _summary_line(report: Report) -> str:
    parts = [f"{report.count(status)} {status.value}" for status in CheckStatus if report.count(status)]
    return ", ".join(parts) or "no checks"


def _detail(result: CheckResult) -> str:
    message = result.message.replace("\n", " ").strip()
    return message or "-"


def render_text(report: Report) -> str:
    """Plain-text report grouped by stage."""
    lines = [
        f"Pipeline {report.pipeline or '(unnamed)'}: {report.overall_status.value.upper()}"
        f"  ({report.duration_ms}ms)",
        f"  {_summary_line(report)}",
    ]
    if report.aborted_stage:
        lines.append(f"  aborted after stage '{report.aborted_stage}'")
    if report.cancelled:
        lines.append("  run was cancelled")

    for stage, results in report.by_stage().items():
        lines.append("")
        lines.append(f"[{stage}]")
        for result in results:
            marker = _STATUS_MARKERS[result.status]
            lines.append(f"  {marker:<6} {result.check_id:<24} {result.severity.value:<8} {_detail(result)}")

    if report.self_heal_log:
        lines.append("")
        lines.append("Self-heal attempts:")
        for attempt in report.self_heal_log:
            outcome = "ok" if attempt.success else "failed"
            suffix = f" ({attempt.error})" if attempt.error else ""
            lines.append(f"  {attempt.check_id} #{attempt.attempt}: {outcome}{suffix}")

    return "\n".join(lines) + "\n"


def _md_escape(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def render_markdown(report: Report) -> str:
    """Markdown report suitable for a pull-request comment."""
    lines = [
        f"## Ruleflow: {report.pipeline or 'pipeline'} - **{report.overall_status.value.upper()}**",
        "",
        f"{_summary_line(report)} in {report.duration_ms}ms",
    ]
    if report.aborted_stage:
        lines.append("")
        lines.append(f"> Later stages skipped: stage `{report.aborted_stage}` failed.")
    if report.cancelled:
        lines.append("")
        lines.append("> Run was cancelled before completion.")

    lines.extend(
        [
            "",
            "| Stage | Check | Severity | Status | Message |",
            "|---|---|---|---|---|",
        ]
    )
    for result in report.results:
        lines.append(
            f"| {result.stage} | `{result.check_id}` | {result.severity.value} "
            f"| {_STATUS_MARKERS[result.status]} | {_md_escape(_detail(result))} |"
        )

    if report.self_heal_log:
        lines.extend(["", "### Self-heal", "", "| Check | Attempt | Result |", "|---|---|---|"])
        for attempt in report.self_heal_log:
            outcome = "fixed" if attempt.success else _md_escape(attempt.error or "still failing")
            lines.append(f"| `{attempt.check_id}` | {attempt.attempt} | {outcome} |")

    return "\n".join(lines) + "\n"


RENDERERS = {
    "json": render_json,
    "markdown": render_markdown,
    "text": render_text,
}
