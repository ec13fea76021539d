"""Report aggregation and rendering."""

from ruleflow_engine.report.aggregator import ReportAggregator, compute_overall_status
from ruleflow_engine.report.models import Report
from ruleflow_engine.report.render import RENDERERS, render_json, render_markdown, render_text

__all__ = [
    "RENDERERS",
    "Report",
    "ReportAggregator",
    "compute_overall_status",
    "render_json",
    "render_markdown",
    "render_text",
]
