"""Ruleflow engine -- configurable rule pipeline evaluator.

Quick start::

    from ruleflow_engine import (
        CheckRegistry, ExecutionContext, PipelineDefinition, PipelineExecutor,
    )

    registry = CheckRegistry()

    @registry.check("lint", stage="static", severity="medium")
    def lint(context):
        ...

    definition = PipelineDefinition.build(
        {"stages": [{"name": "static", "kind": "parallel", "checks": ["lint"]}]}
    )
    report = PipelineExecutor(registry).run_sync(definition, ExecutionContext.from_environment())
    print(report.overall_status)
"""

from ruleflow_engine.cancellation import CancellationToken
from ruleflow_engine.checks import (
    BaseCheck,
    Check,
    CheckOutcome,
    CheckRegistry,
    CheckResult,
    CheckStatus,
    ExecutionContext,
    OverallStatus,
    SelfHealAttempt,
    Severity,
    load_rules,
)
from ruleflow_engine.config import Settings, load_settings
from ruleflow_engine.errors import (
    CheckCancelledError,
    CheckTimeoutError,
    DuplicateCheckError,
    InvalidCheckError,
    PipelineDefinitionError,
    RegistryFrozenError,
    RuleflowError,
    UnknownCheckError,
)
from ruleflow_engine.pipeline import (
    PipelineDefinition,
    PipelineExecutor,
    StageDefinition,
    StageKind,
    load_pipeline,
)
from ruleflow_engine.report import Report, ReportAggregator

__version__ = "0.1.0"

__all__ = [
    "BaseCheck",
    "CancellationToken",
    "Check",
    "CheckCancelledError",
    "CheckTimeoutError",
    "CheckOutcome",
    "CheckRegistry",
    "CheckResult",
    "CheckStatus",
    "DuplicateCheckError",
    "ExecutionContext",
    "InvalidCheckError",
    "OverallStatus",
    "PipelineDefinition",
    "PipelineDefinitionError",
    "PipelineExecutor",
    "RegistryFrozenError",
    "Report",
    "ReportAggregator",
    "RuleflowError",
    "SelfHealAttempt",
    "Settings",
    "Severity",
    "StageDefinition",
    "StageKind",
    "UnknownCheckError",
    "load_pipeline",
    "load_rules",
    "load_settings",
]
