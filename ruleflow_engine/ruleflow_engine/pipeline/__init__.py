"""Pipeline definitions, loading, cancellation and execution."""

from ruleflow_engine.cancellation import CancellationToken, CommandResult, run_command
from ruleflow_engine.pipeline.definition import PipelineDefinition, StageDefinition, StageKind
from ruleflow_engine.pipeline.executor import PipelineExecutor, PlannedStage
from ruleflow_engine.pipeline.loader import load_pipeline

__all__ = [
    "CancellationToken",
    "CommandResult",
    "PipelineDefinition",
    "PipelineExecutor",
    "PlannedStage",
    "StageDefinition",
    "StageKind",
    "load_pipeline",
    "run_command",
]
