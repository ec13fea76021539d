"""The immutable report produced at the end of a pipeline run."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ruleflow_engine.checks.models import CheckResult, CheckStatus, OverallStatus, SelfHealAttempt


class Report(BaseModel):
    """All check outcomes for one run plus the computed verdict.

    A report is never mutated after creation; re-running the pipeline
    produces a new report.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(..., description="Unique identifier of the run.")
    pipeline: str = Field(default="", description="Name of the pipeline definition.")
    overall_status: OverallStatus = Field(..., description="Worst outcome across all results.")
    results: tuple[CheckResult, ...] = Field(default=(), description="Per-check results in declaration order.")
    self_heal_log: tuple[SelfHealAttempt, ...] = Field(default=(), description="Every autofix attempt.")
    counts: dict[str, int] = Field(default_factory=dict, description="Number of results per status.")
    blocking_failures: int = Field(default=0, description="FAIL results with severity CRITICAL or HIGH.")
    aborted_stage: str | None = Field(default=None, description="Stage whose failure skipped later stages.")
    cancelled: bool = Field(default=False, description="True if the run was cancelled before completion.")
    started_at: datetime | None = Field(default=None, description="UTC start time of the run.")
    duration_ms: int = Field(default=0, description="Total execution time in milliseconds.")

    @property
    def exit_code(self) -> int:
        return self.overall_status.exit_code

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> bool:
        return self.overall_status == OverallStatus.PASS

    def count(self, status: CheckStatus) -> int:
        return self.counts.get(status.value, 0)

    def result_for(self, check_id: str) -> CheckResult:
        for result in self.results:
            if result.check_id == check_id:
                return result
        raise KeyError(check_id)

    def by_stage(self) -> dict[str, list[CheckResult]]:
        """Group results by stage, preserving order."""
        grouped: dict[str, list[CheckResult]] = {}
        for result in self.results:
            grouped.setdefault(result.stage, []).append(result)
        return grouped
