"""Data models for the Ruleflow check engine.

Defines the core enums and Pydantic models shared by the registry,
executor and aggregator: severities, statuses, check definitions,
per-check results, self-heal records and the execution context.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Mapping
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ruleflow_engine.cancellation import CancellationToken


class Severity(str, Enum):
    """How critical a check failure is."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Ordinal rank; higher is more severe."""
        return _SEVERITY_RANK[self]

    def at_least(self, other: Severity) -> bool:
        return self.rank >= other.rank


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class CheckStatus(str, Enum):
    """Outcome of a single check execution."""

    PASS = "pass"
    FAIL = "fail"
    FIXED = "fixed"
    SKIPPED = "skipped"
    ERROR = "error"


class OverallStatus(str, Enum):
    """Verdict for a whole pipeline run."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    ERROR = "error"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES: dict[OverallStatus, int] = {
    OverallStatus.PASS: 0,
    OverallStatus.WARN: 1,
    OverallStatus.FAIL: 2,
    OverallStatus.ERROR: 3,
}


Predicate = Callable[..., Any]
Autofix = Callable[..., Any]


class Check(BaseModel):
    """A named, idempotent unit of evaluation.

    ``predicate`` receives the :class:`ExecutionContext` and returns a
    :class:`CheckOutcome`, a ``bool`` or ``None`` (pass).  It may be a
    plain function or a coroutine function.  ``autofix`` receives the
    context and the failing :class:`CheckResult`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(..., description="Unique check identifier.")
    stage: str = Field(default="default", description="Stage the check belongs to by default.")
    severity: Severity = Field(default=Severity.MEDIUM, description="Severity applied when the check fails.")
    predicate: Predicate | None = Field(default=None, description="Callable evaluating the check.")
    autofix: Autofix | None = Field(default=None, description="Optional callable repairing a failure.")
    description: str = Field(default="", description="Human-readable summary of what is checked.")
    tags: tuple[str, ...] = Field(default=(), description="Free-form labels used for filtering.")

    @property
    def fixable(self) -> bool:
        return self.autofix is not None


class CheckOutcome(BaseModel):
    """Value returned by a predicate."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    message: str = ""
    evidence: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, message: str = "", **evidence: Any) -> CheckOutcome:
        return cls(passed=True, message=message, evidence=evidence)

    @classmethod
    def failed(cls, message: str = "", **evidence: Any) -> CheckOutcome:
        return cls(passed=False, message=message, evidence=evidence)


class CheckResult(BaseModel):
    """The outcome of running one check.  Immutable once created."""

    model_config = ConfigDict(frozen=True)

    check_id: str = Field(..., description="Identifier of the check that produced this result.")
    stage: str = Field(..., description="Pipeline stage the check ran in.")
    severity: Severity = Field(default=Severity.MEDIUM, description="Severity of the check.")
    status: CheckStatus = Field(..., description="Outcome of the check execution.")
    message: str = Field(default="", description="Human-readable description of the result.")
    evidence: dict[str, Any] = Field(default_factory=dict, description="Structured payload from the predicate.")
    duration_ms: int = Field(default=0, description="Execution time in milliseconds.")
    attempts: int = Field(default=0, description="Number of predicate evaluations.")

    @property
    def is_failure(self) -> bool:
        return self.status in (CheckStatus.FAIL, CheckStatus.ERROR)

    def is_blocking(self, threshold: Severity) -> bool:
        """Return True if this result trips an abort policy at *threshold*.

        ``error`` always counts as critical since the check could not be
        evaluated at all.
        """
        if self.status == CheckStatus.ERROR:
            return Severity.CRITICAL.at_least(threshold)
        return self.status == CheckStatus.FAIL and self.severity.at_least(threshold)


class SelfHealAttempt(BaseModel):
    """One autofix-then-re-evaluate cycle for a failing check."""

    model_config = ConfigDict(frozen=True)

    check_id: str
    attempt: int = Field(..., ge=1, description="1-based attempt number within the run.")
    before: dict[str, Any] = Field(default_factory=dict, description="Message and evidence before the fix.")
    after: dict[str, Any] = Field(default_factory=dict, description="Message and evidence after re-evaluation.")
    success: bool = False
    error: str | None = Field(default=None, description="Exception text if the autofix itself raised.")


def _freeze_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


class ExecutionContext(BaseModel):
    """Immutable snapshot handed to every check.

    The executor derives a fresh context per stage carrying the results
    recorded so far; checks only ever see read-only views.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    working_dir: Path = Field(default_factory=Path.cwd, description="Directory checks operate on.")
    changed_files: tuple[str, ...] = Field(default=(), description="Paths changed in the working tree.")
    env: Mapping[str, str] = Field(default_factory=dict, description="Environment variables visible to checks.")
    prior_results: Mapping[str, CheckResult] = Field(
        default_factory=dict,
        description="Results of checks completed earlier in the run, keyed by id.",
    )
    extras: Mapping[str, Any] = Field(
        default_factory=dict,
        description="Host-supplied configuration passed through untouched.",
    )
    cancel_token: CancellationToken | None = Field(default=None, exclude=True)

    @field_validator("env", "prior_results", "extras", mode="after")
    @classmethod
    def _read_only(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze_mapping(v)

    @classmethod
    def from_environment(
        cls,
        working_dir: Path | None = None,
        *,
        changed_files: list[str] | tuple[str, ...] = (),
        env: Mapping[str, str] | None = None,
        extras: Mapping[str, Any] | None = None,
    ) -> ExecutionContext:
        """Build a context from the current process environment."""
        return cls(
            working_dir=(working_dir or Path.cwd()).resolve(),
            changed_files=tuple(sorted(changed_files)),
            env=dict(os.environ) if env is None else dict(env),
            extras=dict(extras or {}),
        )

    def with_prior_results(self, results: Mapping[str, CheckResult]) -> ExecutionContext:
        """Return a copy carrying *results* as the read-only prior results."""
        return self.model_copy(update={"prior_results": _freeze_mapping(results)})

    def with_cancel_token(self, token: CancellationToken) -> ExecutionContext:
        return self.model_copy(update={"cancel_token": token})

    def resolve_path(self, path: str | Path) -> Path:
        """Resolve *path* relative to the working directory."""
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.working_dir / candidate


class Timer:
    """Simple monotonic timer for measuring check execution duration."""

    def __init__(self) -> None:
        self._start: float = 0.0

    def start(self) -> None:
        self._start = time.monotonic()

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

