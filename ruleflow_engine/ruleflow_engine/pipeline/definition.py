"""Pipeline definition models.

A pipeline is an ordered list of stages.  Each stage is either
``parallel`` (members run concurrently and independently) or
``sequential`` (members run in listed order, halting on a blocking
failure unless ``continue_on_failure`` is set).  Definitions are
validated on construction so malformed pipelines never reach the
executor.
"""

from __future__ import annotations

from collections import Counter
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ruleflow_engine.checks.models import Severity
from ruleflow_engine.errors import PipelineDefinitionError


class StageKind(str, Enum):
    """Concurrency mode of a stage."""

    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


class StageDefinition(BaseModel):
    """A named group of checks with a declared concurrency mode."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Unique stage name.")
    kind: StageKind = Field(default=StageKind.PARALLEL, description="parallel or sequential.")
    checks: tuple[str, ...] | None = Field(
        default=None,
        description="Ordered check ids.  When omitted the stage is populated from the registry by stage name.",
    )
    abort_severity: Severity | None = Field(
        default=None,
        description="Failures at or above this severity halt the stage and trip the pipeline abort policy.  "
        "Unset stages use the configured default_abort_severity.",
    )
    continue_on_failure: bool = Field(
        default=False,
        description="Keep running later members of a sequential stage after a blocking failure.",
    )
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Per-check timeout override for this stage.",
    )

    @field_validator("checks")
    @classmethod
    def _non_empty(cls, v: tuple[str, ...] | None) -> tuple[str, ...] | None:
        if v is None:
            return v
        if not v:
            raise ValueError("stage must list at least one check")
        if any(not c or not c.strip() for c in v):
            raise ValueError("check ids must be non-empty strings")
        duplicates = sorted(c for c, n in Counter(v).items() if n > 1)
        if duplicates:
            raise ValueError(f"check ids listed more than once: {', '.join(duplicates)}")
        return v


class PipelineDefinition(BaseModel):
    """Ordered stages plus the pipeline-level abort policy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="pipeline", description="Display name of the pipeline.")
    stages: tuple[StageDefinition, ...] = Field(..., description="Stages in execution order.")
    abort_on_stage_failure: bool = Field(
        default=True,
        description="Skip every later stage once a stage produces a blocking failure.",
    )
    profiles: dict[str, tuple[str, ...]] = Field(
        default_factory=dict,
        description="Named subsets of stages, e.g. quick / full.",
    )

    @model_validator(mode="after")
    def _validate_structure(self) -> PipelineDefinition:
        if not self.stages:
            raise ValueError("pipeline must define at least one stage")

        names = [s.name for s in self.stages]
        duplicates = sorted(n for n, count in Counter(names).items() if count > 1)
        if duplicates:
            raise ValueError(f"stage names must be unique: {', '.join(duplicates)}")

        seen: dict[str, str] = {}
        for stage in self.stages:
            for check_id in stage.checks or ():
                if check_id in seen:
                    raise ValueError(
                        f"check {check_id!r} appears in both stage {seen[check_id]!r} and stage {stage.name!r}"
                    )
                seen[check_id] = stage.name

        known = set(names)
        for profile, stage_names in self.profiles.items():
            if not stage_names:
                raise ValueError(f"profile {profile!r} selects no stages")
            unknown = [s for s in stage_names if s not in known]
            if unknown:
                raise ValueError(f"profile {profile!r} references unknown stage(s): {', '.join(unknown)}")
        return self

    @classmethod
    def build(cls, data: dict) -> PipelineDefinition:
        """Validate raw *data*, converting validation errors to :class:`PipelineDefinitionError`."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise PipelineDefinitionError(f"Invalid pipeline definition: {exc}") from exc

    def stage(self, name: str) -> StageDefinition:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise PipelineDefinitionError(f"Unknown stage {name!r}")

    def select(self, profile: str) -> PipelineDefinition:
        """Return a definition restricted to the stages named by *profile*.

        The ``full`` profile is implicit and returns the definition unchanged
        unless explicitly declared.  Stage order is preserved.
        """
        if profile not in self.profiles:
            if profile == "full":
                return self
            available = ", ".join(sorted(self.profiles)) or "(none)"
            raise PipelineDefinitionError(f"Unknown profile {profile!r}; available: {available}")
        wanted = set(self.profiles[profile])
        return self.model_copy(
            update={
                "stages": tuple(s for s in self.stages if s.name in wanted),
                "profiles": {},
            }
        )

    def declared_check_ids(self) -> list[str]:
        """Explicitly listed check ids, in stage then declaration order."""
        return [c for s in self.stages for c in (s.checks or ())]
