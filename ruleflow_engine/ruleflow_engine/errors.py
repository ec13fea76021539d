"""Exception taxonomy for the Ruleflow engine.

Registry and pipeline-definition errors are raised while a run is being
constructed and are always surfaced to the caller before any check
executes.  Failures *inside* a check never raise out of the executor;
they are captured as ``error`` results instead.
"""

from __future__ import annotations


class RuleflowError(Exception):
    """Base class for all errors raised by the engine."""


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class RegistryError(RuleflowError):
    """Raised for invalid registry operations."""


class DuplicateCheckError(RegistryError):
    """Raised when a check id is registered twice."""

    def __init__(self, check_id: str) -> None:
        super().__init__(f"Check '{check_id}' is already registered.")
        self.check_id = check_id


class InvalidCheckError(RegistryError):
    """Raised when a check (or a declarative rule) is malformed."""


class UnknownCheckError(RegistryError):
    """Raised when a check id cannot be resolved."""

    def __init__(self, check_id: str) -> None:
        super().__init__(f"Check '{check_id}' is not registered.")
        self.check_id = check_id


class RegistryFrozenError(RegistryError):
    """Raised when registering into a registry that has been frozen."""


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class PipelineDefinitionError(RuleflowError):
    """Raised when a pipeline definition is malformed or cannot be loaded."""


class CheckCancelledError(RuleflowError):
    """Raised inside a predicate when the run's cancellation token fires."""


class CommandError(RuleflowError):
    """Raised when a command-backed check cannot launch its process."""


class CheckTimeoutError(RuleflowError):
    """Raised when a check or its autofix runs past its deadline.

    The executor records this as an ``error`` result with the message
    ``"timeout"``.
    """

    def __init__(self, timeout_seconds: float | None, detail: str = "") -> None:
        super().__init__(detail or f"timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds
