"""Abstract base class for class-based check implementations.

Plain functions registered through :meth:`CheckRegistry.check` cover most
cases.  Checks that carry configuration or share helpers between the
predicate and the fix can subclass :class:`BaseCheck` instead and
register :meth:`BaseCheck.as_check`.
"""

from __future__ import annotations

import abc
from typing import Any

from ruleflow_engine.checks.models import Check, CheckOutcome, CheckResult, ExecutionContext, Severity


class BaseCheck(abc.ABC):
    """Abstract base for class-based checks.

    Subclasses set :attr:`check_id` (and usually :attr:`stage` and
    :attr:`severity`) and implement :meth:`evaluate`.  Overriding
    :meth:`fix` makes the check self-healable.  Implementations should be
    stateless; all required data is passed via the
    :class:`ExecutionContext`.
    """

    check_id: str = ""
    stage: str = "default"
    severity: Severity = Severity.MEDIUM
    description: str = ""

    @abc.abstractmethod
    def evaluate(self, context: ExecutionContext) -> CheckOutcome | bool | None:
        """Evaluate the check against *context*.

        May be declared ``async``.
        """

    def fix(self, context: ExecutionContext, result: CheckResult) -> Any:
        """Attempt to repair the condition reported by *result*."""
        raise NotImplementedError

    @property
    def fixable(self) -> bool:
        return type(self).fix is not BaseCheck.fix

    def as_check(self) -> Check:
        """Return the :class:`Check` definition for this implementation."""
        return Check(
            id=self.check_id or type(self).__name__,
            stage=self.stage,
            severity=self.severity,
            predicate=self.evaluate,
            autofix=self.fix if self.fixable else None,
            description=self.description or (type(self).__doc__ or "").strip().split("\n")[0],
        )
