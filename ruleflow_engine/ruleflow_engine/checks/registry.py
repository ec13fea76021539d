"""Check registry for discovering and managing check definitions.

Provides a central registry where checks are registered and looked up
by id.  The registry performs no execution; it is pure lookup, so checks
can be unit-tested independently of any pipeline.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from ruleflow_engine.checks.models import Autofix, Check, Predicate, Severity
from ruleflow_engine.errors import (
    DuplicateCheckError,
    InvalidCheckError,
    RegistryFrozenError,
    UnknownCheckError,
)

logger = logging.getLogger(__name__)


class CheckRegistry:
    """Registry of :class:`Check` definitions keyed by id.

    Registration order is preserved and is the only implicit ordering
    guarantee.  Once :meth:`freeze` has been called the registry is
    read-only and safe to share between concurrent runs.
    """

    def __init__(self, checks: Iterable[Check] = ()) -> None:
        self._checks: dict[str, Check] = {}
        self._frozen = False
        for check in checks:
            self.register(check)

    def register(self, check: Check) -> Check:
        """Register a check definition.

        Raises
        ------
        RegistryFrozenError
            If the registry has been frozen.
        InvalidCheckError
            If the check has an empty id or no predicate.
        DuplicateCheckError
            If a check with the same id is already registered.
        """
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register '{check.id}': registry is frozen.")
        if not check.id or not check.id.strip():
            raise InvalidCheckError("Check id must be a non-empty string.")
        if check.predicate is None:
            raise InvalidCheckError(f"Check '{check.id}' has no predicate.")
        if not callable(check.predicate):
            raise InvalidCheckError(f"Check '{check.id}' predicate is not callable.")
        if check.autofix is not None and not callable(check.autofix):
            raise InvalidCheckError(f"Check '{check.id}' autofix is not callable.")
        if check.id in self._checks:
            raise DuplicateCheckError(check.id)

        self._checks[check.id] = check
        logger.debug("Registered check %s (stage=%s, severity=%s)", check.id, check.stage, check.severity.value)
        return check

    def check(
        self,
        check_id: str,
        *,
        stage: str = "default",
        severity: Severity | str = Severity.MEDIUM,
        autofix: Autofix | None = None,
        description: str = "",
        tags: Iterable[str] = (),
    ) -> Callable[[Predicate], Predicate]:
        """Decorator registering the wrapped function as a check predicate.

        Example::

            @registry.check("lint", stage="static", severity="medium")
            def lint(context):
                ...
        """

        def _decorator(fn: Predicate) -> Predicate:
            self.register(
                Check(
                    id=check_id,
                    stage=stage,
                    severity=Severity(severity),
                    predicate=fn,
                    autofix=autofix,
                    description=description or (fn.__doc__ or "").strip().split("\n")[0],
                    tags=tuple(tags),
                )
            )
            return fn

        return _decorator

    def resolve(self, check_id: str) -> Check:
        """Look up a check by id.

        Raises
        ------
        UnknownCheckError
            If the id is not registered.
        """
        try:
            return self._checks[check_id]
        except KeyError:
            raise UnknownCheckError(check_id) from None

    def list_by_stage(self, stage: str) -> list[Check]:
        """Return the checks declared for *stage*, in registration order."""
        return [c for c in self._checks.values() if c.stage == stage]

    def get_all(self) -> list[Check]:
        """Return all registered checks, in registration order."""
        return list(self._checks.values())

    def ids(self) -> list[str]:
        return list(self._checks)

    def stages(self) -> list[str]:
        """Return the distinct stage names, in first-registration order."""
        return list(dict.fromkeys(c.stage for c in self._checks.values()))

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._checks)

    def __contains__(self, check_id: object) -> bool:
        return check_id in self._checks

    def __iter__(self):
        return iter(self._checks.values())
