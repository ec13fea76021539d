"""Ruleflow checks -- definitions, registry and declarative loading.

Quick start::

    from ruleflow_engine.checks import CheckRegistry, CheckOutcome

    registry = CheckRegistry()

    @registry.check("readme", stage="static", severity="low")
    def readme(context):
        return context.resolve_path("README.md").exists()
"""

from ruleflow_engine.checks.base import BaseCheck
from ruleflow_engine.checks.loader import load_rules
from ruleflow_engine.checks.models import (
    Check,
    CheckOutcome,
    CheckResult,
    CheckStatus,
    ExecutionContext,
    OverallStatus,
    SelfHealAttempt,
    Severity,
)
from ruleflow_engine.checks.registry import CheckRegistry

__all__ = [
    "BaseCheck",
    "Check",
    "CheckOutcome",
    "CheckRegistry",
    "CheckResult",
    "CheckStatus",
    "ExecutionContext",
    "OverallStatus",
    "SelfHealAttempt",
    "Severity",
    "load_rules",
]
