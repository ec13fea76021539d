"""Aggregate per-check results into a :class:`Report`.

The verdict depends only on the multiset of (status, severity) pairs,
never on the order in which results arrived:

    error                      -> error
    fail (critical / high)     -> fail
    fail (medium / low)        -> warn
    anything else              -> pass

``fixed``, ``skipped`` and ``info``-severity failures do not degrade the
verdict.
"""

from __future__ import annotations

import uuid
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import datetime

from ruleflow_engine.checks.models import (
    CheckResult,
    CheckStatus,
    OverallStatus,
    SelfHealAttempt,
    Severity,
)
from ruleflow_engine.report.models import Report

_BLOCKING_SEVERITIES = frozenset({Severity.CRITICAL, Severity.HIGH})
_WARNING_SEVERITIES = frozenset({Severity.MEDIUM, Severity.LOW})


def compute_overall_status(results: Iterable[CheckResult]) -> OverallStatus:
    """Return the worst outcome across *results*."""
    worst = OverallStatus.PASS
    for result in results:
        if result.status == CheckStatus.ERROR:
            return OverallStatus.ERROR
        if result.status != CheckStatus.FAIL:
            continue
        if result.severity in _BLOCKING_SEVERITIES:
            worst = OverallStatus.FAIL
        elif result.severity in _WARNING_SEVERITIES and worst == OverallStatus.PASS:
            worst = OverallStatus.WARN
    return worst


class ReportAggregator:
    """Builds :class:`Report` values from a run's results."""

    def aggregate(
        self,
        results: Sequence[CheckResult],
        *,
        self_heal_log: Sequence[SelfHealAttempt] = (),
        order: Sequence[str] | None = None,
        pipeline: str = "",
        run_id: str | None = None,
        aborted_stage: str | None = None,
        cancelled: bool = False,
        started_at: datetime | None = None,
        duration_ms: int = 0,
    ) -> Report:
        """Build a report from *results*.

        Parameters
        ----------
        results:
            One result per check, in any order.
        order:
            Check ids in declaration order.  Results are sorted by their
            position here; ids not listed sort after, by (stage, check_id).
        """
        position = {check_id: idx for idx, check_id in enumerate(order or ())}
        fallback = len(position)
        ordered = sorted(
            results,
            key=lambda r: (position.get(r.check_id, fallback), r.stage, r.check_id),
        )

        counts = Counter(r.status.value for r in ordered)
        blocking = sum(
            1 for r in ordered if r.status == CheckStatus.FAIL and r.severity in _BLOCKING_SEVERITIES
        )

        return Report(
            run_id=run_id or uuid.uuid4().hex,
            pipeline=pipeline,
            overall_status=compute_overall_status(ordered),
            results=tuple(ordered),
            self_heal_log=tuple(self_heal_log),
            counts={status.value: counts.get(status.value, 0) for status in CheckStatus},
            blocking_failures=blocking,
            aborted_stage=aborted_stage,
            cancelled=cancelled,
            started_at=started_at,
            duration_ms=duration_ms,
        )
