"""Pipeline executor -- runs a :class:`PipelineDefinition` stage by stage.

Stages run strictly in order.  Within a ``parallel`` stage every check
is launched concurrently (bounded by ``max_parallel_checks``); within a
``sequential`` stage checks run one at a time in declaration order.
Synchronous predicates run on worker threads so a slow or blocking check
never stalls its siblings.

The executor is the sole writer of results.  Checks receive a read-only
:class:`ExecutionContext` and return values; they never touch the
registry or the result collection.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from ruleflow_engine.cancellation import CancellationToken
from ruleflow_engine.checks.models import (
    Autofix,
    Check,
    CheckOutcome,
    CheckResult,
    CheckStatus,
    ExecutionContext,
    SelfHealAttempt,
    Severity,
    Timer,
)
from ruleflow_engine.checks.registry import CheckRegistry
from ruleflow_engine.config import Settings, load_settings
from ruleflow_engine.errors import CheckCancelledError, CheckTimeoutError, PipelineDefinitionError
from ruleflow_engine.pipeline.definition import PipelineDefinition, StageDefinition, StageKind
from ruleflow_engine.report.aggregator import ReportAggregator
from ruleflow_engine.report.models import Report

logger = logging.getLogger(__name__)

SKIP_CANCELLED = "cancelled"
SKIP_UPSTREAM = "upstream stage failed"
TIMEOUT_MESSAGE = "timeout"


class PlannedStage(BaseModel):
    """A stage with every check id resolved against the registry."""

    model_config = ConfigDict(frozen=True)

    stage: StageDefinition
    checks: tuple[Check, ...]
    abort_severity: Severity

    @property
    def name(self) -> str:
        return self.stage.name


class _RunState:
    """Mutable bookkeeping for a single run, owned by the executor task."""

    def __init__(self) -> None:
        self.results: dict[str, CheckResult] = {}
        self.heal_log: list[SelfHealAttempt] = []
        self.aborted_stage: str | None = None

    def record(self, result: CheckResult, attempts: list[SelfHealAttempt]) -> None:
        self.results[result.check_id] = result
        self.heal_log.extend(attempts)


class PipelineExecutor:
    """Runs pipeline definitions against a :class:`CheckRegistry`.

    Parameters
    ----------
    registry:
        Registry used to resolve check ids.  It is frozen by the first run.
    settings:
        Execution settings.  When ``None`` they are loaded from the
        environment.
    aggregator:
        Optional aggregator override.
    """

    def __init__(
        self,
        registry: CheckRegistry,
        settings: Settings | None = None,
        aggregator: ReportAggregator | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or load_settings()
        self._aggregator = aggregator or ReportAggregator()

    @property
    def registry(self) -> CheckRegistry:
        return self._registry

    @property
    def settings(self) -> Settings:
        return self._settings

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, definition: PipelineDefinition) -> list[PlannedStage]:
        """Resolve every stage's checks without running anything.

        Raises
        ------
        UnknownCheckError
            If a listed check id is not registered.
        PipelineDefinitionError
            If a stage resolves to no checks, or a check would run twice.
        """
        planned: list[PlannedStage] = []
        seen: dict[str, str] = {}
        for stage in definition.stages:
            if stage.checks is None:
                checks = self._registry.list_by_stage(stage.name)
                if not checks:
                    raise PipelineDefinitionError(
                        f"Stage {stage.name!r} lists no checks and none are registered for it."
                    )
            else:
                checks = [self._registry.resolve(check_id) for check_id in stage.checks]

            for check in checks:
                if check.id in seen:
                    raise PipelineDefinitionError(
                        f"Check {check.id!r} would run in both stage {seen[check.id]!r} and stage {stage.name!r}."
                    )
                seen[check.id] = stage.name

            planned.append(
                PlannedStage(
                    stage=stage,
                    checks=tuple(checks),
                    abort_severity=stage.abort_severity or self._settings.default_abort_severity,
                )
            )
        return planned

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run_sync(
        self,
        definition: PipelineDefinition,
        context: ExecutionContext,
        *,
        self_heal: bool | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Report:
        """Blocking wrapper around :meth:`run` for non-async callers."""
        return asyncio.run(self.run(definition, context, self_heal=self_heal, cancel_token=cancel_token))

    async def run(
        self,
        definition: PipelineDefinition,
        context: ExecutionContext,
        *,
        self_heal: bool | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Report:
        """Execute *definition* and return the aggregated :class:`Report`.

        Planning errors propagate before any check executes.  Per-check
        failures and exceptions never propagate; they are recorded as
        ``fail`` / ``error`` results.
        """
        planned = self.plan(definition)
        self._registry.freeze()

        token = cancel_token or context.cancel_token or CancellationToken()
        context = context.with_cancel_token(token)
        heal = self._settings.self_heal if self_heal is None else self_heal

        run_id = uuid.uuid4().hex
        started_at = datetime.now(UTC)
        timer = Timer()
        timer.start()
        state = _RunState()

        logger.info(
            "Run %s started: pipeline=%s stages=%d self_heal=%s",
            run_id,
            definition.name,
            len(planned),
            heal,
            extra={"run_id": run_id},
        )

        loop = asyncio.get_running_loop()
        deadline = None
        if self._settings.run_timeout_seconds is not None:
            deadline = loop.call_later(self._settings.run_timeout_seconds, token.cancel, "run timeout")

        # Headroom for threads still finishing after a per-check timeout.
        pool = ThreadPoolExecutor(
            max_workers=self._settings.max_parallel_checks * 2,
            thread_name_prefix="ruleflow-check",
        )
        try:
            for planned_stage in planned:
                stage = planned_stage.stage
                if token.is_cancelled:
                    self._skip_all(planned_stage, state, SKIP_CANCELLED)
                    continue
                if state.aborted_stage is not None:
                    self._skip_all(planned_stage, state, SKIP_UPSTREAM)
                    continue

                logger.info(
                    "Stage %s started (%s, %d check(s))",
                    stage.name,
                    stage.kind.value,
                    len(planned_stage.checks),
                    extra={"run_id": run_id, "stage": stage.name},
                )
                runner = _CheckRunner(self._settings, stage, token, pool, heal)
                if stage.kind == StageKind.PARALLEL:
                    await self._run_parallel(planned_stage, context, state, runner)
                else:
                    await self._run_sequential(planned_stage, context, state, runner)

                stage_results = [state.results[c.id] for c in planned_stage.checks]
                blocking = [r.check_id for r in stage_results if r.is_blocking(planned_stage.abort_severity)]
                logger.info(
                    "Stage %s finished: %s",
                    stage.name,
                    ", ".join(f"{r.check_id}={r.status.value}" for r in stage_results),
                    extra={"run_id": run_id, "stage": stage.name},
                )
                if blocking and definition.abort_on_stage_failure:
                    state.aborted_stage = stage.name
                    logger.warning(
                        "Stage %s produced blocking failure(s) %s; skipping remaining stages",
                        stage.name,
                        ", ".join(blocking),
                        extra={"run_id": run_id, "stage": stage.name},
                    )
        finally:
            if deadline is not None:
                deadline.cancel()
            pool.shutdown(wait=False, cancel_futures=True)

        report = self._aggregator.aggregate(
            list(state.results.values()),
            self_heal_log=state.heal_log,
            order=[c.id for p in planned for c in p.checks],
            pipeline=definition.name,
            run_id=run_id,
            aborted_stage=state.aborted_stage,
            cancelled=token.is_cancelled,
            started_at=started_at,
            duration_ms=timer.elapsed_ms(),
        )
        logger.info(
            "Run %s finished: %s in %dms",
            run_id,
            report.overall_status.value,
            report.duration_ms,
            extra={"run_id": run_id},
        )
        return report

    async def _run_parallel(
        self,
        planned_stage: PlannedStage,
        context: ExecutionContext,
        state: _RunState,
        runner: _CheckRunner,
    ) -> None:
        stage_context = context.with_prior_results(state.results)
        semaphore = asyncio.Semaphore(self._settings.max_parallel_checks)

        async def _guarded(check: Check) -> tuple[CheckResult, list[SelfHealAttempt]]:
            async with semaphore:
                if runner.token.is_cancelled:
                    return _skipped(check, planned_stage.name, SKIP_CANCELLED), []
                return await runner.run(check, stage_context)

        outcomes = await asyncio.gather(*(_guarded(c) for c in planned_stage.checks))
        for result, attempts in outcomes:
            state.record(result, attempts)

    async def _run_sequential(
        self,
        planned_stage: PlannedStage,
        context: ExecutionContext,
        state: _RunState,
        runner: _CheckRunner,
    ) -> None:
        stage = planned_stage.stage
        halted_by: str | None = None
        for check in planned_stage.checks:
            if runner.token.is_cancelled:
                state.record(_skipped(check, stage.name, SKIP_CANCELLED), [])
                continue
            if halted_by is not None:
                state.record(_skipped(check, stage.name, f"halted by {halted_by}"), [])
                continue

            result, attempts = await runner.run(check, context.with_prior_results(state.results))
            state.record(result, attempts)
            if result.is_blocking(planned_stage.abort_severity) and not stage.continue_on_failure:
                halted_by = check.id
                logger.info(
                    "Stage %s halted by %s (%s)",
                    stage.name,
                    check.id,
                    result.status.value,
                    extra={"stage": stage.name, "check_id": check.id},
                )

    def _skip_all(self, planned_stage: PlannedStage, state: _RunState, reason: str) -> None:
        logger.info("Stage %s skipped: %s", planned_stage.name, reason, extra={"stage": planned_stage.name})
        for check in planned_stage.checks:
            state.record(_skipped(check, planned_stage.name, reason), [])


class _CheckRunner:
    """Evaluates single checks for one stage: timeouts, errors and self-heal."""

    def __init__(
        self,
        settings: Settings,
        stage: StageDefinition,
        token: CancellationToken,
        pool: ThreadPoolExecutor,
        self_heal: bool,
    ) -> None:
        self._stage = stage
        self._timeout = stage.timeout_seconds or settings.check_timeout_seconds
        self._max_attempts = settings.max_heal_attempts
        self._pool = pool
        self._self_heal = self_heal
        self.token = token

    async def run(
        self,
        check: Check,
        context: ExecutionContext,
    ) -> tuple[CheckResult, list[SelfHealAttempt]]:
        timer = Timer()
        timer.start()

        result = await self._evaluate(check, context)
        evaluations = 1
        attempts: list[SelfHealAttempt] = []

        autofix = check.autofix
        if self._self_heal and autofix is not None and result.status == CheckStatus.FAIL:
            result, healed_evaluations, attempts = await self._self_heal_loop(check, autofix, context, result)
            evaluations += healed_evaluations

        return result.model_copy(update={"attempts": evaluations, "duration_ms": timer.elapsed_ms()}), attempts

    async def _self_heal_loop(
        self,
        check: Check,
        autofix: Autofix,
        context: ExecutionContext,
        result: CheckResult,
    ) -> tuple[CheckResult, int, list[SelfHealAttempt]]:
        """Apply the autofix and re-evaluate, at most ``max_heal_attempts`` times."""
        attempts: list[SelfHealAttempt] = []
        evaluations = 0
        extra = {"stage": self._stage.name, "check_id": check.id}

        for attempt in range(1, self._max_attempts + 1):
            if self.token.is_cancelled:
                break
            before = {"status": result.status.value, "message": result.message, "evidence": result.evidence}
            logger.info("Self-heal %s attempt %d/%d", check.id, attempt, self._max_attempts, extra=extra)

            try:
                await self._call_bounded(autofix, context, result)
            except CheckTimeoutError:
                attempts.append(
                    SelfHealAttempt(check_id=check.id, attempt=attempt, before=before, error=TIMEOUT_MESSAGE)
                )
                logger.warning("Autofix for %s timed out", check.id, extra=extra)
                continue
            except Exception as exc:
                attempts.append(
                    SelfHealAttempt(
                        check_id=check.id,
                        attempt=attempt,
                        before=before,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                )
                logger.warning("Autofix for %s raised: %s", check.id, exc, extra=extra)
                continue

            rerun = await self._evaluate(check, context)
            evaluations += 1
            success = rerun.status == CheckStatus.PASS
            attempts.append(
                SelfHealAttempt(
                    check_id=check.id,
                    attempt=attempt,
                    before=before,
                    after={"status": rerun.status.value, "message": rerun.message, "evidence": rerun.evidence},
                    success=success,
                )
            )
            result = rerun
            if success:
                result = result.model_copy(
                    update={
                        "status": CheckStatus.FIXED,
                        "message": f"fixed after {attempt} attempt(s)" + (f": {result.message}" if result.message else ""),
                    }
                )
                break
            if result.status != CheckStatus.FAIL:
                break

        return result, evaluations, attempts

    async def _evaluate(self, check: Check, context: ExecutionContext) -> CheckResult:
        """Run the predicate once and convert its return value into a result."""
        extra = {"stage": self._stage.name, "check_id": check.id}
        timer = Timer()
        timer.start()
        predicate = check.predicate
        if predicate is None:
            return self._result(check, CheckStatus.ERROR, "check has no predicate", {}, timer.elapsed_ms())
        try:
            value = await self._call_bounded(predicate, context)
        except CheckTimeoutError as exc:
            logger.error("Check %s timed out: %s", check.id, exc, extra=extra)
            return self._result(
                check,
                CheckStatus.ERROR,
                TIMEOUT_MESSAGE,
                {"timeout_seconds": exc.timeout_seconds},
                timer.elapsed_ms(),
            )
        except CheckCancelledError:
            return self._result(check, CheckStatus.SKIPPED, SKIP_CANCELLED, {}, timer.elapsed_ms())
        except Exception as exc:
            logger.error("Check %s raised an unhandled exception: %s", check.id, exc, exc_info=True, extra=extra)
            return self._result(
                check,
                CheckStatus.ERROR,
                f"{type(exc).__name__}: {exc}",
                {"exception": type(exc).__name__},
                timer.elapsed_ms(),
            )
        return self._convert(check, value, timer.elapsed_ms())

    async def _call_bounded(self, fn: Callable[..., Any], context: ExecutionContext, *args: Any) -> Any:
        """Call *fn* under the per-check deadline with its own cancellation scope.

        The scope is a child of the run token that also expires with the
        deadline, so commands started by *fn* are terminated even though
        its worker thread cannot be interrupted.

        Raises
        ------
        CheckTimeoutError
            If the deadline expires.  A ``TimeoutError`` raised by *fn*
            itself propagates unchanged.
        """
        scope = self.token.child()
        deadline = asyncio.timeout(self._timeout)
        try:
            async with deadline:
                return await self._call(fn, context.with_cancel_token(scope), *args)
        except TimeoutError:
            if not deadline.expired():
                raise
            scope.expire(TIMEOUT_MESSAGE)
            raise CheckTimeoutError(self._timeout) from None
        finally:
            scope.detach()

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        if inspect.iscoroutinefunction(fn):
            return await fn(*args)
        loop = asyncio.get_running_loop()
        value = await loop.run_in_executor(self._pool, lambda: fn(*args))
        if inspect.isawaitable(value):
            value = await value
        return value

    def _convert(self, check: Check, value: Any, duration_ms: int) -> CheckResult:
        if value is None or value is True:
            return self._result(check, CheckStatus.PASS, "", {}, duration_ms)
        if value is False:
            return self._result(check, CheckStatus.FAIL, "check returned False", {}, duration_ms)
        if isinstance(value, CheckOutcome):
            status = CheckStatus.PASS if value.passed else CheckStatus.FAIL
            return self._result(check, status, value.message, dict(value.evidence), duration_ms)
        if isinstance(value, CheckResult):
            return self._result(check, value.status, value.message, dict(value.evidence), duration_ms)
        if isinstance(value, Mapping) and "passed" in value:
            try:
                outcome = CheckOutcome.model_validate(dict(value))
            except ValidationError as exc:
                return self._result(check, CheckStatus.ERROR, f"invalid predicate outcome: {exc}", {}, duration_ms)
            return self._convert(check, outcome, duration_ms)
        return self._result(
            check,
            CheckStatus.ERROR,
            f"predicate returned unsupported type {type(value).__name__}",
            {},
            duration_ms,
        )

    def _result(
        self,
        check: Check,
        status: CheckStatus,
        message: str,
        evidence: dict[str, Any],
        duration_ms: int,
    ) -> CheckResult:
        return CheckResult(
            check_id=check.id,
            stage=self._stage.name,
            severity=check.severity,
            status=status,
            message=message,
            evidence=evidence,
            duration_ms=duration_ms,
        )


def _skipped(check: Check, stage: str, reason: str) -> CheckResult:
    return CheckResult(
        check_id=check.id,
        stage=stage,
        severity=check.severity,
        status=CheckStatus.SKIPPED,
        message=reason,
    )
