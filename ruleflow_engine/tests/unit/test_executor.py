"""Unit tests for the pipeline executor.

Covers stage semantics (parallel / sequential), abort propagation,
timeouts, error isolation, self-heal bounds, cancellation and the
coverage invariant that every declared check appears exactly once in
the report.
"""

from __future__ import annotations

import asyncio
import os
import sys
import threading
import time
from pathlib import Path

import pytest

from ruleflow_engine.cancellation import CancellationToken
from ruleflow_engine.checks.base import BaseCheck
from ruleflow_engine.checks.builtin import command_check
from ruleflow_engine.checks.models import (
    Check,
    CheckOutcome,
    CheckStatus,
    ExecutionContext,
    OverallStatus,
    Severity,
)
from ruleflow_engine.checks.registry import CheckRegistry
from ruleflow_engine.config import load_settings
from ruleflow_engine.errors import PipelineDefinitionError, UnknownCheckError
from ruleflow_engine.pipeline.definition import PipelineDefinition
from ruleflow_engine.pipeline.executor import PipelineExecutor


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _passing(context):
    return CheckOutcome.ok("ok")


def _failing(message: str = "condition not met"):
    def _predicate(context):
        return CheckOutcome.failed(message)

    return _predicate


def _raising(context):
    raise RuntimeError("boom")


def _registry(*specs: tuple) -> CheckRegistry:
    """Build a registry from (id, severity, predicate[, autofix]) tuples."""
    registry = CheckRegistry()
    for spec in specs:
        check_id, severity, predicate, *rest = spec
        registry.register(
            Check(
                id=check_id,
                severity=Severity(severity),
                predicate=predicate,
                autofix=rest[0] if rest else None,
            )
        )
    return registry


def _definition(*stages: dict, **kwargs) -> PipelineDefinition:
    return PipelineDefinition.build({"name": "test", "stages": list(stages), **kwargs})


def _wait_for_exit(pid: int, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        time.sleep(0.05)
    return False


def _lint_build_pipeline() -> PipelineDefinition:
    return _definition(
        {"name": "stage1", "kind": "parallel", "checks": ["lint", "format"]},
        {"name": "stage2", "kind": "sequential", "checks": ["build", "test"]},
    )


def _statuses(report) -> dict[str, CheckStatus]:
    return {r.check_id: r.status for r in report.results}


# ---------------------------------------------------------------------------
# Example scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    @pytest.mark.asyncio
    async def test_medium_lint_failure_warns_and_later_stage_runs(self, settings, context):
        registry = _registry(
            ("lint", "medium", _failing("style issues")),
            ("format", "low", _passing),
            ("build", "critical", _passing),
            ("test", "critical", _passing),
        )
        report = await PipelineExecutor(registry, settings).run(_lint_build_pipeline(), context)

        assert report.overall_status == OverallStatus.WARN
        assert report.exit_code == 1
        assert _statuses(report) == {
            "lint": CheckStatus.FAIL,
            "format": CheckStatus.PASS,
            "build": CheckStatus.PASS,
            "test": CheckStatus.PASS,
        }
        assert report.aborted_stage is None

    @pytest.mark.asyncio
    async def test_critical_build_failure_skips_test(self, settings, context):
        registry = _registry(
            ("lint", "medium", _failing()),
            ("format", "low", _passing),
            ("build", "critical", _failing("compile error")),
            ("test", "critical", _passing),
        )
        report = await PipelineExecutor(registry, settings).run(_lint_build_pipeline(), context)

        assert report.overall_status == OverallStatus.FAIL
        assert report.exit_code == 2
        test_result = report.result_for("test")
        assert test_result.status == CheckStatus.SKIPPED
        assert test_result.message == "halted by build"
        assert test_result.attempts == 0


# ---------------------------------------------------------------------------
# Stage semantics
# ---------------------------------------------------------------------------


class TestStageSemantics:
    @pytest.mark.asyncio
    async def test_all_parallel_passing(self, settings, context):
        registry = _registry(*[(f"c{i}", "high", _passing) for i in range(6)])
        definition = _definition(
            {"name": "a", "kind": "parallel", "checks": ["c0", "c1", "c2"]},
            {"name": "b", "kind": "parallel", "checks": ["c3", "c4", "c5"]},
        )
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.overall_status == OverallStatus.PASS
        assert all(r.status == CheckStatus.PASS for r in report.results)
        assert report.exit_code == 0

    @pytest.mark.asyncio
    async def test_parallel_checks_run_concurrently(self, settings, context):
        barrier = threading.Barrier(3, timeout=5)

        def _meet(context):
            barrier.wait()
            return True

        registry = _registry(("a", "high", _meet), ("b", "high", _meet), ("c", "high", _meet))
        definition = _definition({"name": "p", "kind": "parallel", "checks": ["a", "b", "c"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert _statuses(report) == {"a": CheckStatus.PASS, "b": CheckStatus.PASS, "c": CheckStatus.PASS}

    @pytest.mark.asyncio
    async def test_sequential_runs_in_declaration_order(self, settings, context):
        calls: list[str] = []

        def _record(name):
            def _predicate(context):
                calls.append(name)
                return True

            return _predicate

        registry = _registry(("z", "low", _record("z")), ("a", "low", _record("a")), ("m", "low", _record("m")))
        definition = _definition({"name": "s", "kind": "sequential", "checks": ["m", "z", "a"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert calls == ["m", "z", "a"]
        assert [r.check_id for r in report.results] == ["m", "z", "a"]

    @pytest.mark.asyncio
    async def test_sequential_below_threshold_continues(self, settings, context):
        registry = _registry(("a", "high", _failing()), ("b", "low", _passing))
        definition = _definition({"name": "s", "kind": "sequential", "checks": ["a", "b"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert _statuses(report) == {"a": CheckStatus.FAIL, "b": CheckStatus.PASS}
        assert report.overall_status == OverallStatus.FAIL

    @pytest.mark.asyncio
    async def test_custom_abort_severity(self, settings, context):
        registry = _registry(("a", "medium", _failing()), ("b", "low", _passing))
        definition = _definition(
            {"name": "s", "kind": "sequential", "checks": ["a", "b"], "abort_severity": "medium"},
        )
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.result_for("b").status == CheckStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_default_abort_severity_from_settings(self, context):
        registry = _registry(("a", "high", _failing()), ("b", "low", _passing))
        definition = _definition({"name": "s", "kind": "sequential", "checks": ["a", "b"]})
        executor = PipelineExecutor(registry, load_settings(default_abort_severity="high"))

        assert executor.plan(definition)[0].abort_severity == Severity.HIGH
        report = await executor.run(definition, context)
        assert report.result_for("b").message == "halted by a"

    @pytest.mark.asyncio
    async def test_continue_on_failure(self, settings, context):
        registry = _registry(("a", "critical", _failing()), ("b", "low", _passing), ("c", "low", _passing))
        definition = _definition(
            {"name": "s1", "kind": "sequential", "checks": ["a", "b"], "continue_on_failure": True},
            {"name": "s2", "kind": "parallel", "checks": ["c"]},
        )
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.result_for("b").status == CheckStatus.PASS
        # The stage still failed, so the pipeline-level policy applies.
        assert report.result_for("c").status == CheckStatus.SKIPPED
        assert report.aborted_stage == "s1"

    @pytest.mark.asyncio
    async def test_implicit_stage_members_from_registry(self, settings, context):
        registry = CheckRegistry()
        registry.register(Check(id="one", stage="static", predicate=_passing))
        registry.register(Check(id="two", stage="static", predicate=_passing))
        registry.register(Check(id="other", stage="build", predicate=_passing))
        definition = _definition({"name": "static", "kind": "parallel"})

        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert [r.check_id for r in report.results] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_prior_results_visible_to_later_stages(self, settings, context):
        seen: dict[str, str] = {}

        def _inspect(context):
            seen.update({k: v.status.value for k, v in context.prior_results.items()})
            return True

        registry = _registry(("first", "low", _passing), ("second", "low", _inspect))
        definition = _definition(
            {"name": "a", "kind": "parallel", "checks": ["first"]},
            {"name": "b", "kind": "parallel", "checks": ["second"]},
        )
        await PipelineExecutor(registry, settings).run(definition, context)

        assert seen == {"first": "pass"}

    @pytest.mark.asyncio
    async def test_async_and_class_based_predicates(self, settings, context):
        async def _async_check(context):
            await asyncio.sleep(0)
            return CheckOutcome.ok("async")

        class _Docs(BaseCheck):
            check_id = "docs"
            severity = Severity.LOW

            async def evaluate(self, context):
                return False

        registry = _registry(("async", "low", _async_check))
        registry.register(_Docs().as_check())
        definition = _definition({"name": "p", "kind": "parallel", "checks": ["async", "docs"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.result_for("async").message == "async"
        assert report.result_for("docs").status == CheckStatus.FAIL
        assert report.result_for("docs").message == "check returned False"


# ---------------------------------------------------------------------------
# Abort propagation
# ---------------------------------------------------------------------------


class TestAbortPropagation:
    @pytest.mark.asyncio
    async def test_critical_failure_skips_rest_of_stage_and_later_stages(self, settings, context):
        registry = _registry(
            ("a", "critical", _failing()),
            ("b", "low", _passing),
            ("c", "low", _passing),
            ("d", "low", _passing),
        )
        definition = _definition(
            {"name": "s1", "kind": "sequential", "checks": ["a", "b", "c"]},
            {"name": "s2", "kind": "parallel", "checks": ["d"]},
            abort_on_stage_failure=True,
        )
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.result_for("a").status == CheckStatus.FAIL
        assert report.result_for("b").status == CheckStatus.SKIPPED
        assert report.result_for("c").status == CheckStatus.SKIPPED
        assert report.result_for("d").status == CheckStatus.SKIPPED
        assert report.result_for("d").message == "upstream stage failed"
        assert report.aborted_stage == "s1"

    @pytest.mark.asyncio
    async def test_abort_disabled_runs_later_stages(self, settings, context):
        registry = _registry(("a", "critical", _failing()), ("d", "low", _passing))
        definition = _definition(
            {"name": "s1", "kind": "parallel", "checks": ["a"]},
            {"name": "s2", "kind": "parallel", "checks": ["d"]},
            abort_on_stage_failure=False,
        )
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.result_for("d").status == CheckStatus.PASS
        assert report.aborted_stage is None
        assert report.overall_status == OverallStatus.FAIL

    @pytest.mark.asyncio
    async def test_error_counts_as_critical_for_abort(self, settings, context):
        registry = _registry(("a", "info", _raising), ("b", "low", _passing), ("c", "low", _passing))
        definition = _definition(
            {"name": "s1", "kind": "parallel", "checks": ["a", "b"]},
            {"name": "s2", "kind": "parallel", "checks": ["c"]},
        )
        report = await PipelineExecutor(registry, settings).run(definition, context)

        # Sibling in the same parallel stage is unaffected.
        assert report.result_for("b").status == CheckStatus.PASS
        assert report.result_for("a").status == CheckStatus.ERROR
        assert report.result_for("c").status == CheckStatus.SKIPPED
        assert report.overall_status == OverallStatus.ERROR


# ---------------------------------------------------------------------------
# Errors and timeouts
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    async def test_exception_becomes_error_result(self, settings, context):
        registry = _registry(("a", "low", _raising))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        result = report.result_for("a")
        assert result.status == CheckStatus.ERROR
        assert result.message == "RuntimeError: boom"
        assert result.evidence == {"exception": "RuntimeError"}

    @pytest.mark.asyncio
    async def test_timeout_becomes_error_result(self, context):
        async def _slow(context):
            await asyncio.sleep(5)
            return True

        registry = _registry(("slow", "low", _slow), ("fast", "low", _passing))
        definition = _definition(
            {"name": "s", "kind": "parallel", "checks": ["slow", "fast"], "timeout_seconds": 0.05},
        )
        report = await PipelineExecutor(registry, load_settings()).run(definition, context)

        slow = report.result_for("slow")
        assert slow.status == CheckStatus.ERROR
        assert slow.message == "timeout"
        assert report.result_for("fast").status == CheckStatus.PASS

    @pytest.mark.asyncio
    async def test_command_timeout_becomes_error_result(self, settings, context):
        slow = command_check([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.3)
        registry = _registry(("slow-cmd", "medium", slow))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["slow-cmd"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        result = report.result_for("slow-cmd")
        assert result.status == CheckStatus.ERROR
        assert result.message == "timeout"
        assert result.evidence == {"timeout_seconds": 0.3}
        assert report.overall_status == OverallStatus.ERROR

    @pytest.mark.asyncio
    async def test_predicate_timeout_error_keeps_its_message(self, settings, context):
        def _network(context):
            raise TimeoutError("connect to registry.example:443 timed out")

        registry = _registry(("registry", "low", _network))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["registry"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        result = report.result_for("registry")
        assert result.status == CheckStatus.ERROR
        assert result.message == "TimeoutError: connect to registry.example:443 timed out"
        assert result.evidence == {"exception": "TimeoutError"}

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="checks process liveness with os.kill(pid, 0)")
    async def test_timeout_terminates_spawned_command(self, context, tmp_path: Path):
        pid_file = tmp_path / "child.pid"
        script = (
            "import os, pathlib, time; "
            f"pathlib.Path({str(pid_file)!r}).write_text(str(os.getpid())); "
            "time.sleep(30)"
        )
        registry = _registry(("hang", "low", command_check([sys.executable, "-c", script])))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["hang"], "timeout_seconds": 1.0})
        report = await PipelineExecutor(registry, load_settings()).run(definition, context)

        assert report.result_for("hang").message == "timeout"
        assert not report.cancelled
        pid = int(pid_file.read_text())
        assert _wait_for_exit(pid), f"process {pid} still running after the check timed out"

    @pytest.mark.asyncio
    async def test_unsupported_return_value(self, settings, context):
        registry = _registry(("odd", "low", lambda context: 42))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["odd"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.result_for("odd").status == CheckStatus.ERROR
        assert "int" in report.result_for("odd").message

    @pytest.mark.asyncio
    async def test_mapping_return_value(self, settings, context):
        registry = _registry(("m", "low", lambda context: {"passed": False, "message": "nope", "evidence": {"n": 1}}))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["m"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        result = report.result_for("m")
        assert result.status == CheckStatus.FAIL
        assert result.evidence == {"n": 1}

    @pytest.mark.asyncio
    async def test_unknown_check_fails_before_anything_runs(self, settings, context):
        calls: list[str] = []

        def _record(context):
            calls.append("ran")
            return True

        registry = _registry(("a", "low", _record))
        definition = _definition(
            {"name": "s1", "kind": "parallel", "checks": ["a"]},
            {"name": "s2", "kind": "parallel", "checks": ["missing"]},
        )
        with pytest.raises(UnknownCheckError):
            await PipelineExecutor(registry, settings).run(definition, context)
        assert calls == []

    def test_empty_implicit_stage_rejected_at_plan(self, settings):
        registry = _registry(("a", "low", _passing))
        definition = _definition({"name": "nothing-here", "kind": "parallel"})
        with pytest.raises(PipelineDefinitionError, match="nothing-here"):
            PipelineExecutor(registry, settings).plan(definition)

    def test_check_pulled_into_two_stages_rejected(self, settings):
        registry = CheckRegistry([Check(id="a", stage="static", predicate=_passing)])
        definition = _definition(
            {"name": "static", "kind": "parallel"},
            {"name": "again", "kind": "parallel", "checks": ["a"]},
        )
        with pytest.raises(PipelineDefinitionError, match="both stage"):
            PipelineExecutor(registry, settings).plan(definition)


# ---------------------------------------------------------------------------
# Self-heal
# ---------------------------------------------------------------------------


class TestSelfHeal:
    @pytest.mark.asyncio
    async def test_always_failing_check_exhausts_attempts(self, settings, context):
        fixes: list[int] = []

        def _noop_fix(context, result):
            fixes.append(1)

        registry = _registry(("a", "high", _failing(), _noop_fix))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"]})
        report = await PipelineExecutor(registry, settings).run(definition, context, self_heal=True)

        assert len(report.self_heal_log) == 3
        assert [a.attempt for a in report.self_heal_log] == [1, 2, 3]
        assert not any(a.success for a in report.self_heal_log)
        assert report.result_for("a").status == CheckStatus.FAIL
        assert report.result_for("a").attempts == 4
        assert len(fixes) == 3

    @pytest.mark.asyncio
    async def test_successful_fix_marks_check_fixed(self, settings, context, tmp_path: Path):
        marker = tmp_path / "CHANGELOG.md"

        def _has_changelog(context):
            if context.resolve_path("CHANGELOG.md").exists():
                return CheckOutcome.ok("present")
            return CheckOutcome.failed("missing")

        def _create_changelog(context, result):
            context.resolve_path("CHANGELOG.md").write_text("# Changes\n")

        registry = _registry(("changelog", "high", _has_changelog, _create_changelog))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["changelog"]})
        report = await PipelineExecutor(registry, settings).run(definition, context, self_heal=True)

        result = report.result_for("changelog")
        assert result.status == CheckStatus.FIXED
        assert result.message == "fixed after 1 attempt(s): present"
        assert marker.exists()
        assert len(report.self_heal_log) == 1
        attempt = report.self_heal_log[0]
        assert attempt.success
        assert attempt.before["message"] == "missing"
        assert attempt.after["message"] == "present"
        assert report.overall_status == OverallStatus.PASS

    @pytest.mark.asyncio
    async def test_raising_autofix_is_recorded_and_status_stands(self, settings, context):
        def _broken_fix(context, result):
            raise OSError("read-only filesystem")

        registry = _registry(("a", "critical", _failing(), _broken_fix))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"]})
        report = await PipelineExecutor(registry, settings).run(definition, context, self_heal=True)

        assert report.result_for("a").status == CheckStatus.FAIL
        assert report.result_for("a").attempts == 1
        assert len(report.self_heal_log) == 3
        assert all(a.error == "OSError: read-only filesystem" for a in report.self_heal_log)

    @pytest.mark.asyncio
    async def test_hanging_autofix_is_recorded_as_timeout(self, context):
        async def _hanging_fix(context, result):
            await asyncio.sleep(5)

        registry = _registry(("a", "high", _failing(), _hanging_fix))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"], "timeout_seconds": 0.05})
        executor = PipelineExecutor(registry, load_settings(max_heal_attempts=2))
        report = await executor.run(definition, context, self_heal=True)

        assert report.result_for("a").status == CheckStatus.FAIL
        assert [a.error for a in report.self_heal_log] == ["timeout", "timeout"]
        assert not report.cancelled

    @pytest.mark.asyncio
    async def test_self_heal_disabled_by_default(self, settings, context):
        def _fix(context, result):
            raise AssertionError("autofix must not run")

        registry = _registry(("a", "high", _failing(), _fix))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.self_heal_log == ()
        assert report.result_for("a").status == CheckStatus.FAIL

    @pytest.mark.asyncio
    async def test_errors_are_not_healed(self, settings, context):
        def _fix(context, result):
            raise AssertionError("autofix must not run")

        registry = _registry(("a", "high", _raising, _fix))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"]})
        report = await PipelineExecutor(registry, settings).run(definition, context, self_heal=True)

        assert report.self_heal_log == ()
        assert report.result_for("a").status == CheckStatus.ERROR

    @pytest.mark.asyncio
    async def test_max_attempts_from_settings(self, context):
        registry = _registry(("a", "high", _failing(), lambda context, result: None))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"]})
        executor = PipelineExecutor(registry, load_settings(max_heal_attempts=1, self_heal=True))
        report = await executor.run(definition, context)

        assert len(report.self_heal_log) == 1


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    @pytest.mark.asyncio
    async def test_pre_cancelled_token_skips_everything(self, settings, context):
        token = CancellationToken()
        token.cancel()
        registry = _registry(("a", "low", _passing), ("b", "low", _passing))
        definition = _definition(
            {"name": "s1", "kind": "parallel", "checks": ["a"]},
            {"name": "s2", "kind": "sequential", "checks": ["b"]},
        )
        report = await PipelineExecutor(registry, settings).run(definition, context, cancel_token=token)

        assert report.cancelled
        assert all(r.status == CheckStatus.SKIPPED for r in report.results)
        assert {r.message for r in report.results} == {"cancelled"}

    @pytest.mark.asyncio
    async def test_cancel_mid_run_keeps_completed_results(self, settings, context):
        def _cancel_after(context):
            context.cancel_token.cancel("caller interrupt")
            return True

        registry = _registry(("a", "low", _cancel_after), ("b", "low", _passing), ("c", "low", _passing))
        definition = _definition(
            {"name": "s1", "kind": "sequential", "checks": ["a", "b"]},
            {"name": "s2", "kind": "parallel", "checks": ["c"]},
        )
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.result_for("a").status == CheckStatus.PASS
        assert report.result_for("b").status == CheckStatus.SKIPPED
        assert report.result_for("b").message == "cancelled"
        assert report.result_for("c").status == CheckStatus.SKIPPED
        assert report.cancelled

    @pytest.mark.asyncio
    async def test_cooperative_cancellation_inside_predicate(self, settings, context):
        def _cooperative(context):
            context.cancel_token.cancel()
            context.cancel_token.raise_if_cancelled()
            return True

        registry = _registry(("a", "low", _cooperative))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"]})
        report = await PipelineExecutor(registry, settings).run(definition, context)

        assert report.result_for("a").status == CheckStatus.SKIPPED
        assert report.result_for("a").message == "cancelled"

    @pytest.mark.asyncio
    async def test_run_timeout_cancels_later_stages(self, context):
        async def _slow(context):
            await asyncio.sleep(0.2)
            return True

        registry = _registry(("a", "low", _slow), ("b", "low", _passing))
        definition = _definition(
            {"name": "s1", "kind": "parallel", "checks": ["a"]},
            {"name": "s2", "kind": "parallel", "checks": ["b"]},
        )
        executor = PipelineExecutor(registry, load_settings(run_timeout_seconds=0.05))
        report = await executor.run(definition, context)

        assert report.result_for("a").status == CheckStatus.PASS
        assert report.result_for("b").status == CheckStatus.SKIPPED
        assert report.cancelled


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


class TestInvariants:
    @pytest.mark.asyncio
    async def test_report_covers_exactly_the_declared_checks(self, settings, context):
        registry = _registry(
            ("a", "critical", _failing()),
            ("b", "low", _passing),
            ("c", "low", _raising),
            ("d", "low", _passing),
            ("e", "low", _passing),
        )
        definition = _definition(
            {"name": "s1", "kind": "parallel", "checks": ["c", "b"]},
            {"name": "s2", "kind": "sequential", "checks": ["a", "d"]},
            {"name": "s3", "kind": "parallel", "checks": ["e"]},
            abort_on_stage_failure=False,
        )
        report = await PipelineExecutor(registry, settings).run(definition, context)

        ids = [r.check_id for r in report.results]
        assert ids == definition.declared_check_ids()
        assert len(ids) == len(set(ids))
        assert report.total == 5

    @pytest.mark.asyncio
    async def test_repeated_runs_are_idempotent(self, settings, context):
        registry = _registry(
            ("lint", "medium", _failing()),
            ("format", "low", _passing),
            ("build", "critical", _passing),
            ("test", "critical", _passing),
        )
        executor = PipelineExecutor(registry, settings)
        first = await executor.run(_lint_build_pipeline(), context)
        second = await executor.run(_lint_build_pipeline(), context)

        assert first.overall_status == second.overall_status
        assert _statuses(first) == _statuses(second)
        assert first.run_id != second.run_id

    @pytest.mark.asyncio
    async def test_registry_frozen_after_run(self, settings, context):
        registry = _registry(("a", "low", _passing))
        await PipelineExecutor(registry, settings).run(
            _definition({"name": "s", "kind": "parallel", "checks": ["a"]}), context
        )
        assert registry.frozen

    def test_run_sync(self, settings, tmp_path: Path):
        registry = _registry(("a", "low", _passing))
        definition = _definition({"name": "s", "kind": "parallel", "checks": ["a"]})
        report = PipelineExecutor(registry, settings).run_sync(definition, ExecutionContext(working_dir=tmp_path))
        assert report.passed
        assert report.pipeline == "test"
