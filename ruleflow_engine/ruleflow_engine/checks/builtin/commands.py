"""Built-in predicates that shell out to external tools.

Lint, format, build and test steps are usually just commands: the check
passes when the command exits 0.  The command runs in the context's
working directory and is terminated if the run is cancelled.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Sequence

from ruleflow_engine.cancellation import CommandResult, run_command
from ruleflow_engine.checks.models import CheckOutcome, CheckResult, ExecutionContext, Predicate
from ruleflow_engine.errors import CheckTimeoutError, RuleflowError

logger = logging.getLogger(__name__)

# Keep evidence payloads bounded.
_MAX_OUTPUT_CHARS = 4000


def _tail(text: str, limit: int = _MAX_OUTPUT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return "...[truncated]\n" + text[-limit:]


def _normalize_args(args: str | Sequence[str]) -> list[str]:
    if isinstance(args, str):
        return shlex.split(args)
    return [str(a) for a in args]


def _execute(args: list[str], context: ExecutionContext, timeout: float | None) -> CommandResult:
    return run_command(
        args,
        cwd=context.working_dir,
        env=dict(context.env) or None,
        timeout=timeout,
        cancel_token=context.cancel_token,
    )


def command_check(args: str | Sequence[str], *, timeout: float | None = None) -> Predicate:
    """Return a predicate that passes when *args* exits with status 0.

    When *timeout* elapses the process is terminated and
    :class:`CheckTimeoutError` is raised, so the check is reported as a
    timeout error rather than an ordinary failure.
    """
    cmd = _normalize_args(args)
    if not cmd:
        raise ValueError("command_check requires a non-empty command.")

    def _predicate(context: ExecutionContext) -> CheckOutcome:
        result = _execute(cmd, context, timeout)
        if result.timed_out:
            raise CheckTimeoutError(timeout, f"{cmd[0]} timed out after {timeout}s")
        evidence = {
            "command": shlex.join(cmd),
            "returncode": result.returncode,
            "stdout": _tail(result.stdout),
            "stderr": _tail(result.stderr),
            "duration_ms": result.duration_ms,
        }
        if result.returncode != 0:
            return CheckOutcome.failed(f"{cmd[0]} exited with status {result.returncode}", **evidence)
        return CheckOutcome.ok(f"{cmd[0]} succeeded", **evidence)

    _predicate.__name__ = f"command_check[{cmd[0]}]"
    return _predicate


def command_fix(args: str | Sequence[str], *, timeout: float | None = None):
    """Return an autofix callable that runs *args*.

    A non-zero exit raises :class:`RuleflowError`, which the executor
    records as a failed self-heal attempt.
    """
    cmd = _normalize_args(args)
    if not cmd:
        raise ValueError("command_fix requires a non-empty command.")

    def _autofix(context: ExecutionContext, result: CheckResult) -> None:
        logger.info("Running fix command for %s: %s", result.check_id, shlex.join(cmd))
        outcome = _execute(cmd, context, timeout)
        if outcome.timed_out:
            raise CheckTimeoutError(timeout, f"Fix command '{shlex.join(cmd)}' timed out after {timeout}s")
        if outcome.returncode != 0:
            raise RuleflowError(
                f"Fix command '{shlex.join(cmd)}' exited with status {outcome.returncode}: "
                f"{_tail(outcome.stderr, 500).strip()}"
            )

    _autofix.__name__ = f"command_fix[{cmd[0]}]"
    return _autofix
