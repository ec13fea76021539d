"""Built-in predicates that inspect the working tree and environment."""

from __future__ import annotations

import fnmatch
import logging
import re
from collections.abc import Iterable
from pathlib import Path

from ruleflow_engine.checks.models import CheckOutcome, ExecutionContext, Predicate

logger = logging.getLogger(__name__)

# Cap the number of matches reported as evidence.
_MAX_MATCHES = 50

_SKIP_DIRS = {".git", ".hg", ".venv", "node_modules", "__pycache__"}


def path_exists_check(path: str) -> Predicate:
    """Return a predicate that passes when *path* exists under the working dir."""

    def _predicate(context: ExecutionContext) -> CheckOutcome:
        target = context.resolve_path(path)
        if target.exists():
            return CheckOutcome.ok(f"{path} exists", path=str(target))
        return CheckOutcome.failed(f"{path} is missing", path=str(target))

    return _predicate


def env_present_check(names: Iterable[str]) -> Predicate:
    """Return a predicate that passes when every variable in *names* is set and non-empty."""
    required = sorted(set(names))

    def _predicate(context: ExecutionContext) -> CheckOutcome:
        missing = [name for name in required if not context.env.get(name)]
        if missing:
            return CheckOutcome.failed(
                f"Missing environment variable(s): {', '.join(missing)}",
                missing=missing,
            )
        return CheckOutcome.ok("All required environment variables are set", required=required)

    return _predicate


def _candidate_files(context: ExecutionContext, files_glob: str) -> list[Path]:
    """Changed files when known, otherwise every file under the working dir."""
    if context.changed_files:
        return [
            context.resolve_path(p)
            for p in context.changed_files
            if fnmatch.fnmatch(p, files_glob) and context.resolve_path(p).is_file()
        ]

    found: list[Path] = []
    for candidate in sorted(context.working_dir.rglob("*")):
        if any(part in _SKIP_DIRS for part in candidate.relative_to(context.working_dir).parts):
            continue
        if candidate.is_file() and fnmatch.fnmatch(candidate.relative_to(context.working_dir).as_posix(), files_glob):
            found.append(candidate)
    return found


def forbidden_pattern_check(pattern: str, files_glob: str = "*") -> Predicate:
    """Return a predicate that fails when *pattern* matches a line in any candidate file."""
    regex = re.compile(pattern)

    def _predicate(context: ExecutionContext) -> CheckOutcome:
        matches: list[str] = []
        scanned = 0
        for path in _candidate_files(context, files_glob):
            if context.cancel_token is not None:
                context.cancel_token.raise_if_cancelled()
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                logger.debug("Skipping unreadable file %s", path)
                continue
            scanned += 1
            for lineno, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    rel = path.relative_to(context.working_dir) if path.is_relative_to(context.working_dir) else path
                    matches.append(f"{rel.as_posix()}:{lineno}")

        if matches:
            return CheckOutcome.failed(
                f"Pattern {pattern!r} found {len(matches)} time(s)",
                matches=matches[:_MAX_MATCHES],
                files_scanned=scanned,
            )
        return CheckOutcome.ok(f"Pattern {pattern!r} not found", files_scanned=scanned)

    return _predicate
