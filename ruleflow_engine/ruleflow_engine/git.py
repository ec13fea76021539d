"""Thin git client for populating the changed-file list of a run.

All interaction with the ``git`` binary is done through :func:`subprocess.run`
with explicit timeouts and structured error handling so that callers receive
:class:`GitClientError` exceptions with descriptive messages rather than raw
subprocess failures.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from ruleflow_engine.errors import RuleflowError

logger = logging.getLogger(__name__)

_SUBPROCESS_TIMEOUT = 30  # seconds

# Hex SHAs and common ref names (branches, tags, HEAD~2, origin/main).
_GIT_SHA_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")
_GIT_REF_RE = re.compile(r"^[a-zA-Z0-9_./@~^{}\-]+$")


class GitClientError(RuleflowError):
    """Raised when a git operation fails or the repository is invalid."""


def _validate_git_ref(ref: str) -> None:
    """Reject refs containing shell metacharacters or whitespace.

    Raises
    ------
    GitClientError
        If *ref* is empty or does not look like a SHA or ref name.
    """
    if not ref:
        raise GitClientError("Git ref cannot be empty")
    if not (_GIT_SHA_RE.match(ref) or _GIT_REF_RE.match(ref)):
        raise GitClientError(f"Invalid git ref: {ref!r}")


def _run_git(cmd: list[str], repo_path: Path) -> subprocess.CompletedProcess[str]:
    """Execute a git command and return the completed process.

    Raises
    ------
    GitClientError
        On non-zero exit, timeout, or if the process cannot be started.
    """
    try:
        return subprocess.run(
            cmd,
            cwd=repo_path,
            capture_output=True,
            text=True,
            check=True,
            timeout=_SUBPROCESS_TIMEOUT,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise GitClientError(f"git command failed: {' '.join(cmd)}\nExit code {exc.returncode}: {stderr}") from exc
    except subprocess.TimeoutExpired as exc:
        raise GitClientError(f"git command timed out after {_SUBPROCESS_TIMEOUT}s: {' '.join(cmd)}") from exc
    except FileNotFoundError as exc:
        raise GitClientError("git executable not found. Ensure git is installed and on PATH.") from exc


def get_changed_files(repo_path: Path, base: str = "HEAD") -> list[str]:
    """Return paths that differ from *base*, plus untracked files.

    Paths are repository-relative and sorted for deterministic ordering.
    Deleted files are excluded since checks cannot inspect them.
    """
    _validate_git_ref(base)

    diff = _run_git(["git", "diff", "--name-only", "--diff-filter=d", base], repo_path)
    untracked = _run_git(["git", "ls-files", "--others", "--exclude-standard"], repo_path)

    paths = {line.strip() for line in (diff.stdout + "\n" + untracked.stdout).splitlines() if line.strip()}
    logger.debug("Detected %d changed file(s) relative to %s", len(paths), base)
    return sorted(paths)
