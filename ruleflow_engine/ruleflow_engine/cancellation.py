"""Per-run cancellation token and a cancellation-aware command runner.

Predicates may run on worker threads, so the token is backed by a
:class:`threading.Event` rather than an asyncio primitive.  Cancellation
is cooperative: long-running predicates are expected to call
:meth:`CancellationToken.raise_if_cancelled` at safe points.  Processes
started through :func:`run_command` are terminated when the token fires.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from pydantic import BaseModel

from ruleflow_engine.errors import CheckCancelledError, CommandError

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1  # seconds
_TERMINATE_GRACE = 5.0  # seconds


class CancellationToken:
    """A one-shot cancellation signal.

    The executor owns one token per run and hands each check evaluation a
    :meth:`child` token.  A child fires whenever its parent fires, and a
    :meth:`cancel` request made through a child is forwarded to the parent.
    :meth:`expire` fires only the child; the executor uses it when a
    check's deadline passes.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._reason = ""
        self._parent = parent
        self._unlink: Callable[[], None] = lambda: None
        if parent is not None:
            self._unlink = parent.on_cancel(lambda: self._fire(parent.reason or "cancelled"))

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def child(self) -> CancellationToken:
        """Return a token that fires with this one but can also expire alone."""
        return CancellationToken(parent=self)

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token (and its parent, if any).  Subsequent calls are no-ops."""
        if self._parent is not None:
            self._parent.cancel(reason)
        self._fire(reason)

    def expire(self, reason: str) -> None:
        """Fire this token without touching its parent."""
        self._fire(reason)

    def detach(self) -> None:
        """Stop following the parent token."""
        self._unlink()

    def _fire(self, reason: str) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        if self._parent is None:
            logger.info("Run cancelled: %s", reason)
        else:
            logger.debug("Check scope cancelled: %s", reason)
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                logger.warning("Cancellation callback failed: %s", exc)

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register *callback* to run when the token fires.

        If the token has already fired the callback runs immediately.
        Returns a function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def _unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return _unregister

        callback()
        return lambda: None

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CheckCancelledError(self._reason or "cancelled")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the token fires or *timeout* elapses."""
        return self._event.wait(timeout)


class CommandResult(BaseModel):
    """Captured outcome of a command run on behalf of a check."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
) -> CommandResult:
    """Run *args* to completion, terminating it if *cancel_token* fires.

    Raises
    ------
    CommandError
        If the executable cannot be started.
    CheckCancelledError
        If the token fires while the process is running.
    """
    cmd = [str(a) for a in args]
    start = time.monotonic()
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError as exc:
        raise CommandError(f"Executable not found: {cmd[0]}") from exc
    except OSError as exc:
        raise CommandError(f"Failed to start {' '.join(cmd)}: {exc}") from exc

    def _terminate() -> None:
        if proc.poll() is None:
            logger.debug("Terminating pid %d (%s)", proc.pid, cmd[0])
            proc.terminate()

    unregister = cancel_token.on_cancel(_terminate) if cancel_token is not None else (lambda: None)
    timed_out = False
    try:
        deadline = None if timeout is None else start + timeout
        while True:
            wait_for = _POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    timed_out = True
                    _terminate()
                    break
                wait_for = min(wait_for, remaining)
            try:
                stdout, stderr = proc.communicate(timeout=wait_for)
                break
            except subprocess.TimeoutExpired:
                continue
        if timed_out:
            try:
                stdout, stderr = proc.communicate(timeout=_TERMINATE_GRACE)
            except subprocess.TimeoutExpired:
                proc.kill()
                stdout, stderr = proc.communicate()
    finally:
        unregister()

    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    return CommandResult(
        args=cmd,
        returncode=proc.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
        duration_ms=int((time.monotonic() - start) * 1000),
        timed_out=timed_out,
    )
