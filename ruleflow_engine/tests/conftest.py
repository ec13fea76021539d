"""Shared fixtures for the Ruleflow engine tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from ruleflow_engine.checks.models import ExecutionContext
from ruleflow_engine.config import Settings, load_settings


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep RULEFLOW_* variables and stray .env files out of the tests."""
    for key in list(os.environ):
        if key.startswith("RULEFLOW_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings() -> Settings:
    return load_settings(check_timeout_seconds=5.0, max_heal_attempts=3)


@pytest.fixture
def context(tmp_path: Path) -> ExecutionContext:
    return ExecutionContext(working_dir=tmp_path, env={"CI": "true"})
