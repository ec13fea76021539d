"""Shared fixtures for the CLI tests.

Each test gets a throwaway project directory holding a rule file and a
pipeline definition.  Commands run for real against it; the only checks
used are file, environment and ``python -c`` command rules so no
external tooling is needed.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

import pytest
import yaml

# Environment variable read by the ``ci-env`` rule.
CI_MARKER = "RULEFLOW_TEST_CI_MARKER"


def _python_command(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def _default_rules() -> dict[str, Any]:
    return {
        "rules": [
            {
                "id": "readme",
                "stage": "static",
                "severity": "low",
                "file_exists": "README.md",
                "fix_command": _python_command("open('README.md', 'w').write('# project\\n')"),
                "description": "Project has a README",
            },
            {
                "id": "ci-env",
                "stage": "static",
                "severity": "medium",
                "env_present": [CI_MARKER],
            },
            {
                "id": "build",
                "stage": "build",
                "severity": "critical",
                "command": _python_command("print('built')"),
            },
            {
                "id": "test",
                "stage": "build",
                "severity": "high",
                "command": _python_command("print('tested')"),
            },
        ]
    }


def _default_pipeline() -> dict[str, Any]:
    return {
        "name": "verify",
        "profiles": {"quick": ["static"]},
        "stages": [
            {"name": "static", "kind": "parallel", "checks": ["readme", "ci-env"]},
            {"name": "build", "kind": "sequential", "checks": ["build", "test"]},
        ],
    }


def _write_project(
    root: Path,
    *,
    rules: dict[str, Any] | None = None,
    pipeline: dict[str, Any] | None = None,
    readme: bool = True,
) -> Path:
    """Write rule and pipeline files (and optionally a README) under *root*."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "ruleflow.rules.yaml").write_text(yaml.safe_dump(rules or _default_rules(), sort_keys=False))
    (root / "ruleflow.yaml").write_text(yaml.safe_dump(pipeline or _default_pipeline(), sort_keys=False))
    if readme:
        (root / "README.md").write_text("# project\n")
    return root


@pytest.fixture(autouse=True)
def _isolate(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Clear RULEFLOW_* variables and restore the root logger after each test."""
    for key in list(os.environ):
        if key.startswith("RULEFLOW_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv(CI_MARKER, "1")
    monkeypatch.chdir(tmp_path)

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    return _write_project(tmp_path / "project")


@pytest.fixture
def rules() -> dict[str, Any]:
    """A fresh copy of the default rule document, safe to mutate."""
    return _default_rules()


@pytest.fixture
def pipeline() -> dict[str, Any]:
    """A fresh copy of the default pipeline document, safe to mutate."""
    return _default_pipeline()


@pytest.fixture
def make_project(tmp_path: Path):
    """Factory writing a project with custom rule / pipeline documents."""

    def _make(name: str = "custom", **kwargs: Any) -> Path:
        return _write_project(tmp_path / name, **kwargs)

    return _make
