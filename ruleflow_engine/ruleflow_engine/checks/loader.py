"""Build a :class:`CheckRegistry` from a declarative rule list.

A rule file is a YAML, JSON or TOML document shaped like::

    plugins:
      - myproject.checks          # modules exposing register_checks(registry)
    rules:
      - id: lint
        stage: static
        severity: medium
        command: ruff check .
        fix_command: ruff check --fix .
      - id: readme
        stage: static
        severity: low
        file_exists: README.md
      - id: no-secrets
        stage: security
        severity: critical
        forbid_pattern: "AKIA[0-9A-Z]{16}"
        files: "*.py"
      - id: custom
        stage: build
        predicate: myproject.checks:custom_predicate
        autofix: myproject.checks:custom_fix

A bare list of rules is accepted as well.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ruleflow_engine.checks.builtin import (
    command_check,
    command_fix,
    env_present_check,
    forbidden_pattern_check,
    path_exists_check,
)
from ruleflow_engine.checks.models import Check, Predicate, Severity
from ruleflow_engine.checks.registry import CheckRegistry
from ruleflow_engine.documents import DocumentError, read_document
from ruleflow_engine.errors import InvalidCheckError

logger = logging.getLogger(__name__)

_PREDICATE_SOURCES = ("predicate", "command", "file_exists", "forbid_pattern", "env_present")


class RuleSpec(BaseModel):
    """One declarative rule as written in a rule file."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    stage: str = "default"
    severity: Severity = Severity.MEDIUM
    description: str = ""
    tags: list[str] = Field(default_factory=list)

    predicate: str | None = None
    command: str | list[str] | None = None
    file_exists: str | None = None
    forbid_pattern: str | None = None
    files: str = "*"
    env_present: list[str] | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)

    autofix: str | None = None
    fix_command: str | list[str] | None = None

    @model_validator(mode="after")
    def _exactly_one_source(self) -> RuleSpec:
        sources = [name for name in _PREDICATE_SOURCES if getattr(self, name) is not None]
        if len(sources) != 1:
            raise ValueError(f"rule must define exactly one of {', '.join(_PREDICATE_SOURCES)} (got {len(sources)})")
        if self.autofix is not None and self.fix_command is not None:
            raise ValueError("rule may define autofix or fix_command, not both")
        return self


def import_callable(reference: str) -> Any:
    """Import ``package.module:attribute`` and return the attribute.

    Raises
    ------
    InvalidCheckError
        If the reference is malformed, cannot be imported, or is not callable.
    """
    module_name, sep, attr_path = reference.partition(":")
    if not sep or not module_name or not attr_path:
        raise InvalidCheckError(f"Invalid callable reference {reference!r}; expected 'module:function'.")
    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise InvalidCheckError(f"Cannot import module {module_name!r}: {exc}") from exc
    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise InvalidCheckError(f"{module_name!r} has no attribute {attr_path!r}") from None
    if not callable(target):
        raise InvalidCheckError(f"{reference!r} is not callable")
    return target


def _build_predicate(rule: RuleSpec) -> Predicate:
    if rule.predicate is not None:
        return import_callable(rule.predicate)
    if rule.command is not None:
        return command_check(rule.command, timeout=rule.timeout_seconds)
    if rule.file_exists is not None:
        return path_exists_check(rule.file_exists)
    if rule.forbid_pattern is not None:
        return forbidden_pattern_check(rule.forbid_pattern, rule.files)
    if rule.env_present is not None:
        return env_present_check(rule.env_present)
    raise InvalidCheckError(f"Rule {rule.id!r} has no predicate source.")


def build_check(rule: RuleSpec) -> Check:
    """Translate a :class:`RuleSpec` into a runnable :class:`Check`."""
    autofix = None
    if rule.autofix is not None:
        autofix = import_callable(rule.autofix)
    elif rule.fix_command is not None:
        autofix = command_fix(rule.fix_command, timeout=rule.timeout_seconds)

    return Check(
        id=rule.id,
        stage=rule.stage,
        severity=rule.severity,
        predicate=_build_predicate(rule),
        autofix=autofix,
        description=rule.description,
        tags=tuple(rule.tags),
    )


def load_plugins(modules: Sequence[str], registry: CheckRegistry) -> None:
    """Import each module and call its ``register_checks(registry)`` hook."""
    for module_name in modules:
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            raise InvalidCheckError(f"Cannot import plugin {module_name!r}: {exc}") from exc
        hook = getattr(module, "register_checks", None)
        if not callable(hook):
            raise InvalidCheckError(f"Plugin {module_name!r} does not define register_checks(registry)")
        before = len(registry)
        hook(registry)
        logger.info("Plugin %s registered %d check(s)", module_name, len(registry) - before)


def _split_document(data: Any) -> tuple[list[str], list[Any]]:
    if data is None:
        return [], []
    if isinstance(data, list):
        return [], data
    if isinstance(data, Mapping):
        plugins = data.get("plugins") or []
        rules = data.get("rules") or []
        if not isinstance(plugins, list) or not isinstance(rules, list):
            raise InvalidCheckError("'plugins' and 'rules' must be lists")
        return [str(p) for p in plugins], rules
    raise InvalidCheckError(f"Rule document must be a mapping or a list, got {type(data).__name__}")


def load_rules(
    source: Path | str | Sequence[Mapping[str, Any]] | Mapping[str, Any],
    registry: CheckRegistry | None = None,
) -> CheckRegistry:
    """Populate *registry* (or a new one) from a rule file or parsed rules.

    Plugins are loaded before declarative rules, so rules may not reuse a
    plugin check's id.

    Raises
    ------
    InvalidCheckError
        If the document or any rule is malformed.
    DuplicateCheckError
        If two rules share an id.
    """
    registry = registry if registry is not None else CheckRegistry()

    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            data = read_document(path)
        except DocumentError as exc:
            raise InvalidCheckError(str(exc)) from exc
        origin = str(path)
    else:
        data = source
        origin = "<inline>"

    plugins, raw_rules = _split_document(data)
    load_plugins(plugins, registry)

    for index, raw in enumerate(raw_rules):
        if not isinstance(raw, Mapping):
            raise InvalidCheckError(f"{origin}: rule #{index + 1} must be a mapping")
        try:
            rule = RuleSpec.model_validate(dict(raw))
        except ValidationError as exc:
            label = raw.get("id", f"#{index + 1}")
            raise InvalidCheckError(f"{origin}: invalid rule {label}: {exc}") from exc
        registry.register(build_check(rule))

    logger.info("Loaded %d check(s) from %s", len(registry), origin)
    return registry
