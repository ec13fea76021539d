"""Built-in predicate factories usable from declarative rule files."""

from ruleflow_engine.checks.builtin.commands import command_check, command_fix
from ruleflow_engine.checks.builtin.files import (
    env_present_check,
    forbidden_pattern_check,
    path_exists_check,
)

__all__ = [
    "command_check",
    "command_fix",
    "env_present_check",
    "forbidden_pattern_check",
    "path_exists_check",
]
