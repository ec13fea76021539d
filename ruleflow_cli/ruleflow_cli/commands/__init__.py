"""Ruleflow CLI subcommands."""
