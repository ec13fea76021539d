"""Ruleflow command-line interface."""
