"""Entry point for `python -m ruleflow_cli` and `ruleflow` console script."""

from __future__ import annotations

from ruleflow_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
