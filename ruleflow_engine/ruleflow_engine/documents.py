"""Read declarative YAML / JSON / TOML documents by file extension."""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

_YAML_SUFFIXES = {".yaml", ".yml"}


class DocumentError(ValueError):
    """Raised when a document cannot be read or parsed."""


def read_document(path: Path) -> Any:
    """Parse *path* according to its suffix.

    ``.yaml`` / ``.yml`` use :func:`yaml.safe_load`, ``.json`` uses
    :mod:`json` and ``.toml`` uses :mod:`tomllib`.  Unknown suffixes are
    parsed as YAML, which is a superset of JSON.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DocumentError(f"Cannot read {path}: {exc}") from exc

    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            return json.loads(text)
        if suffix == ".toml":
            return tomllib.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise DocumentError(f"Failed to parse {path}: {exc}") from exc
