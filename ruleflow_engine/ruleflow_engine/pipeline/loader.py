"""Load :class:`PipelineDefinition` documents from disk.

Example ``ruleflow.yaml``::

    name: verify
    abort_on_stage_failure: true
    profiles:
      quick: [static]
    stages:
      - name: static
        kind: parallel
        checks: [lint, format]
      - name: build
        kind: sequential
        checks: [build, test]
        abort_severity: critical
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from ruleflow_engine.documents import DocumentError, read_document
from ruleflow_engine.errors import PipelineDefinitionError
from ruleflow_engine.pipeline.definition import PipelineDefinition

logger = logging.getLogger(__name__)


def load_pipeline(path: Path | str) -> PipelineDefinition:
    """Read and validate the pipeline definition at *path*.

    Raises
    ------
    PipelineDefinitionError
        If the file cannot be read, parsed or validated.
    """
    path = Path(path)
    try:
        data = read_document(path)
    except DocumentError as exc:
        raise PipelineDefinitionError(str(exc)) from exc

    if not isinstance(data, Mapping):
        raise PipelineDefinitionError(f"{path}: pipeline document must be a mapping")

    # A rule file may carry its pipeline under a top-level ``pipeline`` key.
    if "pipeline" in data and isinstance(data["pipeline"], Mapping):
        data = data["pipeline"]

    raw = dict(data)
    raw.setdefault("name", path.stem)
    definition = PipelineDefinition.build(raw)
    logger.debug("Loaded pipeline %s with %d stage(s) from %s", definition.name, len(definition.stages), path)
    return definition
