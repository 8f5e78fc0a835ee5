"""Run context: loaded config, output layout and the provenance log."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from itemgen.core.config import GenerationConfig, ResourceLimits, RetryConfig, WidgetCollectionConfig
from itemgen.core.provenance import ProvenanceLogger

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9_.-]")


class PipelinePaths(BaseModel):
    """Output layout under ``output_dir``.

    ``artifacts/`` holds the envelope and run manifests, ``items/`` one JSON
    file per assembled item and ``logs/`` the provenance log.
    """

    repo_root: Path
    output_dir: Path

    @field_validator("repo_root", "output_dir", mode="before")
    @classmethod
    def _expand(cls, value: Path | str) -> Path:
        return Path(value).expanduser().resolve()

    @property
    def artifacts_dir(self) -> Path:
        return self.output_dir / "artifacts"

    @property
    def items_dir(self) -> Path:
        return self.output_dir / "items"

    @property
    def logs_dir(self) -> Path:
        return self.output_dir / "logs"

    @property
    def provenance_path(self) -> Path:
        return self.logs_dir / "provenance.jsonl"

    @property
    def envelope_path(self) -> Path:
        return self.artifacts_dir / "envelope.json"

    def manifest_path(self, run_id: str) -> Path:
        return self.artifacts_dir / f"run-manifest-{run_id}.json"

    def item_path(self, identifier: str) -> Path:
        """Item file named after the item identifier, with unsafe characters replaced."""
        return self.items_dir / f"{_UNSAFE_FILENAME.sub('_', identifier) or 'item'}.json"

    def ensure_directories(self) -> None:
        for path in (self.artifacts_dir, self.items_dir, self.logs_dir):
            path.mkdir(parents=True, exist_ok=True)


class PipelineContext(BaseModel):
    config: GenerationConfig
    paths: PipelinePaths
    env: Dict[str, str] = Field(default_factory=dict)
    provenance: ProvenanceLogger
    generator_lm: Any | None = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def limits(self) -> ResourceLimits:
        return self.config.limits

    @property
    def retry(self) -> RetryConfig:
        return self.config.retry

    @property
    def widget_collection(self) -> WidgetCollectionConfig:
        return self.config.widgets
