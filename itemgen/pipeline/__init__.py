"""Pipeline bootstrap and run utilities for item generation."""

from __future__ import annotations

from .bootstrap import bootstrap_pipeline
from .context import PipelineContext, PipelinePaths
from .runtime import PipelineRunArtifacts, run_pipeline

__all__ = [
    "PipelineContext",
    "PipelinePaths",
    "PipelineRunArtifacts",
    "bootstrap_pipeline",
    "run_pipeline",
]
