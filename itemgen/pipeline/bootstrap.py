"""Bootstrap helpers for the item generation pipeline."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Sequence

from dotenv import load_dotenv

from itemgen.core.config import GenerationConfig, WidgetCollectionConfig, load_generation_config
from itemgen.core.dspy_runtime import DSPyConfigurationError, configure_generator_lm
from itemgen.core.provenance import ProvenanceLogger

from .context import PipelineContext, PipelinePaths

DEFAULT_CONFIG_PATH = Path("config/pipeline.yaml")
DEFAULT_OUTPUT_DIR = Path("outputs")
LOGGER = logging.getLogger(__name__)
AGENT = "itemgen.pipeline"


def _capture_env(keys: tuple[str, ...]) -> Dict[str, str]:
    """Return a filtered snapshot of environment variables for provenance."""
    snapshot: Dict[str, str] = {}
    for key in keys:
        value = os.getenv(key)
        if value is not None:
            snapshot[key] = value
    return snapshot


def bootstrap_pipeline(
    config_path: Path | None = None,
    *,
    repo_root: Path | None = None,
    output_dir: Path | None = None,
    env_keys: tuple[str, ...] = ("OPENAI_API_BASE", "OPENAI_API_BASE_GENERATOR"),
    widget_types_override: Sequence[str] | None = None,
    configure_models: bool = True,
) -> PipelineContext:
    """
    Load configuration, environment variables, and construct the pipeline context.

    Parameters
    ----------
    config_path:
        Path to the generation YAML. Defaults to ``config/pipeline.yaml`` under ``repo_root``.
    repo_root:
        Root of the repository. Defaults to ``Path.cwd()``.
    output_dir:
        Directory for generated artifacts. Defaults to ``repo_root / 'outputs'``.
    env_keys:
        Environment variables to capture for provenance logging. Keep secrets out of this list.
    widget_types_override:
        Replace the configured widget collection types (e.g. from ``--widget-types``).
        The override is validated like the config file, so unknown types raise ``ValueError``.
    configure_models:
        Build the DSPy generator LM. Dry runs skip this so no API key is needed.
    """

    repo_root = (repo_root or Path.cwd()).resolve()
    load_dotenv(repo_root / ".env")
    config_path = (config_path or (repo_root / DEFAULT_CONFIG_PATH)).resolve()
    output_dir = (output_dir or (repo_root / DEFAULT_OUTPUT_DIR)).resolve()

    config: GenerationConfig = load_generation_config(config_path)
    if widget_types_override:
        widgets_cfg = WidgetCollectionConfig.model_validate(
            {**config.widgets.model_dump(), "widget_types": list(widget_types_override)}
        )
        config = config.model_copy(update={"widgets": widgets_cfg})

    paths = PipelinePaths(repo_root=repo_root, output_dir=output_dir)
    paths.ensure_directories()
    provenance = ProvenanceLogger(paths.provenance_path, agent=AGENT)

    ctx = PipelineContext(
        config=config,
        paths=paths,
        env=_capture_env(env_keys),
        provenance=provenance,
    )

    ctx.provenance.record(
        "bootstrap",
        "Generation config loaded",
        {
            "config_path": str(config_path),
            "widget_collection": config.widgets.name,
            "widget_types": config.widgets.widget_types,
            "limits": config.limits.model_dump(),
            "env": ctx.env,
        },
    )

    if not configure_models:
        LOGGER.info("Skipping LM configuration for this run.")
        return ctx

    try:
        ctx.generator_lm = configure_generator_lm(config.models)
    except DSPyConfigurationError as exc:
        raise RuntimeError("Unable to configure the DSPy generator model") from exc

    ctx.provenance.record(
        "bootstrap",
        "DSPy generator model configured",
        {"generator_model": config.models.generator_model},
    )
    return ctx
