"""
Typed configuration helpers for the item generation pipeline.

The YAML layout mirrors these models one-to-one; `load_generation_config` is
what the CLI and `bootstrap_pipeline` use.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .widgets import WIDGET_TYPES

DEFAULT_GENERATOR_MODEL = "gpt-5"


class ResourceLimits(BaseModel):
    """Per-request caps for visual context and per-fetch network limits."""

    model_config = ConfigDict(extra="forbid")

    max_images_per_request: int = Field(default=500, ge=1)
    max_image_payload_bytes: int = Field(default=50 * 1024 * 1024, ge=1)
    fetch_timeout_seconds: float = Field(default=5.0, gt=0.0)
    max_concurrent_fetches: int = Field(default=8, ge=1, le=64)


class RetryConfig(BaseModel):
    """Backoff policy for transient backend failures."""

    max_retries: int = Field(default=3, ge=0, le=10)
    base_delay_seconds: float = Field(default=1.0, ge=0.0)
    max_delay_seconds: float = Field(default=60.0, ge=0.0)


class RoleModelConfig(BaseModel):
    """Provider-specific configuration for the generator LM."""

    model_config = ConfigDict(extra="allow")

    provider: Literal["openai"] = "openai"
    model: str
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=64)
    api_key_env: str | None = None
    api_base: str | None = None
    api_base_env: str | None = None

    @property
    def extra_kwargs(self) -> Dict[str, Any]:
        return getattr(self, "model_extra", {}) or {}


class ModelConfig(BaseModel):
    """LM defaults for the generation backend."""

    model_config = ConfigDict(extra="ignore")

    generator: RoleModelConfig = Field(default_factory=lambda: RoleModelConfig(model=DEFAULT_GENERATOR_MODEL))
    default_temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=32000, ge=256)

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        # Flat form: ``models: {model: gpt-5, temperature: 1.0}``
        if "generator" not in payload and "model" in payload:
            legacy_temp = payload.pop("temperature", None)
            legacy_tokens = payload.pop("max_tokens", None)
            payload["generator"] = {"provider": "openai", "model": payload.pop("model")}
            if legacy_temp is not None:
                payload["default_temperature"] = legacy_temp
            if legacy_tokens is not None:
                payload["default_max_tokens"] = legacy_tokens
        return payload

    @property
    def generator_model(self) -> str:
        return self.generator.model

    @property
    def temperature(self) -> float:
        if self.generator.temperature is not None:
            return self.generator.temperature
        return self.default_temperature

    @property
    def max_tokens(self) -> int:
        if self.generator.max_tokens is not None:
            return self.generator.max_tokens
        return self.default_max_tokens


class WidgetCollectionConfig(BaseModel):
    """Widget types the renderer side can draw; slots outside this set are rejected.

    Defaults to every widget type with a parameter model. Types without one
    cannot be generated and are refused here rather than mid-run.
    """

    name: str = "default"
    widget_types: List[str] = Field(default_factory=lambda: list(WIDGET_TYPES))

    @field_validator("widget_types", mode="before")
    @classmethod
    def strip_items(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, list):
            return [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return value

    @field_validator("widget_types")
    @classmethod
    def known_types(cls, value: List[str]) -> List[str]:
        unknown = [item for item in value if item not in WIDGET_TYPES]
        if unknown:
            raise ValueError(f"unsupported widget types: {', '.join(unknown)}")
        return value

    def allows(self, widget_type: str | None) -> bool:
        return widget_type is not None and widget_type in self.widget_types


class GenerationConfig(BaseModel):
    """Top-level configuration for an item generation run."""

    models: ModelConfig = Field(default_factory=ModelConfig)
    limits: ResourceLimits = Field(default_factory=ResourceLimits)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    widgets: WidgetCollectionConfig

    @model_validator(mode="before")
    @classmethod
    def ensure_sections_present(cls, values: Any) -> Any:
        if isinstance(values, dict) and "widgets" not in values:
            raise ValueError("Missing config sections: widgets")
        return values


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def load_generation_config(path: Path) -> GenerationConfig:
    """Load the generation config used by the generate-item CLI."""
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    try:
        return GenerationConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid generation config in {path}") from exc


__all__ = [
    "GenerationConfig",
    "ModelConfig",
    "ResourceLimits",
    "RetryConfig",
    "RoleModelConfig",
    "WidgetCollectionConfig",
    "load_generation_config",
    "read_yaml_file",
]
