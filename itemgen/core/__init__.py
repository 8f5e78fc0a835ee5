"""
Foundational models, configuration and logging utilities for item generation.

Higher-level orchestration (apps/) depends on these modules, never the other
way around.
"""

from .config import GenerationConfig, ResourceLimits, WidgetCollectionConfig, load_generation_config
from .envelope import Envelope, ImagePayload
from .errors import ItemGenerationError
from .provenance import ProvenanceEvent, ProvenanceLogger

__all__ = [
    "Envelope",
    "GenerationConfig",
    "ImagePayload",
    "ItemGenerationError",
    "ProvenanceEvent",
    "ProvenanceLogger",
    "ResourceLimits",
    "WidgetCollectionConfig",
    "load_generation_config",
]
