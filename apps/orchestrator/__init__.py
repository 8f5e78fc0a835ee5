"""Staged item generation: reference collection, feedback planning and orchestration."""
from .backend import DSPyGenerationBackend, GenerationBackend
from .collector import ReferenceMap, SlotReference, collect, collect_interaction_ids, collect_widget_refs
from .feedback_plan import build_feedback_plan, build_feedback_schema, flatten_feedback
from .pipeline import ItemOrchestrator, PipelineState, RunTrace
from .schemas import feedback_schema, interactions_schema, shell_schema, widgets_schema

__all__ = [
    "DSPyGenerationBackend",
    "GenerationBackend",
    "ItemOrchestrator",
    "PipelineState",
    "ReferenceMap",
    "RunTrace",
    "SlotReference",
    "build_feedback_plan",
    "build_feedback_schema",
    "collect",
    "collect_interaction_ids",
    "collect_widget_refs",
    "feedback_schema",
    "flatten_feedback",
    "interactions_schema",
    "shell_schema",
    "widgets_schema",
]
