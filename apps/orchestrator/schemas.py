"""Response schemas for the generation stages.

Each schema names exactly the slots the stage has to fill and is rewritten
into the strict structured-output subset before it reaches the backend.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence

from pydantic import TypeAdapter

from itemgen.core.feedback import FeedbackPlan
from itemgen.core.interactions import AnyInteraction
from itemgen.core.item import AssessmentItemShell
from itemgen.core.json_schema import keyed_object_schema, to_strict_json_schema
from itemgen.core.widgets import WIDGET_MODELS

from .feedback_plan import build_feedback_schema

_INTERACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(AnyInteraction)


def shell_schema() -> Dict[str, Any]:
    return to_strict_json_schema(AssessmentItemShell.model_json_schema(by_alias=True))


def interactions_schema(interaction_ids: Sequence[str]) -> Dict[str, Any]:
    entry = _INTERACTION_ADAPTER.json_schema(by_alias=True)
    return to_strict_json_schema(keyed_object_schema({interaction_id: entry for interaction_id in interaction_ids}))


def feedback_schema(plan: FeedbackPlan) -> Dict[str, Any]:
    return build_feedback_schema(plan)


def widgets_schema(widget_refs: Mapping[str, str]) -> Dict[str, Any]:
    """One property per referenced widget, shaped by that widget type's parameter model."""

    entries = {
        widget_id: WIDGET_MODELS[widget_type].model_json_schema(by_alias=True)
        for widget_id, widget_type in widget_refs.items()
    }
    return to_strict_json_schema(keyed_object_schema(entries))


__all__ = ["feedback_schema", "interactions_schema", "shell_schema", "widgets_schema"]
