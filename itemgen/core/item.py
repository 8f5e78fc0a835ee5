"""Item shell, response declarations and the assembled item."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from .content import BlockContent, WireModel
from .feedback import FeedbackPlan
from .interactions import AnyInteraction
from .widgets import AnyWidget


class ResponseDeclaration(WireModel):
    identifier: str
    cardinality: Literal["single", "multiple", "ordered"]
    base_type: Literal["string", "integer", "float", "identifier", "directedPair"]
    correct: Any
    allow_empty: Optional[bool] = None


class AssessmentItemShell(WireModel):
    """Output of the shell stage: the document skeleton with slot references."""

    identifier: str
    title: str
    response_declarations: List[ResponseDeclaration] = Field(..., min_length=1)
    body: Optional[BlockContent] = None


class AssembledItem(WireModel):
    identifier: str
    title: str
    body: Optional[BlockContent] = None
    response_declarations: List[ResponseDeclaration]
    interactions: Dict[str, AnyInteraction] = Field(default_factory=dict)
    widgets: Dict[str, AnyWidget] = Field(default_factory=dict)
    feedback_plan: FeedbackPlan
    feedback_blocks: Dict[str, BlockContent] = Field(default_factory=dict)


__all__ = [
    "AssembledItem",
    "AssessmentItemShell",
    "ResponseDeclaration",
]
