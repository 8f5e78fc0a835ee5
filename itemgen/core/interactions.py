"""Interactive element models generated in the interactions stage."""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from .content import BlockContent, InlineContent, WireModel, node_tags


class BlockChoice(WireModel):
    identifier: str
    content: BlockContent


class InlineChoice(WireModel):
    identifier: str
    content: InlineContent


class GapText(WireModel):
    identifier: str
    match_max: int = Field(default=1, ge=0)
    content: InlineContent


class Gap(WireModel):
    identifier: str
    required: Optional[bool] = None


class ChoiceInteraction(WireModel):
    type: Literal["choiceInteraction"] = "choiceInteraction"
    response_identifier: str
    prompt: InlineContent
    choices: List[BlockChoice] = Field(..., min_length=1)
    shuffle: bool = True
    min_choices: int = Field(default=1, ge=0)
    max_choices: int = Field(default=1, ge=1)


class InlineChoiceInteraction(WireModel):
    type: Literal["inlineChoiceInteraction"] = "inlineChoiceInteraction"
    response_identifier: str
    choices: List[InlineChoice] = Field(..., min_length=1)
    shuffle: bool = True


class TextEntryInteraction(WireModel):
    type: Literal["textEntryInteraction"] = "textEntryInteraction"
    response_identifier: str
    expected_length: Optional[int] = None


class OrderInteraction(WireModel):
    type: Literal["orderInteraction"] = "orderInteraction"
    response_identifier: str
    prompt: InlineContent
    choices: List[BlockChoice] = Field(..., min_length=1)
    shuffle: bool = True
    orientation: Literal["vertical", "horizontal"] = "vertical"


class GapMatchInteraction(WireModel):
    type: Literal["gapMatchInteraction"] = "gapMatchInteraction"
    response_identifier: str
    shuffle: bool = True
    content: BlockContent
    gap_texts: List[GapText]
    gaps: List[Gap]


class UnsupportedInteraction(WireModel):
    type: Literal["unsupportedInteraction"] = "unsupportedInteraction"
    perseus_type: str
    response_identifier: str


AnyInteraction = Annotated[
    Union[
        ChoiceInteraction,
        InlineChoiceInteraction,
        TextEntryInteraction,
        OrderInteraction,
        GapMatchInteraction,
        UnsupportedInteraction,
    ],
    Field(discriminator="type"),
]

INTERACTION_TYPES = node_tags(AnyInteraction)
FIXED_CHOICE_TYPES = ("choiceInteraction", "inlineChoiceInteraction")

InteractionMapAdapter: TypeAdapter[dict] = TypeAdapter(dict[str, AnyInteraction])


__all__ = [
    "AnyInteraction",
    "BlockChoice",
    "ChoiceInteraction",
    "FIXED_CHOICE_TYPES",
    "Gap",
    "GapMatchInteraction",
    "GapText",
    "INTERACTION_TYPES",
    "InlineChoice",
    "InlineChoiceInteraction",
    "InteractionMapAdapter",
    "OrderInteraction",
    "TextEntryInteraction",
    "UnsupportedInteraction",
]
