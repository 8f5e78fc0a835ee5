"""Block and inline content tree used by item bodies, feedback and interactions.

Nodes are pydantic models tagged by a literal ``type`` field and grouped into
discriminated unions, so the set of node kinds is closed. Walkers dispatch on
``type`` (see ``apps.orchestrator.collector``).
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Tuple, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with the backend (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    @field_validator("*", mode="before")
    @classmethod
    def _null_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        # Strict output schemas make optional properties nullable; null stands for "not set".
        if value is None and info.field_name is not None:
            field = cls.model_fields[info.field_name]
            if not field.is_required():
                return field.get_default(call_default_factory=True)
        return value

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Inline nodes


class TextInline(WireModel):
    type: Literal["text"] = "text"
    content: str


class MathInline(WireModel):
    type: Literal["math"] = "math"
    mathml: str = Field(..., description="Inner MathML markup without the outer <math> element.")


class InlineWidgetRef(WireModel):
    type: Literal["inlineWidgetRef"] = "inlineWidgetRef"
    widget_id: str
    widget_type: str


class InlineInteractionRef(WireModel):
    type: Literal["inlineInteractionRef"] = "inlineInteractionRef"
    interaction_id: str


class GapInline(WireModel):
    type: Literal["gap"] = "gap"
    gap_id: str


InlineItem = Annotated[
    Union[TextInline, MathInline, InlineWidgetRef, InlineInteractionRef, GapInline],
    Field(discriminator="type"),
]
InlineContent = List[InlineItem]


# ---------------------------------------------------------------------------
# Block nodes


class ParagraphBlock(WireModel):
    type: Literal["paragraph"] = "paragraph"
    content: InlineContent


class CodeBlock(WireModel):
    type: Literal["codeBlock"] = "codeBlock"
    code: str


class UnorderedListBlock(WireModel):
    type: Literal["unorderedList"] = "unorderedList"
    items: List[InlineContent] = Field(..., min_length=1)


class OrderedListBlock(WireModel):
    type: Literal["orderedList"] = "orderedList"
    items: List[InlineContent] = Field(..., min_length=1)


TableRow = List[Optional[InlineContent]]


class TableRichBlock(WireModel):
    type: Literal["tableRich"] = "tableRich"
    header: Optional[List[TableRow]] = None
    rows: List[TableRow]


class BlockquoteBlock(WireModel):
    type: Literal["blockquote"] = "blockquote"
    content: InlineContent
    attribution: Optional[InlineContent] = None


class WidgetRefBlock(WireModel):
    type: Literal["widgetRef"] = "widgetRef"
    widget_id: str
    widget_type: str


class InteractionRefBlock(WireModel):
    type: Literal["interactionRef"] = "interactionRef"
    interaction_id: str


BlockItem = Annotated[
    Union[
        ParagraphBlock,
        CodeBlock,
        UnorderedListBlock,
        OrderedListBlock,
        TableRichBlock,
        BlockquoteBlock,
        WidgetRefBlock,
        InteractionRefBlock,
    ],
    Field(discriminator="type"),
]
BlockContent = List[BlockItem]

BlockContentAdapter: TypeAdapter[List[BlockItem]] = TypeAdapter(BlockContent)
InlineContentAdapter: TypeAdapter[List[InlineItem]] = TypeAdapter(InlineContent)


def node_tags(union: object) -> Tuple[str, ...]:
    """Return the ``type`` tags of every member in an annotated node union."""

    members = get_args(get_args(union)[0])
    return tuple(member.model_fields["type"].default for member in members)


INLINE_NODE_TYPES = node_tags(InlineItem)
BLOCK_NODE_TYPES = node_tags(BlockItem)


__all__ = [
    "BLOCK_NODE_TYPES",
    "BlockContent",
    "BlockContentAdapter",
    "BlockItem",
    "BlockquoteBlock",
    "CodeBlock",
    "GapInline",
    "INLINE_NODE_TYPES",
    "InlineContent",
    "InlineContentAdapter",
    "InlineInteractionRef",
    "InlineItem",
    "InlineWidgetRef",
    "InteractionRefBlock",
    "MathInline",
    "OrderedListBlock",
    "ParagraphBlock",
    "TableRichBlock",
    "TextInline",
    "UnorderedListBlock",
    "WidgetRefBlock",
    "WireModel",
    "node_tags",
]
