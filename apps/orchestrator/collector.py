"""Slot reference collection over block/inline content and interactions.

The walker is driven by handler tables keyed on node ``type``. Each handler
takes the node and the current :class:`ReferenceMap` and returns the updated
map, so the accumulator is threaded explicitly and no state is shared between
walks. The tables are checked against the closed node unions at import time.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Literal, Optional

from itemgen.core.content import BLOCK_NODE_TYPES, INLINE_NODE_TYPES, BlockContent, InlineContent
from itemgen.core.errors import ReferenceConflictError
from itemgen.core.interactions import INTERACTION_TYPES

LOGGER = logging.getLogger(__name__)

SlotKind = Literal["widget", "interaction"]


@dataclass(frozen=True, slots=True)
class SlotReference:
    id: str
    kind: SlotKind
    declared_type: str | None = None


class ReferenceMap(Mapping):
    """Immutable id -> SlotReference mapping; one id, one type."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[str, SlotReference] | None = None) -> None:
        self._entries: Dict[str, SlotReference] = dict(entries or {})

    def __getitem__(self, slot_id: str) -> SlotReference:
        return self._entries[slot_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ReferenceMap({self._entries!r})"

    @property
    def widgets(self) -> Dict[str, str]:
        """Widget id -> declared widget type, in discovery order."""
        return {ref.id: ref.declared_type for ref in self._entries.values() if ref.kind == "widget"}

    @property
    def interaction_ids(self) -> List[str]:
        return [ref.id for ref in self._entries.values() if ref.kind == "interaction"]


def merge_reference(refs: ReferenceMap, ref: SlotReference) -> ReferenceMap:
    """Return ``refs`` with ``ref`` added, failing on a conflicting declaration."""

    existing = refs.get(ref.id)
    if existing is None:
        updated = dict(refs)
        updated[ref.id] = ref
        return ReferenceMap(updated)
    if existing.kind != ref.kind or existing.declared_type != ref.declared_type:
        LOGGER.error(
            "conflicting slot declaration",
            extra={"slot_id": ref.id, "existing_type": existing.declared_type, "new_type": ref.declared_type},
        )
        raise ReferenceConflictError(ref.id, existing.declared_type, ref.declared_type)
    return refs


def merge_maps(left: ReferenceMap, right: ReferenceMap) -> ReferenceMap:
    """Conflict-checked union of two maps (left entries keep their position)."""

    merged = left
    for ref in right.values():
        merged = merge_reference(merged, ref)
    return merged


Handler = Callable[[Any, ReferenceMap], ReferenceMap]


def _skip(node: Any, refs: ReferenceMap) -> ReferenceMap:
    return refs


def walk_inline(nodes: Optional[InlineContent], refs: ReferenceMap) -> ReferenceMap:
    for node in nodes or ():
        refs = INLINE_HANDLERS[node.type](node, refs)
    return refs


def walk_blocks(nodes: Optional[BlockContent], refs: ReferenceMap) -> ReferenceMap:
    for node in nodes or ():
        refs = BLOCK_HANDLERS[node.type](node, refs)
    return refs


def walk_interaction(interaction: Any, refs: ReferenceMap) -> ReferenceMap:
    return INTERACTION_HANDLERS[interaction.type](interaction, refs)


def _widget_ref(node: Any, refs: ReferenceMap) -> ReferenceMap:
    return merge_reference(refs, SlotReference(node.widget_id, "widget", node.widget_type))


def _interaction_ref(node: Any, refs: ReferenceMap) -> ReferenceMap:
    return merge_reference(refs, SlotReference(node.interaction_id, "interaction"))


def _list_items(node: Any, refs: ReferenceMap) -> ReferenceMap:
    for item in node.items:
        refs = walk_inline(item, refs)
    return refs


def _table(node: Any, refs: ReferenceMap) -> ReferenceMap:
    for row in [*(node.header or []), *node.rows]:
        for cell in row:
            refs = walk_inline(cell, refs)
    return refs


def _blockquote(node: Any, refs: ReferenceMap) -> ReferenceMap:
    refs = walk_inline(node.content, refs)
    return walk_inline(node.attribution, refs)


def _prompted_choices(interaction: Any, refs: ReferenceMap) -> ReferenceMap:
    refs = walk_inline(interaction.prompt, refs)
    for choice in interaction.choices:
        refs = walk_blocks(choice.content, refs)
    return refs


def _inline_choices(interaction: Any, refs: ReferenceMap) -> ReferenceMap:
    for choice in interaction.choices:
        refs = walk_inline(choice.content, refs)
    return refs


def _gap_match(interaction: Any, refs: ReferenceMap) -> ReferenceMap:
    refs = walk_blocks(interaction.content, refs)
    for gap_text in interaction.gap_texts:
        refs = walk_inline(gap_text.content, refs)
    return refs


INLINE_HANDLERS: Dict[str, Handler] = {
    "text": _skip,
    "math": _skip,
    "gap": _skip,
    "inlineWidgetRef": _widget_ref,
    "inlineInteractionRef": _interaction_ref,
}

BLOCK_HANDLERS: Dict[str, Handler] = {
    "paragraph": lambda node, refs: walk_inline(node.content, refs),
    "codeBlock": _skip,
    "unorderedList": _list_items,
    "orderedList": _list_items,
    "tableRich": _table,
    "blockquote": _blockquote,
    "widgetRef": _widget_ref,
    "interactionRef": _interaction_ref,
}

INTERACTION_HANDLERS: Dict[str, Handler] = {
    "choiceInteraction": _prompted_choices,
    "orderInteraction": _prompted_choices,
    "inlineChoiceInteraction": _inline_choices,
    "gapMatchInteraction": _gap_match,
    "textEntryInteraction": _skip,
    "unsupportedInteraction": _skip,
}


def _check_exhaustive(table: Mapping[str, Handler], tags: Iterable[str], label: str) -> None:
    expected = set(tags)
    if set(table) != expected:
        missing = sorted(expected - set(table))
        unknown = sorted(set(table) - expected)
        raise RuntimeError(f"{label} handler table out of sync: missing={missing} unknown={unknown}")


_check_exhaustive(INLINE_HANDLERS, INLINE_NODE_TYPES, "inline")
_check_exhaustive(BLOCK_HANDLERS, BLOCK_NODE_TYPES, "block")
_check_exhaustive(INTERACTION_HANDLERS, INTERACTION_TYPES, "interaction")


def collect(
    body: Optional[BlockContent],
    feedback_blocks: Mapping[str, BlockContent] | None = None,
    interactions: Mapping[str, Any] | None = None,
) -> ReferenceMap:
    """Collect every slot referenced from the body, feedback blocks and interactions."""

    refs = walk_blocks(body, ReferenceMap())
    for blocks in (feedback_blocks or {}).values():
        refs = walk_blocks(blocks, refs)
    for interaction in (interactions or {}).values():
        refs = walk_interaction(interaction, refs)
    LOGGER.debug("collected slot references", extra={"count": len(refs)})
    return refs


def collect_interaction_ids(body: Optional[BlockContent]) -> List[str]:
    """Interaction ids referenced from the shell body, in discovery order."""

    return collect(body).interaction_ids


def collect_widget_refs(
    body: Optional[BlockContent],
    feedback_blocks: Mapping[str, BlockContent] | None = None,
    interactions: Mapping[str, Any] | None = None,
) -> Dict[str, str]:
    """Widget id -> declared type across body, feedback and interactions."""

    return collect(body, feedback_blocks, interactions).widgets


__all__ = [
    "ReferenceMap",
    "SlotReference",
    "collect",
    "collect_interaction_ids",
    "collect_widget_refs",
    "merge_maps",
    "merge_reference",
    "walk_blocks",
    "walk_inline",
]
