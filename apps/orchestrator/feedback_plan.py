"""Feedback plan construction and strict handling of nested feedback payloads.

The plan enumerates every outcome combination that needs its own feedback
block. The backend answers with a nested object keyed by response identifier
and outcome key; :func:`flatten_feedback` checks that object against the plan
and flattens it into one block list per combination id.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from itemgen.core.content import BlockContent, BlockContentAdapter
from itemgen.core.errors import FeedbackPlanMismatchError
from itemgen.core.feedback import (
    BINARY_KEYS,
    CORRECT,
    INCORRECT,
    OVERALL_OUTCOME,
    Combination,
    Dimension,
    FeedbackPlan,
    PathSegment,
    derive_combination_id,
)
from itemgen.core.interactions import FIXED_CHOICE_TYPES
from itemgen.core.json_schema import to_strict_json_schema
from itemgen.core.item import ResponseDeclaration
from itemgen.core.validation import SchemaValidator, validation

LOGGER = logging.getLogger(__name__)


def _derive_dimension(decl: ResponseDeclaration, interaction: Any) -> Dimension:
    if decl.base_type == "identifier" and decl.cardinality == "single" and interaction.type in FIXED_CHOICE_TYPES:
        return Dimension(
            response_identifier=decl.identifier,
            kind="enumerated",
            keys=[choice.identifier for choice in interaction.choices],
        )
    return Dimension(response_identifier=decl.identifier, kind="binary", keys=list(BINARY_KEYS))


def build_feedback_plan(
    response_declarations: Sequence[ResponseDeclaration],
    interactions: Mapping[str, Any],
) -> FeedbackPlan:
    """Derive the full outcome space from declarations and generated interactions.

    A declaration contributes a dimension only when some interaction answers
    it. Dimensions follow declaration order and the first one varies slowest
    in the product. With no dimensions the plan falls back to a single
    CORRECT/INCORRECT pair.
    """

    by_response: Dict[str, Any] = {}
    for interaction in interactions.values():
        by_response.setdefault(interaction.response_identifier, interaction)

    dimensions = [
        _derive_dimension(decl, by_response[decl.identifier])
        for decl in response_declarations
        if decl.identifier in by_response
    ]

    if not dimensions:
        plan = FeedbackPlan(
            mode="fallback",
            dimensions=[],
            combinations=[Combination(id=CORRECT), Combination(id=INCORRECT)],
        )
        LOGGER.info("built feedback plan", extra={"mode": plan.mode, "combination_count": 2, "dimension_count": 0})
        return plan

    axes = [[PathSegment(response_identifier=dim.response_identifier, key=key) for key in dim.keys] for dim in dimensions]
    combinations: List[Combination] = []
    seen: set[str] = set()
    for path in itertools.product(*axes):
        combo_id = derive_combination_id(list(path))
        if combo_id in seen:
            LOGGER.error("duplicate feedback combination id", extra={"combination_id": combo_id})
            raise FeedbackPlanMismatchError(f"duplicate feedback combination id detected: {combo_id}")
        seen.add(combo_id)
        combinations.append(Combination(id=combo_id, path=list(path)))

    plan = FeedbackPlan(mode="nested", dimensions=dimensions, combinations=combinations)
    LOGGER.info(
        "built feedback plan",
        extra={"mode": plan.mode, "combination_count": len(combinations), "dimension_count": len(dimensions)},
    )
    return plan


def _strict_object(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def build_feedback_schema(plan: FeedbackPlan) -> Dict[str, Any]:
    """JSON schema for the nested feedback payload the backend must return."""

    block_schema = BlockContentAdapter.json_schema(by_alias=True)
    definitions = block_schema.pop("$defs", {})
    leaf = _strict_object({"content": block_schema})

    if plan.mode == "fallback":
        overall = _strict_object({CORRECT: leaf, INCORRECT: leaf})
    else:

        def node(dims: Sequence[Dimension]) -> Dict[str, Any]:
            if not dims:
                return leaf
            head, rest = dims[0], dims[1:]
            branch = _strict_object({key: node(rest) for key in head.keys})
            return _strict_object({head.response_identifier: branch})

        overall = node(plan.dimensions)

    schema = _strict_object({OVERALL_OUTCOME: overall})
    if definitions:
        schema["$defs"] = definitions
    return to_strict_json_schema(schema)


PathKey = Tuple[Tuple[str, str], ...]


def _collect_leaves(
    node: Any,
    dims: Sequence[Dimension],
    prefix: PathKey,
    leaves: Dict[PathKey, Any],
    extras: List[str],
) -> None:
    label = "/".join(f"{rid}={key}" for rid, key in prefix) or OVERALL_OUTCOME
    if not isinstance(node, dict):
        return
    if not dims:
        extras.extend(f"{label}/{key}" for key in node if key != "content")
        if "content" in node:
            leaves[prefix] = node["content"]
        return
    head, rest = dims[0], dims[1:]
    extras.extend(f"{label}/{key}" for key in node if key != head.response_identifier)
    branch = node.get(head.response_identifier)
    if not isinstance(branch, dict):
        return
    for key, child in branch.items():
        if key not in head.keys:
            extras.append(f"{label}/{head.response_identifier}={key}")
            continue
        _collect_leaves(child, rest, prefix + ((head.response_identifier, key),), leaves, extras)


def flatten_feedback(
    plan: FeedbackPlan,
    payload: Any,
    *,
    validator: SchemaValidator = validation,
    stage: str | None = None,
) -> Dict[str, BlockContent]:
    """Check a nested feedback payload against the plan and flatten it by combination id."""

    if not isinstance(payload, dict) or OVERALL_OUTCOME not in payload:
        raise FeedbackPlanMismatchError(f"feedback payload must be an object with '{OVERALL_OUTCOME}'", stage=stage)

    extras = [key for key in payload if key != OVERALL_OUTCOME]
    overall = payload[OVERALL_OUTCOME]
    raw_by_id: Dict[str, Any] = {}

    if plan.mode == "fallback":
        if isinstance(overall, dict):
            extras.extend(key for key in overall if key not in BINARY_KEYS)
            for combo in plan.combinations:
                leaf = overall.get(combo.id)
                if isinstance(leaf, dict):
                    extras.extend(f"{combo.id}/{key}" for key in leaf if key != "content")
                    if "content" in leaf:
                        raw_by_id[combo.id] = leaf["content"]
    else:
        leaves: Dict[PathKey, Any] = {}
        _collect_leaves(overall, plan.dimensions, (), leaves, extras)
        for combo in plan.combinations:
            key = tuple((seg.response_identifier, seg.key) for seg in combo.path)
            if key in leaves:
                raw_by_id[combo.id] = leaves[key]

    missing = [combo.id for combo in plan.combinations if combo.id not in raw_by_id]
    if missing or extras:
        LOGGER.error("feedback payload does not match plan", extra={"missing": missing, "extra": extras})
        raise FeedbackPlanMismatchError(
            f"feedback payload does not match plan (missing={missing}, extra={extras})",
            missing_ids=missing,
            extra_ids=extras,
            stage=stage,
        )

    return {
        combo.id: validator.validate(BlockContentAdapter, raw_by_id[combo.id], stage=stage)
        for combo in plan.combinations
    }


__all__ = ["build_feedback_plan", "build_feedback_schema", "flatten_feedback"]
