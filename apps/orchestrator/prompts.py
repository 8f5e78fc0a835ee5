"""Prompt builders for the four generation stages.

Each builder returns ``(system_instruction, user_content)``. Wording is not a
contract; only the context each stage receives is. Templates are dedented once
at import and filled with ``str.format`` so multi-line JSON and source text are
inserted verbatim.
"""

from __future__ import annotations

import json
from textwrap import dedent
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from itemgen.core.envelope import Envelope
from itemgen.core.feedback import FeedbackPlan
from itemgen.core.item import AssessmentItemShell

Prompt = Tuple[str, str]


def _template(text: str) -> str:
    return dedent(text).strip()


SHELL_SYSTEM = _template(
    """
    You convert legacy quiz items into structured assessment items.
    Produce only the item shell: identifier, title, response declarations and the body.
    Reference interactive elements with interactionRef / inlineInteractionRef nodes and
    visuals with widgetRef / inlineWidgetRef nodes. Never inline their content.
    Every slot id must be unique and lowercase with underscores.
    """
)
SHELL_USER = _template(
    """
    Allowed widget types: {widget_types}

    Source item:
    <source>
    {source}
    </source>

    Supplementary vector graphics:
    {supplementary}

    {image_count} raster image(s) are attached for visual context.
    """
)

INTERACTIONS_SYSTEM = _template(
    """
    You write the content of interactive elements for an assessment item.
    Return an object keyed by interaction id. Each entry's responseIdentifier must match
    a response declaration in the shell. Choice identifiers are uppercase.
    """
)
INTERACTIONS_USER = _template(
    """
    Interaction ids to generate: {interaction_ids}
    Allowed widget types: {widget_types}

    Item shell:
    {shell}

    Source item:
    <source>
    {source}
    </source>
    """
)

FEEDBACK_SYSTEM = _template(
    """
    You write learner feedback for every outcome of an assessment item.
    Fill every leaf of the FEEDBACK__OVERALL object with block content that explains
    why the response is right or wrong. Do not add or omit outcomes.
    """
)
FEEDBACK_USER = _template(
    """
    Feedback mode: {mode}
    Outcomes ({outcome_count}):
    {outcomes}

    Item shell:
    {shell}

    Interactions:
    {interactions}
    """
)

WIDGETS_SYSTEM = _template(
    """
    You produce renderer parameters for the widgets referenced by an assessment item.
    Return an object keyed by widget id; each value must carry the declared "type".
    """
)
WIDGETS_USER = _template(
    """
    Widgets to generate (id -> type):
    {widget_mapping}

    Item shell:
    {shell}

    Interactions:
    {interactions}

    Source item:
    <source>
    {source}
    </source>
    """
)


def _json_block(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _supplementary_block(envelope: Envelope) -> str:
    if not envelope.supplementary_content:
        return "(none)"
    return "\n\n".join(envelope.supplementary_content)


def _shell_json(shell: AssessmentItemShell) -> str:
    return _json_block(shell.to_wire())


def _interactions_json(interactions: Mapping[str, Any]) -> str:
    return _json_block({key: value.to_wire() for key, value in interactions.items()})


def _type_list(widget_types: Sequence[str]) -> str:
    return ", ".join(widget_types) or "(none)"


def shell_prompt(envelope: Envelope, image_count: int, widget_types: Sequence[str]) -> Prompt:
    user = SHELL_USER.format(
        widget_types=_type_list(widget_types),
        source=envelope.primary_content,
        supplementary=_supplementary_block(envelope),
        image_count=image_count,
    )
    return SHELL_SYSTEM, user


def interactions_prompt(
    envelope: Envelope,
    shell: AssessmentItemShell,
    interaction_ids: Sequence[str],
    widget_types: Sequence[str],
) -> Prompt:
    user = INTERACTIONS_USER.format(
        interaction_ids=", ".join(interaction_ids),
        widget_types=_type_list(widget_types),
        shell=_shell_json(shell),
        source=envelope.primary_content,
    )
    return INTERACTIONS_SYSTEM, user


def feedback_prompt(
    shell: AssessmentItemShell,
    plan: FeedbackPlan,
    interactions: Mapping[str, Any],
) -> Prompt:
    outcomes: List[Dict[str, Any]] = [
        {"id": combo.id, "path": [seg.to_wire() for seg in combo.path]} for combo in plan.combinations
    ]
    user = FEEDBACK_USER.format(
        mode=plan.mode,
        outcome_count=len(outcomes),
        outcomes=_json_block(outcomes),
        shell=_shell_json(shell),
        interactions=_interactions_json(interactions),
    )
    return FEEDBACK_SYSTEM, user


def widgets_prompt(
    envelope: Envelope,
    shell: AssessmentItemShell,
    widget_mapping: Mapping[str, str],
    interactions: Mapping[str, Any],
) -> Prompt:
    user = WIDGETS_USER.format(
        widget_mapping=_json_block(dict(widget_mapping)),
        shell=_shell_json(shell),
        interactions=_interactions_json(interactions),
        source=envelope.primary_content,
    )
    return WIDGETS_SYSTEM, user


__all__ = ["feedback_prompt", "interactions_prompt", "shell_prompt", "widgets_prompt"]
