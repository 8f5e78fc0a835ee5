"""Feedback plan models: dimensions, combinations and the enumerated outcome space."""

from __future__ import annotations

import math
import re
from typing import List, Literal

from pydantic import Field, model_validator

from .content import WireModel

CORRECT = "CORRECT"
INCORRECT = "INCORRECT"
BINARY_KEYS: tuple[str, str] = (CORRECT, INCORRECT)
OVERALL_OUTCOME = "FEEDBACK__OVERALL"
COMBINATION_PREFIX = "FB__"

_INVALID_ID_CHARS = re.compile(r"[^A-Z0-9_]")


def normalize_id_part(part: str) -> str:
    """Upper-snake a path fragment so it is safe inside an identifier."""
    return _INVALID_ID_CHARS.sub("_", part.upper())


def derive_combination_id(path: List["PathSegment"]) -> str:
    parts = [f"{normalize_id_part(seg.response_identifier)}_{normalize_id_part(seg.key)}" for seg in path]
    return COMBINATION_PREFIX + "__".join(parts)


class Dimension(WireModel):
    response_identifier: str
    kind: Literal["enumerated", "binary"]
    keys: List[str] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _binary_keys_fixed(self) -> "Dimension":
        if self.kind == "binary" and tuple(self.keys) != BINARY_KEYS:
            raise ValueError(f"binary dimension '{self.response_identifier}' must use keys {list(BINARY_KEYS)}")
        return self


class PathSegment(WireModel):
    response_identifier: str
    key: str


class Combination(WireModel):
    id: str
    path: List[PathSegment] = Field(default_factory=list)


class FeedbackPlan(WireModel):
    mode: Literal["fallback", "nested"]
    dimensions: List[Dimension] = Field(default_factory=list)
    combinations: List[Combination]

    @model_validator(mode="after")
    def _check_outcome_space(self) -> "FeedbackPlan":
        if self.mode == "fallback":
            if self.dimensions:
                raise ValueError("fallback plans cannot declare dimensions")
            if [combo.id for combo in self.combinations] != list(BINARY_KEYS):
                raise ValueError("fallback plans must have exactly CORRECT and INCORRECT combinations")
            return self
        if not self.dimensions:
            raise ValueError("nested plans require at least one dimension")
        expected = math.prod(len(dim.keys) for dim in self.dimensions)
        if len(self.combinations) != expected:
            raise ValueError(f"expected {expected} combinations, found {len(self.combinations)}")
        ids = [combo.id for combo in self.combinations]
        if len(set(ids)) != len(ids):
            raise ValueError("combination ids must be unique")
        return self

    @property
    def combination_ids(self) -> List[str]:
        return [combo.id for combo in self.combinations]


__all__ = [
    "BINARY_KEYS",
    "COMBINATION_PREFIX",
    "CORRECT",
    "Combination",
    "Dimension",
    "FeedbackPlan",
    "INCORRECT",
    "OVERALL_OUTCOME",
    "PathSegment",
    "derive_combination_id",
    "normalize_id_part",
]
