"""Error taxonomy for item generation runs.

Every failure that aborts a run is an :class:`ItemGenerationError`. The
orchestrator stamps the stage name onto the error before re-raising so callers
can tell exactly where a run stopped.
"""

from __future__ import annotations

from typing import Iterable, List


class ItemGenerationError(RuntimeError):
    """Base class for fatal pipeline failures."""

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class EnvelopeEmptyError(ItemGenerationError):
    """Primary content was empty or whitespace-only."""


class ResourceLimitExceededError(ItemGenerationError):
    """Image count or cumulative payload bytes exceeded the per-request cap."""

    def __init__(self, message: str, *, limit: int, observed: int, stage: str | None = None) -> None:
        super().__init__(message, stage=stage)
        self.limit = limit
        self.observed = observed


class UnsupportedURISchemeError(ItemGenerationError):
    """An image or screenshot reference used a scheme we do not accept."""

    def __init__(self, url: str, scheme: str, *, stage: str | None = None) -> None:
        super().__init__(f"unsupported url scheme '{scheme}' for {url}", stage=stage)
        self.url = url
        self.scheme = scheme


class MalformedSourceError(ItemGenerationError):
    """The source could not be turned into an envelope, e.g. an <img> tag without a src."""


class BackendCallError(ItemGenerationError):
    """The generation backend raised or returned a failure."""


class EmptyBackendResponseError(ItemGenerationError):
    """The generation backend returned no content."""


class JSONParseError(ItemGenerationError):
    """Backend content was not valid JSON."""


class SchemaValidationError(ItemGenerationError):
    """Data failed validation against the stage schema."""

    def __init__(self, message: str, *, errors: Iterable[str] = (), stage: str | None = None) -> None:
        super().__init__(message, stage=stage)
        self.errors: List[str] = list(errors)


class ReferenceConflictError(ItemGenerationError):
    """The same slot id was declared with two different types."""

    def __init__(self, slot_id: str, existing_type: str | None, new_type: str | None, *, stage: str | None = None) -> None:
        super().__init__(
            f"conflicting types for slot '{slot_id}': '{existing_type}' vs '{new_type}'",
            stage=stage,
        )
        self.slot_id = slot_id
        self.existing_type = existing_type
        self.new_type = new_type


class UnknownSlotTypeError(ItemGenerationError):
    """A widget slot declared a type outside the configured widget collection."""

    def __init__(self, slot_id: str, declared_type: str | None, *, stage: str | None = None) -> None:
        super().__init__(f"widget '{slot_id}' declares unknown type '{declared_type}'", stage=stage)
        self.slot_id = slot_id
        self.declared_type = declared_type


class FeedbackPlanMismatchError(ItemGenerationError):
    """Feedback payload does not cover the plan exactly."""

    def __init__(
        self,
        message: str,
        *,
        missing_ids: Iterable[str] = (),
        extra_ids: Iterable[str] = (),
        stage: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.missing_ids: List[str] = list(missing_ids)
        self.extra_ids: List[str] = list(extra_ids)


class MissingGeneratedContentError(ItemGenerationError):
    """Some referenced slots have no generated content."""

    def __init__(self, missing_ids: Iterable[str], *, stage: str | None = None) -> None:
        missing = sorted(missing_ids)
        super().__init__(f"missing generated content for slots: {', '.join(missing)}", stage=stage)
        self.missing_ids: List[str] = missing


class StageFailedError(ItemGenerationError):
    """Wraps an unexpected exception raised inside a stage."""


__all__ = [
    "BackendCallError",
    "EmptyBackendResponseError",
    "EnvelopeEmptyError",
    "FeedbackPlanMismatchError",
    "ItemGenerationError",
    "JSONParseError",
    "MalformedSourceError",
    "MissingGeneratedContentError",
    "ReferenceConflictError",
    "ResourceLimitExceededError",
    "SchemaValidationError",
    "StageFailedError",
    "UnknownSlotTypeError",
    "UnsupportedURISchemeError",
]
