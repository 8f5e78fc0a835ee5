"""Staged item generation: shell, interactions, feedback, widgets.

Each stage runs inside :meth:`ItemOrchestrator._stage`, which tags failures
with the stage name, records them in provenance and aborts the run. Nothing
is retried here and a partially assembled item is never returned.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Sequence

from itemgen.core.config import ResourceLimits, WidgetCollectionConfig
from itemgen.core.envelope import Envelope
from itemgen.core.errors import (
    BackendCallError,
    EnvelopeEmptyError,
    ItemGenerationError,
    MissingGeneratedContentError,
    SchemaValidationError,
    StageFailedError,
    UnknownSlotTypeError,
)
from itemgen.core.interactions import InteractionMapAdapter
from itemgen.core.item import AssembledItem, AssessmentItemShell
from itemgen.core.provenance import ProvenanceLogger
from itemgen.core.validation import SchemaValidator, validation
from itemgen.core.widgets import WidgetAdapter, WidgetModel

from .backend import GenerationBackend
from .collector import collect_interaction_ids, collect_widget_refs
from .feedback_plan import build_feedback_plan, flatten_feedback
from .image_context import resolve_image_context
from .prompts import feedback_prompt, interactions_prompt, shell_prompt, widgets_prompt
from .schemas import feedback_schema, interactions_schema, shell_schema, widgets_schema

if TYPE_CHECKING:
    from itemgen.pipeline.context import PipelineContext

LOGGER_NAME = "itemgen.orchestrator"
AGENT = "apps.orchestrator"


class PipelineState(str, Enum):
    INIT = "init"
    ENVELOPE_VALIDATED = "envelope_validated"
    SHELL_GENERATED = "shell_generated"
    INTERACTIONS_GENERATED = "interactions_generated"
    PLAN_BUILT = "plan_built"
    FEEDBACK_GENERATED = "feedback_generated"
    WIDGET_REFS_COLLECTED = "widget_refs_collected"
    WIDGETS_GENERATED = "widgets_generated"
    ASSEMBLED = "assembled"
    FAILED = "failed"


@dataclass(slots=True)
class RunTrace:
    """What happened during one run; useful for manifests and tests."""

    states: List[PipelineState] = field(default_factory=list)
    backend_calls: List[str] = field(default_factory=list)
    skipped_stages: List[str] = field(default_factory=list)
    failed_stage: str | None = None
    error: str | None = None

    @property
    def state(self) -> PipelineState:
        return self.states[-1] if self.states else PipelineState.INIT


def _unexpected_ids(raw: Any, expected: Sequence[str], stage: str) -> None:
    if not isinstance(raw, dict):
        raise SchemaValidationError(f"{stage} payload must be an object keyed by slot id", stage=stage)
    unexpected = sorted(set(raw) - set(expected))
    if unexpected:
        raise SchemaValidationError(
            f"{stage} payload contains unreferenced ids: {', '.join(unexpected)}",
            errors=unexpected,
            stage=stage,
        )


class ItemOrchestrator:
    """Runs the fixed four-stage generation workflow for one envelope at a time.

    Without a ``widget_collection`` every widget type that has a parameter
    model may be referenced.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        *,
        limits: ResourceLimits | None = None,
        widget_collection: WidgetCollectionConfig | None = None,
        provenance: ProvenanceLogger | None = None,
        validator: SchemaValidator = validation,
        logger: logging.Logger | None = None,
    ) -> None:
        self.backend = backend
        self.limits = limits or ResourceLimits()
        self.widget_collection = widget_collection or WidgetCollectionConfig()
        self.provenance = provenance.bind(agent=AGENT) if provenance is not None else None
        self.validator = validator
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.trace = RunTrace()

    @classmethod
    def from_context(
        cls,
        ctx: PipelineContext,
        backend: GenerationBackend,
        *,
        provenance: ProvenanceLogger | None = None,
    ) -> "ItemOrchestrator":
        return cls(
            backend,
            limits=ctx.limits,
            widget_collection=ctx.widget_collection,
            provenance=provenance or ctx.provenance,
        )

    # ------------------------------------------------------------------
    # Run

    def run(self, envelope: Envelope) -> AssembledItem:
        self.trace = RunTrace()
        self._transition(PipelineState.INIT)
        self.logger.info("starting item generation", extra={"envelope": envelope.summary()})

        with self._stage("envelope"):
            if not envelope.primary_content.strip():
                raise EnvelopeEmptyError("primary content cannot be empty")
        self._transition(PipelineState.ENVELOPE_VALIDATED)

        with self._stage("image_context"):
            image_context = resolve_image_context(envelope, self.limits)
        image_urls = image_context.image_urls

        with self._stage("shell"):
            raw_shell = self._call_backend(
                "shell",
                "assessment_shell_generator",
                shell_schema(),
                shell_prompt(envelope, len(image_urls), self.widget_collection.widget_types),
                image_urls,
            )
            shell: AssessmentItemShell = self.validator.validate(AssessmentItemShell, raw_shell, stage="shell")
        self._transition(PipelineState.SHELL_GENERATED, {"identifier": shell.identifier})

        with self._stage("interactions"):
            interaction_ids = collect_interaction_ids(shell.body)
            interactions = self._generate_interactions(envelope, shell, interaction_ids, image_urls)
        self._transition(PipelineState.INTERACTIONS_GENERATED, {"interaction_ids": sorted(interactions)})

        with self._stage("feedback_plan"):
            plan = build_feedback_plan(shell.response_declarations, interactions)
        self._transition(
            PipelineState.PLAN_BUILT,
            {"mode": plan.mode, "dimension_count": len(plan.dimensions), "combination_count": len(plan.combinations)},
        )

        with self._stage("feedback"):
            raw_feedback = self._call_backend(
                "feedback",
                "feedback_generator",
                feedback_schema(plan),
                feedback_prompt(shell, plan, interactions),
                (),
            )
            feedback_blocks = flatten_feedback(plan, raw_feedback, validator=self.validator, stage="feedback")
        self._transition(PipelineState.FEEDBACK_GENERATED, {"feedback_block_count": len(feedback_blocks)})

        with self._stage("widget_refs"):
            widget_refs = collect_widget_refs(shell.body, feedback_blocks, interactions)
            for widget_id, widget_type in widget_refs.items():
                if not self.widget_collection.allows(widget_type):
                    raise UnknownSlotTypeError(widget_id, widget_type)
        self._transition(PipelineState.WIDGET_REFS_COLLECTED, {"widget_refs": widget_refs})

        with self._stage("widgets"):
            widgets = self._generate_widgets(envelope, shell, widget_refs, interactions, image_urls)
        self._transition(PipelineState.WIDGETS_GENERATED, {"widget_ids": sorted(widgets)})

        with self._stage("assemble"):
            missing = [widget_id for widget_id in widget_refs if widget_id not in widgets]
            if missing:
                raise MissingGeneratedContentError(missing)
            item = AssembledItem(
                identifier=shell.identifier,
                title=shell.title,
                body=shell.body,
                response_declarations=shell.response_declarations,
                interactions=interactions,
                widgets=widgets,
                feedback_plan=plan,
                feedback_blocks=feedback_blocks,
            )
        self._transition(PipelineState.ASSEMBLED, {"identifier": item.identifier})
        return item

    # ------------------------------------------------------------------
    # Stages

    def _generate_interactions(
        self,
        envelope: Envelope,
        shell: AssessmentItemShell,
        interaction_ids: Sequence[str],
        image_urls: Sequence[str],
    ) -> Dict[str, Any]:
        if not interaction_ids:
            self.logger.debug("no interactions to generate, skipping interactions stage")
            self.trace.skipped_stages.append("interactions")
            return {}
        raw = self._call_backend(
            "interactions",
            "interaction_content_generator",
            interactions_schema(interaction_ids),
            interactions_prompt(envelope, shell, interaction_ids, self.widget_collection.widget_types),
            image_urls,
        )
        _unexpected_ids(raw, interaction_ids, "interactions")
        interactions = self.validator.validate(InteractionMapAdapter, raw, stage="interactions")
        missing = [interaction_id for interaction_id in interaction_ids if interaction_id not in interactions]
        if missing:
            raise MissingGeneratedContentError(missing)
        return interactions

    def _generate_widgets(
        self,
        envelope: Envelope,
        shell: AssessmentItemShell,
        widget_refs: Dict[str, str],
        interactions: Dict[str, Any],
        image_urls: Sequence[str],
    ) -> Dict[str, Any]:
        if not widget_refs:
            self.logger.debug("no widget refs collected, skipping widgets stage")
            self.trace.skipped_stages.append("widgets")
            return {}
        raw = self._call_backend(
            "widgets",
            "widget_content_generator",
            widgets_schema(widget_refs),
            widgets_prompt(envelope, shell, widget_refs, interactions),
            image_urls,
        )
        _unexpected_ids(raw, list(widget_refs), "widgets")
        widgets: Dict[str, WidgetModel] = {}
        for widget_id, payload in raw.items():
            widget = self.validator.validate(WidgetAdapter, payload, stage="widgets")
            declared = widget_refs[widget_id]
            if widget.type != declared:
                raise SchemaValidationError(
                    f"widget '{widget_id}' was generated as '{widget.type}' but is referenced as '{declared}'",
                    stage="widgets",
                )
            widgets[widget_id] = widget
        return widgets

    def _call_backend(
        self,
        stage: str,
        schema_name: str,
        schema: Dict[str, Any],
        prompt: tuple[str, str],
        image_urls: Sequence[str],
    ) -> Any:
        system_instruction, user_content = prompt
        self.trace.backend_calls.append(stage)
        self.logger.debug(
            "calling generation backend",
            extra={"stage": stage, "schema_name": schema_name, "image_count": len(image_urls)},
        )
        try:
            return self.backend.generate(schema_name, schema, system_instruction, user_content, list(image_urls))
        except ItemGenerationError:
            raise
        except Exception as exc:
            raise BackendCallError(f"{schema_name}: {exc}", stage=stage) from exc

    # ------------------------------------------------------------------
    # Bookkeeping

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        try:
            yield
        except ItemGenerationError as exc:
            if exc.stage is None:
                exc.stage = name
            self._record_failure(name, exc)
            raise
        except Exception as exc:
            error = StageFailedError(f"{type(exc).__name__}: {exc}", stage=name)
            self._record_failure(name, error)
            raise error from exc

    def _transition(self, state: PipelineState, payload: Dict[str, Any] | None = None) -> None:
        self.trace.states.append(state)
        self._log_stage(state.value, payload or {})

    def _record_failure(self, stage: str, error: ItemGenerationError) -> None:
        self.trace.states.append(PipelineState.FAILED)
        self.trace.failed_stage = stage
        self.trace.error = str(error)
        self.logger.error(
            "item generation failed",
            extra={"stage": stage, "error_type": type(error).__name__, "detail": error.message},
        )
        if self.provenance is not None:
            self.provenance.record(
                stage,
                "Stage failed",
                {"error_type": type(error).__name__, "detail": error.message},
            )

    def _log_stage(self, stage: str, payload: Dict[str, Any]) -> None:
        if self.provenance is not None:
            self.provenance.record(stage, f"Reached {stage}", payload)


__all__ = ["ItemOrchestrator", "LOGGER_NAME", "PipelineState", "RunTrace"]
