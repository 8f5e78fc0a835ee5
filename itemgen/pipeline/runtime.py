"""Run driver: source file -> envelope -> orchestrator -> item artifacts."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Tuple

from apps.assets import AssetResolver
from apps.orchestrator.backend import DSPyGenerationBackend, GenerationBackend
from apps.orchestrator.pipeline import ItemOrchestrator, RunTrace
from itemgen.core.envelope import Envelope
from itemgen.core.errors import ItemGenerationError
from itemgen.core.provenance import ProvenanceLogger

from .context import PipelineContext

LOGGER = logging.getLogger(__name__)
HTML_SUFFIXES = (".html", ".htm")
AGENT = "itemgen.pipeline"


@dataclass(slots=True)
class PipelineRunArtifacts:
    run_id: str
    envelope: Path
    manifest: Path
    provenance: Path
    item: Path | None = None
    trace: RunTrace | None = None


def load_source(path: Path) -> Tuple[str, Any]:
    """Return ``("html", text)`` for HTML files and ``("json", data)`` otherwise."""

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in HTML_SUFFIXES:
        return "html", text
    try:
        return "json", json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Source {path} is not valid JSON: {exc}") from exc


def _write_manifest(path: Path, payload: Dict[str, Any]) -> Path:
    path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    return path


def _trace_payload(trace: RunTrace | None) -> Dict[str, Any]:
    if trace is None:
        return {}
    return {
        "states": [state.value for state in trace.states],
        "backend_calls": trace.backend_calls,
        "skipped_stages": trace.skipped_stages,
        "failed_stage": trace.failed_stage,
        "error": trace.error,
    }


def resolve_envelope(
    ctx: PipelineContext,
    source_path: Path,
    *,
    screenshot_url: str | None,
    resolver: AssetResolver,
    provenance: ProvenanceLogger | None = None,
) -> Envelope:
    kind, source = load_source(source_path)
    if kind == "html":
        envelope = resolver.resolve_html(source, screenshot_url=screenshot_url)
    else:
        envelope = resolver.resolve(source)
    (provenance or ctx.provenance).bind(agent="apps.assets").record(
        "envelope",
        "Source resolved into envelope",
        {"source": str(source_path), "kind": kind, **envelope.summary()},
    )
    return envelope


def run_pipeline(
    ctx: PipelineContext,
    source_path: Path,
    *,
    screenshot_url: str | None = None,
    dry_run: bool = False,
    backend: GenerationBackend | None = None,
    resolver: AssetResolver | None = None,
) -> PipelineRunArtifacts:
    """Resolve the source, run the orchestrator and write item + manifest artifacts.

    Every provenance event of the run carries the run id, which also names the
    manifest file.
    """

    ctx.paths.ensure_directories()
    run_id = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")
    provenance = ctx.provenance.bind(run_id=run_id, agent=AGENT)
    owns_resolver = resolver is None
    resolver = resolver or AssetResolver(limits=ctx.limits)
    try:
        envelope = resolve_envelope(
            ctx, source_path, screenshot_url=screenshot_url, resolver=resolver, provenance=provenance
        )
    finally:
        if owns_resolver:
            resolver.close()

    envelope_path = ctx.paths.envelope_path
    envelope_path.write_text(envelope.model_dump_json(indent=2), encoding="utf-8")
    manifest_path = ctx.paths.manifest_path(run_id)
    manifest: Dict[str, Any] = {
        "run_id": run_id,
        "source": str(source_path),
        "envelope": str(envelope_path),
        "dry_run": dry_run,
    }
    artifacts = PipelineRunArtifacts(
        run_id=run_id,
        envelope=envelope_path,
        manifest=manifest_path,
        provenance=provenance.output_path,
    )

    if dry_run:
        LOGGER.info("Dry run requested; skipping generation stages.")
        _write_manifest(manifest_path, {**manifest, "status": "dry_run"})
        return artifacts

    if backend is None:
        backend = DSPyGenerationBackend(ctx.generator_lm, retry=ctx.retry)
    orchestrator = ItemOrchestrator.from_context(ctx, backend, provenance=provenance)
    try:
        item = orchestrator.run(envelope)
    except ItemGenerationError:
        _write_manifest(manifest_path, {**manifest, "status": "failed", "trace": _trace_payload(orchestrator.trace)})
        raise

    item_path = ctx.paths.item_path(item.identifier)
    item_path.write_text(item.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    artifacts.item = item_path
    artifacts.trace = orchestrator.trace
    _write_manifest(
        manifest_path,
        {**manifest, "status": "ok", "item": str(item_path), "trace": _trace_payload(orchestrator.trace)},
    )
    provenance.record("artifacts", "Assembled item written", {"item": str(item_path), "manifest": str(manifest_path)})
    return artifacts


__all__ = ["PipelineRunArtifacts", "load_source", "resolve_envelope", "run_pipeline"]
