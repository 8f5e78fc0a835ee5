"""CLI entry point for generating one assessment item from a source file."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from itemgen.core.errors import ItemGenerationError
from itemgen.core.validation import ValidationFailure, strict_validation
from itemgen.pipeline import PipelineRunArtifacts, bootstrap_pipeline, run_pipeline

REPO_ROOT = Path(__file__).resolve().parents[2]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a structured assessment item from a source file.")
    parser.add_argument(
        "source",
        help="Source item: a JSON document, or an .html/.htm fragment.",
    )
    parser.add_argument(
        "--config",
        default="config/pipeline.yaml",
        help="Path to the pipeline YAML (default: config/pipeline.yaml)",
    )
    parser.add_argument(
        "--repo-root",
        default=str(REPO_ROOT),
        help=f"Repository root (default: {REPO_ROOT})",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for generated artifacts (default: <repo-root>/outputs)",
    )
    parser.add_argument(
        "--screenshot-url",
        default=None,
        help="Screenshot of the rendered source, added to the raster images (HTML sources only).",
    )
    parser.add_argument(
        "--widget-types",
        default=None,
        help="Comma-separated widget types overriding config.widgets.widget_types",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve the source into an envelope without calling the generation backend.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress the artifact summary on stdout.",
    )
    return parser


def _resolve_path(value: str | Path, *, base: Path | None = None) -> Path:
    candidate = Path(value).expanduser()
    if candidate.is_absolute():
        return candidate.resolve()
    anchor = Path(base).expanduser().resolve() if base is not None else Path.cwd()
    return (anchor / candidate).resolve()


def _split_widget_types(value: str | None) -> list[str] | None:
    if value is None:
        return None
    types = [item.strip() for item in value.split(",") if item.strip()]
    if not types:
        raise ValueError("--widget-types must name at least one widget type")
    return types


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        repo_root = _resolve_path(args.repo_root)
        config_path = _resolve_path(args.config, base=repo_root)
        source_path = _resolve_path(args.source)
        output_dir = _resolve_path(args.output_dir, base=repo_root) if args.output_dir else None
        widget_types = _split_widget_types(args.widget_types)

        strict_validation.validate_file_exists(config_path)
        strict_validation.validate_file_exists(source_path)

        ctx = bootstrap_pipeline(
            config_path=config_path,
            repo_root=repo_root,
            output_dir=output_dir,
            widget_types_override=widget_types,
            configure_models=not args.dry_run,
        )
        artifacts = run_pipeline(
            ctx,
            source_path,
            screenshot_url=args.screenshot_url,
            dry_run=args.dry_run,
        )
        _print_artifact_summary(artifacts, quiet=args.quiet)
    except (FileNotFoundError, ValidationFailure, ValueError) as exc:
        parser.error(str(exc))
    except ItemGenerationError as exc:
        print(f"[generate_item] error (stage={exc.stage or 'unknown'}): {exc.message}", file=sys.stderr)
        return 1
    except Exception as exc:  # noqa: BLE001 - bubble up to CLI for now
        print(f"[generate_item] error: {exc}", file=sys.stderr)
        return 1

    return 0


def _print_artifact_summary(artifacts: PipelineRunArtifacts | None, *, quiet: bool = False) -> None:
    """Emit a concise map of key artifact paths for reproducibility."""

    if artifacts is None or quiet:
        return

    entries: list[str] = []
    for label, value in (
        ("item", artifacts.item),
        ("envelope", artifacts.envelope),
        ("manifest", artifacts.manifest),
        ("provenance", artifacts.provenance),
    ):
        if value:
            entries.append(f"{label}={Path(value).resolve()}")
    if entries:
        print(f"[artifacts] run_id={artifacts.run_id} | {' | '.join(entries)}")

    trace = artifacts.trace
    if trace is not None:
        skipped = ",".join(trace.skipped_stages) or "none"
        print(f"[trace] backend_calls={len(trace.backend_calls)} ({','.join(trace.backend_calls)}) | skipped={skipped}")


if __name__ == "__main__":
    sys.exit(main())
