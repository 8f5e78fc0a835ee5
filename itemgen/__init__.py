"""
Core package for the structured assessment-item generator.

Data models, configuration and the pipeline driver live here; the staged
orchestrator and asset services live under ``apps/``.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("itemgen")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
