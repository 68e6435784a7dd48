"""Artifact storage and the filename convention that links artifacts together."""

from .artifact_store import ArtifactStore, format_bytes

__all__ = ["ArtifactStore", "format_bytes"]
