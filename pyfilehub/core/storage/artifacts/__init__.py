"""Artifact storage: the physical bytes of uploaded files."""

from __future__ import annotations

from .backend import (
    ArtifactBackend,
    ArtifactHandle,
    StoredArtifact,
    generate_stored_name,
)
from .local_backend import LocalArtifactBackend

__all__ = [
    "ArtifactBackend",
    "ArtifactHandle",
    "StoredArtifact",
    "generate_stored_name",
    "LocalArtifactBackend",
]
