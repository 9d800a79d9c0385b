"""Artifact and manifest storage under the metadata directory."""

from .artifacts import ArtifactStore
from .manifests import ManifestStore, PreviewManifest

__all__ = ["ArtifactStore", "ManifestStore", "PreviewManifest"]
