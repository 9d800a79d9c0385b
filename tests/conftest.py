"""Shared test fixtures and configuration."""

from __future__ import annotations

import pytest

from trickplay_service.config import GenerationConfig
from trickplay_service.generation.orchestrator import TrickplayOrchestrator
from trickplay_service.library.catalog import StaticCatalog
from trickplay_service.storage.artifacts import ArtifactStore
from trickplay_service.storage.manifests import ManifestStore

from tests.helpers import ConfigHolder, FakeSampler


@pytest.fixture
def metadata_dir(tmp_path):
    """Per-test metadata area."""
    path = tmp_path / "metadata"
    path.mkdir()
    return path


@pytest.fixture
def generation_config():
    """Small, fast generation parameters."""
    return GenerationConfig(width=320, interval_ms=10_000, quality=4)


@pytest.fixture
def config_holder(generation_config):
    return ConfigHolder(generation_config)


@pytest.fixture
def artifact_store(metadata_dir):
    return ArtifactStore(metadata_dir)


@pytest.fixture
def manifest_store(metadata_dir):
    return ManifestStore(metadata_dir)


@pytest.fixture
def fake_sampler():
    return FakeSampler()


@pytest.fixture
def make_orchestrator(artifact_store, manifest_store, fake_sampler, config_holder):
    """Factory building an orchestrator over a static catalog of the given items."""

    def _make(items, sampler=None, writer_concurrency: int = 1) -> TrickplayOrchestrator:
        return TrickplayOrchestrator(
            catalog=StaticCatalog(items),
            artifacts=artifact_store,
            manifests=manifest_store,
            sampler=sampler or fake_sampler,
            config_provider=config_holder,
            writer_concurrency=writer_concurrency,
        )

    return _make
