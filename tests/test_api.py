"""Tests for the HTTP API."""

from __future__ import annotations

import time
from contextlib import ExitStack
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from trickplay_service.api.app import create_app
from trickplay_service.bif.codec import decode
from trickplay_service.config import Settings
from trickplay_service.tasks.queue import MemoryTaskQueue

from tests.helpers import FakeSampler, make_video


@pytest.fixture
def settings(metadata_dir):
    return Settings(METADATA_DIR=str(metadata_dir), WORKER_CONCURRENCY=1, _env_file=None)


@pytest.fixture
def items(tmp_path):
    return [
        make_video(tmp_path, "movie"),
        make_video(tmp_path, "trailer", duration_ms=30_000),
        make_video(tmp_path, "tiny", duration_ms=2_000),
    ]


@pytest.fixture
def client_for(settings, make_orchestrator):
    """Build a TestClient over an in-process queue and the given catalog items."""
    with ExitStack() as stack:

        def _make(items, **kwargs):
            app = create_app(
                settings=settings,
                orchestrator=make_orchestrator(items, **kwargs),
                queue=MemoryTaskQueue(),
            )
            return stack.enter_context(TestClient(app))

        yield _make


def poll(client, url, until, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        response = client.get(url)
        if until(response):
            return response
        time.sleep(0.02)
    raise AssertionError(f"{url} never reached the expected state")


class TestHealth:
    def test_health(self, client_for):
        response = client_for([]).get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestGetBif:
    """Tests for artifact download."""

    def test_unknown_item_is_404(self, client_for):
        assert client_for([]).get("/Trickplay/nope/GetBIF").status_code == 404

    def test_missing_without_on_demand_is_404(self, client_for, items):
        client = client_for(items)
        assert client.get(f"/Trickplay/{items[0].id}/GetBIF").status_code == 404

    def test_on_demand_returns_503_then_artifact(self, client_for, items, config_holder, generation_config):
        config_holder.config = replace(generation_config, on_demand=True)
        client = client_for(items)
        url = f"/Trickplay/{items[0].id}/GetBIF"

        first = client.get(url)
        assert first.status_code == 503
        assert first.headers["Retry-After"] == "10"

        ready = poll(client, url, lambda r: r.status_code == 200)
        assert ready.headers["content-type"] == "application/octet-stream"
        assert len(decode(ready.content)) == 6

    def test_bif_suffix_route(self, client_for, items, config_holder, generation_config):
        config_holder.config = replace(generation_config, on_demand=True)
        client = client_for(items)

        client.get(f"/Trickplay/{items[1].id}/GetBIF.bif")
        ready = poll(client, f"/Trickplay/{items[1].id}/GetBIF.bif", lambda r: r.status_code == 200)
        assert len(decode(ready.content)) == 3

    def test_ineligible_item_is_404_even_on_demand(self, client_for, items, config_holder, generation_config):
        config_holder.config = replace(generation_config, on_demand=True)
        client = client_for(items)
        assert client.get(f"/Trickplay/{items[2].id}/GetBIF").status_code == 404


class TestGetManifest:
    """Tests for manifest download."""

    def test_missing_manifest_is_404(self, client_for, items):
        assert client_for(items).get(f"/Trickplay/{items[0].id}/GetManifest").status_code == 404

    def test_manifest_after_batch(self, client_for, items):
        client = client_for(items)

        task_id = client.post("/Trickplay/Tasks/GenerateBIF").json()["taskId"]
        poll(client, f"/Trickplay/Tasks/{task_id}", lambda r: r.json()["status"] == "completed")

        response = client.get(f"/Trickplay/{items[0].id}/GetManifest")
        assert response.status_code == 200
        manifest = response.json()
        assert manifest["imageWidthResolution"] == 320
        assert manifest["imageInterval"] == 10_000
        assert manifest["frameCount"] == 6


class TestTasks:
    """Tests for the generation task endpoints."""

    def test_generate_returns_task_and_completes(self, client_for, items):
        client = client_for(items)

        response = client.post("/Trickplay/Tasks/GenerateBIF")
        assert response.status_code == 202
        task_id = response.json()["taskId"]

        status = poll(
            client, f"/Trickplay/Tasks/{task_id}", lambda r: r.json()["status"] == "completed"
        ).json()
        assert status["type"] == "batch"
        assert status["progress"] == 100.0
        assert status["result"]["total"] == 3
        assert status["result"]["generated"] == 2
        assert status["result"]["failed"] == 0

        bif = client.get(f"/Trickplay/{items[0].id}/GetBIF")
        assert bif.status_code == 200

    def test_unknown_task_is_404(self, client_for):
        client = client_for([])
        assert client.get("/Trickplay/Tasks/nope").status_code == 404
        assert client.post("/Trickplay/Tasks/nope/Cancel").status_code == 404

    def test_cancel_task(self, client_for, items):
        client = client_for(items, sampler=FakeSampler(delay=0.2))
        task_id = client.post("/Trickplay/Tasks/GenerateBIF").json()["taskId"]

        response = client.post(f"/Trickplay/Tasks/{task_id}/Cancel")
        assert response.status_code == 202
        assert response.json() == {"taskId": task_id, "cancelRequested": True}

        status = poll(
            client, f"/Trickplay/Tasks/{task_id}", lambda r: r.json()["status"] in ("cancelled", "completed")
        ).json()
        assert status["status"] == "cancelled"
