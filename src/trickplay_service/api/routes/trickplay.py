"""Manifest and preview artifact download routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse, Response

from ...generation.orchestrator import TrickplayOrchestrator
from ...generation.types import LookupStatus
from ...tasks.queue import TaskQueue

logger = logging.getLogger(__name__)

router = APIRouter()

RETRY_AFTER_SECONDS = 10


@router.get("/{item_id}/GetManifest")
async def get_manifest(request: Request, item_id: str):
    """Return the item's manifest JSON, or 404 if it has none."""
    orchestrator: TrickplayOrchestrator = request.app.state.orchestrator

    path = await orchestrator.manifest_path(item_id)
    if path is None:
        raise HTTPException(status_code=404, detail="Manifest not found")
    return FileResponse(path, media_type="application/json")


@router.get("/{item_id}/GetBIF")
@router.get("/{item_id}/GetBIF.bif")
async def get_bif(request: Request, item_id: str):
    """
    Return the item's preview artifact.

    - 200 with the artifact bytes when one is stored
    - 503 when it is missing and on-demand generation was just scheduled
    - 404 otherwise
    """
    orchestrator: TrickplayOrchestrator = request.app.state.orchestrator
    queue: TaskQueue = request.app.state.queue

    lookup = await orchestrator.request_artifact(item_id, queue.enqueue_item)

    if lookup.status == LookupStatus.READY:
        return Response(content=lookup.data, media_type="application/octet-stream")
    if lookup.status == LookupStatus.PENDING:
        return Response(
            status_code=503,
            content='{"detail":"Preview is being generated, try again later"}',
            media_type="application/json",
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )
    raise HTTPException(status_code=404, detail="Preview not found")
