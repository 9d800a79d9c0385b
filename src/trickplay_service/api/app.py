"""FastAPI application setup."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import Settings, get_settings
from ..extraction.sampler import FrameSampler
from ..generation.orchestrator import TrickplayOrchestrator
from ..library.catalog import FilesystemCatalog
from ..storage.artifacts import ArtifactStore
from ..storage.manifests import ManifestStore
from ..tasks.queue import TaskQueue, create_task_queue
from ..tasks.worker import GenerationWorker
from .routes import tasks, trickplay

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings) -> TrickplayOrchestrator:
    """Wire the default filesystem-backed pipeline from settings."""
    catalog = FilesystemCatalog(settings.library_paths_list, ffprobe_path=settings.ffprobe_path)
    return TrickplayOrchestrator(
        catalog=catalog,
        artifacts=ArtifactStore(settings.metadata_dir),
        manifests=ManifestStore(settings.metadata_dir),
        sampler=FrameSampler(settings.ffmpeg_path),
        writer_concurrency=settings.writer_concurrency,
    )


def create_app(
    settings: Settings | None = None,
    orchestrator: TrickplayOrchestrator | None = None,
    queue: TaskQueue | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Trickplay service starting...")

        app.state.orchestrator = orchestrator or build_orchestrator(settings)
        app.state.queue = queue or create_task_queue(settings)

        await app.state.orchestrator.catalog.refresh()

        app.state.worker = GenerationWorker(
            app.state.queue, app.state.orchestrator, concurrency=settings.worker_concurrency
        )
        await app.state.worker.start()

        yield

        logger.info("Trickplay service shutting down...")
        try:
            await asyncio.wait_for(app.state.worker.stop(), timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Worker stop timed out")

        try:
            await asyncio.wait_for(app.state.queue.close(), timeout=2.0)
        except asyncio.TimeoutError:
            logger.warning("Task queue close timed out")
        except Exception as e:
            logger.warning(f"Error closing task queue: {e}")

        logger.info("Trickplay service shutdown complete")

    app = FastAPI(
        title="Trickplay Service",
        description="Generates and serves BIF scrubbing previews for a video library",
        version="1.0.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Tasks first so /Trickplay/Tasks/... is never read as an item id
    app.include_router(tasks.router, prefix="/Trickplay/Tasks", tags=["tasks"])
    app.include_router(trickplay.router, prefix="/Trickplay", tags=["trickplay"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
