"""Trickplay generation: eligibility, staleness, single-writer runs, batch and on-demand entry points."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable

from ..bif.codec import encode, validate
from ..config import GenerationConfig, get_settings
from ..errors import CorruptArtifactError, GenerationCancelled
from ..extraction.sampler import FrameSampler
from ..library.catalog import LibraryCatalog
from ..library.eligibility import ineligibility_reason
from ..library.types import MediaSource, VideoItem
from ..storage.artifacts import ArtifactStore
from ..storage.manifests import ManifestStore
from .types import ArtifactLookup, BatchResult, GenerationOutcome, GenerationStatus, LookupStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Awaitable[None]]
# Enqueues a background run for one item: (item_id, force) -> anything
ScheduleCallback = Callable[[str, bool], Awaitable[Any]]


def _settings_snapshot() -> GenerationConfig:
    return GenerationConfig.from_settings(get_settings())


class TrickplayOrchestrator:
    """
    Generates preview artifacts for library items.

    Every artifact/manifest mutation happens while holding the writer permit,
    which is shared by all callers of this instance (batch and on-demand alike).
    """

    def __init__(
        self,
        catalog: LibraryCatalog,
        artifacts: ArtifactStore,
        manifests: ManifestStore,
        sampler: FrameSampler,
        config_provider: Callable[[], GenerationConfig] = _settings_snapshot,
        writer_concurrency: int = 1,
        file_exists: Callable[[str], bool] = os.path.isfile,
    ):
        self.catalog = catalog
        self.artifacts = artifacts
        self.manifests = manifests
        self.sampler = sampler
        self.config_provider = config_provider
        self.file_exists = file_exists
        self._permit = asyncio.Semaphore(writer_concurrency)

    async def run_item(
        self,
        item: VideoItem,
        config: GenerationConfig | None = None,
        cancel_event: asyncio.Event | None = None,
        force: bool = False,
    ) -> list[GenerationOutcome]:
        """
        Bring one item's preview up to date with config.

        Per-source failures are logged and reported as FAILED outcomes, never raised.

        Raises:
            GenerationCancelled: If cancel_event is set before or during a run
        """
        config = config or self.config_provider()
        logger.info(f"Processing item {item.name} ({item.id})")

        reason = ineligibility_reason(item, config.interval_ms, self.file_exists)
        if reason:
            logger.info(f"Skipping item {item.id}: {reason}")
            return [GenerationOutcome(item.id, GenerationStatus.SKIPPED_INELIGIBLE, error=reason)]

        outcomes = []
        for source in item.media_sources:
            # The same file can appear both as its own item and as an extra
            # source of another item; only generate under the item that owns it.
            if source.id != item.id:
                logger.info(f"Skipping source {source.id} of item {item.id}: sub-item")
                outcomes.append(GenerationOutcome(item.id, GenerationStatus.SKIPPED_SUB_ITEM, source.id))
                continue

            if not force and await self.is_current(item, config):
                logger.info(f"Manifest matches current configuration for {item.id}, skipping")
                outcomes.append(GenerationOutcome(item.id, GenerationStatus.SKIPPED_CURRENT, source.id))
                continue

            if cancel_event is not None and cancel_event.is_set():
                raise GenerationCancelled(f"Cancelled before generating {item.id}")

            outcomes.append(await self._regenerate(item, source, config, cancel_event, force))
        return outcomes

    async def is_current(self, item: VideoItem, config: GenerationConfig) -> bool:
        """Manifest matches config and its artifact is still on disk."""
        if not await asyncio.to_thread(self.manifests.matches, item, config):
            return False
        return await asyncio.to_thread(self.artifacts.exists, item)

    async def _regenerate(
        self,
        item: VideoItem,
        source: MediaSource,
        config: GenerationConfig,
        cancel_event: asyncio.Event | None,
        force: bool = False,
    ) -> GenerationOutcome:
        expected_frames = item.duration_ms // config.interval_ms

        async with self._permit:
            # Another run for the same item may have finished while this one waited
            if not force and await self.is_current(item, config):
                logger.info(f"Preview for {item.id} was generated while waiting, skipping")
                return GenerationOutcome(item.id, GenerationStatus.SKIPPED_CURRENT, source.id)

            try:
                # Artifact and manifest go together: a failed run leaves neither.
                if await asyncio.to_thread(self.artifacts.delete, item):
                    logger.info(f"Removed previous artifact for {item.id}")
                await asyncio.to_thread(self.manifests.delete, item)

                frames = await self.sampler.collect(source.path, config, expected_frames, cancel_event)
                data = await asyncio.to_thread(encode, frames, config.interval_ms)
                await asyncio.to_thread(self.artifacts.write, item, data)
                await asyncio.to_thread(self.manifests.write, item, config, len(frames))
            except GenerationCancelled:
                logger.info(f"Generation cancelled for {item.id}")
                raise
            except Exception as e:
                logger.exception(f"Error while creating preview for {item.name} ({item.id}): {e}")
                await self._discard(item)
                return GenerationOutcome(item.id, GenerationStatus.FAILED, source.id, error=str(e))

        logger.info(f"Generated preview for {item.id}: {len(frames)} frames, {len(data)} bytes")
        return GenerationOutcome(item.id, GenerationStatus.SUCCEEDED, source.id, frame_count=len(frames))

    async def _discard(self, item: VideoItem) -> None:
        """Remove whatever a failed run left behind so no artifact outlives its manifest."""
        try:
            await asyncio.to_thread(self.artifacts.delete, item)
            await asyncio.to_thread(self.manifests.delete, item)
        except OSError as e:
            logger.warning(f"Failed to clean up after failed run for {item.id}: {e}")

    async def run_batch(
        self,
        progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """
        Process every video in the catalog sequentially.

        Progress is reported after each item as a percentage. Item failures
        are logged and skipped; cancellation ends the run early without error.
        """
        config = self.config_provider()
        try:
            await self.catalog.refresh()
        except Exception as e:
            logger.exception(f"Library refresh failed, using the previous scan: {e}")
        items = await self.catalog.list_video_items()
        result = BatchResult(total=len(items))
        logger.info(f"Processing {len(items)} items")

        for item in items:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break

            try:
                outcomes = await self.run_item(item, config, cancel_event)
            except GenerationCancelled:
                result.cancelled = True
                break
            except Exception as e:
                logger.exception(f"Error creating trickplay files for {item.name} ({item.id}): {e}")
                outcomes = [GenerationOutcome(item.id, GenerationStatus.FAILED, error=str(e))]

            result.processed += 1
            if any(o.status == GenerationStatus.FAILED for o in outcomes):
                result.failed += 1
                result.failed_item_ids.append(item.id)
            result.generated += sum(1 for o in outcomes if o.status == GenerationStatus.SUCCEEDED)

            if progress is not None:
                await progress(result.processed / len(items) * 100)

        if result.cancelled:
            logger.info(f"Batch cancelled after {result.processed} of {result.total} items")
        else:
            if progress is not None:
                await progress(100.0)
            logger.info(
                f"Batch completed: {result.generated} generated, {result.failed} failed, "
                f"{result.total} items"
            )
        return result

    async def read_artifact(self, item: VideoItem) -> bytes | None:
        """Stored artifact bytes, or None if absent or corrupt."""
        data = await asyncio.to_thread(self.artifacts.open, item)
        if data is None:
            return None
        try:
            await asyncio.to_thread(validate, data)
        except CorruptArtifactError as e:
            logger.warning(f"Stored artifact for {item.id} is corrupt, not serving it: {e}")
            return None
        return data

    async def request_artifact(self, item_id: str, schedule: ScheduleCallback) -> ArtifactLookup:
        """
        Serve an artifact, or schedule on-demand generation for it.

        schedule is only awaited to enqueue work, never for the generation itself.
        """
        item = await self.catalog.get_item(item_id)
        if item is None:
            return ArtifactLookup(LookupStatus.NOT_FOUND)

        data = await self.read_artifact(item)
        if data is not None:
            return ArtifactLookup(LookupStatus.READY, data)

        config = self.config_provider()
        if not config.on_demand:
            return ArtifactLookup(LookupStatus.NOT_FOUND)

        reason = ineligibility_reason(item, config.interval_ms, self.file_exists)
        if reason:
            logger.info(f"Not generating on demand for {item_id}: {reason}")
            return ArtifactLookup(LookupStatus.NOT_FOUND)

        # A corrupt file on disk can sit under a matching manifest, so force a rebuild
        force = await asyncio.to_thread(self.artifacts.exists, item)
        try:
            await schedule(item.id, force)
        except Exception as e:
            logger.exception(f"Failed to schedule on-demand generation for {item_id}: {e}")
            return ArtifactLookup(LookupStatus.NOT_FOUND)
        logger.info(f"Scheduled on-demand generation for {item_id}")
        return ArtifactLookup(LookupStatus.PENDING)

    async def manifest_path(self, item_id: str) -> Path | None:
        item = await self.catalog.get_item(item_id)
        if item is None:
            return None
        path = self.manifests.path_for(item)
        if not await asyncio.to_thread(path.is_file):
            return None
        return path
