"""Runs API - Endpoints for creating and streaming presentation generation runs."""

import asyncio
import json
import logging
import uuid
from contextlib import aclosing
from datetime import datetime
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, Query
from sse_starlette.sse import EventSourceResponse

from studydeck.config import get_settings
from studydeck.schemas.presentation import Presentation
from studydeck.schemas.run import (
    RunCreate,
    RunResponse,
    RunStatus,
    SSEEventType,
)
from studydeck.services.asset_service import AssetPrefetcher, create_asset_prefetcher
from studydeck.services.generation_service import GenerationService, get_generation_service
from studydeck.services.storage_service import StorageService, get_storage_service

router = APIRouter()
logger = logging.getLogger(__name__)

# Keeps background preload tasks referenced until they finish
_preload_tasks: set[asyncio.Task] = set()


def _get_storage():
    """Get storage service instance."""
    return get_storage_service()


def _touch(storage: StorageService, run_id: str, run_data: dict, **changes) -> None:
    run_data.update(changes)
    run_data["updated_at"] = datetime.utcnow()
    storage.save_run(run_id, run_data)


async def _release_prefetcher(storage: StorageService, run_id: str, prefetcher: AssetPrefetcher) -> None:
    await prefetcher.close()
    storage.remove_prefetcher(run_id, prefetcher)


async def _preload_assets(
    storage: StorageService, prefetcher: AssetPrefetcher, presentation: Presentation, run_id: str
) -> None:
    try:
        progress = await prefetcher.preload(presentation)
        logger.info(
            f"Preloaded assets for run {run_id}: "
            f"{progress.images_loaded}/{progress.images_total} images, "
            f"{progress.audio_loaded}/{progress.audio_total} narrations"
        )
    except Exception:
        logger.exception(f"Asset preload failed for run {run_id}")
    finally:
        await _release_prefetcher(storage, run_id, prefetcher)


def _start_preload(
    storage: StorageService, prefetcher: AssetPrefetcher, presentation: Presentation, run_id: str
) -> None:
    task = asyncio.create_task(_preload_assets(storage, prefetcher, presentation, run_id))
    _preload_tasks.add(task)
    task.add_done_callback(_preload_tasks.discard)


async def run_event_stream(
    run_id: str,
    storage: StorageService,
    generation_service: GenerationService,
    prefetcher: AssetPrefetcher | None = None,
) -> AsyncGenerator[dict, None]:
    """Drive one run and yield its SSE messages, keeping the stored run in sync.

    Stops at the next event once the run has been cancelled. The prefetcher
    is handed to the background preload when the run completes and released
    on every other exit.
    """
    run_data = storage.get_run(run_id)
    request = RunCreate(**run_data["request"])
    _touch(storage, run_id, run_data, status=RunStatus.GENERATING)

    events = generation_service.generate_run_events(
        run_id=run_id,
        topic=request.topic,
        slide_count=request.slide_count,
        on_slide_complete=prefetcher.on_slide_complete if prefetcher else None,
    )
    preloading = False

    try:
        async with aclosing(events):
            async for event in events:
                current = storage.get_run(run_id)
                if current is None or current["status"] == RunStatus.CANCELLED:
                    logger.info(f"Run {run_id} cancelled; closing stream")
                    return

                if event.event in (SSEEventType.PRESENTATION_TITLE, SSEEventType.SLIDE_COMPLETE):
                    snapshot = event.data["snapshot"]
                    _touch(
                        storage,
                        run_id,
                        run_data,
                        main_title=snapshot.get("main_title"),
                        slide_count=len(snapshot.get("slides", [])),
                    )

                elif event.event == SSEEventType.RUN_COMPLETE:
                    presentation_data = dict(event.data["presentation"])
                    presentation_data["degraded"] = event.data["degraded"]
                    presentation_data["created_at"] = datetime.utcnow().isoformat()
                    storage.save_presentation(run_id, presentation_data)

                    _touch(
                        storage,
                        run_id,
                        run_data,
                        status=RunStatus.COMPLETED,
                        main_title=presentation_data["main_title"],
                        slide_count=event.data["total_slides"],
                        presentation_id=run_id,
                        degraded=event.data["degraded"],
                        error=event.data.get("error"),
                    )

                    if prefetcher:
                        presentation = Presentation.model_validate(event.data["presentation"])
                        _start_preload(storage, prefetcher, presentation, run_id)
                        preloading = True

                elif event.event == SSEEventType.RUN_ERROR:
                    _touch(storage, run_id, run_data, status=RunStatus.FAILED, error=event.data.get("error"))

                # Yield event as SSE format
                yield {
                    "event": event.event.value,
                    "id": str(uuid.uuid4()),
                    "data": json.dumps(event.data, default=str),
                }
    finally:
        if prefetcher and not preloading:
            await _release_prefetcher(storage, run_id, prefetcher)


@router.post("/runs", response_model=RunResponse)
async def create_run(request: RunCreate):
    """Create a new presentation generation run."""
    storage = _get_storage()
    run_id = str(uuid.uuid4())
    now = datetime.utcnow()

    run_data = {
        "run_id": run_id,
        "status": RunStatus.CREATED,
        "topic": request.topic,
        "main_title": None,
        "slide_count": 0,
        "presentation_id": None,
        "degraded": False,
        "error": None,
        "created_at": now,
        "updated_at": now,
        "request": request.model_dump(),
    }

    storage.save_run(run_id, run_data)
    logger.info(f"Created run {run_id} for topic {request.topic!r}")

    return RunResponse(**run_data)


@router.get("/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: str):
    """Get the status of a run."""
    storage = _get_storage()
    run_data = storage.get_run(run_id)

    if not run_data:
        raise HTTPException(status_code=404, detail="Run not found")

    return RunResponse(**run_data)


@router.get("/runs/{run_id}/stream")
async def stream_run(run_id: str):
    """Stream run events using Server-Sent Events.

    Starts the generation and pushes a full presentation snapshot whenever
    the title is known or a slide completes.
    """
    storage = _get_storage()
    run_data = storage.get_run(run_id)

    if not run_data:
        raise HTTPException(status_code=404, detail="Run not found")

    if run_data["status"] != RunStatus.CREATED:
        raise HTTPException(status_code=400, detail=f"Run already {RunStatus(run_data['status']).value}")

    async def event_generator() -> AsyncGenerator[dict, None]:
        """Generate SSE events."""
        settings = get_settings()
        prefetcher = None
        try:
            generation_service = get_generation_service()

            if settings.prefetch_assets:
                cache = storage.get_asset_cache(run_id)
                cache.clear()
                prefetcher = create_asset_prefetcher(cache, settings)
                storage.set_prefetcher(run_id, prefetcher)

            async for message in run_event_stream(run_id, storage, generation_service, prefetcher):
                yield message

        except Exception as e:
            logger.error(f"Run {run_id} failed: {e}")
            _touch(storage, run_id, run_data, status=RunStatus.FAILED, error=str(e))
            if prefetcher:
                await _release_prefetcher(storage, run_id, prefetcher)

            yield {
                "event": SSEEventType.RUN_ERROR.value,
                "id": str(uuid.uuid4()),
                "data": json.dumps({"error": str(e), "snapshot": None}),
            }

    return EventSourceResponse(event_generator())


@router.post("/runs/{run_id}/cancel")
async def cancel_run(run_id: str):
    """Cancel a running generation."""
    storage = _get_storage()
    run_data = storage.get_run(run_id)

    if not run_data:
        raise HTTPException(status_code=404, detail="Run not found")

    if run_data["status"] in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED):
        raise HTTPException(status_code=400, detail="Run cannot be cancelled")

    _touch(storage, run_id, run_data, status=RunStatus.CANCELLED)

    return {"message": "Run cancelled", "run_id": run_id}


@router.delete("/runs/{run_id}")
async def delete_run(run_id: str):
    """Delete a run, its presentation and its cached assets (start over)."""
    storage = _get_storage()
    run_data = storage.get_run(run_id)

    if not run_data:
        raise HTTPException(status_code=404, detail="Run not found")

    if run_data.get("presentation_id"):
        storage.delete_presentation(run_data["presentation_id"])

    prefetcher = storage.drop_assets(run_id)
    if prefetcher:
        await prefetcher.close()

    storage.delete_run(run_id)

    return {"message": "Run deleted", "run_id": run_id}


@router.get("/runs")
async def list_runs(
    limit: int = Query(default=20, le=100),
    offset: int = Query(default=0, ge=0),
):
    """List all runs."""
    storage = _get_storage()
    runs, total = storage.list_runs(limit=limit, offset=offset)

    return {
        "items": [RunResponse(**r) for r in runs],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
