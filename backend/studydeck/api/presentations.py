"""Presentations API - Finished presentations and their prefetched assets."""

import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

from studydeck.schemas.presentation import Presentation
from studydeck.services.storage_service import get_storage_service

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_storage():
    """Get storage service instance."""
    return get_storage_service()


def _load_presentation(presentation_id: str) -> dict:
    data = _get_storage().get_presentation(presentation_id)
    if not data:
        raise HTTPException(status_code=404, detail="Presentation not found")
    return data


@router.get("/presentations")
async def list_presentations(
    limit: int = Query(default=20, le=100),
    offset: int = Query(default=0, ge=0),
):
    """List all presentations."""
    storage = _get_storage()
    items, total = storage.list_presentations(limit=limit, offset=offset)

    return {
        "items": items,
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/presentations/{presentation_id}")
async def get_presentation(presentation_id: str):
    """Get a finished presentation."""
    data = _load_presentation(presentation_id)
    presentation = Presentation.model_validate(data)

    return {
        "presentation_id": presentation_id,
        "degraded": data.get("degraded", False),
        "created_at": data.get("created_at"),
        **presentation.model_dump(mode="json", by_alias=True),
    }


@router.delete("/presentations/{presentation_id}")
async def delete_presentation(presentation_id: str):
    """Delete a presentation."""
    _load_presentation(presentation_id)
    _get_storage().delete_presentation(presentation_id)

    return {"message": "Presentation deleted", "presentation_id": presentation_id}


@router.get("/presentations/{presentation_id}/assets")
async def get_presentation_assets(presentation_id: str):
    """Report prefetched images, narration availability and preload progress."""
    storage = _get_storage()
    presentation = Presentation.model_validate(_load_presentation(presentation_id))

    cache = storage.get_asset_cache(presentation_id)

    return {
        "presentation_id": presentation_id,
        "preload": cache.progress.model_dump(),
        "slides": cache.summary(presentation),
    }


@router.get("/presentations/{presentation_id}/slides/{slide_index}/audio")
async def get_slide_audio(presentation_id: str, slide_index: int):
    """Download the cached narration of one slide."""
    storage = _get_storage()
    presentation = Presentation.model_validate(_load_presentation(presentation_id))

    if slide_index < 0 or slide_index >= len(presentation.slides):
        raise HTTPException(status_code=404, detail="Slide not found")

    notes = presentation.slides[slide_index].speaker_notes
    audio = storage.get_asset_cache(presentation_id).audio.get(notes) if notes else None
    if audio is None:
        raise HTTPException(status_code=404, detail="Narration not available")

    return Response(content=audio, media_type="audio/mpeg")
