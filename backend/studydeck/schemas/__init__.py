"""Pydantic schemas for request/response validation."""

from studydeck.schemas.presentation import (
    SlideLayout,
    Slide,
    Presentation,
    PartialPresentation,
    PreloadProgress,
)
from studydeck.schemas.run import (
    RunCreate,
    RunResponse,
    RunStatus,
    SSEEvent,
    SSEEventType,
)

__all__ = [
    "SlideLayout",
    "Slide",
    "Presentation",
    "PartialPresentation",
    "PreloadProgress",
    "RunCreate",
    "RunResponse",
    "RunStatus",
    "SSEEvent",
    "SSEEventType",
]
