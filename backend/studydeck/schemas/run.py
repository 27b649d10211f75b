"""Run-related Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Run status enumeration."""

    CREATED = "created"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunCreate(BaseModel):
    """Request body for creating a new run."""

    topic: str = Field(..., min_length=1, max_length=2000, description="Topic of the study presentation")
    slide_count: int | None = Field(None, ge=1, le=100, description="Target number of slides")
    options: dict[str, Any] | None = Field(None, description="Additional options")


class RunResponse(BaseModel):
    """Response for a run."""

    run_id: str
    status: RunStatus
    topic: str
    main_title: str | None = None
    slide_count: int = 0
    presentation_id: str | None = None
    degraded: bool = False
    error: str | None = None
    created_at: datetime
    updated_at: datetime


class SSEEventType(str, Enum):
    """SSE event types."""

    # Run lifecycle
    RUN_START = "run_start"
    RUN_COMPLETE = "run_complete"
    RUN_ERROR = "run_error"

    # Presentation snapshots
    PRESENTATION_TITLE = "presentation_title"
    SLIDE_COMPLETE = "slide_complete"


class SSEEvent(BaseModel):
    """Server-Sent Event payload."""

    event: SSEEventType
    run_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
