"""Presentation schemas shared by the streaming parser and the API."""

import logging
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class SlideLayout(str, Enum):
    """Closed set of layout tags the generation prompt offers."""

    TITLE_ONLY = "title_only"
    TITLE_CONTENT = "title_content"
    CONTENT_ONLY = "content_only"
    IMAGE_LEFT = "image_left"
    IMAGE_RIGHT = "image_right"
    QUOTE = "quote"
    COMPARISON = "comparison"
    TIMELINE = "timeline"
    PROCESS_STEPS = "process_steps"
    KEY_FACTS = "key_facts"
    CASE_STUDY = "case_study"
    EXAMPLES = "examples"
    USE_CASES = "use_cases"
    BENEFITS = "benefits"
    CHALLENGES = "challenges"


# Renderers draw unknown layouts as a plain title + body slide
FALLBACK_LAYOUT = SlideLayout.TITLE_CONTENT

PARTIAL_TITLE_FALLBACK = "Presentation (Partial)"


class Slide(BaseModel):
    """Single slide, fully defaulted.

    ``title``, ``content`` and ``layout`` are required; every optional field
    is normalised to an empty string or an empty list, so consumers never
    have to null-check.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = Field(..., min_length=1, description="Slide heading (quote author for quote slides)")
    content: str = Field(
        ...,
        min_length=1,
        description="Body text. Markdown lists/emphasis/blockquotes; 'left | right' for comparison slides",
    )
    layout: SlideLayout
    image_prompt: str = Field("", description="Image search query, empty string when no image is needed")
    speaker_notes: str = Field("", description="Narrative, tutorial-style notes used for narration")
    subtitle: str = ""
    key_points: list[str] = Field(default_factory=list, alias="keyPoints")
    examples: list[str] = Field(default_factory=list)
    statistics: str = ""

    @field_validator("layout", mode="before")
    @classmethod
    def _fallback_unknown_layout(cls, value: Any) -> Any:
        if isinstance(value, str) and value:
            normalized = value.strip().lower()
            if normalized in SlideLayout._value2member_map_:
                return normalized
            logger.warning(f"Unknown slide layout '{value}', using '{FALLBACK_LAYOUT.value}'")
            return FALLBACK_LAYOUT
        return value

    @field_validator("image_prompt", "speaker_notes", "subtitle", "statistics", mode="before")
    @classmethod
    def _default_text(cls, value: Any) -> Any:
        if not value:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("key_points", "examples", mode="before")
    @classmethod
    def _default_items(cls, value: Any) -> Any:
        if not value:
            return []
        if isinstance(value, str):
            return [value]
        return value


class Presentation(BaseModel):
    """A finished presentation: a completed snapshot with title and slides."""

    main_title: str = Field(..., min_length=1)
    slides: list[Slide] = Field(..., min_length=1)


class PartialPresentation(BaseModel):
    """Snapshot of a presentation while it is being streamed.

    Snapshots are immutable and self-contained: each one carries its own copy
    of the slide list, never a diff against the previous snapshot.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    main_title: str | None = None
    slides: list[Slide] = Field(default_factory=list)
    is_complete: bool = Field(default=False, alias="isComplete")

    def to_presentation(self, fallback_title: str | None = None) -> Presentation:
        """Reinterpret this snapshot as a finished presentation.

        Raises pydantic.ValidationError when the title or the slides are missing.
        """
        return Presentation(
            main_title=self.main_title or fallback_title or "",
            slides=list(self.slides),
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict using the wire field names (``isComplete``, ``keyPoints``)."""
        return self.model_dump(mode="json", by_alias=True)


class PreloadProgress(BaseModel):
    """Progress of post-completion asset preloading."""

    status: Literal["idle", "loading", "complete"] = "idle"
    images_loaded: int = 0
    images_total: int = 0
    audio_loaded: int = 0
    audio_total: int = 0
