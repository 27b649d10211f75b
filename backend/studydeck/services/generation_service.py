"""Generation Service - Streams study presentations out of the LLM."""

import json
import logging
from typing import AsyncGenerator

from studydeck.config import Settings, get_settings
from studydeck.schemas.presentation import (
    PARTIAL_TITLE_FALLBACK,
    PartialPresentation,
    Presentation,
    Slide,
    SlideLayout,
)
from studydeck.schemas.run import SSEEvent, SSEEventType
from studydeck.services.llm_service import LLMService, get_llm_service
from studydeck.streaming import (
    PresentationStreamError,
    StreamDelimiters,
    stream_presentation,
)
from studydeck.streaming.assembler import SlideCallback

logger = logging.getLogger(__name__)


LAYOUT_GUIDE = {
    SlideLayout.TITLE_ONLY: "section headers and major topic introductions",
    SlideLayout.TITLE_CONTENT: "standard informational slides",
    SlideLayout.CONTENT_ONLY: "dense explanations that need no heading emphasis",
    SlideLayout.IMAGE_LEFT: "visual explanations, image on the left",
    SlideLayout.IMAGE_RIGHT: "visual explanations, image on the right",
    SlideLayout.QUOTE: "expert insights and key principles; content is the quote, title the author",
    SlideLayout.COMPARISON: "pros/cons, before/after or contrasting concepts; content MUST be 'Left side | Right side'",
    SlideLayout.TIMELINE: "chronological events",
    SlideLayout.PROCESS_STEPS: "workflows, methodologies or procedures",
    SlideLayout.KEY_FACTS: "statistics, important numbers or crucial points",
    SlideLayout.CASE_STUDY: "detailed examples with analysis",
    SlideLayout.EXAMPLES: "3-5 concrete real-world examples",
    SlideLayout.USE_CASES: "3-6 practical applications and scenarios",
    SlideLayout.BENEFITS: "advantages, positive outcomes and value",
    SlideLayout.CHALLENGES: "problems, obstacles and limitations",
}


def build_system_prompt(delimiters: StreamDelimiters) -> str:
    """System prompt describing the streaming output protocol.

    The delimiter tokens here are the ones the parser looks for, so both
    sides always read them from the same StreamDelimiters.
    """
    layouts = "\n".join(f"- '{layout.value}': {guide}" for layout, guide in LAYOUT_GUIDE.items())
    schema = json.dumps(Slide.model_json_schema(by_alias=True), indent=2)

    return f"""You are an expert teacher who builds comprehensive, study-focused slide presentations.
Your output is parsed incrementally while you write it, so follow this protocol exactly.

1. First output the presentation title as a single JSON object on its own line:
{{"main_title": "Presentation Title"}}

2. Then output each slide, one at a time, wrapped in delimiter lines:
{delimiters.slide_start}
{{"title": "...", "content": "...", "layout": "title_content", "image_prompt": "...", "speaker_notes": "..."}}
{delimiters.slide_end}

3. After the last slide output exactly:
{delimiters.presentation_complete}

Each slide object must follow this JSON schema:
{schema}

Available layouts:
{layouts}

Rules:
- 'title', 'content' and 'layout' are required for every slide
- 'content' may use markdown: headers, **bold**, *italic*, '- ' lists and '> ' blockquotes
- Every slide needs 'image_prompt': a detailed image search query for visual slides, an empty string for text-only layouts. It must NOT be null
- 'speaker_notes': 150-300 words of tutorial-style narration that explain the slide in detail
- Use 'subtitle', 'keyPoints' (3-5 items), 'examples' (2-3 items) and 'statistics' where they help
- Never write the delimiter tokens inside slide content
- Output ONLY the title object, the delimited slides and the completion token; no markdown code blocks, no explanations"""


def build_user_prompt(topic: str, slide_count: str) -> str:
    return f"""Generate a comprehensive, study-focused presentation on the topic: "{topic}".

Target slide count: {slide_count} slides.

Structure:
1. Introduction (title slide, overview and importance, learning objectives, background)
2. Core content: 4-6 subtopics, each covering definition, key concepts, real-world examples,
   use cases, benefits and challenges
3. Deep dive examples: case studies, step-by-step processes, before/after comparisons
4. Interactive elements: reflection questions, knowledge checks, "Did you know?" facts, myths vs. reality
5. Conclusion: summary, future trends, next steps, final takeaway

Mandatory: at least 2-3 'examples' slides, 2-3 'use_cases' slides, 1-2 'benefits' slides and
1-2 'challenges' slides, spread through the presentation rather than clustered together.
Use the full range of layouts, including 8-12 'image_left'/'image_right' slides and 2-3 'quote' slides."""


class GenerationService:
    """Service for generating presentations using LLM."""

    def __init__(self, llm_service: LLMService | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.llm = llm_service or get_llm_service()
        self.delimiters = StreamDelimiters.from_settings(self.settings)

    async def generate_presentation_stream(
        self,
        topic: str,
        slide_count: int | None = None,
        on_slide_complete: SlideCallback | None = None,
    ) -> AsyncGenerator[PartialPresentation, None]:
        """Stream presentation snapshots for a topic.

        Raises the stream driver's PresentationStreamError subclasses.
        """
        system = build_system_prompt(self.delimiters)
        prompt = build_user_prompt(topic, str(slide_count or self.settings.default_slide_count))

        logger.info(f"Generating presentation for topic: {topic!r} ({self.llm.provider_name})")
        chunks = self.llm.generate_stream(prompt, system)

        async for snapshot in stream_presentation(
            chunks,
            on_slide_complete=on_slide_complete,
            delimiters=self.delimiters,
            max_records_per_pass=self.settings.max_records_per_pass,
        ):
            yield snapshot

    @staticmethod
    def salvage(error: PresentationStreamError) -> Presentation | None:
        """Degraded presentation from a failed stream, when it produced any slides."""
        if not error.has_usable_partial:
            return None
        logger.warning(
            f"Stream failed but using partial presentation with {len(error.partial.slides)} slides"
        )
        return error.partial.to_presentation(fallback_title=PARTIAL_TITLE_FALLBACK)

    async def generate_run_events(
        self,
        run_id: str,
        topic: str,
        slide_count: int | None = None,
        on_slide_complete: SlideCallback | None = None,
    ) -> AsyncGenerator[SSEEvent, None]:
        """Generate a presentation with real-time streaming updates.

        Yields SSEEvent objects; every snapshot-bearing event carries the
        full snapshot. A failed stream that still produced slides ends with a
        degraded ``run_complete`` instead of ``run_error``.
        """
        yield SSEEvent(
            event=SSEEventType.RUN_START,
            run_id=run_id,
            data={"message": "Starting presentation generation...", "topic": topic},
        )

        final: PartialPresentation | None = None
        slide_count_seen = 0

        try:
            async for snapshot in self.generate_presentation_stream(topic, slide_count, on_slide_complete):
                if snapshot.is_complete:
                    final = snapshot
                    continue

                if len(snapshot.slides) > slide_count_seen:
                    slide_count_seen = len(snapshot.slides)
                    yield SSEEvent(
                        event=SSEEventType.SLIDE_COMPLETE,
                        run_id=run_id,
                        data={
                            "slide_index": slide_count_seen - 1,
                            "slide": snapshot.slides[-1].model_dump(mode="json", by_alias=True),
                            "snapshot": snapshot.to_payload(),
                        },
                    )
                else:
                    yield SSEEvent(
                        event=SSEEventType.PRESENTATION_TITLE,
                        run_id=run_id,
                        data={"main_title": snapshot.main_title, "snapshot": snapshot.to_payload()},
                    )

        except PresentationStreamError as e:
            presentation = self.salvage(e)
            if presentation is None:
                yield SSEEvent(
                    event=SSEEventType.RUN_ERROR,
                    run_id=run_id,
                    data={
                        "error": str(e),
                        "snapshot": e.partial.to_payload() if e.partial else None,
                    },
                )
                return
            yield self._complete_event(run_id, e.partial, presentation, degraded=True, error=str(e))
            return

        except Exception as e:
            logger.error(f"Generation failed for run {run_id}: {e}")
            yield SSEEvent(
                event=SSEEventType.RUN_ERROR,
                run_id=run_id,
                data={"error": str(e), "snapshot": None},
            )
            return

        yield self._complete_event(run_id, final, final.to_presentation())

    @staticmethod
    def _complete_event(
        run_id: str,
        snapshot: PartialPresentation,
        presentation: Presentation,
        degraded: bool = False,
        error: str | None = None,
    ) -> SSEEvent:
        final_snapshot = snapshot.model_copy(update={"is_complete": True})
        return SSEEvent(
            event=SSEEventType.RUN_COMPLETE,
            run_id=run_id,
            data={
                "total_slides": len(presentation.slides),
                "degraded": degraded,
                "error": error,
                "snapshot": final_snapshot.to_payload(),
                "presentation": presentation.model_dump(mode="json", by_alias=True),
            },
        )


def get_generation_service(llm_service: LLMService | None = None) -> GenerationService:
    """Get a GenerationService instance."""
    return GenerationService(llm_service)
