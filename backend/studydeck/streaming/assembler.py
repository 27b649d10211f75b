"""Incremental presentation assembly.

The assembler owns the text buffer of one generation request and turns
arriving chunks into PartialPresentation snapshots:

    AWAITING_TITLE --(title object)--> STREAMING_SLIDES --(terminal marker / end)--> COMPLETE

Snapshots are emitted when the title is captured (once), after every
appended slide, and once on completion.
"""

import json
import logging
import re
from enum import Enum
from typing import Any, Callable

from studydeck.schemas.presentation import PartialPresentation, Slide
from studydeck.streaming.decoder import decode_slide
from studydeck.streaming.errors import PresentationValidationError
from studydeck.streaming.extractor import (
    DEFAULT_MAX_RECORDS_PER_PASS,
    StreamDelimiters,
    extract_records,
    has_terminal_marker,
)

logger = logging.getLogger(__name__)

SlideCallback = Callable[[Slide, int], Any]

# {"main_title": "..."} with any JSON string escapes inside the value
TITLE_OBJECT_PATTERN = re.compile(r'\{\s*"main_title"\s*:\s*("(?:[^"\\]|\\.)*")\s*\}')


class AssemblerState(str, Enum):
    """Assembler lifecycle states."""

    AWAITING_TITLE = "awaiting_title"
    STREAMING_SLIDES = "streaming_slides"
    COMPLETE = "complete"


class PresentationAssembler:
    """Builds one presentation from a stream of text chunks."""

    def __init__(
        self,
        delimiters: StreamDelimiters | None = None,
        on_slide_complete: SlideCallback | None = None,
        max_records_per_pass: int = DEFAULT_MAX_RECORDS_PER_PASS,
    ):
        self.delimiters = delimiters or StreamDelimiters()
        self.on_slide_complete = on_slide_complete
        self.max_records_per_pass = max_records_per_pass

        self.state = AssemblerState.AWAITING_TITLE
        self.main_title: str | None = None
        self._slides: list[Slide] = []
        self._buffer = ""
        self._title_emitted = False
        self._final_emitted = False

    @property
    def slides(self) -> list[Slide]:
        return list(self._slides)

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def is_complete(self) -> bool:
        return self.state == AssemblerState.COMPLETE

    def snapshot(self) -> PartialPresentation:
        """Current state as an immutable snapshot."""
        return PartialPresentation(
            main_title=self.main_title,
            slides=list(self._slides),
            is_complete=self.is_complete,
        )

    def feed(self, chunk: str) -> list[PartialPresentation]:
        """Append a chunk and return the snapshots it produced, in order.

        Input arriving after completion is ignored.
        """
        if self.is_complete:
            return []

        self._buffer += chunk
        snapshots: list[PartialPresentation] = []

        self._capture_title(snapshots)

        self._drain_records(snapshots)

        # A title that trails the first records is only visible once they are consumed
        self._capture_title(snapshots)

        if has_terminal_marker(self._buffer, self.delimiters):
            logger.info(f"Completion marker received after {len(self._slides)} slides")
            snapshots.append(self._complete())

        return snapshots

    def finalize(self) -> PartialPresentation | None:
        """Complete the presentation when the source ends without a terminal marker.

        Returns the final snapshot, or None when it was already emitted.
        """
        if self._final_emitted:
            return None
        logger.info(f"Stream ended without completion marker; finalizing {len(self._slides)} slides")
        return self._complete()

    def validate(self) -> None:
        """Raise PresentationValidationError unless a title and at least one slide exist."""
        problems = []
        if not self.main_title:
            problems.append("no presentation title")
        if not self._slides:
            problems.append("no slides")
        if problems:
            raise PresentationValidationError(
                f"Generation produced {' and '.join(problems)}",
                partial=self.snapshot(),
            )

    def _drain_records(self, snapshots: list[PartialPresentation]) -> None:
        # Each productive pass consumes buffer text, so this stops once a pass finds nothing
        while True:
            records, self._buffer = extract_records(
                self._buffer, self.delimiters, self.max_records_per_pass
            )
            if not records:
                return
            for raw in records:
                slide = decode_slide(raw)
                if slide is None:
                    continue
                self._append_slide(slide)
                snapshots.append(self.snapshot())

    def _capture_title(self, snapshots: list[PartialPresentation]) -> None:
        if self.main_title is not None:
            return

        # Only the text ahead of the first record can hold the title object
        start = self._buffer.find(self.delimiters.slide_start)
        head = self._buffer if start == -1 else self._buffer[:start]
        match = TITLE_OBJECT_PATTERN.search(head)
        if not match:
            return

        self._buffer = self._buffer[:match.start()] + self._buffer[match.end():]
        try:
            title = json.loads(match.group(1))
        except json.JSONDecodeError:
            title = match.group(1)[1:-1]
        title = title.strip()
        if not title:
            logger.warning("Ignoring empty presentation title object")
            return

        self.main_title = title
        if self.state == AssemblerState.AWAITING_TITLE:
            self.state = AssemblerState.STREAMING_SLIDES
        logger.info(f"Presentation title captured: {title!r}")

        if not self._title_emitted:
            self._title_emitted = True
            snapshots.append(self.snapshot())

    def _append_slide(self, slide: Slide) -> None:
        index = len(self._slides)
        self._slides.append(slide)
        logger.info(f"Slide {index + 1} ready: {slide.title!r} ({slide.layout.value})")

        if self.on_slide_complete is None:
            return
        try:
            self.on_slide_complete(slide, index)
        except Exception:
            logger.exception(f"Slide completion callback failed for slide {index}")

    def _complete(self) -> PartialPresentation:
        self.state = AssemblerState.COMPLETE
        self._final_emitted = True
        self._buffer = ""
        return self.snapshot()
