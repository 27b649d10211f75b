"""Delimiter-based record extraction from an accumulating text buffer.

The model wraps every slide in literal sentinel tokens::

    SLIDE_START_DELIMITER
    {"title": ..., "content": ..., "layout": ...}
    SLIDE_END_DELIMITER

and finishes with ``PRESENTATION_COMPLETE_DELIMITER``. Chunks may split a
token anywhere, so extraction only happens once both markers of a pair are
fully in the buffer.
"""

import logging

from pydantic import BaseModel, ConfigDict, Field

from studydeck.config import Settings

logger = logging.getLogger(__name__)

SLIDE_START = "SLIDE_START_DELIMITER"
SLIDE_END = "SLIDE_END_DELIMITER"
PRESENTATION_COMPLETE = "PRESENTATION_COMPLETE_DELIMITER"

DEFAULT_MAX_RECORDS_PER_PASS = 1000


class StreamDelimiters(BaseModel):
    """Sentinel tokens shared by the generation prompt and the parser."""

    model_config = ConfigDict(frozen=True)

    slide_start: str = Field(SLIDE_START, min_length=1)
    slide_end: str = Field(SLIDE_END, min_length=1)
    presentation_complete: str = Field(PRESENTATION_COMPLETE, min_length=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StreamDelimiters":
        return cls(
            slide_start=settings.slide_start_delimiter,
            slide_end=settings.slide_end_delimiter,
            presentation_complete=settings.presentation_complete_delimiter,
        )


def extract_records(
    buffer: str,
    delimiters: StreamDelimiters | None = None,
    max_records: int = DEFAULT_MAX_RECORDS_PER_PASS,
) -> tuple[list[str], str]:
    """Pull every complete start/end pair out of ``buffer``.

    Returns the raw record texts (trimmed, in stream order) and the remaining
    buffer. Everything up to and including a consumed end marker is removed;
    trailing text is kept for the next call.

    When the first end marker comes before the first start marker, extraction
    stops and the buffer is returned untouched until more text arrives.
    """
    delimiters = delimiters or StreamDelimiters()
    start_token = delimiters.slide_start
    end_token = delimiters.slide_end

    records: list[str] = []
    while len(records) < max_records:
        start = buffer.find(start_token)
        end = buffer.find(end_token)
        if start == -1 or end == -1:
            break
        if start >= end:
            logger.debug("End marker precedes start marker; waiting for more input")
            break

        records.append(buffer[start + len(start_token):end].strip())
        buffer = buffer[end + len(end_token):]

    if len(records) >= max_records:
        logger.debug(f"Record extraction stopped after {max_records} records in one pass")

    return records, buffer


def has_terminal_marker(buffer: str, delimiters: StreamDelimiters | None = None) -> bool:
    """Check whether the completion sentinel has arrived."""
    delimiters = delimiters or StreamDelimiters()
    return delimiters.presentation_complete in buffer
