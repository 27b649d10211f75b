"""Decode one raw record into a Slide.

A record that cannot be decoded is logged and dropped; nothing here raises.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from studydeck.schemas.presentation import Slide

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "content", "layout")

_PREVIEW_CHARS = 120


def _preview(raw: str) -> str:
    text = " ".join(raw.split())
    if len(text) > _PREVIEW_CHARS:
        return text[:_PREVIEW_CHARS] + "..."
    return text


def _strip_code_fence(text: str) -> str:
    text = text.strip()

    # Models sometimes wrap the object in a markdown block
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    return text.strip()


def parse_record_object(raw: str) -> dict[str, Any] | None:
    """Parse the JSON object inside a raw record, or return None."""
    text = _strip_code_fence(raw)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Tolerate stray prose around the object
        start = text.find("{")
        end = text.rfind("}") + 1
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError:
            return None

    if not isinstance(data, dict):
        return None
    return data


def decode_slide(raw: str) -> Slide | None:
    """Decode a raw record into a fully defaulted Slide.

    Returns None when the record is not a JSON object, when ``title``,
    ``content`` or ``layout`` is missing or empty, or when a field has an
    unusable type.
    """
    data = parse_record_object(raw)
    if data is None:
        logger.warning(f"Dropping malformed slide record: {_preview(raw)!r}")
        return None

    missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
    if missing:
        logger.warning(f"Dropping slide record missing {', '.join(missing)}: {_preview(raw)!r}")
        return None

    try:
        return Slide.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Dropping invalid slide record ({e.error_count()} errors): {_preview(raw)!r}")
        return None
