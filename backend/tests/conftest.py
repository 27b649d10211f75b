"""
Pytest configuration and shared fixtures for the streaming parser and services.
"""

import json
from typing import AsyncGenerator, Callable

import pytest

from studydeck.streaming.extractor import PRESENTATION_COMPLETE, SLIDE_END, SLIDE_START


def title_object(title: str) -> str:
    return json.dumps({"main_title": title})


def framed(record: dict | str) -> str:
    """Wrap a record in start/end markers the way the model emits it."""
    body = record if isinstance(record, str) else json.dumps(record)
    return f"{SLIDE_START}\n{body}\n{SLIDE_END}\n"


def split_every(text: str, size: int) -> list[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


SCENARIO_CHUNKS = [
    '{"main_title": "Topic A"}',
    'SLIDE_START_DELIMITER\n{"title":"T1","content":"C1","layout":"title_content",'
    '"image_prompt":"","speaker_notes":"N1"}\nSLIDE_END_DELIMITER',
    'SLIDE_START_DELIMITER\n{"title":"T2","content":"C2","layout":"quote"}\nSLIDE_END_DELIMITER',
    "PRESENTATION_COMPLETE_DELIMITER",
]

SAMPLE_SLIDES = [
    {
        "title": "What Is Photosynthesis?",
        "content": "- Plants turn light into chemical energy\n- Happens in **chloroplasts**",
        "layout": "title_content",
        "image_prompt": "Sunlight through green leaves, macro photography",
        "speaker_notes": "Let's start with the big picture of photosynthesis.",
        "keyPoints": ["Light energy", "Chlorophyll", "Glucose"],
    },
    {
        "title": "Light vs. Dark Reactions",
        "content": "Need sunlight, make ATP | Use ATP, fix carbon",
        "layout": "comparison",
        "image_prompt": "",
        "speaker_notes": "The two stages depend on each other.",
        "statistics": "About 90% of the ATP is used in the Calvin cycle",
    },
    {
        "title": "Jan Ingenhousz",
        "content": "> Plants purify the air in sunlight.",
        "layout": "quote",
    },
]


@pytest.fixture
def sample_slides() -> list[dict]:
    return [dict(s) for s in SAMPLE_SLIDES]


@pytest.fixture
def raw_output(sample_slides) -> str:
    """A complete, well-formed model output."""
    parts = [title_object("Photosynthesis Explained") + "\n"]
    parts.extend(framed(s) for s in sample_slides)
    parts.append(PRESENTATION_COMPLETE)
    return "".join(parts)


@pytest.fixture
def make_source() -> Callable[..., AsyncGenerator[str, None]]:
    """Build an async chunk source, optionally failing after its chunks."""

    def factory(chunks: list[str], error: Exception | None = None, consumed: list | None = None):
        async def source() -> AsyncGenerator[str, None]:
            for chunk in chunks:
                if consumed is not None:
                    consumed.append(chunk)
                yield chunk
            if error is not None:
                raise error

        return source()

    return factory


class FakeLLM:
    """Stands in for LLMService: replays a fixed list of chunks."""

    provider_name = "fake"

    def __init__(self, chunks: list[str], error: Exception | None = None):
        self.chunks = chunks
        self.error = error
        self.calls: list[tuple[str, str | None]] = []

    async def generate_stream(self, prompt: str, system: str | None = None) -> AsyncGenerator[str, None]:
        self.calls.append((prompt, system))
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


@pytest.fixture
def fake_llm_factory() -> Callable[..., FakeLLM]:
    return FakeLLM
