"""
Tests for decoding raw records into slides.
"""

import json
import logging

import pytest

from studydeck.schemas.presentation import Slide, SlideLayout
from studydeck.streaming.decoder import decode_slide, parse_record_object


class TestDecodeSlide:
    """decode_slide() on well-formed records."""

    def test_full_record(self, sample_slides):
        slide = decode_slide(json.dumps(sample_slides[0]))

        assert slide is not None
        assert slide.title == "What Is Photosynthesis?"
        assert slide.layout == SlideLayout.TITLE_CONTENT
        assert slide.image_prompt.startswith("Sunlight")
        assert slide.key_points == ["Light energy", "Chlorophyll", "Glucose"]

    def test_optional_fields_default_to_empty(self):
        slide = decode_slide('{"title": "T2", "content": "C2", "layout": "quote"}')

        assert slide is not None
        assert slide.image_prompt == ""
        assert slide.speaker_notes == ""
        assert slide.subtitle == ""
        assert slide.statistics == ""
        assert slide.key_points == []
        assert slide.examples == []

    def test_defaulting_is_idempotent(self):
        bare = decode_slide('{"title": "T", "content": "C", "layout": "timeline"}')
        explicit = decode_slide(json.dumps({
            "title": "T",
            "content": "C",
            "layout": "timeline",
            "image_prompt": "",
            "speaker_notes": "",
            "subtitle": "",
            "keyPoints": [],
            "examples": [],
            "statistics": "",
        }))
        assert bare == explicit

    def test_null_optionals_become_empty(self):
        slide = decode_slide(json.dumps({
            "title": "T",
            "content": "C",
            "layout": "image_left",
            "image_prompt": None,
            "keyPoints": None,
        }))
        assert slide.image_prompt == ""
        assert slide.key_points == []

    def test_loose_scalar_types_are_coerced(self):
        slide = decode_slide(json.dumps({
            "title": "Numbers",
            "content": "C",
            "layout": "key_facts",
            "statistics": 42,
            "examples": "only one",
        }))
        assert slide.statistics == "42"
        assert slide.examples == ["only one"]

    def test_unknown_layout_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING):
            slide = decode_slide('{"title": "T", "content": "C", "layout": "hologram"}')
        assert slide.layout == SlideLayout.TITLE_CONTENT
        assert "hologram" in caplog.text

    def test_layout_is_case_insensitive(self):
        slide = decode_slide('{"title": "T", "content": "C", "layout": " Comparison "}')
        assert slide.layout == SlideLayout.COMPARISON

    def test_code_fence_is_stripped(self):
        raw = '```json\n{"title": "T", "content": "C", "layout": "quote"}\n```'
        slide = decode_slide(raw)
        assert slide is not None
        assert slide.title == "T"

    def test_prose_around_object_is_tolerated(self):
        raw = 'Here is the slide: {"title": "T", "content": "C", "layout": "quote"} done'
        assert decode_slide(raw).title == "T"

    def test_wire_alias_round_trip(self):
        slide = decode_slide('{"title": "T", "content": "C", "layout": "benefits", "keyPoints": ["a"]}')
        dumped = slide.model_dump(by_alias=True)
        assert dumped["keyPoints"] == ["a"]
        assert Slide.model_validate(dumped) == slide


class TestRejectedRecords:
    """Records that are dropped instead of failing the stream."""

    @pytest.mark.parametrize("raw", [
        '{"title": "T", "content": "C", "layout": "quote"',
        "not json at all",
        "",
        '["title", "content", "layout"]',
        '"just a string"',
    ])
    def test_malformed_text(self, raw, caplog):
        with caplog.at_level(logging.WARNING):
            assert decode_slide(raw) is None
        assert "Dropping" in caplog.text

    @pytest.mark.parametrize("record", [
        {"content": "C", "layout": "quote"},
        {"title": "T", "layout": "quote"},
        {"title": "T", "content": "C"},
        {"title": "", "content": "C", "layout": "quote"},
        {"title": "T", "content": None, "layout": "quote"},
    ])
    def test_missing_required_field(self, record):
        assert decode_slide(json.dumps(record)) is None

    def test_unusable_field_type(self):
        record = {"title": "T", "content": "C", "layout": "quote", "keyPoints": [{"a": 1}]}
        assert decode_slide(json.dumps(record)) is None

    def test_non_string_layout(self):
        assert decode_slide('{"title": "T", "content": "C", "layout": 3}') is None


class TestParseRecordObject:
    """parse_record_object() helper."""

    def test_returns_dict(self):
        assert parse_record_object(' {"a": 1} ') == {"a": 1}

    def test_returns_none_for_non_object(self):
        assert parse_record_object("[1, 2]") is None
        assert parse_record_object("{broken") is None
