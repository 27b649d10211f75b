"""Incremental parsing of streamed presentation output."""

from studydeck.streaming.assembler import AssemblerState, PresentationAssembler
from studydeck.streaming.decoder import decode_slide
from studydeck.streaming.driver import stream_presentation
from studydeck.streaming.errors import (
    PresentationStreamError,
    PresentationValidationError,
    StreamTransportError,
)
from studydeck.streaming.extractor import StreamDelimiters, extract_records

__all__ = [
    "AssemblerState",
    "PresentationAssembler",
    "decode_slide",
    "stream_presentation",
    "PresentationStreamError",
    "PresentationValidationError",
    "StreamTransportError",
    "StreamDelimiters",
    "extract_records",
]
