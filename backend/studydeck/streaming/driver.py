"""Stream driver: chunk source in, presentation snapshots out."""

import logging
from typing import AsyncGenerator, AsyncIterable, AsyncIterator

from studydeck.schemas.presentation import PartialPresentation
from studydeck.streaming.assembler import PresentationAssembler, SlideCallback
from studydeck.streaming.errors import StreamTransportError
from studydeck.streaming.extractor import DEFAULT_MAX_RECORDS_PER_PASS, StreamDelimiters

logger = logging.getLogger(__name__)


async def _close_source(iterator: AsyncIterator[str]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def stream_presentation(
    chunks: AsyncIterable[str],
    on_slide_complete: SlideCallback | None = None,
    delimiters: StreamDelimiters | None = None,
    max_records_per_pass: int = DEFAULT_MAX_RECORDS_PER_PASS,
) -> AsyncGenerator[PartialPresentation, None]:
    """Turn a chunked model output into a live sequence of snapshots.

    Every snapshot but the last has ``is_complete == False``; the last one is
    complete, whether the terminal marker arrived or the source simply ended.
    Once the terminal marker is seen the source is closed and any remaining
    output is discarded.

    Raises:
        StreamTransportError: the source failed; ``partial`` holds what was
            assembled so far.
        PresentationValidationError: after the final snapshot, when the
            stream produced no title or no slides.
    """
    assembler = PresentationAssembler(
        delimiters=delimiters,
        on_slide_complete=on_slide_complete,
        max_records_per_pass=max_records_per_pass,
    )
    iterator = chunks.__aiter__()

    try:
        while True:
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                partial = assembler.snapshot()
                logger.error(
                    f"Chunk source failed after {len(partial.slides)} slides: {e}"
                )
                raise StreamTransportError(f"Chunk source failed: {e}", partial=partial) from e

            for snapshot in assembler.feed(chunk):
                yield snapshot

            if assembler.is_complete:
                break
    finally:
        await _close_source(iterator)

    final = assembler.finalize()
    if final is not None:
        yield final

    assembler.validate()
