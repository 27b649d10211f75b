"""Asset Service - Image lookup, narration audio and per-run asset caches.

Assets are fetched eagerly: as soon as a slide is parsed, its image prompt
and speaker notes are handed to the prefetcher, long before the whole
presentation is finished.
"""

import asyncio
import logging
from typing import Optional

import httpx

from studydeck.config import Settings, get_settings
from studydeck.schemas.presentation import PreloadProgress, Presentation, Slide

logger = logging.getLogger(__name__)


class AssetFetchError(RuntimeError):
    """An external asset could not be fetched after all retries."""


def is_image_prompt(prompt: str | None) -> bool:
    """Models sometimes emit the literal string 'null' instead of an empty prompt."""
    if not prompt or not prompt.strip():
        return False
    return prompt.strip().lower() != "null"


class AssetCache:
    """Fetched assets of one generation run.

    Keys are the slide texts the assets were derived from: image URLs by
    ``image_prompt``, narration audio by ``speaker_notes``.
    """

    def __init__(self):
        self.images: dict[str, str] = {}
        self.audio: dict[str, bytes] = {}
        self.progress = PreloadProgress()

    def clear(self) -> None:
        self.images.clear()
        self.audio.clear()
        self.progress = PreloadProgress()

    def summary(self, presentation: Presentation) -> list[dict]:
        """Per-slide asset availability."""
        return [
            {
                "slide_index": idx,
                "image_url": self.images.get(slide.image_prompt),
                "has_audio": slide.speaker_notes in self.audio,
            }
            for idx, slide in enumerate(presentation.slides)
        ]


class _RetryingClient:
    """Shared httpx client handling for the asset collaborators."""

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


class ImageSearchClient(_RetryingClient):
    """Looks up an image URL for a free-text prompt via the bulk image endpoint."""

    def __init__(self, url: str, **kwargs):
        super().__init__(**kwargs)
        self.url = url

    async def fetch_image_url(self, prompt: str) -> str:
        """Return the first image URL found for ``prompt``.

        Retries with exponential backoff on HTTP errors, empty results and
        network failures.
        """
        if not prompt:
            raise ValueError("Image prompt cannot be empty.")

        client = await self._get_client()
        delay = self.retry_delay
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.post(self.url, json=[prompt])
                if response.is_success:
                    data = response.json()
                    urls = data.get(prompt) if isinstance(data, dict) else None
                    if isinstance(urls, list) and urls and isinstance(urls[0], str) and urls[0]:
                        return urls[0]
                    if urls:
                        last_error = AssetFetchError(f"Unexpected image payload: {str(urls)[:80]}")
                    else:
                        last_error = AssetFetchError("No images found for the prompt.")
                else:
                    last_error = AssetFetchError(f"Image API failed with status: {response.status_code}")
            except (httpx.HTTPError, ValueError) as e:
                last_error = e

            if attempt < self.max_retries:
                logger.warning(f"Image lookup for {prompt[:40]!r} failed ({last_error}). Retrying in {delay}s...")
                await asyncio.sleep(delay)
                delay *= 2

        raise AssetFetchError(f"Failed to fetch a visual for the slide: {last_error}")


class NarrationClient(_RetryingClient):
    """Deepgram text-to-speech client."""

    def __init__(self, api_key: str, url: str, model: str = "aura-asteria-en", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.url = url
        self.model = model

    async def synthesize(self, text: str) -> bytes:
        """Return narration audio for ``text``.

        Rate limiting (HTTP 429) and network errors are retried with
        exponential backoff; any other HTTP error fails immediately.
        """
        if not self.api_key:
            raise AssetFetchError("Deepgram API key not configured")

        client = await self._get_client()
        delay = self.retry_delay
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.post(
                    self.url,
                    params={"model": self.model},
                    headers={"Authorization": f"Token {self.api_key}"},
                    json={"text": text},
                )
            except httpx.TransportError as e:
                last_error = e
            else:
                if response.status_code == 429:
                    last_error = AssetFetchError("Deepgram rate limit hit")
                elif not response.is_success:
                    logger.error(f"Deepgram API Error: {response.text[:200]}")
                    raise AssetFetchError(f"Deepgram API failed with status: {response.status_code}")
                else:
                    return response.content

            if attempt < self.max_retries:
                logger.warning(f"Narration request failed ({last_error}). Retrying in {delay}s...")
                await asyncio.sleep(delay)
                delay *= 2

        raise AssetFetchError(f"Failed to generate narration audio: {last_error}")


class AssetPrefetcher:
    """Fills an AssetCache while slides stream in, then preloads the rest.

    ``on_slide_complete`` is the synchronous per-slide hook of the stream
    driver; it only schedules background tasks, so it must be called from
    inside a running event loop.
    """

    def __init__(
        self,
        cache: AssetCache,
        image_client: ImageSearchClient | None = None,
        narration_client: NarrationClient | None = None,
    ):
        self.cache = cache
        self.image_client = image_client
        self.narration_client = narration_client
        self._tasks: set[asyncio.Task] = set()
        self._pending_images: set[str] = set()
        self._pending_audio: set[str] = set()

    @property
    def progress(self) -> PreloadProgress:
        return self.cache.progress

    @progress.setter
    def progress(self, value: PreloadProgress) -> None:
        self.cache.progress = value

    def on_slide_complete(self, slide: Slide, index: int) -> None:
        """Start fetching the image and narration of a freshly parsed slide."""
        prompt = slide.image_prompt
        if (
            self.image_client is not None
            and is_image_prompt(prompt)
            and prompt not in self.cache.images
            and prompt not in self._pending_images
        ):
            self._pending_images.add(prompt)
            self._schedule(self._prefetch_image(prompt, index))

        notes = slide.speaker_notes
        if (
            self.narration_client is not None
            and notes
            and notes not in self.cache.audio
            and notes not in self._pending_audio
        ):
            self._pending_audio.add(notes)
            self._schedule(self._prefetch_audio(notes, index))

    def _schedule(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _prefetch_image(self, prompt: str, index: int) -> None:
        try:
            self.cache.images[prompt] = await self.image_client.fetch_image_url(prompt)
        except AssetFetchError as e:
            logger.error(f"Failed to preload image for slide {index}: {e}")
        finally:
            self._pending_images.discard(prompt)

    async def _prefetch_audio(self, notes: str, index: int) -> None:
        try:
            self.cache.audio[notes] = await self.narration_client.synthesize(notes)
        except AssetFetchError as e:
            logger.error(f"Failed to preload audio for slide {index}: {e}")
        finally:
            self._pending_audio.discard(notes)

    async def wait(self) -> None:
        """Wait for in-flight prefetches."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        """Abandon in-flight prefetches."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def preload(self, presentation: Presentation) -> PreloadProgress:
        """Fetch every asset still missing once the presentation is final.

        Images are fetched concurrently; narration one slide at a time to
        stay under the TTS rate limit.
        """
        await self.wait()

        prompts: list[str] = []
        if self.image_client is not None:
            prompts = list(dict.fromkeys(
                s.image_prompt for s in presentation.slides if is_image_prompt(s.image_prompt)
            ))
        notes: list[str] = []
        if self.narration_client is not None:
            notes = [s.speaker_notes for s in presentation.slides if s.speaker_notes]

        self.progress = PreloadProgress(
            status="loading",
            images_total=len(prompts),
            audio_total=len(notes),
        )

        async def load_image(prompt: str) -> None:
            if prompt not in self.cache.images:
                try:
                    self.cache.images[prompt] = await self.image_client.fetch_image_url(prompt)
                except AssetFetchError as e:
                    logger.error(f"Failed to load image for prompt: {prompt[:40]!r}: {e}")
                    return
            self.progress.images_loaded += 1

        results = await asyncio.gather(*(load_image(p) for p in prompts), return_exceptions=True)
        for prompt, result in zip(prompts, results):
            if isinstance(result, Exception):
                logger.error(f"Unexpected error loading image for prompt: {prompt[:40]!r}: {result}")

        try:
            for note in notes:
                if note not in self.cache.audio:
                    try:
                        self.cache.audio[note] = await self.narration_client.synthesize(note)
                    except AssetFetchError as e:
                        logger.error(f"Failed to generate audio for note: {note[:30]!r}...: {e}")
                        continue
                self.progress.audio_loaded += 1
        finally:
            self.progress.status = "complete"
        return self.progress

    async def close(self) -> None:
        await self.cancel()
        if self.image_client is not None:
            await self.image_client.close()
        if self.narration_client is not None:
            await self.narration_client.close()


def create_asset_prefetcher(cache: AssetCache, settings: Settings | None = None) -> AssetPrefetcher:
    """Build a prefetcher from settings; narration is skipped without a Deepgram key."""
    settings = settings or get_settings()
    retry = {
        "max_retries": settings.asset_max_retries,
        "retry_delay": settings.asset_retry_delay,
        "timeout": settings.asset_timeout,
    }

    image_client = ImageSearchClient(settings.image_search_url, **retry) if settings.image_search_url else None
    narration_client = None
    if settings.deepgram_api_key:
        narration_client = NarrationClient(
            settings.deepgram_api_key,
            settings.deepgram_api_url,
            settings.deepgram_model,
            **retry,
        )

    return AssetPrefetcher(cache, image_client, narration_client)
