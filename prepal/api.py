"""
OpenAI-backed generative services for PrepositionPal.

This module handles:
- Sentence and explanation text (chat completions)
- Round images (DALL-E)
- Narration audio (TTS)
- Motion-round videos (Sora), polled until the job finishes

All calls are async (AsyncOpenAI). SDK errors are translated into the
pipeline's own error types: credential/entitlement problems become
CredentialError, everything else GenerationError.

API key is expected in a .env file at the project root:

    OPENAI_API_KEY=sk-...
"""

import asyncio
import base64
import math
import os
import re
from typing import Awaitable, Callable, Optional

import openai
from openai import AsyncOpenAI

from .config import Settings
from .errors import CredentialError, GenerationError, PrepalError, VideoTimeoutError
from .logger import logger, Timer

StatusCallback = Callable[[str], None]

SAFE_IMAGE_PROMPT = "A simple, photorealistic everyday scene suitable for language learning. No text."

VIDEO_SIZES = {
    "16:9": "1280x720",
    "9:16": "720x1280",
}
VIDEO_SECONDS = "4"

MAX_IMAGE_PROMPT_CHARS = 4000


# ---------------------------------------------------------------------------
# Credential providers
# ---------------------------------------------------------------------------

class CredentialProvider:
    """
    Capability the orchestrator uses when the generative service rejects
    the current credential. The default assumes a credential is present and
    does nothing when asked for a new one.
    """

    def has_credential(self) -> bool:
        return True

    def request_credential(self) -> None:
        pass


class EnvCredentialProvider(CredentialProvider):
    """Credential taken from OPENAI_API_KEY; re-authentication means editing .env."""

    def has_credential(self) -> bool:
        return bool(os.getenv("OPENAI_API_KEY"))

    def request_credential(self) -> None:
        logger.env_error("The OpenAI API key was rejected.")
        logger.env("Update OPENAI_API_KEY in your .env file and restart.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def translate_error(exc: Exception, action: str) -> PrepalError:
    """Map an OpenAI SDK exception onto CredentialError / GenerationError."""
    if isinstance(exc, PrepalError):
        return exc
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError, openai.NotFoundError)):
        return CredentialError(f"{action} rejected the credential: {exc}")
    return GenerationError(f"{action} failed: {exc}")


def is_content_policy_error(exc: Exception) -> bool:
    if getattr(exc, "code", None) == "content_policy_violation":
        return True
    text = str(exc).lower()
    return "content_policy" in text or "safety" in text


def sanitize_image_prompt(prompt: str) -> str:
    """
    Replace terms that commonly trip image safety filters.
    Keeps the scene description intact otherwise.
    """
    if not prompt or not prompt.strip():
        logger.debug("Empty image prompt, using safe default")
        return SAFE_IMAGE_PROMPT

    replacements = {
        # Violence-related
        "weapon": "tool",
        "gun": "camera",
        "knife": "utensil",
        "sword": "stick",
        "blood": "paint",
        # Adult content indicators
        "naked": "dressed",
        "nude": "clothed",
        # Conflict
        "war": "parade",
        "battle": "game",
        "fight": "play",
    }

    sanitized = prompt
    replaced = []
    for word, replacement in replacements.items():
        pattern = re.compile(r"\b" + re.escape(word) + r"\b", re.IGNORECASE)
        if pattern.search(sanitized):
            sanitized = pattern.sub(replacement, sanitized)
            replaced.append(f"{word}->{replacement}")

    if replaced:
        logger.debug(f"Sanitized prompt: {', '.join(replaced)}")

    if len(sanitized) > MAX_IMAGE_PROMPT_CHARS:
        sanitized = sanitized[:MAX_IMAGE_PROMPT_CHARS]
        logger.debug(f"Truncated prompt to {MAX_IMAGE_PROMPT_CHARS} chars")

    return sanitized.strip()


def _emit(on_progress: Optional[StatusCallback], message: str) -> None:
    logger.vid(message)
    if on_progress is not None:
        on_progress(message)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class GenerativeContentService:
    """Text, image, speech and video generation on one AsyncOpenAI client."""

    def __init__(self, client: AsyncOpenAI, settings: Optional[Settings] = None):
        self.client = client
        self.settings = settings or Settings()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerativeContentService":
        if not settings.openai_api_key:
            raise CredentialError("OPENAI_API_KEY is not set")
        logger.env("Initializing OpenAI client...")
        client = AsyncOpenAI(api_key=settings.openai_api_key)
        logger.env_success("OpenAI client initialized")
        return cls(client, settings)

    # === Text ===

    async def generate_text(self, prompt: str, temperature: float = 0.9) -> str:
        """Single completion for ``prompt``. Raises on empty output."""
        model = self.settings.text_model
        logger.api_call("chat.completions.create", model=model)
        try:
            with Timer() as timer:
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                )
        except openai.OpenAIError as e:
            logger.api_error(f"Text generation failed: {e}")
            raise translate_error(e, "Text generation") from e
        logger.api_response("chat.completions.create", duration_ms=timer.duration_ms)

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise GenerationError("Text generation returned an empty response")
        return content.strip()

    # === Images ===

    async def generate_image(self, prompt: str) -> bytes:
        """
        PNG bytes for ``prompt``. The prompt is sanitized first; a content
        policy rejection is retried once with a generic safe prompt.
        """
        sanitized = sanitize_image_prompt(prompt)
        logger.img_start(sanitized)
        try:
            return await self._request_image(sanitized)
        except openai.BadRequestError as e:
            if not is_content_policy_error(e):
                logger.img_error(f"Image generation failed: {e}")
                raise translate_error(e, "Image generation") from e
            logger.warning("Content policy violation, trying safe fallback prompt")
            logger.debug(f"Blocked prompt: {sanitized[:100]}...")
        except openai.OpenAIError as e:
            logger.img_error(f"Image generation failed: {e}")
            raise translate_error(e, "Image generation") from e

        try:
            return await self._request_image(SAFE_IMAGE_PROMPT)
        except openai.OpenAIError as e:
            logger.img_error(f"Fallback generation also failed: {e}")
            raise translate_error(e, "Image generation") from e

    async def _request_image(self, prompt: str) -> bytes:
        model = self.settings.image_model
        logger.api_call("images.generate", model=model)
        with Timer() as timer:
            result = await self.client.images.generate(
                model=model,
                prompt=prompt,
                size="1792x1024",
                quality="standard",
                response_format="b64_json",
            )
        logger.api_response("images.generate", duration_ms=timer.duration_ms)

        image_data = result.data[0] if result.data else None
        if image_data is None or not getattr(image_data, "b64_json", None):
            raise GenerationError("Image response missing b64_json data")
        image_bytes = base64.b64decode(image_data.b64_json)
        logger.img(f"Decoded image: {len(image_bytes)} bytes")
        return image_bytes

    # === Speech ===

    async def generate_speech(self, text: str, voice: Optional[str] = None) -> bytes:
        """MP3 narration of ``text``."""
        if not text or not text.strip():
            raise GenerationError("Empty text provided for speech")

        model = self.settings.tts_model
        selected_voice = voice or self.settings.tts_voice
        logger.tts(f"{len(text)} chars, voice={selected_voice}")
        logger.api_call("audio.speech.create", model=model)
        try:
            with Timer() as timer:
                response = await self.client.audio.speech.create(
                    model=model,
                    voice=selected_voice,
                    input=text,
                    response_format="mp3",
                )
                audio = await response.aread()
        except openai.OpenAIError as e:
            logger.error(f"TTS generation failed: {e}")
            raise translate_error(e, "Speech generation") from e
        logger.api_response("audio.speech.create", duration_ms=timer.duration_ms)

        if not audio:
            raise GenerationError("Speech generation returned no audio")
        return audio

    # === Video ===

    async def generate_video(
        self,
        prompt: str,
        aspect_ratio: str = "16:9",
        on_progress: Optional[StatusCallback] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> bytes:
        """
        MP4 bytes for ``prompt``.

        Submits a video job, then polls its status every ``poll_interval``
        seconds, reporting progress through ``on_progress``. Gives up with
        VideoTimeoutError after ``timeout`` seconds' worth of polls.
        """
        if aspect_ratio not in VIDEO_SIZES:
            raise ValueError(f"Unsupported aspect ratio: {aspect_ratio}")

        poll_interval = self.settings.video_poll_seconds if poll_interval is None else poll_interval
        timeout = self.settings.video_timeout_seconds if timeout is None else timeout
        max_polls = max(1, math.ceil(timeout / poll_interval)) if poll_interval > 0 else 1

        model = self.settings.video_model
        _emit(on_progress, "Setting up the scene...")
        logger.api_call("videos.create", model=model)
        try:
            with Timer() as timer:
                video = await self.client.videos.create(
                    model=model,
                    prompt=prompt,
                    size=VIDEO_SIZES[aspect_ratio],
                    seconds=VIDEO_SECONDS,
                )
            logger.api_response("videos.create", duration_ms=timer.duration_ms)
            logger.vid(f"Job {video.id} submitted ({video.status})")

            polls = 0
            while video.status in ("queued", "in_progress"):
                if polls >= max_polls:
                    logger.vid_error(f"Job {video.id} still {video.status} after {polls} polls")
                    raise VideoTimeoutError(f"Video generation timed out after {timeout:.0f}s")
                await sleep(poll_interval)
                polls += 1
                video = await self.client.videos.retrieve(video.id)
                if video.status == "queued":
                    _emit(on_progress, "Waiting for a rendering slot...")
                elif video.status == "in_progress":
                    _emit(on_progress, f"Rendering motion... {int(getattr(video, 'progress', 0) or 0)}%")

            if video.status != "completed":
                detail = getattr(getattr(video, "error", None), "message", None) or video.status
                raise GenerationError(f"Video job {video.id} did not complete: {detail}")

            _emit(on_progress, "Finalizing video...")
            content = await self.client.videos.download_content(video.id, variant="video")
            data = await content.aread()
        except openai.OpenAIError as e:
            logger.vid_error(f"Video generation failed: {e}")
            raise translate_error(e, "Video generation") from e

        if not data:
            raise GenerationError("Video download returned no data")
        logger.vid(f"Video ready: {len(data)} bytes after {polls} polls")
        return data
