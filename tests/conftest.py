"""Shared pytest fixtures for the PrepositionPal test suite."""

import random

import pytest

from prepal.logger import logger

# Keep test output readable; must happen before the catalog logs at import
logger.enabled = False

from prepal.cache import ContentCache, MediaCache, RecentQuestions  # noqa: E402
from prepal.config import Settings  # noqa: E402
from prepal.database import LocalDatabase  # noqa: E402
from prepal.errors import PrepalError  # noqa: E402
from prepal.models import BLANK, CachedQuestion, GameLevel, Preposition  # noqa: E402
from prepal.orchestrator import QuestionOrchestrator  # noqa: E402


class FakeService:
    """
    Stand-in for GenerativeContentService.

    Sentence requests pop from ``sentences`` (falling back to a fixed
    sentence with a blank); explanation requests return ``explanation``,
    and the longer write-up returns ``extended_explanation``.
    Set one of the ``*_error`` attributes to make that call raise.
    """

    def __init__(self, sentences=None):
        self.sentences = list(sentences or [])
        self.explanation = "**In** marks something enclosed by a space."
        self.extended_explanation = "**In** covers space, time and abstract containment."
        self.image_bytes = b"\x89PNG fake image"
        self.video_bytes = b"fake mp4 video"
        self.audio_bytes = b"ID3 fake audio"

        self.text_error: PrepalError = None
        self.explanation_error: PrepalError = None
        self.extended_error: PrepalError = None
        self.image_error: PrepalError = None
        self.video_error: PrepalError = None
        self.speech_error: PrepalError = None

        self.sentence_prompts = []
        self.explanation_prompts = []
        self.extended_prompts = []
        self.image_prompts = []
        self.video_prompts = []
        self.speech_texts = []

    async def generate_text(self, prompt, temperature=0.9):
        if prompt.startswith("Explain strictly"):
            self.explanation_prompts.append(prompt)
            if self.explanation_error:
                raise self.explanation_error
            return self.explanation

        if prompt.startswith("Provide a detailed"):
            self.extended_prompts.append(prompt)
            if self.extended_error:
                raise self.extended_error
            return self.extended_explanation

        self.sentence_prompts.append(prompt)
        if self.text_error:
            raise self.text_error
        if self.sentences:
            return self.sentences.pop(0)
        return f"The cat waits {BLANK} the box."

    async def generate_image(self, prompt):
        self.image_prompts.append(prompt)
        if self.image_error:
            raise self.image_error
        return self.image_bytes

    async def generate_video(self, prompt, aspect_ratio="16:9", on_progress=None, **kwargs):
        self.video_prompts.append(prompt)
        if on_progress:
            on_progress("Setting up the scene...")
        if self.video_error:
            raise self.video_error
        if on_progress:
            on_progress("Rendering motion... 50%")
            on_progress("Finalizing video...")
        return self.video_bytes

    async def generate_speech(self, text, voice=None):
        self.speech_texts.append(text)
        if self.speech_error:
            raise self.speech_error
        return self.audio_bytes


class RecordingCredentials:
    def __init__(self):
        self.requests = 0

    def has_credential(self):
        return True

    def request_credential(self):
        self.requests += 1


@pytest.fixture
def db():
    database = LocalDatabase(":memory:")
    yield database
    database.close()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="sk-test", history_limit=15, video_round_period=5, log_enabled=False)


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def credentials() -> RecordingCredentials:
    return RecordingCredentials()


@pytest.fixture
def content_cache(db, rng) -> ContentCache:
    return ContentCache(db, rng=rng)


@pytest.fixture
def media_cache(db) -> MediaCache:
    return MediaCache(db)


@pytest.fixture
def orchestrator(service, content_cache, media_cache, settings, credentials, rng) -> QuestionOrchestrator:
    return QuestionOrchestrator(
        service, content_cache, media_cache,
        settings=settings,
        recent=RecentQuestions(settings.history_limit),
        credentials=credentials,
        rng=rng,
    )


def make_cached(
    question_id: str = "q-1",
    level: GameLevel = GameLevel.LEVEL_1,
    preposition: Preposition = Preposition.IN,
) -> CachedQuestion:
    distractors = [p for p in (Preposition.FOR, Preposition.UP, Preposition.OFF) if p != preposition]
    return CachedQuestion(
        id=question_id,
        level=level,
        preposition=preposition,
        sentence=f"The keys are {BLANK} the drawer.",
        options=[distractors[0], preposition, distractors[1]],
        visual_prompt=f"Photo of keys {preposition.value} a drawer ({question_id})",
        timestamp="2024-01-01T00:00:00+00:00",
    )
