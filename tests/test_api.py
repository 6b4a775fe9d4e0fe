import asyncio
import base64
from types import SimpleNamespace

import httpx
import openai
import pytest

from prepal.api import (
    SAFE_IMAGE_PROMPT, CredentialProvider, EnvCredentialProvider,
    GenerativeContentService, sanitize_image_prompt, translate_error,
)
from prepal.config import Settings
from prepal.errors import CredentialError, GenerationError, VideoTimeoutError


def status_error(cls, status: int, message: str = "error", body=None):
    request = httpx.Request("POST", "https://api.openai.com/v1/test")
    return cls(message, response=httpx.Response(status, request=request), body=body)


class FakeBinary:
    def __init__(self, data: bytes):
        self.data = data

    async def aread(self) -> bytes:
        return self.data


class FakeCompletions:
    def __init__(self, content="A sentence.", error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeImages:
    def __init__(self, errors=(), data=b"png"):
        self.errors = list(errors)
        self.data = data
        self.prompts = []

    async def generate(self, **kwargs):
        self.prompts.append(kwargs["prompt"])
        if self.errors:
            raise self.errors.pop(0)
        return SimpleNamespace(data=[SimpleNamespace(b64_json=base64.b64encode(self.data).decode())])


class FakeSpeech:
    def __init__(self):
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return FakeBinary(b"mp3 bytes")


class FakeVideos:
    """Video jobs that walk through ``statuses`` on each retrieve, then stay on the last."""

    def __init__(self, statuses, data=b"mp4 bytes"):
        self.statuses = list(statuses)
        self.data = data
        self.created = None
        self.retrieves = 0

    async def create(self, **kwargs):
        self.created = kwargs
        return SimpleNamespace(id="video_123", status="queued", progress=0, error=None)

    async def retrieve(self, video_id):
        self.retrieves += 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        error = SimpleNamespace(message="moderation blocked") if status == "failed" else None
        return SimpleNamespace(id=video_id, status=status, progress=self.retrieves * 25, error=error)

    async def download_content(self, video_id, variant="video"):
        assert variant == "video"
        return FakeBinary(self.data)


def make_service(completions=None, images=None, speech=None, videos=None, **settings):
    client = SimpleNamespace(
        chat=SimpleNamespace(completions=completions or FakeCompletions()),
        images=images or FakeImages(),
        audio=SimpleNamespace(speech=speech or FakeSpeech()),
        videos=videos or FakeVideos(["completed"]),
    )
    return GenerativeContentService(client, Settings(openai_api_key="sk-test", **settings))


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


# --- text ---

def test_generate_text_returns_stripped_content() -> None:
    completions = FakeCompletions("  The cat sits ______ the mat.\n")
    service = make_service(completions, text_model="gpt-test")
    assert asyncio.run(service.generate_text("prompt")) == "The cat sits ______ the mat."
    assert completions.calls[0]["model"] == "gpt-test"
    assert completions.calls[0]["messages"] == [{"role": "user", "content": "prompt"}]


def test_empty_completion_is_a_generation_error() -> None:
    service = make_service(FakeCompletions("   "))
    with pytest.raises(GenerationError):
        asyncio.run(service.generate_text("prompt"))


@pytest.mark.parametrize("cls,status", [
    (openai.AuthenticationError, 401),
    (openai.PermissionDeniedError, 403),
    (openai.NotFoundError, 404),
])
def test_credential_failures_are_distinguished(cls, status) -> None:
    service = make_service(FakeCompletions(error=status_error(cls, status)))
    with pytest.raises(CredentialError):
        asyncio.run(service.generate_text("prompt"))


def test_other_failures_are_retryable() -> None:
    service = make_service(FakeCompletions(error=status_error(openai.RateLimitError, 429, "slow down")))
    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(service.generate_text("prompt"))
    assert excinfo.value.retryable is True
    assert not isinstance(excinfo.value, CredentialError)


def test_translate_error_passes_own_errors_through() -> None:
    own = GenerationError("already typed")
    assert translate_error(own, "Anything") is own


# --- images ---

def test_generate_image_decodes_base64() -> None:
    images = FakeImages(data=b"\x89PNG data")
    assert asyncio.run(make_service(images=images).generate_image("A cup on a table.")) == b"\x89PNG data"


def test_content_policy_rejection_retries_with_safe_prompt() -> None:
    rejection = status_error(openai.BadRequestError, 400, "content_policy_violation: blocked")
    images = FakeImages(errors=[rejection])
    data = asyncio.run(make_service(images=images).generate_image("A knight with a sword."))
    assert data == b"png"
    assert images.prompts == ["A knight with a stick.", SAFE_IMAGE_PROMPT]


def test_second_content_policy_rejection_raises() -> None:
    rejection = status_error(openai.BadRequestError, 400, "content_policy_violation: blocked")
    images = FakeImages(errors=[rejection, rejection])
    with pytest.raises(GenerationError):
        asyncio.run(make_service(images=images).generate_image("A scene."))


def test_other_bad_requests_do_not_retry() -> None:
    images = FakeImages(errors=[status_error(openai.BadRequestError, 400, "invalid size")])
    with pytest.raises(GenerationError):
        asyncio.run(make_service(images=images).generate_image("A scene."))
    assert len(images.prompts) == 1


def test_sanitize_replaces_whole_words_only() -> None:
    assert sanitize_image_prompt("A man holds a gun near the shotgun shop.") == \
        "A man holds a camera near the shotgun shop."
    assert sanitize_image_prompt("   ") == SAFE_IMAGE_PROMPT
    assert sanitize_image_prompt("The war memorial.") == "The parade memorial."


# --- speech ---

def test_generate_speech_uses_configured_voice() -> None:
    speech = FakeSpeech()
    service = make_service(speech=speech, tts_voice="shimmer")
    assert asyncio.run(service.generate_speech("Hello there")) == b"mp3 bytes"
    assert speech.calls[0]["voice"] == "shimmer"
    assert speech.calls[0]["input"] == "Hello there"


def test_empty_speech_text_is_rejected() -> None:
    with pytest.raises(GenerationError):
        asyncio.run(make_service().generate_speech(""))


# --- video ---

def test_video_polls_until_complete_and_reports_progress() -> None:
    videos = FakeVideos(["in_progress", "in_progress", "completed"])
    sleep = FakeSleep()
    messages = []
    data = asyncio.run(make_service(videos=videos).generate_video(
        "A dog runs through a park.", "9:16", on_progress=messages.append,
        poll_interval=3, timeout=600, sleep=sleep,
    ))

    assert data == b"mp4 bytes"
    assert videos.created["size"] == "720x1280"
    assert sleep.calls == [3, 3, 3]
    assert messages[0] == "Setting up the scene..."
    assert "Rendering motion... 25%" in messages
    assert messages[-1] == "Finalizing video..."


def test_video_polling_is_bounded() -> None:
    videos = FakeVideos(["in_progress"])
    sleep = FakeSleep()
    with pytest.raises(VideoTimeoutError):
        asyncio.run(make_service(videos=videos).generate_video(
            "prompt", poll_interval=3, timeout=9, sleep=sleep,
        ))
    assert len(sleep.calls) == 3
    assert videos.retrieves == 3


def test_failed_video_job_is_a_generation_error() -> None:
    videos = FakeVideos(["failed"])
    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(make_service(videos=videos).generate_video("prompt", sleep=FakeSleep()))
    assert "moderation blocked" in str(excinfo.value)


def test_unknown_aspect_ratio_is_rejected() -> None:
    with pytest.raises(ValueError):
        asyncio.run(make_service().generate_video("prompt", "4:3"))


# --- credentials ---

def test_default_credential_provider_is_a_no_op() -> None:
    provider = CredentialProvider()
    assert provider.has_credential() is True
    assert provider.request_credential() is None


def test_env_credential_provider_reads_environment(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert EnvCredentialProvider().has_credential() is False
    monkeypatch.setenv("OPENAI_API_KEY", "sk-abc")
    assert EnvCredentialProvider().has_credential() is True


def test_service_requires_an_api_key() -> None:
    with pytest.raises(CredentialError):
        GenerativeContentService.from_settings(Settings(openai_api_key=None))
