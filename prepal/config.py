"""
Runtime configuration for PrepositionPal.

Values come from the environment, optionally seeded from a .env file at the
project root:

    OPENAI_API_KEY=sk-...
    FIREBASE_CREDENTIALS_PATH=./firebase-service-account.json   # optional
    PREPAL_TELEMETRY_URL=https://example.com/api/track-session  # optional

We use python-dotenv + os.getenv so secrets stay out of git.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .logger import logger

DEFAULT_TEXT_MODEL = "gpt-4o-mini"
DEFAULT_IMAGE_MODEL = "dall-e-3"
DEFAULT_TTS_MODEL = "tts-1"
DEFAULT_TTS_VOICE = "nova"
DEFAULT_VIDEO_MODEL = "sora-2"
DEFAULT_DB_PATH = os.path.join("data", "prepal.db")


@dataclass(frozen=True)
class Settings:
    """Resolved configuration values."""
    openai_api_key: Optional[str] = None
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    tts_model: str = DEFAULT_TTS_MODEL
    tts_voice: str = DEFAULT_TTS_VOICE
    video_model: str = DEFAULT_VIDEO_MODEL
    db_path: str = DEFAULT_DB_PATH
    firebase_credentials_path: Optional[str] = None
    telemetry_url: Optional[str] = None
    video_poll_seconds: float = 3.0
    video_timeout_seconds: float = 600.0
    history_limit: int = 15
    video_round_period: int = 5
    log_enabled: bool = True

    @property
    def masked_api_key(self) -> str:
        key = self.openai_api_key or ""
        if not key:
            return "<unset>"
        return f"{key[:8]}...{key[-4:]}" if len(key) > 12 else "***"


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not a valid number, using {default}")
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off", "")


def load_settings(dotenv: bool = True) -> Settings:
    """Load settings from the environment (and .env when ``dotenv`` is set)."""
    if dotenv:
        if load_dotenv():
            logger.env_success("dotenv file loaded")
        else:
            logger.env("No .env file found, using process environment")

    settings = Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        text_model=os.getenv("PREPAL_TEXT_MODEL", DEFAULT_TEXT_MODEL),
        image_model=os.getenv("PREPAL_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
        tts_model=os.getenv("PREPAL_TTS_MODEL", DEFAULT_TTS_MODEL),
        tts_voice=os.getenv("PREPAL_TTS_VOICE", DEFAULT_TTS_VOICE),
        video_model=os.getenv("PREPAL_VIDEO_MODEL", DEFAULT_VIDEO_MODEL),
        db_path=os.getenv("PREPAL_DB_PATH", DEFAULT_DB_PATH),
        firebase_credentials_path=os.getenv("FIREBASE_CREDENTIALS_PATH") or None,
        telemetry_url=os.getenv("PREPAL_TELEMETRY_URL") or None,
        video_poll_seconds=_env_number("PREPAL_VIDEO_POLL_SECONDS", 3.0, float),
        video_timeout_seconds=_env_number("PREPAL_VIDEO_TIMEOUT_SECONDS", 600.0, float),
        history_limit=_env_number("PREPAL_HISTORY_LIMIT", 15, int),
        video_round_period=_env_number("PREPAL_VIDEO_ROUND_PERIOD", 5, int),
        log_enabled=_env_flag("PREPAL_LOG_ENABLED", True),
    )
    logger.enabled = settings.log_enabled

    if settings.openai_api_key:
        logger.env_success(f"OPENAI_API_KEY found: {settings.masked_api_key}")
    else:
        logger.env_error("OPENAI_API_KEY not found in environment!")
    logger.env(f"Models: text={settings.text_model}, image={settings.image_model}, "
               f"tts={settings.tts_model}/{settings.tts_voice}, video={settings.video_model}")
    logger.env(f"Local store: {settings.db_path}")
    if settings.firebase_credentials_path:
        logger.env("Remote question cache: Firestore configured")
    if settings.telemetry_url:
        logger.env(f"Telemetry sink: {settings.telemetry_url}")
    return settings
