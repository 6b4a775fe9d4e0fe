"""
Question orchestration: turns a "next question" request into a playable
Question.

Per call: Select -> Cache lookup -> Generate -> Persist -> Return, with the
explanation for the correct answer requested in the background so it is
ready if the learner answers wrongly.

Failure policy:
- Text generation rejected for credentials -> CredentialError (the
  credential provider is asked for a new credential first)
- Any other text generation failure -> GenerationError(round_index=...)
- Image/video failures never fail the round; they degrade to a static
  image and finally to a placeholder URL
"""

import asyncio
import random
import time
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from .api import CredentialProvider, GenerativeContentService, StatusCallback
from .cache import ContentCache, MediaCache, RecentQuestions, media_key
from .catalog import get_item
from .config import Settings
from .errors import CredentialError, GenerationError, PrepalError
from .game_logic import generate_options, repair_sentence, select_preposition
from .logger import logger, Timer
from .models import (
    CachedQuestion, GameLevel, MediaAsset, MediaKind, Preposition,
    PrepositionCategory, PrepositionItem, Question,
)
from .prompts import (
    build_explanation_prompt, build_extended_explanation_prompt, build_sentence_prompt,
    build_visual_prompt, narration_text,
)

PLACEHOLDER_IMAGE_URL = "https://picsum.photos/800/450?random={seed}"
EXPLANATION_UNAVAILABLE = "Could not load explanation."
EXTENDED_EXPLANATION_UNAVAILABLE = "Could not load more details."

IMAGE_MIME = "image/png"
VIDEO_MIME = "video/mp4"
AUDIO_MIME = "audio/mpeg"

VIDEO_ASPECT_RATIO = "16:9"


class QuestionOrchestrator:
    """
    Builds rounds from the catalog, the content cache and the generative
    service. One instance per play session: it owns the recency list and
    the pending explanation tasks.
    """

    def __init__(
        self,
        service: GenerativeContentService,
        content_cache: ContentCache,
        media_cache: MediaCache,
        settings: Optional[Settings] = None,
        recent: Optional[RecentQuestions] = None,
        credentials: Optional[CredentialProvider] = None,
        rng: Optional[random.Random] = None,
    ):
        self.service = service
        self.content_cache = content_cache
        self.media_cache = media_cache
        self.settings = settings or Settings()
        self.recent = recent if recent is not None else RecentQuestions(self.settings.history_limit)
        self.credentials = credentials or CredentialProvider()
        self.rng = rng or random.Random()

        self._explanations: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()

    def is_video_round(self, round_index: int) -> bool:
        """Every Nth round (1-based) is a motion round with video media."""
        period = self.settings.video_round_period
        return period > 0 and (round_index + 1) % period == 0

    async def get_next_question(
        self,
        level: GameLevel,
        category: Optional[PrepositionCategory] = None,
        tone_level: int = 5,
        round_index: int = 0,
        forced_preposition: Optional[Preposition] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> Question:
        """
        Assemble the question for ``round_index``.

        ``forced_preposition`` switches on deep-dive mode: the cache is
        neither read nor written and the prompt asks for a varied usage.
        """
        logger.separator(f"Round {round_index + 1}")
        try:
            question = await self._build(level, category, tone_level, round_index, forced_preposition, on_status)
        except CredentialError:
            logger.error("Generative service rejected the credential")
            self.credentials.request_credential()
            raise
        except PrepalError as e:
            logger.error(f"Round {round_index + 1} failed: {e}")
            raise GenerationError(str(e), round_index=round_index) from e

        self._prefetch_explanation(question)
        return question

    async def _build(
        self,
        level: GameLevel,
        category: Optional[PrepositionCategory],
        tone_level: int,
        round_index: int,
        forced_preposition: Optional[Preposition],
        on_status: Optional[StatusCallback],
    ) -> Question:
        deep_dive = forced_preposition is not None
        video_round = self.is_video_round(round_index)

        # Select
        if deep_dive:
            item = get_item(forced_preposition)
        else:
            item = select_preposition(level, category, motion_oriented=video_round, rng=self.rng)
        logger.info(
            f"Target '{item.preposition.value}' ({item.category.value}) at {level.value}"
            f"{' [video]' if video_round else ''}{' [deep dive]' if deep_dive else ''}"
        )

        # Cache lookup
        if not deep_dive and not video_round:
            cached = await self.content_cache.find_one(level, item.preposition, self.recent.ids())
            if cached is not None:
                return await self._from_cache(cached, item)

        # Generate
        _status(on_status, "Writing a new sentence...")
        prompt = build_sentence_prompt(level, item.preposition, tone_level, diversify_context=deep_dive, rng=self.rng)
        raw_sentence = await self.service.generate_text(prompt)
        sentence = repair_sentence(raw_sentence, item)
        options = generate_options(item.preposition, level, rng=self.rng)

        question_id = f"q-{int(time.time() * 1000)}-{round_index}"
        visual_prompt = build_visual_prompt(sentence, item.preposition, video=video_round)

        if video_round:
            media = await self._shielded(self._video_media(visual_prompt, on_status))
        else:
            _status(on_status, "Painting the scene...")
            media = await self._shielded(self._image_media(visual_prompt))

        # Persist
        if not deep_dive and not video_round:
            await self.content_cache.put(CachedQuestion(
                id=question_id,
                level=level,
                preposition=item.preposition,
                sentence=sentence,
                options=list(options),
                visual_prompt=visual_prompt,
                timestamp=_utc_now(),
            ))
            self.recent.push(question_id)

        return Question(
            id=question_id,
            sentence=sentence,
            correct_answer=item.preposition,
            options=tuple(options),
            media=media,
            level=level,
            category=item.category,
            is_video_round=video_round,
        )

    async def _from_cache(self, cached: CachedQuestion, item: PrepositionItem) -> Question:
        """Reuse text and options; regenerate only the media if it is gone."""
        media = await self._shielded(self._image_media(cached.visual_prompt))
        self.recent.push(cached.id)
        return Question(
            id=cached.id,
            sentence=cached.sentence,
            correct_answer=cached.preposition,
            options=tuple(cached.options),
            media=media,
            level=cached.level,
            category=item.category,
            from_cache=True,
        )

    async def _shielded(self, coro) -> MediaAsset:
        # Runs to completion (and caches) even if the caller is cancelled
        task = asyncio.ensure_future(coro)
        self._keep(task)
        return await asyncio.shield(task)

    async def _image_media(self, visual_prompt: str) -> MediaAsset:
        cached = await self.media_cache.get(MediaKind.IMAGE, visual_prompt)
        if cached is not None:
            return cached

        try:
            data = await self.service.generate_image(visual_prompt)
        except PrepalError as e:
            logger.warning(f"Image unavailable, using placeholder: {e}")
            return self._placeholder(visual_prompt)

        asset = MediaAsset(
            key=media_key(MediaKind.IMAGE, visual_prompt),
            kind=MediaKind.IMAGE,
            mime_type=IMAGE_MIME,
            data=data,
            prompt=visual_prompt,
        )
        await self.media_cache.put(asset)
        return asset

    async def _video_media(self, visual_prompt: str, on_status: Optional[StatusCallback]) -> MediaAsset:
        params = {"aspect_ratio": VIDEO_ASPECT_RATIO}
        cached = await self.media_cache.get(MediaKind.VIDEO, visual_prompt, params)
        if cached is not None:
            return cached

        try:
            with Timer() as timer:
                data = await self.service.generate_video(
                    visual_prompt, VIDEO_ASPECT_RATIO, on_progress=on_status,
                )
        except PrepalError as e:
            logger.warning(f"Video unavailable, falling back to a still image: {e}")
            _status(on_status, "Video unavailable, painting a still instead...")
            return await self._image_media(visual_prompt)

        logger.vid(f"Video generated in {timer.duration_ms / 1000:.1f}s")
        asset = MediaAsset(
            key=media_key(MediaKind.VIDEO, visual_prompt, params),
            kind=MediaKind.VIDEO,
            mime_type=VIDEO_MIME,
            data=data,
            prompt=visual_prompt,
        )
        await self.media_cache.put(asset, params)
        return asset

    def _placeholder(self, visual_prompt: str) -> MediaAsset:
        seed = self.rng.random()
        return MediaAsset(
            key="",
            kind=MediaKind.IMAGE,
            mime_type="image/jpeg",
            url=PLACEHOLDER_IMAGE_URL.format(seed=seed),
            prompt=visual_prompt,
            placeholder=True,
        )

    # ------------------------------------------------------------------
    # Explanations
    # ------------------------------------------------------------------

    def _prefetch_explanation(self, question: Question) -> None:
        if question.id in self._explanations:
            return
        # Only the latest round keeps its pre-fetch
        self._explanations.clear()
        logger.task_start(f"explanation {question.id}")
        task = asyncio.create_task(self._generate_explanation(question))
        self._explanations[question.id] = task
        self._keep(task)

    async def _generate_explanation(self, question: Question) -> str:
        prompt = build_explanation_prompt(question.sentence, question.correct_answer)
        with Timer() as timer:
            text = await self.service.generate_text(prompt, temperature=0.3)
        logger.task_complete(f"explanation {question.id}", duration_ms=timer.duration_ms)
        return text

    async def explain(self, question: Question) -> str:
        """
        Why the correct answer fits. Uses the pre-fetched result when there
        is one; never raises.
        """
        task = self._explanations.pop(question.id, None)
        try:
            if task is not None:
                return await task
            return await self._generate_explanation(question)
        except PrepalError as e:
            logger.task_error(f"explanation {question.id}", str(e))
            return EXPLANATION_UNAVAILABLE

    async def explain_more(self, question: Question) -> str:
        """Detailed write-up with extra examples, on request. Never raises."""
        prompt = build_extended_explanation_prompt(question.sentence, question.correct_answer)
        logger.task_start(f"extended explanation {question.id}")
        try:
            with Timer() as timer:
                text = await self.service.generate_text(prompt, temperature=0.5)
        except PrepalError as e:
            logger.task_error(f"extended explanation {question.id}", str(e))
            return EXTENDED_EXPLANATION_UNAVAILABLE
        logger.task_complete(f"extended explanation {question.id}", duration_ms=timer.duration_ms)
        return text

    # ------------------------------------------------------------------
    # Narration
    # ------------------------------------------------------------------

    async def narrate(self, question: Question, reveal_answer: bool = False) -> Optional[MediaAsset]:
        """Spoken sentence, from the media cache when possible. None on failure."""
        text = narration_text(question.sentence, question.correct_answer, reveal_answer)
        return await self._speech(text)

    async def pronounce(self, preposition: Preposition) -> Optional[MediaAsset]:
        """The preposition on its own, spoken. None on failure."""
        return await self._speech(preposition.value)

    async def _speech(self, text: str) -> Optional[MediaAsset]:
        params = {"voice": self.settings.tts_voice}

        cached = await self.media_cache.get(MediaKind.AUDIO, text, params)
        if cached is not None:
            return cached

        try:
            data = await self.service.generate_speech(text, self.settings.tts_voice)
        except PrepalError as e:
            logger.warning(f"Speech unavailable for {text!r}: {e}")
            return None

        asset = MediaAsset(
            key=media_key(MediaKind.AUDIO, text, params),
            kind=MediaKind.AUDIO,
            mime_type=AUDIO_MIME,
            data=data,
            prompt=text,
        )
        await self.media_cache.put(asset, params)
        return asset

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _keep(self, task: asyncio.Future) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for outstanding background work (explanations, media)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        self._explanations.clear()


def _status(on_status: Optional[StatusCallback], message: str) -> None:
    if on_status is not None:
        on_status(message)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
