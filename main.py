"""
PrepositionPal - terminal quiz driver

Flow per round:
1. Build the next question (cache or fresh generation; every 5th round is a video round).
2. Save the round's media to a temp file and show its path.
3. Learner picks an option by number.
4. Wrong answers get the pre-fetched explanation, with an optional "learn more";
   the mastery ledger is updated.

Setup (from repo root):

    python -m venv .venv
    source .venv/bin/activate   # or .venv\\Scripts\\activate on Windows
    pip install -e .

Ensure .env contains:
    OPENAI_API_KEY=sk-...

Then run:
    python main.py --rank 4 --rounds 10
"""

import argparse
import asyncio
import os
import random
import tempfile
import time
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from prepal.activity import ActivityLogger
from prepal.api import EnvCredentialProvider, GenerativeContentService
from prepal.cache import ContentCache, MediaCache, RecentQuestions
from prepal.catalog import clamp_rank, describe, game_level_for_rank, rank_title, tone_label, xp_for_answer
from prepal.config import Settings, load_settings
from prepal.database import LocalDatabase
from prepal.errors import CredentialError, GenerationError
from prepal.firestore_cache import FirestoreQuestionCache
from prepal.ledger import MasteryLedger
from prepal.logger import logger
from prepal.models import MediaAsset, MediaKind, Preposition, PrepositionCategory, Question, QuestionResult
from prepal.orchestrator import QuestionOrchestrator

MEDIA_SUFFIXES = {MediaKind.IMAGE: ".png", MediaKind.VIDEO: ".mp4", MediaKind.AUDIO: ".mp3"}

console = Console()


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PrepositionPal - English preposition quiz")
    parser.add_argument("--rank", "-r", type=int, default=1,
                        help="Rank on the 36-step ladder (default: 1)")
    parser.add_argument("--rounds", "-n", type=int, default=5,
                        help="Number of rounds to play (default: 5)")
    parser.add_argument("--tone", "-t", type=int, default=5,
                        help="Tone 0-10, serious to witty (default: 5)")
    parser.add_argument("--category", "-c", type=str, default=None,
                        choices=[c.value for c in PrepositionCategory],
                        help="Only ask prepositions from this category")
    parser.add_argument("--deep-dive", "-d", type=str, default=None,
                        choices=[p.value for p in Preposition],
                        help="Drill a single preposition with fresh sentences")
    parser.add_argument("--user", "-u", type=str, default="default_user",
                        help="Learner id for progress tracking")
    parser.add_argument("--narrate", action="store_true",
                        help="Also save spoken audio of each sentence and missed answer")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for reproducibility")
    return parser


def save_media(media: MediaAsset) -> Optional[str]:
    """Write media bytes to a temp file so the learner can open them."""
    if media.url:
        return media.url
    if not media.data:
        return None
    fd, path = tempfile.mkstemp(suffix=MEDIA_SUFFIXES[media.kind], prefix="prepal_")
    with os.fdopen(fd, "wb") as f:
        f.write(media.data)
    return path


def show_question(question: Question, round_number: int, total: int) -> None:
    title = f"Round {round_number}/{total}"
    if question.is_video_round:
        title += "  [video round]"
    body = Text(question.sentence, style="bold")
    body.append("\n\n")
    for i, option in enumerate(question.options, 1):
        body.append(f"  {i}. {option.value}\n")
    console.print(Panel(body, title=title, subtitle=question.level.cefr))

    location = save_media(question.media)
    if location:
        console.print(Text(f"{question.media.kind.value.title()}: {location}", style="dim"))


async def ask_choice(question: Question) -> Preposition:
    while True:
        raw = await asyncio.to_thread(console.input, "Your answer (number): ")
        try:
            index = int(raw.strip())
        except ValueError:
            index = 0
        if 1 <= index <= len(question.options):
            return question.options[index - 1]
        console.print(Text(f"Please enter 1-{len(question.options)}", style="red"))


async def play(args: argparse.Namespace, settings: Settings) -> None:
    rng = random.Random(args.seed)
    rank = clamp_rank(args.rank)
    level = game_level_for_rank(rank)
    category = PrepositionCategory(args.category) if args.category else None
    forced = Preposition(args.deep_dive) if args.deep_dive else None

    db = LocalDatabase(settings.db_path)
    remote = FirestoreQuestionCache.from_credentials(settings.firebase_credentials_path)
    credentials = EnvCredentialProvider()

    try:
        service = GenerativeContentService.from_settings(settings)
    except CredentialError as e:
        credentials.request_credential()
        console.print(Text(str(e), style="bold red"))
        db.close()
        return

    orchestrator = QuestionOrchestrator(
        service,
        ContentCache(db, remote, rng=rng),
        MediaCache(db),
        settings=settings,
        recent=RecentQuestions(settings.history_limit),
        credentials=credentials,
        rng=rng,
    )
    ledger = MasteryLedger(db)
    activity = ActivityLogger("prepal", args.user, db=db, telemetry_url=settings.telemetry_url)
    await activity.start_session()

    console.print(Panel(
        f"{rank_title(rank)}  ·  tier {level.cefr}  ·  tone {tone_label(args.tone)}",
        title="PrepositionPal",
    ))

    try:
        round_index = 0
        while round_index < args.rounds:
            try:
                question = await orchestrator.get_next_question(
                    level, category, args.tone, round_index, forced,
                    on_status=lambda msg: console.print(Text(msg, style="cyan")),
                )
            except CredentialError:
                console.print(Text("Please check your API key.", style="bold red"))
                break
            except GenerationError as e:
                console.print(Text(f"Failed to generate question: {e}", style="red"))
                retry = await asyncio.to_thread(console.input, "Retry this round? [Y/n] ")
                if retry.strip().lower().startswith("n"):
                    break
                continue

            await activity.start_activity(question.id, "drill", f"Round {round_index + 1}")
            show_question(question, round_index + 1, args.rounds)
            if args.narrate:
                audio = await orchestrator.narrate(question)
                if audio is not None:
                    console.print(Text(f"Audio: {save_media(audio)}", style="dim"))
            started = time.perf_counter()
            answer = await ask_choice(question)
            elapsed = time.perf_counter() - started

            is_correct = answer == question.correct_answer
            xp = xp_for_answer(is_correct, rank)
            if is_correct:
                console.print(Text(f"Correct! +{xp} XP", style="bold green"))
            else:
                console.print(Text(f"Not quite. The answer is '{question.correct_answer.value}'.", style="bold red"))
                console.print(await orchestrator.explain(question))
                console.print(Text(describe(question.correct_answer), style="dim"))
                if args.narrate:
                    spoken = await orchestrator.pronounce(question.correct_answer)
                    if spoken is not None:
                        console.print(Text(f"Pronunciation: {save_media(spoken)}", style="dim"))
                more = await asyncio.to_thread(console.input, "Learn more? [y/N] ")
                if more.strip().lower().startswith("y"):
                    activity.add_metadata("extended_explanation", True)
                    console.print(Panel(await orchestrator.explain_more(question), title="Learn more"))

            progress = await ledger.record_result(
                QuestionResult(level, question.category, is_correct, xp), user_id=args.user,
            )
            console.print(Text(
                f"Level {progress.level} · {progress.total_xp} XP · streak {progress.current_streak}"
                f" · accuracy {progress.accuracy:.0%}",
                style="dim",
            ))

            activity.log_focus_item(
                "Grammar", question.correct_answer.value, elapsed,
                1.0 if is_correct else 0.0, 1,
                [] if is_correct else [f"{answer.value} for {question.correct_answer.value}"],
                question.filled_sentence(),
            )
            activity.add_metadata("from_cache", question.from_cache)
            await activity.end_activity()
            round_index += 1
    finally:
        await activity.close()
        await orchestrator.drain()
        db.close()


def main() -> None:
    args = create_parser().parse_args()
    settings = load_settings()
    logger.separator("Application Starting")
    try:
        asyncio.run(play(args, settings))
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
    logger.separator("Application Closed")


if __name__ == "__main__":
    main()
