import random

from prepal.models import BLANK, GameLevel, Preposition
from prepal.prompts import (
    CONTEXT_FRAMINGS, DECLARATIVE, EXCLAMATORY, INTERROGATIVE, LEVEL_PROFILES,
    build_explanation_prompt, build_extended_explanation_prompt, build_sentence_prompt, build_visual_prompt,
    narration_text, roll_sentence_type, tone_instruction,
)


def test_vocabulary_and_length_grow_with_level() -> None:
    profiles = [LEVEL_PROFILES[level] for level in GameLevel]
    ceilings = [p.vocabulary_ceiling for p in profiles]
    lengths = [p.max_words for p in profiles]
    assert ceilings == sorted(ceilings)
    assert lengths == sorted(lengths)
    assert ceilings[0] < ceilings[-1]


def test_prompt_embeds_level_constraints_and_target() -> None:
    prompt = build_sentence_prompt(GameLevel.LEVEL_1, Preposition.ON, 0, rng=random.Random(1))
    assert '"on"' in prompt
    assert "Top 500 words" in prompt
    assert "Max 6 words" in prompt
    assert "Professional" in prompt
    assert prompt.rstrip().endswith(f"Return ONLY the sentence, with exactly one '{BLANK}'.")
    assert "DEEP DIVE" not in prompt


def test_tone_bands() -> None:
    assert "Professional" in tone_instruction(2)
    assert "Casual" in tone_instruction(3)
    assert "Energetic" in tone_instruction(8)
    assert "witty" in tone_instruction(9)
    assert "never absurd" in tone_instruction(10)


def test_low_levels_are_always_declarative() -> None:
    rng = random.Random(7)
    for _ in range(200):
        assert roll_sentence_type(GameLevel.LEVEL_3, rng) == DECLARATIVE


def test_high_levels_sometimes_ask_for_questions_or_exclamations() -> None:
    rng = random.Random(7)
    rolls = [roll_sentence_type(GameLevel.LEVEL_10, rng) for _ in range(400)]
    special = [r for r in rolls if r != DECLARATIVE]
    assert INTERROGATIVE in special and EXCLAMATORY in special
    assert 0.15 < len(special) / len(rolls) < 0.35


def test_deep_dive_uses_one_framing_reproducibly() -> None:
    first = build_sentence_prompt(GameLevel.LEVEL_6, Preposition.BETWEEN, 5, True, random.Random(99))
    second = build_sentence_prompt(GameLevel.LEVEL_6, Preposition.BETWEEN, 5, True, random.Random(99))
    assert first == second
    assert "DEEP DIVE" in first
    assert sum(framing in first for framing in CONTEXT_FRAMINGS) == 1


def test_visual_prompt_uses_finished_sentence() -> None:
    sentence = f"The dog runs {BLANK} the park."
    prompt = build_visual_prompt(sentence, Preposition.THROUGH)
    assert '"The dog runs through the park."' in prompt
    assert BLANK not in prompt
    assert "ACTION-ORIENTED" not in prompt
    assert "ACTION-ORIENTED" in build_visual_prompt(sentence, Preposition.THROUGH, video=True)


def test_explanation_and_narration_text() -> None:
    sentence = f"The keys are {BLANK} the drawer."
    assert '"The keys are "in" the drawer."' in build_explanation_prompt(sentence, Preposition.IN)
    assert narration_text(sentence, Preposition.IN, reveal_answer=False) == "The keys are blank the drawer."
    assert narration_text(sentence, Preposition.IN, reveal_answer=True) == "The keys are in the drawer."


def test_extended_explanation_prompt_uses_the_filled_sentence() -> None:
    prompt = build_extended_explanation_prompt(f"She waits {BLANK} the car.", Preposition.IN)
    assert '"She waits in the car."' in prompt
    assert BLANK not in prompt
    assert "example sentences" in prompt
