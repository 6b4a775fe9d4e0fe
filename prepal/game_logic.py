"""
Round-building rules that do not need the network:

- select_preposition: pick what to ask, gated by level and round type
- generate_options: answer choices that never include a confusable distractor
- repair_sentence: make a generated sentence playable (exactly one blank)
"""

import random
import re
from typing import Dict, List, Optional, Sequence

from .catalog import (
    ALL_PREPOSITIONS, DYNAMIC_PREPOSITIONS, EXCLUSIONS, FALLBACK_PREPOSITIONS,
    PREPOSITIONS_BY_LEVEL, get_item,
)
from .logger import logger
from .models import (
    BLANK, GameLevel, Preposition, PrepositionCategory, PrepositionItem,
)

BASIC_CATEGORIES = [PrepositionCategory.LOCATION, PrepositionCategory.DIRECTION]
INTERMEDIATE_CATEGORIES = BASIC_CATEGORIES + [PrepositionCategory.TIME]


def categories_for(
    level: GameLevel,
    category_filter: Optional[PrepositionCategory],
    motion_oriented: bool,
) -> List[PrepositionCategory]:
    """Categories a round may draw from. Abstract ones only open up at higher tiers."""
    if category_filter:
        return [category_filter]
    if motion_oriented:
        return [PrepositionCategory.DIRECTION]
    if level.index <= 3:
        return list(BASIC_CATEGORIES)
    if level.index <= 5:
        return list(INTERMEDIATE_CATEGORIES)
    return list(PrepositionCategory)


def select_preposition(
    level: GameLevel,
    category_filter: Optional[PrepositionCategory] = None,
    motion_oriented: bool = False,
    rng: Optional[random.Random] = None,
) -> PrepositionItem:
    """
    Choose the target preposition for a round.

    The level allow-list is a hard gate. Within it, the candidate set is
    narrowed by category; video rounds further prefer prepositions of
    movement when any are available. Never raises: an empty intersection
    falls back to the safe basics permitted at this level.
    """
    rng = rng or random.Random()
    allowed = PREPOSITIONS_BY_LEVEL[level]
    categories = categories_for(level, category_filter, motion_oriented)

    available = [
        item for item in ALL_PREPOSITIONS
        if item.category in categories and item.preposition in allowed
    ]

    if motion_oriented:
        dynamic = [item for item in available if item.preposition in DYNAMIC_PREPOSITIONS]
        if dynamic:
            return rng.choice(dynamic)

    if available:
        return rng.choice(available)

    fallback = [p for p in FALLBACK_PREPOSITIONS if p in allowed] or list(allowed) or list(FALLBACK_PREPOSITIONS)
    choice = get_item(rng.choice(fallback))
    logger.warning(
        f"No prepositions for level={level.value} categories="
        f"{[c.value for c in categories]}; falling back to '{choice.preposition.value}'"
    )
    return choice


def wrong_option_count(level: GameLevel) -> int:
    """Distractors per question: 2 at the easiest tiers up to 5 at the hardest."""
    return 2 + (level.index - 1) // 3


def generate_options(
    correct: Preposition,
    level: GameLevel,
    rng: Optional[random.Random] = None,
    exclusions: Optional[Dict[Preposition, List[Preposition]]] = None,
    pool: Optional[Sequence[Preposition]] = None,
) -> List[Preposition]:
    """
    Shuffled answer choices: the correct answer plus N distractors.

    Distractors never come from the correct answer's exclusion set. If the
    remaining pool is too small, exclusions are released one at a time,
    least confusable first, until the count is reachable; if even the full
    pool is too small the list comes back shorter rather than looping. With
    an injected pool holding nothing but the correct answer, that means
    ``[correct]`` alone, which is logged as a warning.
    """
    rng = rng or random.Random()
    exclusions = EXCLUSIONS if exclusions is None else exclusions
    pool = list(dict.fromkeys(pool if pool is not None else [i.preposition for i in ALL_PREPOSITIONS]))
    needed = wrong_option_count(level)

    excluded = list(exclusions.get(correct, []))
    candidates = [p for p in pool if p != correct and p not in excluded]

    while len(candidates) < needed and excluded:
        released = excluded.pop()
        logger.warning(
            f"Distractor pool for '{correct.value}' too small ({len(candidates)}/{needed}); "
            f"releasing exclusion '{released.value}'"
        )
        if released != correct and released in pool and released not in candidates:
            candidates.append(released)

    if len(candidates) < needed:
        logger.warning(
            f"Only {len(candidates)} distractor(s) available for '{correct.value}', wanted {needed}"
        )
    wrong = rng.sample(candidates, min(needed, len(candidates)))
    options = [correct] + wrong
    rng.shuffle(options)
    return options


_UNDERSCORE_RUN = re.compile(r"_{3,}")


def normalize_blanks(sentence: str) -> str:
    """Collapse any run of 3+ underscores into the canonical blank."""
    return _UNDERSCORE_RUN.sub(BLANK, sentence)


def repair_sentence(raw: str, item: PrepositionItem) -> str:
    """
    Return a sentence with exactly one blank.

    Order of preference: the generated text as-is; the generated text with
    its single occurrence of the target word blanked out; the catalog
    example sentence.
    """
    text = normalize_blanks((raw or "").strip().strip("\"“”'").strip())

    if text.count(BLANK) == 1:
        return text

    if BLANK not in text and text:
        pattern = re.compile(r"\b" + re.escape(item.preposition.value) + r"\b", re.IGNORECASE)
        matches = pattern.findall(text)
        if len(matches) == 1:
            logger.debug(f"Sentence had no blank, substituted '{item.preposition.value}'")
            return pattern.sub(BLANK, text, count=1)

    logger.warning(f"Unusable sentence for '{item.preposition.value}', using catalog example: {raw!r}")
    return item.example_sentence
