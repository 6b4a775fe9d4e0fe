"""
Prompt text for the generation calls.

The sentence prompt is the pedagogical heart of the game: it pins vocabulary
and sentence length to the learner's tier, sets the tone, and tells the model
how to build a scene that only the target preposition can describe.

Everything here is a pure function of its inputs. The two random choices
(deep-dive framing and sentence type) draw from an injectable
``random.Random`` so tests can pin them.
"""

import random
from dataclasses import dataclass
from typing import Dict, Optional

from .models import BLANK, GameLevel, Preposition


@dataclass(frozen=True)
class LevelProfile:
    vocabulary_ceiling: int      # Top-N most frequent COCA words
    max_words: int
    structure: str
    special_sentence_chance: float  # Odds of an interrogative/exclamatory sentence


LEVEL_PROFILES: Dict[GameLevel, LevelProfile] = {
    GameLevel.LEVEL_1: LevelProfile(500, 6, "Simple active Subject-Verb-Object.", 0.0),
    GameLevel.LEVEL_2: LevelProfile(800, 7, "Active sentences.", 0.0),
    GameLevel.LEVEL_3: LevelProfile(1200, 9, "Simple compound sentences. Vary grammatical patterns.", 0.0),
    GameLevel.LEVEL_4: LevelProfile(1800, 10, "Sentences with basic adjectives. Vary grammatical patterns and simple clauses.", 0.0),
    GameLevel.LEVEL_5: LevelProfile(2500, 12, "Conversational American English. Incorporate more complex clauses or phrases.", 0.0),
    GameLevel.LEVEL_6: LevelProfile(3200, 13, "Conversational. Utilize various tenses (future/past) and more complex sentence structures.", 0.0),
    GameLevel.LEVEL_7: LevelProfile(4000, 15, "Natural, fluent American phrasing. Include diverse grammatical structures.", 0.20),
    GameLevel.LEVEL_8: LevelProfile(5000, 16, "Natural, fluent American phrasing. Include diverse and more complex grammatical structures.", 0.20),
    GameLevel.LEVEL_9: LevelProfile(8000, 18, "Complex, nuanced American idioms. Explore sophisticated grammatical constructions.", 0.25),
    GameLevel.LEVEL_10: LevelProfile(12000, 20, "Highly sophisticated, abstract, or literary structures. Employ a full range of grammatical complexity.", 0.25),
}

TONE_BANDS = (
    (2, "Tone: Professional, academic, and direct."),
    (5, "Tone: Casual, friendly, and conversational."),
    (8, "Tone: Energetic, enthusiastic, and lively. Mildly unusual but realistic situations are welcome."),
    (10, "Tone: Playful, witty, and clever. Mildly unusual but realistic situations are welcome, never absurd."),
)

CONTEXT_FRAMINGS = (
    "a physical/spatial context (e.g., location, surface)",
    "a temporal context (e.g., time, duration, sequence)",
    "an abstract or metaphorical context (e.g., emotions, ideas)",
    "an idiomatic expression or phrasal verb usage",
)

DECLARATIVE = "declarative"
INTERROGATIVE = "interrogative"
EXCLAMATORY = "exclamatory"

_SENTENCE_TYPE_INSTRUCTIONS = {
    DECLARATIVE: "The sentence MUST be a **DECLARATIVE STATEMENT**.",
    INTERROGATIVE: "The sentence MUST be an **INTERROGATIVE QUESTION**. Ensure the question can be visually depicted.",
    EXCLAMATORY: "The sentence MUST be an **EXCLAMATORY STATEMENT**. Ensure the exclamation can be visually depicted.",
}


def level_profile(level: GameLevel) -> LevelProfile:
    return LEVEL_PROFILES[level]


def tone_instruction(tone_level: int) -> str:
    """Map a 0-10 tone setting onto one of four tone bands."""
    for ceiling, text in TONE_BANDS:
        if tone_level <= ceiling:
            return text
    return TONE_BANDS[-1][1]


def roll_sentence_type(level: GameLevel, rng: random.Random) -> str:
    chance = LEVEL_PROFILES[level].special_sentence_chance
    if chance and rng.random() < chance:
        return INTERROGATIVE if rng.random() < 0.5 else EXCLAMATORY
    return DECLARATIVE


def build_sentence_prompt(
    level: GameLevel,
    preposition: Preposition,
    tone_level: int,
    diversify_context: bool = False,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Build the instruction for generating one fill-in-the-blank sentence.

    Args:
        level: Pedagogical tier; sets the vocabulary ceiling and sentence length.
        preposition: The answer the sentence must be built around.
        tone_level: 0-10 humor/energy setting.
        diversify_context: Deep-dive drilling; forces one randomly chosen
            usage framing so repeated rounds explore different senses.
        rng: Random source for the framing and sentence-type rolls.
    """
    rng = rng or random.Random()
    profile = LEVEL_PROFILES[level]
    target = preposition.value

    sentence_type = roll_sentence_type(level, rng)

    deep_dive = ""
    if diversify_context:
        framing = rng.choice(CONTEXT_FRAMINGS)
        deep_dive = (
            f"\nTASK: This is a DEEP DIVE into the many senses of \"{target}\".\n"
            f"CONSTRAINT: You MUST use \"{target}\" in specifically **{framing}**.\n"
            "Avoid generic usages. Explore the nuance of this word.\n"
        )

    return f"""Generate ONE single, natural-sounding **American English** sentence using the preposition "{target}".
Include a single blank '{BLANK}' where the preposition should fit.

CRITICAL PEDAGOGICAL DIRECTIVES:
1. **REAL AMERICAN ENGLISH ONLY**: Absolutely NO British spellings or vocabulary.
2. **Pedagogical Level**: STRICTLY use only the Top {profile.vocabulary_ceiling} words in COCA (American). Use varied and interesting lexical choices.
3. **Structure & Type**: {_SENTENCE_TYPE_INSTRUCTIONS[sentence_type]} {profile.structure} Max {profile.max_words} words.
4. **Context & Ambiguity Prevention**:
   - The sentence MUST depict a clear **REAL-WORLD, EVERYDAY** physical scene.
   - **CRITICAL**: The context must rule out every other common preposition. Only "{target}" may fit the blank.
     - If the target denotes static containment (e.g. "in"), DO NOT use movement verbs like "walk", "run", or "go" that could imply "through" or "to". Use containment verbs like "sit", "wait", "stand", "live", or "hide".
     - If the target denotes direction (e.g. "to"), ensure there is a clear destination point, not a container.
     - Example Bad: "She walks {BLANK} the park." (Could be IN, THROUGH, or TO).
     - Example Good: "She has a picnic {BLANK} the park." (Clearly IN).
   - **Verb Selection**: Use active verbs (e.g., "places", "holds") over static "is/are" whenever possible, UNLESS a static verb is required to prevent ambiguity.
   - **FORBIDDEN**: NO fantasy, NO sci-fi, NO absurd situations, NO video game aesthetics.
5. {tone_instruction(tone_level)}
{deep_dive}
Return ONLY the sentence, with exactly one '{BLANK}'."""


def build_visual_prompt(sentence: str, preposition: Preposition, video: bool = False) -> str:
    """
    Media prompt built from the finished sentence so the picture matches
    what the learner reads.
    """
    scene = sentence.replace(BLANK, preposition.value)
    prompt = (
        "Cinematic, photorealistic photography, documentary style. "
        f"The image MUST be a LITERAL visual translation of the following scene: \"{scene}\". "
        f"Focus strictly on the physical spatial relationship described by \"{preposition.value}\". "
        "Natural lighting. Real world setting. NO text. NO visual metaphors. NO magical elements."
    )
    if video:
        prompt += (
            " ACTION-ORIENTED: This is a video. Capture the DYNAMIC MOTION and MOVEMENT described. "
            "The scene must show active changing state or continuous action."
        )
    return prompt


def build_explanation_prompt(sentence: str, preposition: Preposition) -> str:
    full_sentence = sentence.replace(BLANK, f"\"{preposition.value}\"")
    return f"""Explain strictly the grammatical or contextual reason why "{preposition.value}" is correct in the sentence: "{full_sentence}".

STRICT FORMATTING RULES:
1. Start the explanation IMMEDIATELY. DO NOT use filler phrases like "That's a great question" or "Here is why".
2. Use **bold** for the preposition and key words.
3. Keep it under 40 words.
4. Be direct and educational.
5. Strictly American English."""


def build_extended_explanation_prompt(sentence: str, preposition: Preposition) -> str:
    """Longer "learn more" write-up with extra examples across senses."""
    full_sentence = sentence.replace(BLANK, preposition.value)
    return f"""Provide a detailed grammatical and contextual explanation for the preposition "{preposition.value}" in the sentence "{full_sentence}".

Include 2-3 additional clear and distinct example sentences illustrating different uses or nuances of "{preposition.value}".

STRICT FORMATTING RULES:
1. Start immediately. DO NOT use conversational fillers.
2. Use **bold** for the preposition and key grammatical terms.
3. Cover the different senses where they apply (spatial, temporal, abstract).
4. Strictly American English."""


def narration_text(sentence: str, preposition: Preposition, reveal_answer: bool) -> str:
    """Text read aloud for a round: the blank is spoken as 'blank' until answered."""
    return sentence.replace(BLANK, preposition.value if reveal_answer else "blank")
