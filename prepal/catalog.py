"""
Static preposition reference data.

- ALL_PREPOSITIONS: one PrepositionItem per Preposition
- PREPOSITIONS_BY_LEVEL: the difficulty gate, an explicit allow-list per tier
- AMBIGUOUS_PAIRS: curated "never offer as a distractor" table
- DYNAMIC_PREPOSITIONS: prepositions that read as movement (video rounds)
- LEVEL_TITLES: the 36-rank ladder shown to learners

The exclusion table is checked for symmetry when this module is imported.
Gaps are logged and the effective table (EXCLUSIONS) is the symmetric
closure, so an ambiguous pair can never slip through in one direction.
"""

import math
from typing import Dict, List, Tuple

from .logger import logger
from .models import (
    BLANK, GameLevel, Preposition, PrepositionCategory, PrepositionItem,
)

P = Preposition
C = PrepositionCategory


def _item(prep: Preposition, category: PrepositionCategory, description: str, example: str) -> PrepositionItem:
    return PrepositionItem(prep, category, description, example.replace("___", BLANK))


ALL_PREPOSITIONS: List[PrepositionItem] = [
    _item(P.IN, C.LOCATION, "Used for an enclosed space, a large area, or a period of time.",
          "The cat is sleeping ___ the box."),
    _item(P.INTO, C.DIRECTION, "Used for movement towards the inside of something.",
          "He walked ___ the room."),
    _item(P.TO, C.DIRECTION, "Used for indicating direction or a destination.",
          "She went ___ the store."),
    _item(P.TOWARDS, C.DIRECTION, "Used for indicating movement in the direction of something.",
          "The bird flew ___ the window."),
    _item(P.THROUGH, C.DIRECTION, "Used for movement from one side of something to the other.",
          "The train passed ___ the tunnel."),
    _item(P.OUT_OF, C.DIRECTION, "Used for movement from the inside to the outside.",
          "He stepped ___ the car."),
    _item(P.FROM, C.DIRECTION, "Used to indicate the starting point of a movement or origin.",
          "She came ___ Paris."),
    _item(P.AWAY_FROM, C.DIRECTION, "Used to indicate movement departing from something.",
          "The dog ran ___ the noisy crowd."),
    _item(P.ON, C.LOCATION, "Used for a surface, a day or date, or a public transport vehicle.",
          "The book is ___ the table."),
    _item(P.AT, C.LOCATION, "Used for a specific point, a small area, or a specific time.",
          "She is ___ home."),
    _item(P.AGAINST, C.LOCATION, "Used for touching something, often for support or resistance.",
          "He leaned ___ the wall."),
    _item(P.NEAR, C.LOCATION, "Used for a short distance from something.",
          "The park is ___ my house."),
    _item(P.BETWEEN, C.LOCATION, "Used for something in the space separating two distinct things.",
          "The ball is ___ the two chairs."),
    _item(P.AMONG, C.LOCATION, "Used for something in the middle of three or more distinct things.",
          "The rabbit hid ___ the bushes."),
    _item(P.UNDER, C.LOCATION, "Used for something directly below something else.",
          "The cat is ___ the bed."),
    _item(P.BELOW, C.LOCATION, "Used for something at a lower level than something else.",
          "The temperature is ___ freezing."),
    _item(P.BY, C.AGENT, "Used to show the person or thing that does an action (in a passive sentence).",
          "The book was written ___ a famous author."),
    _item(P.AROUND, C.DIRECTION, "Used for movement encircling something.",
          "The children ran ___ the tree."),
    _item(P.PAST, C.DIRECTION, "Used for movement beyond something.",
          "He walked ___ the library."),
    _item(P.ACROSS, C.DIRECTION, "Used for movement from one side of something to the other.",
          "They swam ___ the river."),
    _item(P.ALONG, C.DIRECTION, "Used for movement in a line next to something long.",
          "We walked ___ the beach."),
    _item(P.UP, C.DIRECTION, "Used for movement to a higher position.",
          "He climbed ___ the ladder."),
    _item(P.ABOVE, C.LOCATION, "Used for something at a higher level than something else, often not touching.",
          "The clouds are ___ the mountains."),
    _item(P.OVER, C.DIRECTION, "Used for movement from one side to another, often implying an arch or covering.",
          "The bird flew ___ the fence."),
    _item(P.AFTER, C.TIME, "Used for following in time or order.",
          "Let's meet ___ dinner."),
    _item(P.WITHIN, C.LOCATION, "Used for inside the limits of something.",
          "The answer is ___ the text."),
    _item(P.INSIDE, C.LOCATION, "Used for the inner part or area of something.",
          "She keeps her keys ___ her purse."),
    _item(P.OFF, C.DIRECTION, "Used for movement away from a surface or position.",
          "The ball rolled ___ the table."),
    _item(P.BEHIND, C.LOCATION, "Used for at the back of something.",
          "The dog is hiding ___ the couch."),
    _item(P.BEFORE, C.TIME, "Used for earlier than, or in front of.",
          "Please finish your homework ___ dinner."),
    _item(P.BENEATH, C.LOCATION, "Used for in or to a lower position than, under.",
          "The treasure was buried ___ the old tree."),
    _item(P.BESIDE, C.LOCATION, "Used for next to or at the side of.",
          "He sat ___ her during the movie."),
    _item(P.WITH, C.INSTRUMENT, "Used for accompanied by, or using a tool.",
          "She painted the picture ___ a brush."),
    _item(P.BEYOND, C.LOCATION, "Used for on the far side of, or past.",
          "The mountains stretched ___ the horizon."),
    _item(P.UPON, C.LOCATION, "Used for on (often in a formal context).",
          "Once ___ a time, there was a princess."),
    _item(P.PER, C.FREQUENCY, "Used to express rates, prices, or measurements for each unit.",
          "The car was traveling 60 miles ___ hour."),
    _item(P.FOR, C.PURPOSE, "Used to indicate the use of something or the reason for something.",
          "This gift is ___ you."),
]

ITEMS_BY_PREPOSITION: Dict[Preposition, PrepositionItem] = {i.preposition: i for i in ALL_PREPOSITIONS}

# Short dictionary-style definitions for learner-facing hints
PREPOSITION_DETAILS: Dict[Preposition, str] = {
    P.IN: "Used to indicate inclusion within space, a place, or limits.",
    P.INTO: "Movement or action with the result that something becomes enclosed.",
    P.TO: "Expresses motion in the direction of a particular location.",
    P.TOWARDS: "Movement in the direction of someone or something.",
    P.THROUGH: "Moving in one side and out of the other side.",
    P.OUT_OF: "From the inside to the outside of something.",
    P.FROM: "Indicates the starting point of motion or origin.",
    P.AWAY_FROM: "Moving to a greater distance from something.",
    P.ON: "Physically in contact with and supported by a surface.",
    P.AT: "Expresses a specific location, arrival point, or time.",
    P.AGAINST: "In contact or collision with; in opposition to.",
    P.NEAR: "At or to a short distance away; not far.",
    P.BETWEEN: "In the space separating two distinct objects or points.",
    P.AMONG: "Surrounded by or in the middle of a group.",
    P.UNDER: "Extending or directly below something.",
    P.BELOW: "At a lower level or layer than something else.",
    P.BY: "Identifying the agent performing an action; close to.",
    P.AROUND: "Located or moving on every side of something.",
    P.PAST: "To or on the further side of something.",
    P.ACROSS: "From one side to the other of a clear boundary.",
    P.ALONG: "Moving in a constant direction on a long surface.",
    P.UP: "Towards a higher place or position.",
    P.ABOVE: "In extended space over and not touching.",
    P.OVER: "Extending directly upwards from; covering.",
    P.AFTER: "In the time following an event.",
    P.WITHIN: "Inside the limits or boundaries of.",
    P.INSIDE: "Situated within the inner part of.",
    P.OFF: "Moving away and often down from a place.",
    P.BEHIND: "At the back of something, often hidden by it.",
    P.BEFORE: "During the period of time preceding an event.",
    P.BENEATH: "Extending or directly underneath (more formal).",
    P.BESIDE: "At the side of; next to.",
    P.WITH: "Using an instrument or tool; or accompanied by.",
    P.BEYOND: "At or to the further side of; outside the limits.",
    P.UPON: "A more formal or emphatic term for 'on'.",
    P.PER: "For each; for every (used to express rates).",
    P.FOR: "Used to indicate the purpose or recipient of something.",
}

# The difficulty gate: what may be asked at each tier
PREPOSITIONS_BY_LEVEL: Dict[GameLevel, List[Preposition]] = {
    GameLevel.LEVEL_1: [P.IN, P.ON, P.AT, P.TO],
    GameLevel.LEVEL_2: [P.FROM, P.UP, P.WITH, P.BY, P.FOR],
    GameLevel.LEVEL_3: [P.UNDER, P.OVER, P.FOR],
    GameLevel.LEVEL_4: [P.BEFORE, P.AFTER, P.NEAR],
    GameLevel.LEVEL_5: [P.BEHIND, P.INTO, P.OFF],
    GameLevel.LEVEL_6: [P.BETWEEN, P.AMONG, P.AROUND],
    GameLevel.LEVEL_7: [P.THROUGH, P.ACROSS, P.ALONG],
    GameLevel.LEVEL_8: [P.PAST, P.INSIDE, P.TOWARDS],
    GameLevel.LEVEL_9: [P.OUT_OF, P.ABOVE, P.BELOW, P.WITHIN],
    GameLevel.LEVEL_10: [P.BENEATH, P.BESIDE, P.AGAINST, P.BEYOND, P.UPON, P.PER],
}

# Curated confusables, most confusable first. Never offered alongside the key.
AMBIGUOUS_PAIRS: Dict[Preposition, List[Preposition]] = {
    P.IN: [P.INSIDE, P.WITHIN, P.INTO, P.THROUGH, P.AT, P.ON],
    P.INSIDE: [P.IN, P.WITHIN, P.INTO, P.THROUGH],
    P.INTO: [P.IN, P.INSIDE, P.TOWARDS, P.TO, P.THROUGH],
    P.ON: [P.UPON, P.ABOVE, P.OVER, P.AT, P.IN],
    P.UPON: [P.ON, P.ABOVE],
    P.AT: [P.BY, P.NEAR, P.BESIDE, P.IN, P.ON],
    P.TO: [P.TOWARDS, P.INTO, P.AT, P.IN, P.THROUGH],
    P.TOWARDS: [P.TO, P.INTO],
    P.THROUGH: [P.IN, P.INTO, P.ACROSS, P.PAST],
    P.UNDER: [P.BELOW, P.BENEATH],
    P.BELOW: [P.UNDER, P.BENEATH],
    P.BENEATH: [P.UNDER, P.BELOW],
    P.ABOVE: [P.OVER, P.ON, P.UPON],
    P.OVER: [P.ABOVE, P.ON],
    P.BESIDE: [P.NEAR, P.BY, P.AT],
    P.NEAR: [P.BESIDE, P.BY, P.AT],
    P.BY: [P.NEAR, P.BESIDE, P.AT],
    P.WITHIN: [P.IN, P.INSIDE],
}

# Prepositions whose core meaning is movement; they make for good videos
DYNAMIC_PREPOSITIONS: List[Preposition] = [
    P.THROUGH, P.ALONG, P.ACROSS, P.INTO, P.OUT_OF, P.PAST,
    P.AROUND, P.TOWARDS, P.OVER, P.UNDER, P.UP, P.OFF, P.FROM,
]

# Used when a level/category combination leaves nothing to ask
FALLBACK_PREPOSITIONS: List[Preposition] = [P.IN, P.ON, P.AT]

LEVEL_TITLES: List[str] = [
    f"{rank} {numeral}"
    for rank in ("Novice", "Beginner", "Competent", "Intermediate", "Proficient",
                 "Advanced", "Expert", "Master", "Legend")
    for numeral in ("I", "II", "III", "IV")
]

MAX_RANK = len(LEVEL_TITLES)


def find_exclusion_gaps(table: Dict[Preposition, List[Preposition]]) -> List[Tuple[Preposition, Preposition]]:
    """Return (a, b) pairs where a excludes b but b does not exclude a."""
    gaps = []
    for prep, excluded in table.items():
        for other in excluded:
            if prep not in table.get(other, []):
                gaps.append((prep, other))
    return gaps


def symmetric_exclusions(table: Dict[Preposition, List[Preposition]]) -> Dict[Preposition, List[Preposition]]:
    """
    Close the table under symmetry. Curated entries keep their order;
    entries added by the closure go last (least confusable).
    """
    closed: Dict[Preposition, List[Preposition]] = {p: list(v) for p, v in table.items()}
    for a, b in find_exclusion_gaps(table):
        closed.setdefault(b, [])
        if a not in closed[b]:
            closed[b].append(a)
    return closed


def _load_exclusions() -> Dict[Preposition, List[Preposition]]:
    gaps = find_exclusion_gaps(AMBIGUOUS_PAIRS)
    if gaps:
        listing = ", ".join(f"{a.value}->{b.value}" for a, b in gaps)
        logger.warning(f"Exclusion table has {len(gaps)} one-way pairs, mirroring them: {listing}")
    return symmetric_exclusions(AMBIGUOUS_PAIRS)


EXCLUSIONS: Dict[Preposition, List[Preposition]] = _load_exclusions()


def get_item(preposition: Preposition) -> PrepositionItem:
    return ITEMS_BY_PREPOSITION[preposition]


def describe(preposition: Preposition) -> str:
    """Learner-facing definition, falling back to the catalog description."""
    return PREPOSITION_DETAILS.get(preposition) or get_item(preposition).description


def clamp_rank(rank: int) -> int:
    return max(1, min(MAX_RANK, rank))


def game_level_for_rank(rank: int) -> GameLevel:
    """Map the 36-step rank ladder onto the ten pedagogical tiers."""
    rank = clamp_rank(rank)
    return GameLevel.from_index(min(10, math.ceil(rank / 3.6)))


def rank_title(rank: int) -> str:
    return LEVEL_TITLES[clamp_rank(rank) - 1]


def tone_label(tone_level: int) -> str:
    if tone_level <= 2:
        return "Professional"
    if tone_level <= 5:
        return "Casual"
    if tone_level <= 8:
        return "Energetic"
    return "Witty"


def xp_for_answer(is_correct: bool, rank: int, base_xp: int = 10) -> int:
    """XP earned for one answer: base scaled by the learner's rank, 0 if wrong."""
    return base_xp * clamp_rank(rank) if is_correct else 0
