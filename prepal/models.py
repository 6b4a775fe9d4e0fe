import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple

BLANK = "______"


class Preposition(str, Enum):
    """Every preposition the game can ask about."""
    IN = "in"
    INTO = "into"
    TO = "to"
    TOWARDS = "towards"
    THROUGH = "through"
    OUT_OF = "out of"
    FROM = "from"
    AWAY_FROM = "away from"
    ON = "on"
    AT = "at"
    AGAINST = "against"
    NEAR = "near"
    BETWEEN = "between"
    AMONG = "among"
    UNDER = "under"
    BELOW = "below"
    BY = "by"
    AROUND = "around"
    PAST = "past"
    ACROSS = "across"
    ALONG = "along"
    UP = "up"
    ABOVE = "above"
    OVER = "over"
    AFTER = "after"
    WITHIN = "within"
    INSIDE = "inside"
    OFF = "off"
    BEHIND = "behind"
    BEFORE = "before"
    BENEATH = "beneath"
    BESIDE = "beside"
    WITH = "with"
    BEYOND = "beyond"
    UPON = "upon"
    PER = "per"
    FOR = "for"


class PrepositionCategory(str, Enum):
    LOCATION = "Location"
    DIRECTION = "Direction"
    TIME = "Time"
    MANNER = "Manner"
    CAUSE = "Cause"
    POSSESSION = "Possession"
    AGENT = "Agent"
    FREQUENCY = "Frequency"
    INSTRUMENT = "Instrument"
    PURPOSE = "Purpose"


class GameLevel(str, Enum):
    """Pedagogical tiers, easiest first. Labels follow the CEFR half-steps."""
    LEVEL_1 = "L1"    # A1
    LEVEL_2 = "L2"    # A1.5
    LEVEL_3 = "L3"    # A2
    LEVEL_4 = "L4"    # A2.5
    LEVEL_5 = "L5"    # B1
    LEVEL_6 = "L6"    # B1.5
    LEVEL_7 = "L7"    # B2
    LEVEL_8 = "L8"    # B2.5
    LEVEL_9 = "L9"    # C1
    LEVEL_10 = "L10"  # C1.5

    @property
    def index(self) -> int:
        """1-based position on the ladder."""
        return int(self.value[1:])

    @property
    def cefr(self) -> str:
        return _CEFR_LABELS[self.index - 1]

    @classmethod
    def from_index(cls, index: int) -> "GameLevel":
        index = max(1, min(10, index))
        return cls(f"L{index}")

    @classmethod
    def from_string(cls, s: str) -> "GameLevel":
        s = (s or "").strip().upper()
        if s in _CEFR_LABELS:
            return cls.from_index(_CEFR_LABELS.index(s) + 1)
        try:
            return cls(s)
        except ValueError:
            return cls.LEVEL_1


_CEFR_LABELS = ["A1", "A1.5", "A2", "A2.5", "B1", "B1.5", "B2", "B2.5", "C1", "C1.5"]


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class PrepositionItem:
    """Static catalog entry for one preposition."""
    preposition: Preposition
    category: PrepositionCategory
    description: str
    example_sentence: str            # Carries the blank marker in place of the preposition


@dataclass(frozen=True)
class MediaAsset:
    """
    Generated (or substitute) media for a round.

    Exactly one of ``data`` and ``url`` is set. Placeholder assets point at a
    generic image URL and are never written to the media cache.
    """
    key: str                         # Media cache key (hash of prompt + params)
    kind: MediaKind
    mime_type: str
    data: Optional[bytes] = None
    url: Optional[str] = None
    prompt: str = ""
    placeholder: bool = False


@dataclass(frozen=True)
class Question:
    """One playable round, handed to the presentation layer by value."""
    id: str
    sentence: str                    # Contains exactly one BLANK
    correct_answer: Preposition
    options: Tuple[Preposition, ...]
    media: MediaAsset
    level: GameLevel
    category: PrepositionCategory
    is_video_round: bool = False
    from_cache: bool = False

    def filled_sentence(self, answer: Optional[Preposition] = None) -> str:
        return self.sentence.replace(BLANK, (answer or self.correct_answer).value, 1)


@dataclass
class CachedQuestion:
    """A generated question as persisted in the content cache."""
    id: str
    level: GameLevel
    preposition: Preposition
    sentence: str
    options: List[Preposition]
    visual_prompt: str               # Exact media prompt, kept so media can be regenerated
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["level"] = self.level.value
        data["preposition"] = self.preposition.value
        data["options"] = [o.value for o in self.options]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedQuestion":
        if not isinstance(data, dict):
            raise TypeError(f"Expected a question document, got {type(data).__name__}")
        return cls(
            id=str(data["id"]),
            level=GameLevel(data["level"]),
            preposition=Preposition(data["preposition"]),
            sentence=str(data["sentence"]),
            options=[Preposition(o) for o in data["options"]],
            visual_prompt=str(data.get("visual_prompt", "")),
            timestamp=str(data.get("timestamp", "")),
        )

    def is_playable(self, exclusions: Optional[Dict[Preposition, List[Preposition]]] = None) -> bool:
        """
        True when the entry can be served as a round: one blank, the key
        offered exactly once among at least two options, nothing repeated
        and nothing confusable with the key.
        """
        if self.sentence.count(BLANK) != 1:
            return False
        if self.options.count(self.preposition) != 1:
            return False
        if len(self.options) < 2 or len(set(self.options)) != len(self.options):
            return False
        confusable = set((exclusions or {}).get(self.preposition, []))
        return not confusable.intersection(self.options)


@dataclass
class QuestionResult:
    """A graded answer, fed to the mastery ledger."""
    game_level: GameLevel
    category: Optional[PrepositionCategory]
    is_correct: bool
    xp_earned: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game_level": self.game_level.value,
            "category": self.category.value if self.category else None,
            "is_correct": self.is_correct,
            "xp_earned": self.xp_earned,
        }


def level_for_xp(total_xp: int) -> int:
    """Player level: a sqrt curve over accumulated XP."""
    return int(math.floor(math.sqrt(max(0, total_xp) / 50))) + 1


@dataclass
class UserProgress:
    """
    Cumulative learner performance. ``level`` is always derived from
    ``total_xp`` and never set independently.
    """
    total_xp: int = 0
    level: int = 1
    questions_answered: int = 0
    correct_answers: int = 0
    current_streak: int = 0
    best_streak: int = 0
    last_played: Optional[str] = None   # ISO timestamp
    level_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    category_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def apply(self, result: QuestionResult, now: Optional[datetime] = None) -> None:
        """Fold one graded answer into the record."""
        now = now or datetime.now(timezone.utc)
        self.last_played = now.isoformat()
        self.questions_answered += 1
        self.total_xp += max(0, result.xp_earned)
        self.level = level_for_xp(self.total_xp)

        if result.is_correct:
            self.correct_answers += 1
            self.current_streak += 1
            self.best_streak = max(self.best_streak, self.current_streak)
        else:
            self.current_streak = 0

        _bump(self.level_stats, result.game_level.value, result.is_correct)
        if result.category:
            _bump(self.category_stats, result.category.value, result.is_correct)

    @property
    def accuracy(self) -> float:
        if self.questions_answered == 0:
            return 0.0
        return self.correct_answers / self.questions_answered

    def level_accuracy(self, level: GameLevel) -> float:
        return _ratio(self.level_stats.get(level.value))

    def category_accuracy(self, category: PrepositionCategory) -> float:
        return _ratio(self.category_stats.get(category.value))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProgress":
        if not isinstance(data, dict):
            raise TypeError(f"Expected a progress document, got {type(data).__name__}")
        progress = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        progress.level = level_for_xp(progress.total_xp)
        return progress


def _bump(stats: Dict[str, Dict[str, int]], key: str, correct: bool) -> None:
    entry = stats.setdefault(key, {"correct": 0, "total": 0})
    entry["total"] += 1
    if correct:
        entry["correct"] += 1


def _ratio(entry: Optional[Dict[str, int]]) -> float:
    if not entry or not entry.get("total"):
        return 0.0
    return entry.get("correct", 0) / entry["total"]
