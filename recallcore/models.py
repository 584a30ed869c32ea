"""
Pydantic models for flashcards, packs, the review ledger, streaks and stats.

Stored and wire payloads use camelCase keys; models accept either the alias
or the Python field name.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Iterable, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .constants import (
    DEFAULT_EASE_FACTOR,
    MASTERED_INTERVAL_THRESHOLD,
    MAX_EASE_FACTOR,
    MIN_EASE_FACTOR,
    PACK_COLORS,
    PASSING_QUALITY,
)

HEX_COLOR_REGEX_PATTERN = r"^#[0-9A-Fa-f]{6}$"
DATE_STRING_REGEX_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """Assumes UTC for naive datetimes and converts aware ones to UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class SourceType(str, Enum):
    """Kind of timeline content a card references."""

    milestone = "milestone"
    concept = "concept"


class Quality(IntEnum):
    """
    Self-rated recall quality on the SM-2 0-5 scale.
    0-2 are failures; 3-5 are successful recalls.
    """

    Blackout = 0
    Incorrect = 1
    IncorrectFamiliar = 2
    Hard = 3
    Good = 4
    Perfect = 5


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self) -> dict:
        """Serialize with camelCase keys and ISO timestamps."""
        return self.model_dump(mode="json", by_alias=True)


class Card(_CamelModel):
    """
    A flashcard saved by the user, referencing a milestone or concept,
    together with its SM-2 scheduling state.
    """

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        frozen=True,
        min_length=1,
        description="Opaque identifier (a UUID for locally created cards). Immutable.",
    )
    source_type: SourceType = Field(
        ..., description="Kind of content the card references."
    )
    source_id: str = Field(
        ...,
        min_length=1,
        description="Referenced content id, e.g. 'E2017_TRANSFORMER'.",
    )
    pack_ids: List[str] = Field(
        default_factory=list,
        description="Packs this card belongs to (ordered, unique).",
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        frozen=True,
        description="UTC creation timestamp. Immutable.",
    )
    ease_factor: float = Field(
        default=DEFAULT_EASE_FACTOR,
        ge=MIN_EASE_FACTOR,
        le=MAX_EASE_FACTOR,
        description="SM-2 ease factor.",
    )
    interval: int = Field(
        default=0, ge=0, description="Days until the next review."
    )
    repetitions: int = Field(
        default=0, ge=0, description="Consecutive successful reviews."
    )
    next_review_date: Optional[datetime] = Field(
        default=None,
        description="When the card is next due (None means due now).",
    )
    last_reviewed_at: Optional[datetime] = Field(
        default=None, description="UTC timestamp of the last review."
    )

    @field_validator("pack_ids")
    @classmethod
    def dedupe_pack_ids(cls, pack_ids: List[str]) -> List[str]:
        """Drop repeated pack ids while keeping first-seen order."""
        return list(dict.fromkeys(pack_ids))

    @field_validator("created_at", "next_review_date", "last_reviewed_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def source_key(self) -> tuple:
        return (self.source_type, self.source_id)


class Pack(_CamelModel):
    """
    A user-defined or system grouping of cards. System (default) packs
    cannot be renamed or deleted.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), frozen=True)
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    color: str = Field(
        default=PACK_COLORS[0], pattern=HEX_COLOR_REGEX_PATTERN
    )
    is_default: bool = False
    created_at: datetime = Field(default_factory=utcnow, frozen=True)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class DailyReviewRecord(_CamelModel):
    """One calendar day of review activity in the local ledger."""

    date: str = Field(..., pattern=DATE_STRING_REGEX_PATTERN)
    total_reviews: int = Field(default=0, ge=0)
    again_count: int = Field(default=0, ge=0)
    hard_count: int = Field(default=0, ge=0)
    good_count: int = Field(default=0, ge=0)
    easy_count: int = Field(default=0, ge=0)
    minutes_studied: float = Field(default=0.0, ge=0)
    unique_cards_reviewed: List[str] = Field(default_factory=list)

    @property
    def correct_count(self) -> int:
        """Reviews rated 3 or higher."""
        return self.hard_count + self.good_count + self.easy_count


class StreakAchievement(_CamelModel):
    milestone: int = Field(..., gt=0)
    achieved_at: datetime = Field(default_factory=utcnow)


class StreakHistory(_CamelModel):
    """Current/longest study streak derived from the review ledger."""

    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_study_date: Optional[str] = Field(
        default=None, pattern=DATE_STRING_REGEX_PATTERN
    )
    achievements: List[StreakAchievement] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_longest_covers_current(self) -> "StreakHistory":
        if self.longest_streak < self.current_streak:
            raise ValueError(
                f"longest_streak ({self.longest_streak}) cannot be below "
                f"current_streak ({self.current_streak})"
            )
        return self


class FlashcardStats(_CamelModel):
    """Aggregate counters recomputed from cards and streak state."""

    total_cards: int = Field(default=0, ge=0)
    cards_due_today: int = Field(default=0, ge=0)
    cards_reviewed_today: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    mastered_cards: int = Field(default=0, ge=0)
    last_study_date: Optional[datetime] = None


class ReviewSession(_CamelModel):
    """
    A single study session over all due cards or one pack.
    Tracks how many cards were answered, correct, and sent back for
    another pass.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    pack_id: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    cards_reviewed: int = Field(default=0, ge=0)
    cards_correct: int = Field(default=0, ge=0)
    cards_to_review: int = Field(default=0, ge=0)

    def record_answer(self, quality: int) -> None:
        self.cards_reviewed += 1
        if quality >= PASSING_QUALITY:
            self.cards_correct += 1
        else:
            self.cards_to_review += 1

    def complete(self, now: Optional[datetime] = None) -> None:
        """Mark the session as finished (idempotent)."""
        if self.completed_at is None:
            self.completed_at = now or utcnow()

    @property
    def is_active(self) -> bool:
        return self.completed_at is None

    @property
    def duration_minutes(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() / 60

    @property
    def accuracy(self) -> Optional[float]:
        if self.cards_reviewed == 0:
            return None
        return self.cards_correct / self.cards_reviewed


class ReviewResult(_CamelModel):
    """Scheduling fields returned by the remote API after a review."""

    id: str
    ease_factor: float = Field(..., ge=MIN_EASE_FACTOR, le=MAX_EASE_FACTOR)
    interval: int = Field(..., ge=0)
    repetitions: int = Field(..., ge=0)
    next_review_date: datetime
    is_mastered: bool = False

    @field_validator("next_review_date")
    @classmethod
    def normalize_next_review_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)


# --- Construction helpers ---


def create_card(
    source_type: SourceType,
    source_id: str,
    pack_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Card:
    """Create a new card with default SM-2 values, due immediately."""
    ts = now or utcnow()
    return Card(
        source_type=source_type,
        source_id=source_id,
        pack_ids=list(pack_ids or []),
        created_at=ts,
        next_review_date=ts,
    )


def create_pack(
    name: str,
    color: str = PACK_COLORS[0],
    description: Optional[str] = None,
    is_default: bool = False,
    now: Optional[datetime] = None,
) -> Pack:
    return Pack(
        name=name,
        color=color,
        description=description,
        is_default=is_default,
        created_at=now or utcnow(),
    )


def create_initial_stats() -> FlashcardStats:
    return FlashcardStats()


def create_initial_streak_history() -> StreakHistory:
    return StreakHistory()


def create_empty_daily_record(date_str: str) -> DailyReviewRecord:
    return DailyReviewRecord(date=date_str)


# --- Predicates ---


def is_due(card: Card, now: Optional[datetime] = None) -> bool:
    """True if the card has no next review date or it has arrived."""
    if card.next_review_date is None:
        return True
    return card.next_review_date <= (ensure_utc(now) or utcnow())


def is_mastered(card: Card) -> bool:
    """True if the card's interval exceeds the mastery threshold."""
    return card.interval > MASTERED_INTERVAL_THRESHOLD
