# recallcore/scheduler.py

"""
Defines the BaseScheduler abstract class and the SM-2 scheduler used by
recallcore, plus the pure compute_next_review function it is built on.
"""

import datetime
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_EASE_FACTOR,
    FIRST_INTERVAL_DAYS,
    MASTERED_INTERVAL_THRESHOLD,
    MAX_EASE_FACTOR,
    MIN_EASE_FACTOR,
    PASSING_QUALITY,
    SECOND_INTERVAL_DAYS,
    VALID_QUALITIES,
)
from .models import Card

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SM2Result:
    ease_factor: float
    interval: int
    repetitions: int


@dataclass
class SchedulerOutput:
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: datetime.datetime
    is_mastered: bool
    review_type: str


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, ties away from zero (2.5 -> 3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def compute_next_review(
    quality: int,
    prev_ease_factor: float,
    prev_interval: int,
    prev_repetitions: int,
    min_ease_factor: float = MIN_EASE_FACTOR,
    max_ease_factor: float = MAX_EASE_FACTOR,
    first_interval: int = FIRST_INTERVAL_DAYS,
    second_interval: int = SECOND_INTERVAL_DAYS,
) -> SM2Result:
    """
    Apply one SM-2 step.

    The quality range is not checked here; SM2_Scheduler enforces it.

        EF' = clamp(EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)))

    A failed recall (q < 3) resets repetitions and interval to 0 so the
    card is due again immediately; the ease factor still moves.
    """
    miss = 5 - quality
    ease_factor = prev_ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
    ease_factor = max(min_ease_factor, min(max_ease_factor, ease_factor))

    if quality < PASSING_QUALITY:
        return SM2Result(ease_factor=ease_factor, interval=0, repetitions=0)

    repetitions = prev_repetitions + 1
    if repetitions == 1:
        interval = first_interval
    elif repetitions == 2:
        interval = second_interval
    else:
        interval = round_half_away_from_zero(prev_interval * ease_factor)

    return SM2Result(
        ease_factor=ease_factor, interval=interval, repetitions=repetitions
    )


def next_review_date(
    interval_days: int, now: Optional[datetime.datetime] = None
) -> datetime.datetime:
    """Timestamp `interval_days` days after `now`."""
    base = now or datetime.datetime.now(datetime.timezone.utc)
    return base + datetime.timedelta(days=interval_days)


class BaseScheduler(ABC):
    """
    Abstract base class for all schedulers in recallcore.
    """

    @abstractmethod
    def compute_next_state(
        self, card: Card, quality: int, review_ts: datetime.datetime
    ) -> SchedulerOutput:
        """
        Computes the next scheduling state of a card for a new rating.

        Args:
            card: The Card holding the current ease factor, interval and
                repetitions.
            quality: The recall quality for this review (0-5).
            review_ts: The UTC timestamp of the review.

        Returns:
            A SchedulerOutput with the new state.

        Raises:
            ValueError: If the quality is outside 0-5.
        """
        pass


class SM2SchedulerConfig(BaseModel):
    """Configuration for the SM-2 scheduler."""

    initial_ease_factor: float = DEFAULT_EASE_FACTOR
    min_ease_factor: float = MIN_EASE_FACTOR
    max_ease_factor: float = MAX_EASE_FACTOR
    first_interval: int = Field(default=FIRST_INTERVAL_DAYS, ge=0)
    second_interval: int = Field(default=SECOND_INTERVAL_DAYS, ge=0)
    mastered_threshold: int = Field(default=MASTERED_INTERVAL_THRESHOLD, ge=0)


class SM2_Scheduler(BaseScheduler):
    """
    SM-2 (SuperMemo 2) scheduler with a [1.3, 3.0] ease-factor clamp and a
    "review again" loop for failed cards.
    """

    def __init__(self, config: Optional[SM2SchedulerConfig] = None):
        if config is None:
            config = SM2SchedulerConfig()
        self.config = config

    def _ensure_utc(self, ts: datetime.datetime) -> datetime.datetime:
        """Ensures the given datetime is UTC. Assumes UTC if naive."""
        if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
            return ts.replace(tzinfo=datetime.timezone.utc)
        if ts.tzinfo != datetime.timezone.utc:
            return ts.astimezone(datetime.timezone.utc)
        return ts

    def validate_quality(self, quality: int) -> int:
        if isinstance(quality, bool) or quality not in VALID_QUALITIES:
            raise ValueError(
                f"Invalid quality: {quality}. Must be an integer 0-5."
            )
        return int(quality)

    def _review_type(self, card: Card, quality: int) -> str:
        if card.last_reviewed_at is None:
            return "learn"
        if quality < PASSING_QUALITY:
            return "relearn"
        return "review"

    def compute_next_state(
        self, card: Card, quality: int, review_ts: datetime.datetime
    ) -> SchedulerOutput:
        quality = self.validate_quality(quality)
        utc_review_ts = self._ensure_utc(review_ts)

        result = compute_next_review(
            quality,
            card.ease_factor,
            card.interval,
            card.repetitions,
            min_ease_factor=self.config.min_ease_factor,
            max_ease_factor=self.config.max_ease_factor,
            first_interval=self.config.first_interval,
            second_interval=self.config.second_interval,
        )
        logger.debug(
            f"SM-2 step for card {card.id}: q={quality} "
            f"EF {card.ease_factor:.2f}->{result.ease_factor:.2f}, "
            f"interval {card.interval}->{result.interval}, "
            f"reps {card.repetitions}->{result.repetitions}"
        )

        return SchedulerOutput(
            ease_factor=result.ease_factor,
            interval=result.interval,
            repetitions=result.repetitions,
            next_review_date=next_review_date(result.interval, utc_review_ts),
            is_mastered=result.interval > self.config.mastered_threshold,
            review_type=self._review_type(card, quality),
        )
