"""
Shared review processing logic for recallcore.

ReviewProcessor turns a (card, quality) pair into the card's next scheduling
state. The local store persists the result; the remote store instead trusts
the server's computation and only uses the processor's validation.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from .models import Card, ensure_utc
from .scheduler import BaseScheduler, SchedulerOutput, SM2_Scheduler

logger = logging.getLogger(__name__)


class ReviewProcessor:
    """
    Applies a scheduler to a card and returns the updated copy.

    The input card is never modified.
    """

    def __init__(self, scheduler: Optional[BaseScheduler] = None):
        self.scheduler = scheduler or SM2_Scheduler()

    def validate_quality(self, quality: int) -> int:
        """
        Raises:
            ValueError: If quality is not an integer in 0-5.
        """
        if isinstance(self.scheduler, SM2_Scheduler):
            return self.scheduler.validate_quality(quality)
        return quality

    def process_review(
        self,
        card: Card,
        quality: int,
        reviewed_at: Optional[datetime] = None,
    ) -> Card:
        """
        Compute the next state for `card` after a review rated `quality`.

        Args:
            card: The card being reviewed.
            quality: Recall quality, 0-5.
            reviewed_at: Review timestamp (defaults to now, UTC).

        Returns:
            A new Card with ease factor, interval, repetitions, next review
            date and last-reviewed timestamp updated.

        Raises:
            ValueError: If quality is outside 0-5.
        """
        ts = ensure_utc(reviewed_at) or datetime.now(timezone.utc)
        logger.debug(f"Processing review for card {card.id} with quality {quality}")

        output: SchedulerOutput = self.scheduler.compute_next_state(
            card=card, quality=quality, review_ts=ts
        )
        updated = card.model_copy(
            update={
                "ease_factor": output.ease_factor,
                "interval": output.interval,
                "repetitions": output.repetitions,
                "next_review_date": output.next_review_date,
                "last_reviewed_at": ts,
            }
        )
        logger.debug(
            f"Card {card.id} ({output.review_type}) next due "
            f"{updated.next_review_date.isoformat()}, mastered={output.is_mastered}"
        )
        return updated
