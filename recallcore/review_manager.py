"""
This module defines the ReviewSessionManager class, which runs one study
session against a flashcard store: it builds a queue of due cards, hands them
out one at a time, records each review through the store and, when the
session ends, adds the time spent to the review ledger.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .constants import PASSING_QUALITY
from .exceptions import ReviewOperationError
from .models import Card, ReviewSession
from .stores.local import LocalFlashcardStore

# Initialize logger
logger = logging.getLogger(__name__)


class ReviewSessionManager:
    """
    Manages a review session over the due cards of one pack, or of all packs.

    This class is responsible for:
    - Initializing a session with up to `limit` due cards.
    - Providing cards one by one for review.
    - Recording reviews through the store; failed cards go to the back of
      the queue for another pass.
    - Adding the session's duration to the ledger when it ends.
    """

    def __init__(
        self,
        store: LocalFlashcardStore,
        pack_id: Optional[str] = None,
        limit: int = 20,
    ):
        """
        Parameters:
            store (LocalFlashcardStore): Store that owns the cards and ledger.
            pack_id (Optional[str]): Restrict the session to one pack; None
                reviews every due card.
            limit (int): Maximum number of distinct cards in the session.
        """
        self.store = store
        self.pack_id = pack_id
        self.limit = limit
        self.session = ReviewSession(pack_id=pack_id)
        self.review_queue: List[Card] = []
        self.session_card_ids: List[str] = []

    def initialize_session(self, now: Optional[datetime] = None) -> None:
        """
        Fetch due cards and populate the queue, oldest due date first.
        """
        logger.info(
            f"Initializing review session {self.session.id} "
            f"(pack: {self.pack_id or 'all'})"
        )
        due_cards = self.store.get_due_cards(pack_id=self.pack_id, now=now)
        due_cards.sort(key=lambda c: c.next_review_date or c.created_at)
        self.review_queue = due_cards[: self.limit]
        self.session_card_ids = [card.id for card in self.review_queue]
        logger.info(f"Initialized session with {len(self.review_queue)} cards.")

    def get_next_card(self) -> Optional[Card]:
        """
        Returns:
            The next Card to review, or None if the queue is empty.
        """
        if not self.review_queue:
            logger.info("Review queue is empty. Session may be complete.")
            return None
        return self.review_queue[0]

    def _get_card_from_queue(self, card_id: str) -> Optional[Card]:
        for card in self.review_queue:
            if card.id == card_id:
                return card
        return None

    def _remove_card_from_queue(self, card_id: str) -> None:
        self.review_queue = [card for card in self.review_queue if card.id != card_id]

    def submit_review(
        self,
        card_id: str,
        quality: int,
        reviewed_at: Optional[datetime] = None,
    ) -> Card:
        """
        Record a review for a card in the current session.

        A card rated below 3 is placed at the end of the queue so it comes
        up again in this session.

        Parameters:
            card_id (str): Id of the card being reviewed.
            quality (int): Recall quality, 0-5.
            reviewed_at (Optional[datetime]): Review time; defaults to now.

        Returns:
            Card: The card with its new schedule.

        Raises:
            ValueError: If the card is not queued in this session or the
                quality is outside 0-5.
            ReviewOperationError: If the card was deleted from the store
                after the session started.
        """
        card = self._get_card_from_queue(card_id)
        if not card:
            raise ValueError(f"Card {card_id} not found in the current review session.")

        try:
            updated_card = self.store.record_review(card_id, quality, now=reviewed_at)
        except Exception as e:
            logger.error(f"Failed to submit review for card {card_id}: {e}")
            raise
        if updated_card is None:
            # Removed from the store mid-session.
            self._remove_card_from_queue(card_id)
            raise ReviewOperationError(f"Card {card_id} no longer exists in the store.")

        self.session.record_answer(quality)
        self._remove_card_from_queue(card_id)
        if quality < PASSING_QUALITY:
            self.review_queue.append(updated_card)
            logger.debug(f"Card {card_id} re-queued for another pass.")
        return updated_card

    def get_session_stats(self) -> Dict[str, Any]:
        """
        Returns:
            dict: "total_cards" (distinct cards in the session),
                "remaining_cards", "reviewed_cards" (answers given, including
                repeats), "correct_cards", "review_again" and "accuracy"
                (None before the first answer).
        """
        return {
            "total_cards": len(self.session_card_ids),
            "remaining_cards": len(self.review_queue),
            "reviewed_cards": self.session.cards_reviewed,
            "correct_cards": self.session.cards_correct,
            "review_again": self.session.cards_to_review,
            "accuracy": self.session.accuracy,
        }

    def end_session(self, now: Optional[datetime] = None) -> ReviewSession:
        """
        Mark the session completed and add its duration to today's ledger
        record. Calling it again has no further effect.
        """
        if not self.session.is_active:
            return self.session
        self.session.complete(now)
        minutes = self.session.duration_minutes or 0.0
        if minutes > 0:
            self.store.add_study_time(minutes)
        logger.info(
            f"Ended session {self.session.id}: {self.session.cards_reviewed} "
            f"reviews in {minutes:.1f} minutes."
        )
        return self.session

    def get_due_card_count(self, now: Optional[datetime] = None) -> int:
        return len(self.store.get_due_cards(pack_id=self.pack_id, now=now))
