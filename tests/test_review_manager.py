"""
Tests for ReviewSessionManager running study sessions over a local store.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from recallcore.exceptions import ReviewOperationError
from recallcore.models import create_card
from recallcore.review_manager import ReviewSessionManager
from recallcore.stores.local import LocalFlashcardStore


@pytest.fixture
def store_with_cards(memory_store: LocalFlashcardStore) -> LocalFlashcardStore:
    for source_id in ("E1", "E2", "E3"):
        memory_store.add_card("milestone", source_id)
    return memory_store


def source_ids(cards):
    return [c.source_id for c in cards]


class TestInitialization:
    def test_queue_holds_due_cards_in_order(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session()

        assert source_ids(manager.review_queue) == ["E1", "E2", "E3"]
        assert manager.get_next_card().source_id == "E1"
        assert manager.get_session_stats()["total_cards"] == 3

    def test_limit_caps_the_queue(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards, limit=2)
        manager.initialize_session()

        assert source_ids(manager.review_queue) == ["E1", "E2"]
        assert manager.session_card_ids == [c.id for c in manager.review_queue]

    def test_pack_filter(self, memory_store: LocalFlashcardStore):
        pack = memory_store.create_pack("Transformers")
        memory_store.add_card("milestone", "E1")
        memory_store.add_card("milestone", "E2", pack_ids=[pack.id])

        manager = ReviewSessionManager(memory_store, pack_id=pack.id)
        manager.initialize_session()

        assert source_ids(manager.review_queue) == ["E2"]
        assert manager.session.pack_id == pack.id

    def test_nothing_due(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session(now=datetime(2000, 1, 1, tzinfo=timezone.utc))

        assert manager.get_next_card() is None
        assert manager.get_due_card_count(now=datetime(2000, 1, 1, tzinfo=timezone.utc)) == 0
        assert manager.get_due_card_count() == 3


class TestSubmitReview:
    def test_passing_review_leaves_queue(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session()
        card = manager.get_next_card()

        updated = manager.submit_review(card.id, 4)

        assert updated.repetitions == 1
        assert card.id not in [c.id for c in manager.review_queue]
        assert store_with_cards.get_card_by_id(card.id).repetitions == 1
        stats = manager.get_session_stats()
        assert stats["reviewed_cards"] == 1
        assert stats["correct_cards"] == 1
        assert stats["remaining_cards"] == 2
        assert stats["accuracy"] == 1.0

    def test_failed_card_goes_to_back_of_queue(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session()
        first = manager.get_next_card()

        manager.submit_review(first.id, 1)

        assert source_ids(manager.review_queue) == ["E2", "E3", "E1"]
        stats = manager.get_session_stats()
        assert stats["review_again"] == 1
        assert stats["remaining_cards"] == 3
        assert stats["accuracy"] == 0.0

        # Second pass on the same card succeeds and removes it for good.
        manager.submit_review(manager.review_queue[0].id, 5)
        manager.submit_review(manager.review_queue[0].id, 5)
        manager.submit_review(first.id, 3)
        assert manager.review_queue == []
        assert manager.get_session_stats()["reviewed_cards"] == 4
        assert manager.get_session_stats()["total_cards"] == 3

    def test_unknown_card_raises(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session()
        with pytest.raises(ValueError, match="not found in the current review session"):
            manager.submit_review("nope", 4)

    def test_card_removed_mid_session(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session()
        card = manager.get_next_card()
        store_with_cards.remove_card(card.id)

        with pytest.raises(ReviewOperationError, match="no longer exists"):
            manager.submit_review(card.id, 4)
        assert card.id not in [c.id for c in manager.review_queue]

    def test_invalid_quality_keeps_card_queued(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session()
        card = manager.get_next_card()

        with pytest.raises(ValueError):
            manager.submit_review(card.id, 7)
        assert manager.get_next_card().id == card.id
        assert manager.get_session_stats()["reviewed_cards"] == 0

    def test_store_errors_propagate(self):
        card = create_card("milestone", "E1")
        store = MagicMock(spec=LocalFlashcardStore)
        store.get_due_cards.return_value = [card]
        store.record_review.side_effect = RuntimeError("storage exploded")

        manager = ReviewSessionManager(store)
        manager.initialize_session()
        with pytest.raises(RuntimeError, match="storage exploded"):
            manager.submit_review(card.id, 4)
        assert manager.get_next_card() is card


class TestEndSession:
    def test_end_session_records_study_time(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session()
        manager.submit_review(manager.get_next_card().id, 4)

        session = manager.end_session(now=manager.session.started_at + timedelta(minutes=10))

        assert session.is_active is False
        assert session.duration_minutes == pytest.approx(10)
        today = store_with_cards.review_history[0]
        assert today.total_reviews == 1
        assert today.minutes_studied == pytest.approx(10)

    def test_end_session_is_idempotent(self, store_with_cards):
        manager = ReviewSessionManager(store_with_cards)
        manager.initialize_session()
        end = manager.session.started_at + timedelta(minutes=5)

        manager.end_session(now=end)
        manager.end_session(now=end + timedelta(minutes=30))

        assert manager.session.completed_at == end
        assert store_with_cards.review_history[0].minutes_studied == pytest.approx(5)
