import pytest
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from recallcore.models import (
    Card,
    DailyReviewRecord,
    Pack,
    ReviewSession,
    SourceType,
    StreakHistory,
    create_card,
    create_pack,
    is_due,
    is_mastered,
)
from recallcore.constants import DEFAULT_EASE_FACTOR, PACK_COLORS

UTC = timezone.utc


class TestCard:
    def test_create_card_defaults(self, fixed_now):
        card = create_card(SourceType.milestone, "E1956_DARTMOUTH", now=fixed_now)
        assert card.ease_factor == DEFAULT_EASE_FACTOR
        assert card.interval == 0
        assert card.repetitions == 0
        assert card.next_review_date == fixed_now
        assert card.created_at == fixed_now
        assert card.last_reviewed_at is None
        assert card.pack_ids == []
        assert card.id

    def test_json_dict_uses_camel_case(self, new_card):
        data = new_card.to_json_dict()
        for key in ("sourceType", "sourceId", "packIds", "easeFactor", "nextReviewDate"):
            assert key in data
        assert data["sourceType"] == "milestone"
        assert data["nextReviewDate"].startswith("2024-03-15T12:00:00")

    def test_validates_camel_case_payload_and_ignores_extra_fields(self):
        card = Card.model_validate(
            {
                "id": "ck_remote_1",
                "sourceType": "concept",
                "sourceId": "C_BACKPROP",
                "packIds": ["a", "b", "a"],
                "createdAt": "2024-01-01T00:00:00Z",
                "easeFactor": 2.3,
                "interval": 4,
                "repetitions": 2,
                "nextReviewDate": "2024-01-05T00:00:00Z",
                "sessionId": "sess-1",
                "updatedAt": "2024-01-01T00:00:00Z",
            }
        )
        assert card.id == "ck_remote_1"
        assert card.source_type is SourceType.concept
        assert card.pack_ids == ["a", "b"]
        assert card.next_review_date.tzinfo is not None

    def test_naive_timestamps_become_utc(self):
        card = Card(
            source_type="milestone",
            source_id="E1",
            created_at=datetime(2024, 1, 1, 8, 0),
        )
        assert card.created_at == datetime(2024, 1, 1, 8, 0, tzinfo=UTC)

    @pytest.mark.parametrize("ease", [1.29, 3.01])
    def test_ease_factor_out_of_range_is_rejected(self, ease):
        with pytest.raises(ValidationError):
            Card(source_type="milestone", source_id="E1", ease_factor=ease)

    def test_empty_source_id_is_rejected(self):
        with pytest.raises(ValidationError):
            Card(source_type="milestone", source_id="")

    def test_unknown_source_type_is_rejected(self):
        with pytest.raises(ValidationError):
            Card(source_type="article", source_id="A1")

    def test_id_is_immutable(self, new_card):
        with pytest.raises(ValidationError):
            new_card.id = "other"

    def test_assignment_is_validated(self, new_card):
        with pytest.raises(ValidationError):
            new_card.interval = -1


class TestPredicates:
    @pytest.mark.parametrize("interval, expected", [(0, False), (21, False), (22, True)])
    def test_is_mastered_boundary(self, interval, expected):
        card = Card(source_type="milestone", source_id="E1", interval=interval)
        assert is_mastered(card) is expected

    def test_is_due(self, fixed_now):
        unscheduled = Card(source_type="milestone", source_id="E1")
        due_now = Card(source_type="milestone", source_id="E2", next_review_date=fixed_now)
        future = Card(
            source_type="milestone",
            source_id="E3",
            next_review_date=fixed_now + timedelta(seconds=1),
        )
        assert is_due(unscheduled, fixed_now)
        assert is_due(due_now, fixed_now)
        assert not is_due(future, fixed_now)


class TestPack:
    def test_create_pack_defaults(self):
        pack = create_pack("Deep Learning")
        assert pack.color == PACK_COLORS[0]
        assert pack.is_default is False

    @pytest.mark.parametrize(
        "fields",
        [
            {"name": ""},
            {"name": "x" * 51},
            {"name": "ok", "color": "blue"},
            {"name": "ok", "color": "#12345"},
            {"name": "ok", "description": "d" * 201},
        ],
    )
    def test_invalid_pack_fields(self, fields):
        with pytest.raises(ValidationError):
            Pack(**fields)


class TestLedgerModels:
    def test_correct_count_sums_passing_buckets(self):
        record = DailyReviewRecord(
            date="2024-03-15", total_reviews=6, again_count=2, hard_count=1,
            good_count=2, easy_count=1,
        )
        assert record.correct_count == 4

    def test_bad_date_format_is_rejected(self):
        with pytest.raises(ValidationError):
            DailyReviewRecord(date="15/03/2024")

    def test_streak_longest_cannot_be_below_current(self):
        with pytest.raises(ValidationError):
            StreakHistory(current_streak=5, longest_streak=3)
        assert StreakHistory(current_streak=3, longest_streak=3).longest_streak == 3


class TestReviewSession:
    def test_record_answers_and_accuracy(self):
        session = ReviewSession()
        assert session.accuracy is None
        for quality in (5, 4, 1):
            session.record_answer(quality)
        assert session.cards_reviewed == 3
        assert session.cards_correct == 2
        assert session.cards_to_review == 1
        assert session.accuracy == pytest.approx(2 / 3)

    def test_complete_is_idempotent(self, fixed_now):
        session = ReviewSession(started_at=fixed_now)
        assert session.is_active
        assert session.duration_minutes is None

        session.complete(fixed_now + timedelta(minutes=12))
        session.complete(fixed_now + timedelta(minutes=30))

        assert not session.is_active
        assert session.duration_minutes == pytest.approx(12)
