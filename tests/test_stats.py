import pytest
from datetime import date, datetime, timedelta, timezone

from recallcore.constants import EXPORT_VERSION
from recallcore.history import record_review
from recallcore.models import (
    Card,
    DailyReviewRecord,
    StreakHistory,
    create_initial_stats,
    create_pack,
)
from recallcore.stats import (
    calculate_computed_stats,
    calculate_retention_rate,
    calculate_retention_rate_7d,
    calculate_stats,
    export_all_data,
    get_data_summary,
    get_review_counts_for_days,
    get_rolling_retention_rates,
    get_total_minutes_studied,
    get_total_reviews_all_time,
)

TODAY = date(2024, 3, 15)


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def cards(now):
    return [
        Card(source_type="milestone", source_id="new"),
        Card(
            source_type="milestone",
            source_id="learning",
            interval=6,
            repetitions=2,
            ease_factor=2.0,
            last_reviewed_at=now,
            next_review_date=now + timedelta(days=6),
        ),
        Card(
            source_type="concept",
            source_id="mastered",
            interval=30,
            repetitions=5,
            ease_factor=2.8,
            last_reviewed_at=now - timedelta(days=2),
            next_review_date=now - timedelta(hours=1),
        ),
    ]


@pytest.fixture
def history():
    return [
        DailyReviewRecord(date="2024-03-15", total_reviews=4, again_count=1, good_count=3,
                          minutes_studied=12),
        DailyReviewRecord(date="2024-03-10", total_reviews=6, again_count=3, easy_count=3,
                          minutes_studied=8.5),
        DailyReviewRecord(date="2024-01-01", total_reviews=10, again_count=10),
    ]


def test_calculate_stats(cards, now):
    streak = StreakHistory(current_streak=2, longest_streak=4, last_study_date="2024-03-15")
    stats = calculate_stats(cards, streak, now)

    assert stats.total_cards == 3
    assert stats.cards_due_today == 2
    assert stats.cards_reviewed_today == 1
    assert stats.mastered_cards == 1
    assert stats.current_streak == 2
    assert stats.longest_streak == 4
    assert stats.last_study_date.date() == date(2024, 3, 15)


def test_calculate_stats_empty():
    stats = calculate_stats([], StreakHistory())
    assert stats == create_initial_stats()


def test_retention_rate_window(history):
    # 7-day window: 4 + 6 reviews, 3 + 3 correct
    assert calculate_retention_rate_7d(history, TODAY) == pytest.approx(0.6)
    assert calculate_retention_rate(history, 90, TODAY) == pytest.approx(6 / 20)
    assert calculate_retention_rate([], 7, TODAY) == 0.0


def test_rolling_retention_rates(history):
    series = get_rolling_retention_rates(history, 3, TODAY)
    assert [p["date"] for p in series] == ["2024-03-13", "2024-03-14", "2024-03-15"]
    # 2024-03-13 window (03-10..03-16) covers both March records.
    assert series[0]["retention_rate"] == pytest.approx(0.6)
    # 2024-03-15 window (03-12..03-18) only covers 03-15.
    assert series[2]["retention_rate"] == pytest.approx(0.75)


def test_review_counts_fill_missing_days(history):
    days = get_review_counts_for_days(history, 3, TODAY)
    assert [r.date for r in days] == ["2024-03-13", "2024-03-14", "2024-03-15"]
    assert [r.total_reviews for r in days] == [0, 0, 4]


def test_totals(history):
    assert get_total_reviews_all_time(history) == 20
    assert get_total_minutes_studied(history) == pytest.approx(20.5)


def test_computed_stats(cards, history, now):
    streak = StreakHistory(current_streak=1, longest_streak=3, last_study_date="2024-03-15")
    computed = calculate_computed_stats(cards, history, streak, now=now, today=TODAY)

    assert computed.total_cards == 3
    assert computed.mastered_cards == 1
    assert computed.learning_cards == 1
    assert computed.new_cards == 1
    assert computed.average_ease_factor == pytest.approx(2.4)
    assert computed.most_challenging_card_ids == [cards[1].id, cards[2].id]
    assert computed.overdue_card_ids == [cards[0].id, cards[2].id]
    assert computed.due_today == 2
    assert computed.total_reviews_all_time == 20
    assert computed.retention_rate_7d == pytest.approx(0.6)


def test_export_all_data_uses_stored_format(cards, now):
    packs = [create_pack("Transformers")]
    history = record_review([], cards[0].id, 4, today=TODAY)
    streak = StreakHistory(current_streak=1, longest_streak=1, last_study_date="2024-03-15")
    stats = calculate_stats(cards, streak, now)

    exported = export_all_data(cards, packs, stats, history, streak, now=now)

    assert exported["version"] == EXPORT_VERSION
    assert exported["exportedAt"] == now.isoformat()
    assert exported["cards"][0]["sourceId"] == "new"
    assert exported["packs"][0]["name"] == "Transformers"
    assert exported["stats"]["totalCards"] == 3
    assert exported["reviewHistory"][0]["totalReviews"] == 1
    assert exported["streakHistory"]["currentStreak"] == 1


def test_data_summary(cards, history):
    summary = get_data_summary(cards, [], history, StreakHistory(current_streak=1, longest_streak=9))
    assert summary["total_cards"] == 3
    assert summary["total_packs"] == 0
    assert summary["total_reviews"] == 20
    assert summary["streak_days"] == 9
    assert summary["oldest_card_date"] is not None
