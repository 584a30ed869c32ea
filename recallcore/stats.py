"""
Statistics over cards and the review ledger: aggregate counters, retention
rates, chart series, computed insights and the full data export.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .constants import DEFAULT_EASE_FACTOR, EXPORT_VERSION
from .history import days_ago, format_date
from .models import (
    Card,
    DailyReviewRecord,
    FlashcardStats,
    Pack,
    StreakHistory,
    create_empty_daily_record,
    is_due,
    is_mastered,
    utcnow,
)
from .selection import (
    get_most_challenging_cards,
    get_overdue_cards,
    get_review_forecast,
)

logger = logging.getLogger(__name__)


def _local_midnight(now: datetime) -> datetime:
    local_now = now.astimezone()
    return datetime.combine(local_now.date(), time.min, tzinfo=local_now.tzinfo)


def calculate_stats(
    cards: List[Card],
    streak: StreakHistory,
    now: Optional[datetime] = None,
) -> FlashcardStats:
    """
    Recompute the aggregate counters shown alongside the card list.

    A card counts as reviewed today when its last review happened on or
    after local midnight.
    """
    now = now or utcnow()
    midnight = _local_midnight(now)
    last_study_date = None
    if streak.last_study_date:
        last_study_date = datetime.combine(
            date.fromisoformat(streak.last_study_date), time.min
        ).astimezone()

    return FlashcardStats(
        total_cards=len(cards),
        cards_due_today=sum(1 for c in cards if is_due(c, now)),
        cards_reviewed_today=sum(
            1
            for c in cards
            if c.last_reviewed_at is not None and c.last_reviewed_at >= midnight
        ),
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        mastered_cards=sum(1 for c in cards if is_mastered(c)),
        last_study_date=last_study_date,
    )


# --- Retention ---


def calculate_retention_rate(
    history: List[DailyReviewRecord], days: int, today: Optional[date] = None
) -> float:
    """
    Correct reviews over total reviews in the last `days` days.

    Correct means quality 3 or higher. Returns 0.0 when there were no
    reviews in the window.
    """
    cutoff = days_ago(days, today)
    relevant = [r for r in history if r.date >= cutoff]
    total = sum(r.total_reviews for r in relevant)
    if total == 0:
        return 0.0
    return sum(r.correct_count for r in relevant) / total


def calculate_retention_rate_7d(
    history: List[DailyReviewRecord], today: Optional[date] = None
) -> float:
    return calculate_retention_rate(history, 7, today)


def calculate_retention_rate_30d(
    history: List[DailyReviewRecord], today: Optional[date] = None
) -> float:
    return calculate_retention_rate(history, 30, today)


def get_rolling_retention_rates(
    history: List[DailyReviewRecord], days: int, today: Optional[date] = None
) -> List[Dict[str, Any]]:
    """
    Retention for each of the last `days` days, averaged over a seven-day
    window centred on that day (three days either side).
    """
    today = today or date.today()
    by_date = {r.date: r for r in history}
    series = []
    for i in range(days - 1, -1, -1):
        center = today - timedelta(days=i)
        total = correct = 0
        for offset in range(-3, 4):
            record = by_date.get(format_date(center + timedelta(days=offset)))
            if record:
                total += record.total_reviews
                correct += record.correct_count
        series.append(
            {
                "date": format_date(center),
                "retention_rate": correct / total if total else 0.0,
            }
        )
    return series


# --- Totals ---


def get_review_counts_for_days(
    history: List[DailyReviewRecord], days: int, today: Optional[date] = None
) -> List[DailyReviewRecord]:
    """One record per day for the last `days` days, oldest first, with
    empty records filling days without activity."""
    by_date = {r.date: r for r in history}
    result = []
    for i in range(days - 1, -1, -1):
        date_str = days_ago(i, today)
        result.append(by_date.get(date_str) or create_empty_daily_record(date_str))
    return result


def get_total_reviews_all_time(history: List[DailyReviewRecord]) -> int:
    return sum(r.total_reviews for r in history)


def get_total_minutes_studied(history: List[DailyReviewRecord]) -> float:
    return sum(r.minutes_studied for r in history)


# --- Computed stats ---


class ComputedStats(BaseModel):
    """Everything the statistics page shows, in one snapshot."""

    total_cards: int
    mastered_cards: int
    learning_cards: int
    new_cards: int

    current_streak: int
    longest_streak: int
    last_study_date: Optional[str]

    retention_rate_7d: float
    retention_rate_30d: float
    average_ease_factor: float
    total_reviews_all_time: int
    total_minutes_studied: float

    most_challenging_card_ids: List[str]
    overdue_card_ids: List[str]

    due_today: int
    due_tomorrow: int
    due_this_week: int


def calculate_computed_stats(
    cards: List[Card],
    history: List[DailyReviewRecord],
    streak: StreakHistory,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> ComputedStats:
    now = now or utcnow()
    reviewed = [c for c in cards if c.last_reviewed_at is not None]
    mastered = [c for c in cards if is_mastered(c)]
    learning = [c for c in reviewed if not is_mastered(c)]

    average_ease_factor = (
        sum(c.ease_factor for c in reviewed) / len(reviewed)
        if reviewed
        else DEFAULT_EASE_FACTOR
    )
    forecast = get_review_forecast(cards, days=7, now=now)

    return ComputedStats(
        total_cards=len(cards),
        mastered_cards=len(mastered),
        learning_cards=len(learning),
        new_cards=len(cards) - len(reviewed),
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        last_study_date=streak.last_study_date,
        retention_rate_7d=calculate_retention_rate_7d(history, today),
        retention_rate_30d=calculate_retention_rate_30d(history, today),
        average_ease_factor=average_ease_factor,
        total_reviews_all_time=get_total_reviews_all_time(history),
        total_minutes_studied=get_total_minutes_studied(history),
        most_challenging_card_ids=[
            c.id for c in get_most_challenging_cards(cards, 5)
        ],
        overdue_card_ids=[c.id for c in get_overdue_cards(cards, now)],
        due_today=forecast[0][1] if forecast else 0,
        due_tomorrow=forecast[1][1] if len(forecast) > 1 else 0,
        due_this_week=sum(count for _, count in forecast),
    )


# --- Export ---


def get_data_summary(
    cards: List[Card],
    packs: List[Pack],
    history: List[DailyReviewRecord],
    streak: StreakHistory,
) -> Dict[str, Any]:
    """Counts shown before exporting or clearing all data."""
    oldest = min((c.created_at for c in cards), default=None)
    return {
        "total_cards": len(cards),
        "total_packs": len(packs),
        "total_reviews": get_total_reviews_all_time(history),
        "streak_days": streak.longest_streak,
        "oldest_card_date": oldest.isoformat() if oldest else None,
    }


def export_all_data(
    cards: List[Card],
    packs: List[Pack],
    stats: Optional[FlashcardStats],
    history: List[DailyReviewRecord],
    streak: StreakHistory,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build a JSON-ready backup of every collection.

    Keys and nested payloads use the camelCase stored format.
    """
    exported = {
        "version": EXPORT_VERSION,
        "exportedAt": (now or utcnow()).isoformat(),
        "cards": [c.to_json_dict() for c in cards],
        "packs": [p.to_json_dict() for p in packs],
        "stats": stats.to_json_dict() if stats else None,
        "reviewHistory": [r.to_json_dict() for r in history],
        "streakHistory": streak.to_json_dict(),
    }
    logger.info(
        f"Exported {len(cards)} cards, {len(packs)} packs and "
        f"{len(history)} ledger days."
    )
    return exported
