"""
Daily review ledger and study-streak tracking.

Every "day" here is the local calendar day of the running process
(date.today()), not UTC. A user who changes timezone can see a streak gain or
lose a day; that behaviour is kept as-is.

All functions are pure: they take the ledger/streak and return new objects.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from .constants import MAX_HISTORY_DAYS, STREAK_MILESTONES
from .models import (
    DailyReviewRecord,
    StreakAchievement,
    StreakHistory,
    create_empty_daily_record,
    utcnow,
)

logger = logging.getLogger(__name__)


# --- Date helpers ---


def format_date(day: date) -> str:
    return day.isoformat()


def parse_date(date_str: str) -> date:
    return date.fromisoformat(date_str)


def days_ago(days: int, today: Optional[date] = None) -> str:
    return format_date((today or date.today()) - timedelta(days=days))


def local_day_of(ts: datetime) -> date:
    """Local calendar day of an aware timestamp."""
    return ts.astimezone().date()


# --- Ledger ---


def _sorted(records: Dict[str, DailyReviewRecord]) -> List[DailyReviewRecord]:
    return [records[k] for k in sorted(records)]


def _quality_bucket(quality: int) -> str:
    if quality <= 2:
        return "again_count"
    if quality == 3:
        return "hard_count"
    if quality == 4:
        return "good_count"
    return "easy_count"


def get_or_create_today_record(
    history: List[DailyReviewRecord], today: Optional[date] = None
) -> DailyReviewRecord:
    today_str = format_date(today or date.today())
    for record in history:
        if record.date == today_str:
            return record
    return create_empty_daily_record(today_str)


def record_review(
    history: List[DailyReviewRecord],
    card_id: str,
    quality: int,
    minutes: float = 0,
    today: Optional[date] = None,
) -> List[DailyReviewRecord]:
    """
    Count one review in today's record.

    Quality 0-2 lands in the "again" bucket; 3 and above count as correct.
    Returns a new ledger sorted by date (oldest first).
    """
    records = {r.date: r for r in history}
    current = get_or_create_today_record(history, today)
    bucket = _quality_bucket(quality)

    unique = list(current.unique_cards_reviewed)
    if card_id not in unique:
        unique.append(card_id)

    records[current.date] = current.model_copy(
        update={
            "total_reviews": current.total_reviews + 1,
            bucket: getattr(current, bucket) + 1,
            "minutes_studied": current.minutes_studied + minutes,
            "unique_cards_reviewed": unique,
        }
    )
    return _sorted(records)


def add_study_time(
    history: List[DailyReviewRecord],
    minutes: float,
    today: Optional[date] = None,
) -> List[DailyReviewRecord]:
    """Add study minutes to today's record, creating it if absent."""
    if minutes < 0:
        raise ValueError(f"Study time cannot be negative: {minutes}")
    records = {r.date: r for r in history}
    current = get_or_create_today_record(history, today)
    records[current.date] = current.model_copy(
        update={"minutes_studied": current.minutes_studied + minutes}
    )
    return _sorted(records)


def prune_old_history(
    history: List[DailyReviewRecord],
    today: Optional[date] = None,
    max_days: int = MAX_HISTORY_DAYS,
) -> List[DailyReviewRecord]:
    """Drop records older than `max_days` days."""
    cutoff = days_ago(max_days, today)
    kept = [r for r in history if r.date >= cutoff]
    if len(kept) < len(history):
        logger.debug(f"Pruned {len(history) - len(kept)} ledger records older than {cutoff}")
    return kept


# --- Streaks ---


def calculate_streak_from_history(
    history: List[DailyReviewRecord], today: Optional[date] = None
) -> Tuple[int, Optional[str]]:
    """
    Count consecutive study days ending today, or yesterday if today has no
    review yet.

    Returns:
        (current_streak, last_study_date). The streak is 0 when the most
        recent study day is older than yesterday.
    """
    today = today or date.today()
    study_days = sorted(
        {r.date for r in history if r.total_reviews > 0}, reverse=True
    )
    if not study_days:
        return 0, None

    most_recent = study_days[0]
    if most_recent not in (format_date(today), days_ago(1, today)):
        return 0, most_recent

    streak = 0
    expected = parse_date(most_recent)
    for day_str in study_days:
        day = parse_date(day_str)
        if day == expected:
            streak += 1
            expected = expected - timedelta(days=1)
        elif day < expected:
            break
    return streak, most_recent


def check_for_new_milestones(
    current_streak: int, existing: List[StreakAchievement]
) -> List[StreakAchievement]:
    """Milestones reached by `current_streak` that were not awarded yet."""
    awarded = {a.milestone for a in existing}
    now = utcnow()
    return [
        StreakAchievement(milestone=m, achieved_at=now)
        for m in STREAK_MILESTONES
        if current_streak >= m and m not in awarded
    ]


def update_streak_after_review(
    streak: StreakHistory,
    history: List[DailyReviewRecord],
    today: Optional[date] = None,
) -> StreakHistory:
    """
    Recompute the streak from the ledger after a review was recorded.

    The longest streak never decreases; newly reached milestones are
    appended to the achievements.
    """
    current, last_study_date = calculate_streak_from_history(history, today)
    new_achievements = check_for_new_milestones(current, streak.achievements)
    for achievement in new_achievements:
        logger.info(f"Streak milestone reached: {achievement.milestone} days")

    return StreakHistory(
        current_streak=current,
        longest_streak=max(streak.longest_streak, current),
        last_study_date=last_study_date,
        achievements=[*streak.achievements, *new_achievements],
    )


def get_next_milestone(current_streak: int) -> Optional[int]:
    for milestone in STREAK_MILESTONES:
        if current_streak < milestone:
            return milestone
    return None


def get_milestone_progress(current_streak: int) -> Dict[str, Optional[int]]:
    """
    Progress toward the next milestone.

    Returns:
        dict with "next_milestone" (None once every milestone is reached),
        "progress" (0-100) and "days_remaining".
    """
    next_milestone = get_next_milestone(current_streak)
    if next_milestone is None:
        return {"next_milestone": None, "progress": 100, "days_remaining": 0}

    previous = max(
        (m for m in (0, *STREAK_MILESTONES) if m <= current_streak), default=0
    )
    span = next_milestone - previous
    progress = round((current_streak - previous) / span * 100) if span else 0
    return {
        "next_milestone": next_milestone,
        "progress": progress,
        "days_remaining": next_milestone - current_streak,
    }


_MILESTONE_LABELS = {
    7: "1 Week",
    14: "2 Weeks",
    30: "1 Month",
    60: "2 Months",
    100: "100 Days",
    180: "6 Months",
    365: "1 Year",
}


def get_milestone_label(milestone: int) -> str:
    return _MILESTONE_LABELS.get(milestone, f"{milestone} Days")


def get_streak_message(current_streak: int, studied_today: bool) -> str:
    """Short encouragement text for the current streak state."""
    if current_streak == 0:
        return (
            "Great start! Keep it going!"
            if studied_today
            else "Start a streak today!"
        )
    if not studied_today:
        return f"Study today to continue your {current_streak} day streak!"

    progress = get_milestone_progress(current_streak)
    next_milestone = progress["next_milestone"]
    remaining = progress["days_remaining"]
    if next_milestone is None:
        return "Amazing! You've achieved all milestones!"
    label = get_milestone_label(next_milestone)
    if remaining == 1:
        return f"Just 1 more day to {label}!"
    if remaining <= 3:
        return f"Only {remaining} days to {label}!"
    return f"{remaining} days to {label}"
