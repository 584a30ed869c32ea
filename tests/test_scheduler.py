import pytest
import datetime

from recallcore.scheduler import (
    SM2_Scheduler,
    SM2SchedulerConfig,
    compute_next_review,
    next_review_date,
    round_half_away_from_zero,
)
from recallcore.models import Card, SourceType
from recallcore.constants import MAX_EASE_FACTOR, MIN_EASE_FACTOR

# Helper to create datetime objects easily
UTC = datetime.timezone.utc


@pytest.fixture
def scheduler() -> SM2_Scheduler:
    """Provides an SM2_Scheduler with default parameters."""
    return SM2_Scheduler(config=SM2SchedulerConfig())


def make_card(**overrides) -> Card:
    fields = dict(source_type=SourceType.concept, source_id="C_ATTENTION")
    fields.update(overrides)
    return Card(**fields)


@pytest.mark.parametrize("quality", [0, 1, 2])
@pytest.mark.parametrize("prev_repetitions", [0, 1, 5, 12])
def test_failed_recall_resets_interval_and_repetitions(quality, prev_repetitions):
    result = compute_next_review(quality, 2.5, 30, prev_repetitions)
    assert result.repetitions == 0
    assert result.interval == 0


@pytest.mark.parametrize("quality", [3, 4, 5])
def test_graduating_intervals(quality):
    first = compute_next_review(quality, 2.5, 0, 0)
    assert first.interval == 1
    assert first.repetitions == 1

    second = compute_next_review(quality, first.ease_factor, first.interval, 1)
    assert second.interval == 6
    assert second.repetitions == 2


def test_third_success_scales_interval_by_new_ease_factor():
    # EF 2.6 -> 2.7 on a perfect recall; 6 * 2.7 = 16.2 -> 16
    result = compute_next_review(5, 2.6, 6, 2)
    assert result.ease_factor == pytest.approx(2.7)
    assert result.interval == 16
    assert result.repetitions == 3


def test_ease_factor_always_within_bounds():
    ease_factors = [MIN_EASE_FACTOR + i * 0.1 for i in range(18)] + [MAX_EASE_FACTOR]
    for ease in ease_factors:
        for quality in range(6):
            result = compute_next_review(quality, ease, 10, 3)
            assert MIN_EASE_FACTOR <= result.ease_factor <= MAX_EASE_FACTOR


def test_ease_factor_clamps_at_both_ends():
    assert compute_next_review(0, MIN_EASE_FACTOR, 0, 0).ease_factor == MIN_EASE_FACTOR
    assert compute_next_review(5, MAX_EASE_FACTOR, 6, 2).ease_factor == MAX_EASE_FACTOR


def test_new_card_perfect_recall_scenario(scheduler: SM2_Scheduler):
    """A new card rated 5 graduates with EF ~2.6 and is due tomorrow."""
    card = make_card()
    review_ts = datetime.datetime(2024, 1, 1, 10, 0, tzinfo=UTC)

    output = scheduler.compute_next_state(card, 5, review_ts)

    assert output.ease_factor == pytest.approx(2.6)
    assert output.interval == 1
    assert output.repetitions == 1
    assert output.next_review_date == review_ts + datetime.timedelta(days=1)
    assert output.review_type == "learn"


def test_second_day_perfect_recall_scenario(scheduler: SM2_Scheduler):
    card = make_card(
        ease_factor=2.6,
        interval=1,
        repetitions=1,
        last_reviewed_at=datetime.datetime(2024, 1, 1, 10, 0, tzinfo=UTC),
    )
    review_ts = datetime.datetime(2024, 1, 2, 10, 0, tzinfo=UTC)

    output = scheduler.compute_next_state(card, 5, review_ts)

    assert output.repetitions == 2
    assert output.interval == 6
    assert output.review_type == "review"


def test_failed_review_keeps_recomputed_ease_factor(scheduler: SM2_Scheduler):
    """A lapse resets the schedule but moves the ease factor, not resets it."""
    card = make_card(
        ease_factor=2.0,
        interval=10,
        repetitions=3,
        last_reviewed_at=datetime.datetime(2024, 1, 1, tzinfo=UTC),
    )
    review_ts = datetime.datetime(2024, 1, 11, tzinfo=UTC)

    output = scheduler.compute_next_state(card, 2, review_ts)

    assert output.interval == 0
    assert output.repetitions == 0
    # 2.0 + (0.1 - 3 * (0.08 + 3 * 0.02)) = 1.68
    assert output.ease_factor == pytest.approx(1.68)
    assert output.next_review_date == review_ts
    assert output.review_type == "relearn"


def test_mastery_flag_follows_new_interval(scheduler: SM2_Scheduler):
    card = make_card(ease_factor=2.5, interval=20, repetitions=3)
    output = scheduler.compute_next_state(
        card, 4, datetime.datetime(2024, 1, 1, tzinfo=UTC)
    )
    assert output.interval == 50
    assert output.is_mastered is True


@pytest.mark.parametrize("quality", [-1, 6, 10, True])
def test_invalid_quality_input(scheduler: SM2_Scheduler, quality):
    """Out-of-range qualities are rejected rather than clamped."""
    review_ts = datetime.datetime(2024, 1, 1, 10, 0, 0)  # No tzinfo
    with pytest.raises(ValueError, match="Invalid quality"):
        scheduler.compute_next_state(make_card(), quality, review_ts)


def test_naive_review_timestamp_is_treated_as_utc(scheduler: SM2_Scheduler):
    output = scheduler.compute_next_state(
        make_card(), 4, datetime.datetime(2024, 1, 1, 10, 0)
    )
    assert output.next_review_date == datetime.datetime(2024, 1, 2, 10, 0, tzinfo=UTC)


def test_custom_graduating_intervals():
    scheduler = SM2_Scheduler(SM2SchedulerConfig(first_interval=2, second_interval=5))
    output = scheduler.compute_next_state(
        make_card(), 4, datetime.datetime(2024, 1, 1, tzinfo=UTC)
    )
    assert output.interval == 2


@pytest.mark.parametrize(
    "value, expected", [(2.5, 3), (2.4, 2), (15.6, 16), (-2.5, -3), (0.0, 0)]
)
def test_round_half_away_from_zero(value, expected):
    assert round_half_away_from_zero(value) == expected


def test_next_review_date_adds_whole_days():
    now = datetime.datetime(2024, 2, 28, 9, 30, tzinfo=UTC)
    assert next_review_date(2, now) == datetime.datetime(2024, 3, 1, 9, 30, tzinfo=UTC)
    assert next_review_date(0, now) == now
