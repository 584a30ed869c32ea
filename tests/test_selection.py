from datetime import datetime, timedelta, timezone

from recallcore.models import Card
from recallcore.selection import (
    get_cards_by_pack,
    get_due_cards,
    get_most_challenging_cards,
    get_overdue_cards,
    get_review_forecast,
    get_well_known_cards,
)

UTC = timezone.utc


def make_card(source_id, **fields) -> Card:
    return Card(source_type="milestone", source_id=source_id, **fields)


def test_get_due_cards_keeps_collection_order(fixed_now):
    cards = [
        make_card("A", next_review_date=fixed_now - timedelta(days=1)),
        make_card("B", next_review_date=fixed_now + timedelta(days=1)),
        make_card("C"),
        make_card("D", next_review_date=fixed_now - timedelta(days=10)),
    ]
    due = get_due_cards(cards, now=fixed_now)
    assert [c.source_id for c in due] == ["A", "C", "D"]


def test_get_due_cards_filters_by_pack_first(fixed_now):
    cards = [
        make_card("A", pack_ids=["p1"]),
        make_card("B", pack_ids=["p2"]),
        make_card("C", pack_ids=["p1"], next_review_date=fixed_now + timedelta(days=3)),
    ]
    assert [c.source_id for c in get_due_cards(cards, "p1", fixed_now)] == ["A"]
    assert [c.source_id for c in get_cards_by_pack(cards, "p1")] == ["A", "C"]


def test_overdue_cards_most_overdue_first(fixed_now):
    cards = [
        make_card("A", next_review_date=fixed_now - timedelta(days=1)),
        make_card("B", next_review_date=fixed_now - timedelta(days=5)),
        make_card("C"),
        make_card("D", next_review_date=fixed_now + timedelta(days=1)),
    ]
    assert [c.source_id for c in get_overdue_cards(cards, fixed_now)] == ["C", "B", "A"]


def test_most_challenging_skips_unreviewed_cards(fixed_now):
    cards = [
        make_card("A", ease_factor=1.5, last_reviewed_at=fixed_now),
        make_card("B", ease_factor=1.3),
        make_card("C", ease_factor=2.2, last_reviewed_at=fixed_now),
        make_card("D", ease_factor=1.4, last_reviewed_at=fixed_now),
    ]
    result = get_most_challenging_cards(cards, limit=2)
    assert [c.source_id for c in result] == ["D", "A"]


def test_well_known_cards_by_interval():
    cards = [make_card("A", interval=3), make_card("B", interval=40), make_card("C", interval=9)]
    assert [c.source_id for c in get_well_known_cards(cards, limit=2)] == ["B", "C"]


def test_review_forecast(fixed_now):
    cards = [
        make_card("overdue", next_review_date=fixed_now - timedelta(days=3)),
        make_card("unscheduled"),
        make_card("today", next_review_date=fixed_now),
        make_card("tomorrow", next_review_date=fixed_now + timedelta(days=1)),
        make_card("in3", next_review_date=fixed_now + timedelta(days=3)),
        make_card("far", next_review_date=fixed_now + timedelta(days=30)),
    ]
    forecast = get_review_forecast(cards, days=7, now=fixed_now)

    assert len(forecast) == 7
    counts = [count for _, count in forecast]
    assert counts[0] == 3
    assert counts[1] == 1
    assert counts[3] == 1
    assert sum(counts) == 5
    assert forecast[0][0] == fixed_now.astimezone().date().isoformat()
