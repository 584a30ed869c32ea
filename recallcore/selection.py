"""
Queries over a card collection: due cards, pack membership, overdue and
challenging cards, and the upcoming review forecast.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from .models import Card, is_due


def get_cards_by_pack(cards: Iterable[Card], pack_id: str) -> List[Card]:
    return [card for card in cards if pack_id in card.pack_ids]


def get_due_cards(
    cards: Iterable[Card],
    pack_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Card]:
    """
    Return the due cards, optionally restricted to one pack.

    Pack membership is applied first, then is_due. The result keeps the
    collection's order; it is stable but not sorted by urgency.
    """
    now = now or datetime.now(timezone.utc)
    selected = get_cards_by_pack(cards, pack_id) if pack_id else list(cards)
    return [card for card in selected if is_due(card, now)]


def get_overdue_cards(
    cards: Iterable[Card], now: Optional[datetime] = None
) -> List[Card]:
    """Cards past their review date, most overdue first.

    Never-scheduled cards sort ahead of everything else.
    """
    now = now or datetime.now(timezone.utc)
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    overdue = [
        card
        for card in cards
        if card.next_review_date is None or card.next_review_date < now
    ]
    return sorted(overdue, key=lambda c: c.next_review_date or epoch)


def get_most_challenging_cards(
    cards: Iterable[Card], limit: int = 5
) -> List[Card]:
    """Reviewed cards with the lowest ease factors."""
    reviewed = [card for card in cards if card.last_reviewed_at is not None]
    return sorted(reviewed, key=lambda c: c.ease_factor)[:limit]


def get_well_known_cards(cards: Iterable[Card], limit: int = 5) -> List[Card]:
    return sorted(cards, key=lambda c: c.interval, reverse=True)[:limit]


def get_review_forecast(
    cards: Iterable[Card], days: int = 7, now: Optional[datetime] = None
) -> List[Tuple[str, int]]:
    """
    Count cards due on each of the next `days` local calendar days.

    Day 0 includes everything overdue; later days count exact matches only.
    Returns (YYYY-MM-DD, count) pairs.
    """
    now = now or datetime.now(timezone.utc)
    today = now.astimezone().date()
    cards = list(cards)
    forecast = []
    for offset in range(days):
        target = today + timedelta(days=offset)
        count = 0
        for card in cards:
            if card.next_review_date is None:
                count += offset == 0
                continue
            review_day = card.next_review_date.astimezone().date()
            if offset == 0:
                count += review_day <= today
            else:
                count += review_day == target
        forecast.append((target.isoformat(), count))
    return forecast
