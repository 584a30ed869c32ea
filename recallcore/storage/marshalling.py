"""
Conversion between recallcore models and their stored JSON payloads.
"""

import logging
from typing import Any, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..constants import SCHEMA_VERSION
from ..exceptions import MarshallingError
from ..models import (
    Card,
    DailyReviewRecord,
    Pack,
    StreakHistory,
    create_initial_streak_history,
)
from .migrations import extract_items, migrate_payload

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_items(items: Sequence[Any], model: Type[ModelT]) -> List[ModelT]:
    """
    Validate each raw item as `model`. Invalid items are dropped with a
    warning; the rest are returned in order.
    """
    valid: List[ModelT] = []
    for index, item in enumerate(items):
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(
                f"Dropping invalid stored {model.__name__} at index {index}: "
                f"{e.error_count()} validation error(s)"
            )
    return valid


def load_collection(
    payload: Any,
    collection: str,
    model: Type[ModelT],
    stored_version: int,
) -> Tuple[List[ModelT], int]:
    """
    Migrate a stored collection payload and validate its items.

    Returns:
        (valid items, number of invalid items dropped)

    Raises:
        MigrationError: If the payload cannot be brought to the current shape.
    """
    migrated = migrate_payload(payload, collection, stored_version)
    raw_items = extract_items(migrated, collection)
    items = parse_items(raw_items, model)
    return items, len(raw_items) - len(items)


def collection_to_payload(collection: str, items: Sequence[BaseModel]) -> dict:
    """Wrap items with the current schema version tag."""
    try:
        return {
            collection: [item.to_json_dict() for item in items],
            "schemaVersion": SCHEMA_VERSION,
        }
    except (TypeError, ValueError) as e:
        raise MarshallingError(
            f"Failed to serialize {collection}: {e}", original_exception=e
        ) from e


def cards_to_payload(cards: Sequence[Card]) -> dict:
    return collection_to_payload("cards", cards)


def packs_to_payload(packs: Sequence[Pack]) -> dict:
    return collection_to_payload("packs", packs)


def parse_history(data: Any) -> List[DailyReviewRecord]:
    """Ledger records sorted by date; anything but a list yields []."""
    if not isinstance(data, list):
        if data is not None:
            logger.warning("Stored review history is not a list; ignoring it.")
        return []
    records = parse_items(data, DailyReviewRecord)
    return sorted(records, key=lambda r: r.date)


def history_to_payload(history: Sequence[DailyReviewRecord]) -> list:
    return [record.to_json_dict() for record in history]


def parse_streak(data: Optional[Any]) -> StreakHistory:
    if data is None:
        return create_initial_streak_history()
    try:
        return StreakHistory.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Stored streak history is invalid, resetting: {e}")
        return create_initial_streak_history()


def card_from_api(data: Any) -> Card:
    """
    Build a Card from a remote API payload.

    Raises:
        MarshallingError: If the payload is not a valid card.
    """
    try:
        return Card.model_validate(data)
    except ValidationError as e:
        raise MarshallingError(
            f"Remote API returned an invalid card: {e}", original_exception=e
        ) from e


def pack_from_api(data: Any) -> Pack:
    try:
        return Pack.model_validate(data)
    except ValidationError as e:
        raise MarshallingError(
            f"Remote API returned an invalid pack: {e}", original_exception=e
        ) from e
