"""
Shared behaviour of the local and remote flashcard stores.

Both stores keep an in-memory snapshot of cards and packs, answer reads from
it synchronously, and keep the review ledger and streak in local storage.
Only how mutations are confirmed and persisted differs.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, ValidationError

from ..constants import (
    ALL_CARDS_PACK_NAME,
    DEFAULT_PACKS,
    PACK_COLORS,
    RECENTLY_ADDED_PACK_NAME,
    STORAGE_KEYS,
)
from .. import history as ledger
from ..exceptions import PackOperationError
from ..models import (
    Card,
    DailyReviewRecord,
    FlashcardStats,
    Pack,
    SourceType,
    StreakHistory,
    create_initial_stats,
    create_initial_streak_history,
    create_pack,
    ensure_utc,
)
from ..review_processor import ReviewProcessor
from ..selection import get_cards_by_pack, get_due_cards
from ..stats import calculate_stats
from ..storage.marshalling import history_to_payload, parse_history, parse_streak
from ..storage.safe_storage import SafeStorage, StorageWarning

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class UndoState:
    """State captured before the most recent review."""

    card_id: str
    previous_card: Card
    previous_stats: FlashcardStats


def with_updates(model: ModelT, **changes: Any) -> ModelT:
    """Validated copy of `model` with `changes` applied."""
    return type(model).model_validate({**model.model_dump(), **changes})


def build_default_packs(existing: Sequence[Pack]) -> Tuple[List[Pack], bool]:
    """
    Ensure both system packs exist.

    "All Cards" goes first and "Recently Added" second; other packs keep
    their order. Returns the pack list and whether anything was added.
    """
    packs = list(existing)
    names = {p.name for p in packs if p.is_default}
    changed = False
    for position, default in enumerate(DEFAULT_PACKS):
        if default["name"] not in names:
            packs.insert(
                min(position, len(packs)),
                create_pack(default["name"], color=default["color"], is_default=True),
            )
            changed = True
    return packs, changed


class BaseFlashcardStore:
    """
    In-memory snapshot plus the operations both backends share.

    Subclasses implement the mutating operations; everything here is either
    a pure read or touches only the local ledger.
    """

    def __init__(
        self,
        storage: SafeStorage,
        review_processor: Optional[ReviewProcessor] = None,
    ):
        self._storage = storage
        self.review_processor = review_processor or ReviewProcessor()
        self._cards: List[Card] = []
        self._packs: List[Pack] = []
        self._stats: FlashcardStats = create_initial_stats()
        self._history: List[DailyReviewRecord] = []
        self._streak: StreakHistory = create_initial_streak_history()
        self._undo: Optional[UndoState] = None

    # --- Snapshot ---

    @property
    def cards(self) -> List[Card]:
        return list(self._cards)

    @property
    def packs(self) -> List[Pack]:
        return list(self._packs)

    @property
    def stats(self) -> FlashcardStats:
        return self._stats

    @property
    def review_history(self) -> List[DailyReviewRecord]:
        return list(self._history)

    @property
    def streak_history(self) -> StreakHistory:
        return self._streak

    @property
    def storage_warnings(self) -> List[StorageWarning]:
        return self._storage.warnings

    # --- Reads ---

    def get_card_by_source(
        self, source_type: SourceType, source_id: str
    ) -> Optional[Card]:
        source_type = SourceType(source_type)
        for card in self._cards:
            if card.source_type == source_type and card.source_id == source_id:
                return card
        return None

    def get_card_by_id(self, card_id: str) -> Optional[Card]:
        for card in self._cards:
            if card.id == card_id:
                return card
        return None

    def get_pack_by_id(self, pack_id: str) -> Optional[Pack]:
        for pack in self._packs:
            if pack.id == pack_id:
                return pack
        return None

    def get_due_cards(
        self, pack_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> List[Card]:
        return get_due_cards(self._cards, pack_id=pack_id, now=now)

    def get_cards_by_pack(self, pack_id: str) -> List[Card]:
        return get_cards_by_pack(self._cards, pack_id)

    def is_card_saved(self, source_type: SourceType, source_id: str) -> bool:
        return self.get_card_by_source(source_type, source_id) is not None

    def _find_default_pack(self, name: str) -> Optional[Pack]:
        for pack in self._packs:
            if pack.name == name and pack.is_default:
                return pack
        return None

    def get_default_pack(self) -> Optional[Pack]:
        """The "All Cards" system pack."""
        return self._find_default_pack(ALL_CARDS_PACK_NAME)

    # --- Helpers for subclasses ---

    def _pack_ids_for_new_card(
        self, pack_ids: Optional[Sequence[str]] = None
    ) -> List[str]:
        """Requested packs followed by both system packs."""
        result = list(pack_ids or [])
        for name in (ALL_CARDS_PACK_NAME, RECENTLY_ADDED_PACK_NAME):
            pack = self._find_default_pack(name)
            if pack and pack.id not in result:
                result.append(pack.id)
        return result

    def _next_pack_color(self) -> str:
        return PACK_COLORS[len(self._packs) % len(PACK_COLORS)]

    def _is_protected_pack(self, pack_id: str) -> bool:
        """True for unknown or system packs, which callers leave untouched."""
        pack = self.get_pack_by_id(pack_id)
        if pack is None:
            logger.debug(f"Pack {pack_id} not found; ignoring.")
            return True
        if pack.is_default:
            logger.debug(f"Pack '{pack.name}' is a system pack; ignoring.")
            return True
        return False

    def _validate_pack_fields(
        self, name: str, description: Optional[str], color: str
    ) -> None:
        try:
            Pack(name=name, description=description, color=color)
        except ValidationError as e:
            raise PackOperationError(
                f"Invalid pack '{name}': {e}", original_exception=e
            ) from e

    def _replace_card(self, updated: Card) -> None:
        self._cards = [updated if c.id == updated.id else c for c in self._cards]

    def _replace_pack(self, updated: Pack) -> None:
        self._packs = [updated if p.id == updated.id else p for p in self._packs]

    def _strip_pack_from_cards(self, pack_id: str) -> None:
        self._cards = [
            with_updates(c, pack_ids=[i for i in c.pack_ids if i != pack_id])
            if pack_id in c.pack_ids
            else c
            for c in self._cards
        ]

    def _recalculate_stats(self, now: Optional[datetime] = None) -> None:
        self._stats = calculate_stats(self._cards, self._streak, now)

    def _clear_undo(self) -> None:
        """Any mutation other than a review ends the undo window."""
        self._undo = None

    def _stash_undo(self, card: Card) -> None:
        self._undo = UndoState(
            card_id=card.id, previous_card=card, previous_stats=self._stats
        )

    def _restore_undo(self, card_id: str) -> bool:
        """Revert the snapshot to before the last review of `card_id`."""
        if self._undo is None or self._undo.card_id != card_id:
            return False
        undo, self._undo = self._undo, None
        current = self.get_card_by_id(card_id)
        if current is None:
            logger.debug(f"Card {card_id} was removed; nothing to undo.")
            return False
        # Only the scheduling fields; pack membership stays as it is now.
        previous = undo.previous_card
        self._replace_card(
            with_updates(
                current,
                ease_factor=previous.ease_factor,
                interval=previous.interval,
                repetitions=previous.repetitions,
                next_review_date=previous.next_review_date,
                last_reviewed_at=previous.last_reviewed_at,
            )
        )
        self._stats = undo.previous_stats
        return True

    def _apply_pack_order(self, pack_ids: Sequence[str]) -> None:
        """Listed packs first in the given order, then the rest unchanged."""
        by_id: Dict[str, Pack] = {p.id: p for p in self._packs}
        reordered = [by_id.pop(pid) for pid in pack_ids if pid in by_id]
        self._packs = reordered + [p for p in self._packs if p.id in by_id]

    # --- Ledger (always local) ---

    def _load_ledger(self) -> None:
        history = parse_history(self._storage.get_json(STORAGE_KEYS["history"]))
        self._history = ledger.prune_old_history(history)
        self._streak = parse_streak(self._storage.get_json(STORAGE_KEYS["streak"]))

    def _save_ledger(self) -> None:
        self._history = ledger.prune_old_history(self._history)
        self._storage.set_json(
            STORAGE_KEYS["history"], history_to_payload(self._history)
        )
        self._storage.set_json(STORAGE_KEYS["streak"], self._streak.to_json_dict())

    def _record_review_in_ledger(
        self, card_id: str, quality: int, now: Optional[datetime] = None
    ) -> None:
        """Count the review on the local day of `now` (today if omitted)."""
        today = ledger.local_day_of(ensure_utc(now)) if now is not None else None
        self._history = ledger.record_review(
            self._history, card_id, quality, today=today
        )
        self._streak = ledger.update_streak_after_review(
            self._streak, self._history, today=today
        )
        self._save_ledger()

    def add_study_time(self, minutes: float) -> None:
        """Add study minutes to today's ledger record."""
        self._history = ledger.add_study_time(self._history, minutes)
        self._clear_undo()
        self._save_ledger()
