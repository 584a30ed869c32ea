import logging
import threading
from datetime import datetime
from typing import List, Optional, Sequence, Type

from pydantic import ValidationError

from ..constants import SCHEMA_VERSION, STORAGE_KEYS
from ..exceptions import CardOperationError, MigrationError
from ..models import (
    Card,
    Pack,
    SourceType,
    create_card,
    create_initial_stats,
    create_pack,
)
from ..review_processor import ReviewProcessor
from ..storage.marshalling import (
    ModelT,
    cards_to_payload,
    load_collection,
    packs_to_payload,
)
from ..storage.safe_storage import SafeStorage
from .base import BaseFlashcardStore, build_default_packs, with_updates

logger = logging.getLogger(__name__)


class LocalFlashcardStore(BaseFlashcardStore):
    """
    Flashcard store persisted entirely in a local key-value store.

    Every mutation is written back before the call returns. Mutations hold a
    re-entrant lock, so one store may be shared between threads.
    """

    def __init__(
        self,
        storage: SafeStorage,
        review_processor: Optional[ReviewProcessor] = None,
    ):
        super().__init__(storage, review_processor)
        self._lock = threading.RLock()
        self.load()

    # --- Loading ---

    def _stored_schema_version(self) -> int:
        raw = self._storage.get_item(STORAGE_KEYS["schema_version"])
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Invalid stored schema version {raw!r}; assuming 0.")
            return 0

    def _load_collection(
        self, name: str, model: Type[ModelT], stored_version: int
    ) -> List[ModelT]:
        key = STORAGE_KEYS[name]
        payload = self._storage.get_json(key)
        if payload is None:
            return []
        try:
            items, dropped = load_collection(payload, name, model, stored_version)
        except MigrationError as e:
            self._storage.report_warning("corrupted_data", str(e), key)
            return []
        if dropped > 0:
            self._storage.report_warning(
                "corrupted_data", f"Dropped {dropped} invalid item(s) from {name}", key
            )
        return items

    def load(self) -> None:
        """
        (Re)load the snapshot from storage, migrating older schema versions
        and re-creating missing system packs.
        """
        with self._lock:
            stored_version = self._stored_schema_version()
            self._cards = self._load_collection("cards", Card, stored_version)
            packs = self._load_collection("packs", Pack, stored_version)
            self._packs, added_defaults = build_default_packs(packs)
            self._load_ledger()

            if stored_version != SCHEMA_VERSION:
                self._save_cards()
            if added_defaults or stored_version != SCHEMA_VERSION:
                self._save_packs()
            self._storage.set_item(
                STORAGE_KEYS["schema_version"], str(SCHEMA_VERSION)
            )
            self._recalculate_stats()
            self._save_stats()
            logger.info(
                f"Loaded {len(self._cards)} cards and {len(self._packs)} packs "
                f"(stored schema v{stored_version})."
            )

    # --- Persistence ---

    def _save_cards(self) -> None:
        self._storage.set_json(STORAGE_KEYS["cards"], cards_to_payload(self._cards))

    def _save_packs(self) -> None:
        self._storage.set_json(STORAGE_KEYS["packs"], packs_to_payload(self._packs))

    def _save_stats(self) -> None:
        self._storage.set_json(STORAGE_KEYS["stats"], self._stats.to_json_dict())

    def _cards_changed(self) -> None:
        self._save_cards()
        self._recalculate_stats()
        self._save_stats()

    # --- Cards ---

    def add_card(
        self,
        source_type: SourceType,
        source_id: str,
        pack_ids: Optional[Sequence[str]] = None,
    ) -> Optional[Card]:
        """
        Save a new card for the given content.

        Returns None, without changing anything, if a card for the same
        source already exists.

        Raises:
            CardOperationError: If the source id is empty.
        """
        with self._lock:
            if self.is_card_saved(source_type, source_id):
                logger.debug(f"Card for {source_type}:{source_id} already saved.")
                return None
            try:
                card = create_card(
                    SourceType(source_type),
                    source_id,
                    pack_ids=self._pack_ids_for_new_card(pack_ids),
                )
            except ValidationError as e:
                raise CardOperationError(
                    f"Invalid card for {source_type}:{source_id}: {e}",
                    original_exception=e,
                ) from e
            self._cards.append(card)
            self._clear_undo()
            self._cards_changed()
            logger.info(f"Added card {card.id} for {card.source_type.value}:{source_id}")
            return card

    def remove_card(self, card_id: str) -> None:
        with self._lock:
            remaining = [c for c in self._cards if c.id != card_id]
            if len(remaining) == len(self._cards):
                logger.debug(f"Card {card_id} not found; nothing to remove.")
                return
            self._cards = remaining
            self._clear_undo()
            self._cards_changed()
            logger.info(f"Removed card {card_id}")

    # --- Reviews ---

    def record_review(
        self, card_id: str, quality: int, now: Optional[datetime] = None
    ) -> Optional[Card]:
        """
        Schedule `card_id` after a review rated `quality` (0-5).

        Updates the card, the ledger, the streak and the stats, and keeps the
        previous card state for a single undo. Returns the updated card, or
        None if the card does not exist.

        Raises:
            ValueError: If quality is outside 0-5.
        """
        self.review_processor.validate_quality(quality)
        with self._lock:
            card = self.get_card_by_id(card_id)
            if card is None:
                logger.warning(f"Review for unknown card {card_id} ignored.")
                return None

            self._stash_undo(card)
            updated = self.review_processor.process_review(card, quality, now)
            self._replace_card(updated)
            self._save_cards()
            self._record_review_in_ledger(card_id, quality, now)
            self._recalculate_stats(now)
            self._save_stats()
            return updated

    def undo_last_review(self, card_id: str) -> bool:
        """
        Revert the most recent review if it was for `card_id`.

        The card and stats are restored and persisted. The ledger and streak
        keep the review.
        """
        with self._lock:
            if not self._restore_undo(card_id):
                return False
            self._save_cards()
            self._save_stats()
            logger.info(f"Undid last review of card {card_id}")
            return True

    # --- Packs ---

    def create_pack(
        self,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Pack:
        """
        Raises:
            PackOperationError: If the name, description or color is invalid.
        """
        with self._lock:
            color = color or self._next_pack_color()
            self._validate_pack_fields(name, description, color)
            pack = create_pack(name, color=color, description=description)
            self._packs.append(pack)
            self._clear_undo()
            self._save_packs()
            logger.info(f"Created pack '{name}' ({pack.id})")
            return pack

    def delete_pack(self, pack_id: str) -> None:
        """Delete a user pack and strip it from every card. System packs are kept."""
        with self._lock:
            if self._is_protected_pack(pack_id):
                return
            self._strip_pack_from_cards(pack_id)
            self._packs = [p for p in self._packs if p.id != pack_id]
            self._clear_undo()
            self._save_cards()
            self._save_packs()
            logger.info(f"Deleted pack {pack_id}")

    def rename_pack(self, pack_id: str, name: str) -> None:
        with self._lock:
            if self._is_protected_pack(pack_id):
                return
            pack = self.get_pack_by_id(pack_id)
            self._validate_pack_fields(name, pack.description, pack.color)
            self._replace_pack(with_updates(pack, name=name))
            self._clear_undo()
            self._save_packs()

    def reorder_packs(self, pack_ids: Sequence[str]) -> None:
        with self._lock:
            self._apply_pack_order(pack_ids)
            self._clear_undo()
            self._save_packs()

    def move_card_to_pack(self, card_id: str, pack_id: str) -> None:
        with self._lock:
            card = self.get_card_by_id(card_id)
            if card is None or pack_id in card.pack_ids:
                return
            if self.get_pack_by_id(pack_id) is None:
                logger.debug(f"Pack {pack_id} not found; card not moved.")
                return
            self._replace_card(with_updates(card, pack_ids=[*card.pack_ids, pack_id]))
            self._clear_undo()
            self._save_cards()

    def remove_card_from_pack(self, card_id: str, pack_id: str) -> None:
        with self._lock:
            pack = self.get_pack_by_id(pack_id)
            if pack is not None and pack.is_default:
                logger.debug(f"Cards cannot leave system pack '{pack.name}'.")
                return
            card = self.get_card_by_id(card_id)
            if card is None or pack_id not in card.pack_ids:
                return
            self._replace_card(
                with_updates(card, pack_ids=[i for i in card.pack_ids if i != pack_id])
            )
            self._clear_undo()
            self._save_cards()

    # --- Ledger ---

    def add_study_time(self, minutes: float) -> None:
        with self._lock:
            super().add_study_time(minutes)

    # --- Reset ---

    def reset_all(self) -> None:
        """Delete every card and user pack and re-create the system packs.

        The review ledger and streak are kept.
        """
        with self._lock:
            self._cards = []
            self._packs, _ = build_default_packs([])
            self._clear_undo()
            self._stats = create_initial_stats()
            self._save_cards()
            self._save_packs()
            self._recalculate_stats()
            self._save_stats()
            logger.info("Reset all cards and packs.")
