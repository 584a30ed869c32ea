"""
Flashcard store backed by the remote flashcard API.

Cards and packs are mirrored in memory; the server is the source of truth.
Every mutation is sent to the API first and only the confirmed response is
applied to the mirror, so a failed call leaves the mirror unchanged. The
review ledger and streak stay in local storage.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

from ..exceptions import RemoteApiError
from ..models import Card, Pack, SourceType, ensure_utc
from ..remote.api_client import FlashcardApiClient
from ..review_processor import ReviewProcessor
from ..storage.safe_storage import SafeStorage
from .base import BaseFlashcardStore, with_updates

logger = logging.getLogger(__name__)


class RemoteFlashcardStore(BaseFlashcardStore):
    """
    Async store mirroring the server's cards and packs.

    Call `load()` once the session id is known. Mutating coroutines are
    serialized by an asyncio.Lock; reads never suspend.
    """

    def __init__(
        self,
        client: FlashcardApiClient,
        storage: SafeStorage,
        review_processor: Optional[ReviewProcessor] = None,
    ):
        super().__init__(storage, review_processor)
        self.client = client
        self._lock = asyncio.Lock()
        # Latest fetch/mutation issued per resource; older fetches are stale.
        self._generations: Dict[str, int] = {"cards": 0, "packs": 0}
        self.is_ready = False
        self._load_ledger()

    # --- Fetching ---

    def _bump(self, resource: str) -> int:
        self._generations[resource] += 1
        return self._generations[resource]

    def _is_current(self, resource: str, generation: int) -> bool:
        if generation == self._generations[resource]:
            return True
        logger.debug(f"Discarding stale {resource} fetch (generation {generation}).")
        return False

    async def load(self) -> None:
        """
        Fetch cards and packs for the current session.

        Raises:
            RemoteApiError: If either fetch fails. The mirror keeps whatever
                it held before.
        """
        cards_generation = self._bump("cards")
        packs_generation = self._bump("packs")
        cards, packs = await asyncio.gather(
            self.client.list_cards(), self.client.list_packs()
        )
        # Nothing is applied unless both fetches succeeded.
        if self._is_current("cards", cards_generation):
            self._cards = cards
        if self._is_current("packs", packs_generation):
            self._packs = packs
        self._recalculate_stats()
        self.is_ready = True
        logger.info(
            f"Fetched {len(self._cards)} cards and {len(self._packs)} packs "
            f"for session {self.client.session_id}."
        )

    async def refetch(self) -> None:
        await self.load()

    async def aclose(self) -> None:
        await self.client.aclose()

    # --- Cards ---

    async def add_card(
        self,
        source_type: SourceType,
        source_id: str,
        pack_ids: Optional[Sequence[str]] = None,
    ) -> Optional[Card]:
        """Returns None for a card that is already saved, without calling the API."""
        async with self._lock:
            if self.is_card_saved(source_type, source_id):
                logger.debug(f"Card for {source_type}:{source_id} already saved.")
                return None
            card = await self.client.add_card(
                source_type, source_id, list(pack_ids) if pack_ids else None
            )
            self._cards.append(card)
            self._clear_undo()
            self._bump("cards")
            self._recalculate_stats()
            logger.info(f"Added card {card.id} for {card.source_type.value}:{source_id}")
            return card

    async def remove_card(self, card_id: str) -> None:
        async with self._lock:
            await self.client.remove_card(card_id)
            self._cards = [c for c in self._cards if c.id != card_id]
            self._clear_undo()
            self._bump("cards")
            self._recalculate_stats()
            logger.info(f"Removed card {card_id}")

    # --- Reviews ---

    async def record_review(
        self, card_id: str, quality: int, now: Optional[datetime] = None
    ) -> Optional[Card]:
        """
        Submit a review and apply the server's scheduling to the mirror.

        The server computes the new scheduling fields; nothing is changed
        locally if the call fails.

        Raises:
            ValueError: If quality is outside 0-5.
            RemoteApiError: If the review could not be submitted.
        """
        self.review_processor.validate_quality(quality)
        async with self._lock:
            card = self.get_card_by_id(card_id)
            if card is None:
                logger.warning(f"Review for unknown card {card_id} ignored.")
                return None

            previous_undo = self._undo
            self._stash_undo(card)
            try:
                result = await self.client.review_card(card_id, quality)
            except RemoteApiError:
                self._undo = previous_undo
                raise

            ts = ensure_utc(now) or datetime.now(timezone.utc)
            current = self.get_card_by_id(card_id) or card
            updated = with_updates(
                current,
                ease_factor=result.ease_factor,
                interval=result.interval,
                repetitions=result.repetitions,
                next_review_date=result.next_review_date,
                last_reviewed_at=ts,
            )
            self._replace_card(updated)
            self._bump("cards")
            self._record_review_in_ledger(card_id, quality, ts)
            self._recalculate_stats(now)
            return updated

    async def undo_last_review(self, card_id: str) -> bool:
        """
        Revert the mirror to before the last review of `card_id`.

        The server is not told: its scheduling for the card keeps the review
        until the next review or refetch.
        """
        async with self._lock:
            if not self._restore_undo(card_id):
                return False
            logger.warning(
                f"Undo of card {card_id} applied locally only; the server still "
                "holds the reviewed state."
            )
            return True

    # --- Packs ---

    async def create_pack(
        self,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Pack:
        """
        Raises:
            PackOperationError: If the name, description or color is invalid.
            RemoteApiError: If the server rejects the pack.
        """
        async with self._lock:
            color = color or self._next_pack_color()
            self._validate_pack_fields(name, description, color)
            pack = await self.client.create_pack(name, description, color)
            self._packs.append(pack)
            self._clear_undo()
            self._bump("packs")
            logger.info(f"Created pack '{name}' ({pack.id})")
            return pack

    async def delete_pack(self, pack_id: str) -> None:
        async with self._lock:
            if self._is_protected_pack(pack_id):
                return
            await self.client.delete_pack(pack_id)
            self._strip_pack_from_cards(pack_id)
            self._packs = [p for p in self._packs if p.id != pack_id]
            self._clear_undo()
            self._bump("packs")
            self._bump("cards")
            logger.info(f"Deleted pack {pack_id}")

    async def rename_pack(self, pack_id: str, name: str) -> None:
        async with self._lock:
            if self._is_protected_pack(pack_id):
                return
            pack = self.get_pack_by_id(pack_id)
            self._validate_pack_fields(name, pack.description, pack.color)
            updated = await self.client.update_pack(pack_id, name=name)
            self._replace_pack(updated)
            self._clear_undo()
            self._bump("packs")

    def reorder_packs(self, pack_ids: Sequence[str]) -> None:
        """Reorder the mirror only; pack order is not stored on the server."""
        self._apply_pack_order(pack_ids)
        self._clear_undo()
        logger.debug("Pack order changed locally; not sent to the server.")

    async def move_card_to_pack(self, card_id: str, pack_id: str) -> None:
        async with self._lock:
            card = self.get_card_by_id(card_id)
            if card is None or pack_id in card.pack_ids:
                return
            if self.get_pack_by_id(pack_id) is None:
                logger.debug(f"Pack {pack_id} not found; card not moved.")
                return
            updated = await self.client.update_card_packs(
                card_id, [*card.pack_ids, pack_id]
            )
            self._replace_card(updated)
            self._clear_undo()
            self._bump("cards")

    async def remove_card_from_pack(self, card_id: str, pack_id: str) -> None:
        async with self._lock:
            pack = self.get_pack_by_id(pack_id)
            if pack is not None and pack.is_default:
                logger.debug(f"Cards cannot leave system pack '{pack.name}'.")
                return
            card = self.get_card_by_id(card_id)
            if card is None or pack_id not in card.pack_ids:
                return
            updated = await self.client.update_card_packs(
                card_id, [i for i in card.pack_ids if i != pack_id]
            )
            self._replace_card(updated)
            self._clear_undo()
            self._bump("cards")

    # --- Reset ---

    async def reset_all(self) -> None:
        """
        Delete every card and user pack on the server, then refetch.

        Individual deletion failures are logged and skipped so the reset
        always runs to completion.
        """
        async with self._lock:
            for card in list(self._cards):
                try:
                    await self.client.remove_card(card.id)
                except RemoteApiError as e:
                    logger.warning(f"Reset: could not delete card {card.id}: {e}")
            for pack in list(self._packs):
                if pack.is_default:
                    continue
                try:
                    await self.client.delete_pack(pack.id)
                except RemoteApiError as e:
                    logger.warning(f"Reset: could not delete pack {pack.id}: {e}")
            self._clear_undo()
        await self.refetch()
        logger.info("Reset all cards and packs.")
