"""Collectible card attachment for venture slots."""
from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Optional

from .bonuses import NO_CARD_BONUS, CardBonuses
from .errors import (
    CardCollectionUnavailable,
    CardCooldownActive,
    CardLocked,
    CardSlotOccupied,
    CardSystemDisabled,
    IncompatibleCard,
    InvalidConfiguration,
    InvalidVentureType,
    NoCardAttached,
    NotCardOwner,
)
from .models import BPS_DENOMINATOR, CardCollection, VentureAttachedCard
from .state import VentureState

logger = logging.getLogger(__name__)

VENTURE_CARD_TYPE = "venture"

OwnershipProbe = Callable[[str, str], Optional[str]]


class StaticOwnershipProbe:
    """Ownership source backed by a collection -> token -> owner table."""

    def __init__(self, owners: Mapping[str, Mapping[str, str]]) -> None:
        self._owners = {
            str(collection_id): {str(token): str(owner) for token, owner in tokens.items()}
            for collection_id, tokens in owners.items()
        }

    def __call__(self, collection_id: str, token_id: str) -> Optional[str]:
        return self._owners.get(collection_id, {}).get(str(token_id))


class VentureCardRegistry:
    """Owns the per (player, venture type) card slots.

    A slot moves Empty -> Attached -> Empty. Attachments only change
    metadata; the boosts they expose are read by the engine when ventures
    start (success boost) and when they are claimed (reward boost).
    """

    def __init__(
        self,
        state: VentureState,
        *,
        clock: Callable[[], int],
        ownership_probe: Optional[OwnershipProbe] = None,
    ) -> None:
        self._state = state
        self._clock = clock
        self._ownership_probe = ownership_probe

    # Collections -----------------------------------------------------------
    def register_collection(self, collection: CardCollection) -> CardCollection:
        for value in (collection.success_boost_bps, collection.reward_boost_bps):
            if not 0 <= value <= BPS_DENOMINATOR:
                raise InvalidConfiguration("Card boosts must be between 0 and 10000 bps")
        self._state.save_card_collection(collection)
        logger.info("Registered card collection %s", collection.collection_id)
        return collection

    def set_collection_enabled(self, collection_id: str, enabled: bool) -> CardCollection:
        collection = self._state.get_card_collection(collection_id)
        if collection is None:
            raise CardCollectionUnavailable(collection_id)
        collection.enabled = enabled
        self._state.save_card_collection(collection)
        return collection

    # Slots -----------------------------------------------------------------
    def _verify_owner(self, player_id: str, collection_id: str, token_id: str) -> bool:
        if self._ownership_probe is None:
            return False
        try:
            owner = self._ownership_probe(collection_id, token_id)
        except Exception:
            # Probe failures leave ownership unverified.
            logger.debug(
                "Ownership probe failed for %s#%s", collection_id, token_id, exc_info=True
            )
            return False
        return owner is not None and owner == player_id

    def _ensure_valid_type(self, venture_type: int) -> None:
        policy = self._state.get_policy()
        if not 0 <= venture_type < policy.max_venture_types:
            raise InvalidVentureType(venture_type)
        if self._state.get_type_config(venture_type) is None:
            raise InvalidVentureType(venture_type)

    def attach_card(
        self,
        player_id: str,
        venture_type: int,
        collection_id: str,
        token_id: str,
    ) -> VentureAttachedCard:
        policy = self._state.get_policy()
        if not policy.card_system_enabled:
            raise CardSystemDisabled()
        self._ensure_valid_type(venture_type)
        collection = self._state.get_card_collection(collection_id)
        if collection is None or not collection.enabled:
            raise CardCollectionUnavailable(collection_id)
        if not self._verify_owner(player_id, collection_id, token_id):
            raise NotCardOwner(collection_id, token_id, player_id)
        if collection.card_type != VENTURE_CARD_TYPE:
            raise IncompatibleCard(collection_id, collection.card_type)
        if self._state.get_card_slot(player_id, venture_type) is not None:
            raise CardSlotOccupied(venture_type)
        now = self._clock()
        last_attach = self._state.last_card_attach(player_id)
        if last_attach and now < last_attach + policy.card_attach_cooldown_seconds:
            raise CardCooldownActive(last_attach + policy.card_attach_cooldown_seconds - now)

        card = VentureAttachedCard(
            collection_id=collection_id,
            token_id=str(token_id),
            success_boost_bps=collection.success_boost_bps,
            reward_boost_bps=collection.reward_boost_bps,
            attached_at=now,
            cooldown_until=now + policy.card_detach_cooldown_seconds,
        )
        self._state.save_card_slot(player_id, venture_type, card)
        self._state.record_card_attach(player_id, now)
        logger.info(
            "%s attached %s#%s to venture type %s",
            player_id,
            collection_id,
            token_id,
            venture_type,
        )
        return card

    def detach_card(self, player_id: str, venture_type: int) -> VentureAttachedCard:
        card = self._state.get_card_slot(player_id, venture_type)
        if card is None:
            raise NoCardAttached(venture_type)
        if card.locked:
            raise CardLocked(venture_type)
        now = self._clock()
        if now < card.cooldown_until:
            raise CardCooldownActive(card.cooldown_until - now)
        self._state.clear_card_slot(player_id, venture_type)
        logger.info(
            "%s detached %s#%s from venture type %s",
            player_id,
            card.collection_id,
            card.token_id,
            venture_type,
        )
        return card

    def get_attached(self, player_id: str, venture_type: int) -> Optional[VentureAttachedCard]:
        return self._state.get_card_slot(player_id, venture_type)

    def list_attached(self, player_id: str) -> Dict[int, VentureAttachedCard]:
        return self._state.list_card_slots(player_id)

    def get_card_bonuses(self, player_id: str, venture_type: int) -> CardBonuses:
        card = self._state.get_card_slot(player_id, venture_type)
        if card is None:
            return NO_CARD_BONUS
        return CardBonuses(
            success_boost_bps=card.success_boost_bps,
            reward_boost_bps=card.reward_boost_bps,
            token_id=card.token_id,
        )

    def _set_lock(self, player_id: str, venture_type: int, locked: bool) -> bool:
        card = self._state.get_card_slot(player_id, venture_type)
        if card is None:
            return False
        card.locked = locked
        self._state.save_card_slot(player_id, venture_type, card)
        return True

    def lock_card(self, player_id: str, venture_type: int) -> bool:
        return self._set_lock(player_id, venture_type, True)

    def unlock_card(self, player_id: str, venture_type: int) -> bool:
        return self._set_lock(player_id, venture_type, False)


__all__ = ["OwnershipProbe", "StaticOwnershipProbe", "VENTURE_CARD_TYPE", "VentureCardRegistry"]
