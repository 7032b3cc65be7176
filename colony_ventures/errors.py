"""Exceptions raised by the venture engine and its collaborators."""
from __future__ import annotations

from typing import Optional


class VentureError(ValueError):
    """Base class for rejected venture commands."""


# Configuration -------------------------------------------------------------
class VentureSystemDisabled(VentureError):
    def __init__(self) -> None:
        super().__init__("The venture system is currently disabled")


class InvalidVentureType(VentureError):
    def __init__(self, venture_type: int) -> None:
        self.venture_type = venture_type
        super().__init__(f"Invalid venture type: {venture_type}")


class VentureTypeDisabled(VentureError):
    def __init__(self, venture_type: int) -> None:
        self.venture_type = venture_type
        super().__init__(f"Venture type {venture_type} is disabled")


class CardSystemDisabled(VentureError):
    def __init__(self) -> None:
        super().__init__("Venture card attachments are disabled")


class InvalidConfiguration(VentureError):
    pass


# Validation ----------------------------------------------------------------
class StakeOutOfBounds(VentureError):
    def __init__(self, kind: str, amount: int, minimum: int, maximum: int) -> None:
        self.kind = kind
        self.amount = amount
        self.minimum = minimum
        self.maximum = maximum
        bound = f"[{minimum}, {maximum}]" if maximum else f"[{minimum}, unbounded]"
        super().__init__(f"{kind} stake {amount} outside allowed range {bound}")


class NoStakeProvided(VentureError):
    def __init__(self) -> None:
        super().__init__("At least one resource must be staked")


# State ---------------------------------------------------------------------
class VentureNotFound(VentureError):
    def __init__(self, venture_id: str) -> None:
        self.venture_id = venture_id
        super().__init__(f"Venture {venture_id} not found")


class NotVentureOwner(VentureError):
    def __init__(self, venture_id: str, player_id: str) -> None:
        self.venture_id = venture_id
        self.player_id = player_id
        super().__init__(f"{player_id} does not own venture {venture_id}")


class VentureAlreadyClaimed(VentureError):
    def __init__(self, venture_id: str, phase: Optional[str] = None) -> None:
        self.venture_id = venture_id
        self.phase = phase
        detail = f" ({phase})" if phase else ""
        super().__init__(f"Venture {venture_id} is already resolved{detail}")


class VentureNotReady(VentureError):
    def __init__(self, venture_id: str, time_remaining: int) -> None:
        self.venture_id = venture_id
        self.time_remaining = time_remaining
        super().__init__(
            f"Venture {venture_id} matures in {time_remaining} seconds"
        )


class TooManyActiveVentures(VentureError):
    def __init__(self, active: int, maximum: int) -> None:
        self.active = active
        self.maximum = maximum
        super().__init__(f"Active venture limit reached ({active}/{maximum})")


class VentureCooldownActive(VentureError):
    def __init__(self, venture_type: int, time_remaining: int) -> None:
        self.venture_type = venture_type
        self.time_remaining = time_remaining
        super().__init__(
            f"Venture type {venture_type} is cooling down for {time_remaining} more seconds"
        )


class CardCollectionUnavailable(VentureError):
    def __init__(self, collection_id: str) -> None:
        self.collection_id = collection_id
        super().__init__(f"Card collection {collection_id} is not registered or disabled")


class NotCardOwner(VentureError):
    def __init__(self, collection_id: str, token_id: str, player_id: str) -> None:
        self.collection_id = collection_id
        self.token_id = token_id
        self.player_id = player_id
        super().__init__(f"{player_id} could not be verified as owner of {collection_id}#{token_id}")


class IncompatibleCard(VentureError):
    def __init__(self, collection_id: str, card_type: str) -> None:
        self.collection_id = collection_id
        self.card_type = card_type
        super().__init__(f"Cards of type '{card_type}' cannot be attached to ventures")


class CardSlotOccupied(VentureError):
    def __init__(self, venture_type: int) -> None:
        self.venture_type = venture_type
        super().__init__(f"A card is already attached for venture type {venture_type}")


class NoCardAttached(VentureError):
    def __init__(self, venture_type: int) -> None:
        self.venture_type = venture_type
        super().__init__(f"No card attached for venture type {venture_type}")


class CardLocked(VentureError):
    def __init__(self, venture_type: int) -> None:
        self.venture_type = venture_type
        super().__init__(
            f"The card for venture type {venture_type} is in use by an active venture"
        )


class CardCooldownActive(VentureError):
    def __init__(self, time_remaining: int) -> None:
        self.time_remaining = time_remaining
        super().__init__(f"Card cooldown active for {time_remaining} more seconds")


# Resources -----------------------------------------------------------------
class InsufficientResources(VentureError):
    def __init__(self, kind: str, required: int, available: int) -> None:
        self.kind = kind
        self.required = required
        self.available = available
        super().__init__(f"Not enough {kind} (have {available}, need {required})")


class ReentrantCallError(RuntimeError):
    """Raised when a collaborator callback re-enters the engine mid-operation."""


__all__ = [
    "VentureError",
    "VentureSystemDisabled",
    "InvalidVentureType",
    "VentureTypeDisabled",
    "CardSystemDisabled",
    "InvalidConfiguration",
    "StakeOutOfBounds",
    "NoStakeProvided",
    "VentureNotFound",
    "NotVentureOwner",
    "VentureAlreadyClaimed",
    "VentureNotReady",
    "TooManyActiveVentures",
    "VentureCooldownActive",
    "CardCollectionUnavailable",
    "NotCardOwner",
    "IncompatibleCard",
    "CardSlotOccupied",
    "NoCardAttached",
    "CardLocked",
    "CardCooldownActive",
    "InsufficientResources",
    "ReentrantCallError",
]
