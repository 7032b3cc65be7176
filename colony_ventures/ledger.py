"""Per-player resource balances and global supply accounting."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from .errors import InsufficientResources, InvalidConfiguration
from .models import BPS_DENOMINATOR, ResourceKind
from .state import VentureState

logger = logging.getLogger(__name__)


class ResourceLedger:
    """Balance and supply rules shared by every ledger backend.

    Subclasses provide the four storage primitives; every public operation
    is expressed in terms of them so the in-memory double used by tests and
    the sqlite ledger behave identically.
    """

    def _read_balance(self, player_id: str, kind: ResourceKind) -> int:
        raise NotImplementedError

    def _write_balance(self, player_id: str, kind: ResourceKind, amount: int) -> None:
        raise NotImplementedError

    def _read_supply(self, kind: ResourceKind) -> Tuple[int, int]:
        raise NotImplementedError

    def _write_supply(self, kind: ResourceKind, amount: int) -> None:
        raise NotImplementedError

    def _write_cap(self, kind: ResourceKind, cap: int) -> None:
        raise NotImplementedError

    # Balances ------------------------------------------------------------
    def get_balance(self, player_id: str, kind: ResourceKind) -> int:
        return self._read_balance(player_id, ResourceKind.parse(kind))

    def debit(self, player_id: str, kind: ResourceKind, amount: int) -> None:
        kind = ResourceKind.parse(kind)
        if amount < 0:
            raise ValueError("Debit amount cannot be negative")
        if amount == 0:
            return
        available = self._read_balance(player_id, kind)
        if available < amount:
            raise InsufficientResources(kind.name.lower(), amount, available)
        self._write_balance(player_id, kind, available - amount)

    def credit(self, player_id: str, kind: ResourceKind, amount: int) -> None:
        kind = ResourceKind.parse(kind)
        if amount < 0:
            raise ValueError("Credit amount cannot be negative")
        if amount == 0:
            return
        self._write_balance(player_id, kind, self._read_balance(player_id, kind) + amount)

    # Supply --------------------------------------------------------------
    def global_supply(self, kind: ResourceKind) -> int:
        return self._read_supply(ResourceKind.parse(kind))[0]

    def supply_cap(self, kind: ResourceKind) -> int:
        """Return the cap for ``kind``; zero means unbounded."""

        return self._read_supply(ResourceKind.parse(kind))[1]

    def set_supply_cap(self, kind: ResourceKind, cap: int) -> None:
        if cap < 0:
            raise InvalidConfiguration("Supply cap cannot be negative")
        self._write_cap(ResourceKind.parse(kind), int(cap))

    def check_supply_cap(self, kind: ResourceKind, amount: int) -> bool:
        supply, cap = self._read_supply(ResourceKind.parse(kind))
        if cap <= 0:
            return True
        return supply + amount <= cap

    def increment_global_supply(self, kind: ResourceKind, amount: int) -> None:
        kind = ResourceKind.parse(kind)
        if amount <= 0:
            return
        supply, _cap = self._read_supply(kind)
        self._write_supply(kind, supply + amount)

    def decrement_global_supply(self, kind: ResourceKind, amount: int) -> None:
        kind = ResourceKind.parse(kind)
        if amount <= 0:
            return
        supply, _cap = self._read_supply(kind)
        if amount > supply:
            logger.warning(
                "Burning %s %s exceeds tracked supply %s; flooring at zero",
                amount,
                kind.name.lower(),
                supply,
            )
        self._write_supply(kind, max(0, supply - amount))

    # Minting and decay ---------------------------------------------------
    def mint(self, player_id: str, kind: ResourceKind, amount: int) -> None:
        """Create new resources for a player, respecting the supply cap."""

        kind = ResourceKind.parse(kind)
        if amount <= 0:
            return
        if not self.check_supply_cap(kind, amount):
            raise InvalidConfiguration(
                f"Minting {amount} {kind.name.lower()} would exceed the supply cap"
            )
        self.increment_global_supply(kind, amount)
        self.credit(player_id, kind, amount)

    def apply_decay(self, player_id: str, kind: ResourceKind, decay_bps: int) -> int:
        """Burn ``decay_bps`` of a player's balance and return the amount burned."""

        kind = ResourceKind.parse(kind)
        if not 0 <= decay_bps <= BPS_DENOMINATOR:
            raise InvalidConfiguration("Decay must be between 0 and 10000 bps")
        balance = self._read_balance(player_id, kind)
        decayed = balance * decay_bps // BPS_DENOMINATOR
        if decayed:
            self.debit(player_id, kind, decayed)
            self.decrement_global_supply(kind, decayed)
        return decayed


class InMemoryResourceLedger(ResourceLedger):
    """Dictionary-backed ledger for tests and simulations."""

    def __init__(self, supply_caps: Optional[Dict[ResourceKind, int]] = None) -> None:
        self._balances: Dict[Tuple[str, ResourceKind], int] = {}
        self._supply: Dict[ResourceKind, int] = {}
        self._caps: Dict[ResourceKind, int] = {
            ResourceKind.parse(kind): int(cap) for kind, cap in (supply_caps or {}).items()
        }

    def _read_balance(self, player_id: str, kind: ResourceKind) -> int:
        return self._balances.get((player_id, kind), 0)

    def _write_balance(self, player_id: str, kind: ResourceKind, amount: int) -> None:
        self._balances[(player_id, kind)] = amount

    def _read_supply(self, kind: ResourceKind) -> Tuple[int, int]:
        return self._supply.get(kind, 0), self._caps.get(kind, 0)

    def _write_supply(self, kind: ResourceKind, amount: int) -> None:
        self._supply[kind] = amount

    def _write_cap(self, kind: ResourceKind, cap: int) -> None:
        self._caps[kind] = cap


class SqliteResourceLedger(ResourceLedger):
    """Ledger persisted in the venture state database."""

    def __init__(self, state: VentureState) -> None:
        self._state = state

    def _read_balance(self, player_id: str, kind: ResourceKind) -> int:
        return self._state.get_balance(player_id, kind)

    def _write_balance(self, player_id: str, kind: ResourceKind, amount: int) -> None:
        self._state.set_balance(player_id, kind, amount)

    def _read_supply(self, kind: ResourceKind) -> Tuple[int, int]:
        return self._state.get_supply(kind)

    def _write_supply(self, kind: ResourceKind, amount: int) -> None:
        self._state.set_supply(kind, amount)

    def _write_cap(self, kind: ResourceKind, cap: int) -> None:
        self._state.set_supply_cap(kind, cap)


__all__ = ["ResourceLedger", "InMemoryResourceLedger", "SqliteResourceLedger"]
