"""Bonus providers consulted when ventures start and resolve."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional


@dataclass(frozen=True)
class ColonyEffects:
    tech_bonus_present: bool = False
    tech_level: int = 0


@dataclass(frozen=True)
class CardBonuses:
    success_boost_bps: int = 0
    reward_boost_bps: int = 0
    token_id: Optional[str] = None


NO_CARD_BONUS = CardBonuses()


class ColonyRegistry:
    """In-process stand-in for the colony buildings passive-effects registry."""

    def __init__(self) -> None:
        self._tech_levels: Dict[str, int] = {}
        self._primary: Dict[str, str] = {}

    @classmethod
    def from_entries(cls, entries: Iterable[Dict[str, Any]]) -> "ColonyRegistry":
        """Build a registry from ``colonies`` settings entries."""

        registry = cls()
        for entry in entries:
            registry.register_colony(
                str(entry["colony_id"]),
                str(entry["owner"]),
                tech_level=int(entry.get("tech_level", 0)),
                primary=bool(entry.get("primary", True)),
            )
        return registry

    def register_colony(
        self,
        colony_id: str,
        owner: str,
        *,
        tech_level: int = 0,
        primary: bool = True,
    ) -> None:
        self._tech_levels[colony_id] = int(tech_level)
        if primary or owner not in self._primary:
            self._primary[owner] = colony_id

    def primary_colony(self, owner: str) -> Optional[str]:
        return self._primary.get(owner)

    def get_colony_effects(self, colony_id: Optional[str]) -> ColonyEffects:
        if not colony_id:
            return ColonyEffects()
        level = self._tech_levels.get(colony_id, 0)
        return ColonyEffects(tech_bonus_present=level > 0, tech_level=level)


__all__ = ["CardBonuses", "ColonyEffects", "ColonyRegistry", "NO_CARD_BONUS"]
