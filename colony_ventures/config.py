"""Configuration loading utilities for Colony Ventures."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .models import (
    CardCollection,
    ResourceKind,
    VenturePolicy,
    VentureTypeConfig,
)


DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"
DEFAULT_STATE_DB = Path(os.environ.get("COLONY_VENTURES_DB", "colony_ventures.db"))


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    policy: VenturePolicy
    venture_types: Dict[int, VentureTypeConfig]
    supply_caps: Dict[ResourceKind, int]
    card_collections: List[CardCollection] = field(default_factory=list)
    card_owners: Dict[str, Dict[str, str]] = field(default_factory=dict)
    colonies: List[Dict[str, Any]] = field(default_factory=list)
    beacon_seed: int = 0x5EED

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        policy = VenturePolicy.from_dict(dict(data.get("policy", {})))
        fees = data.get("fees", {})
        if fees:
            policy = VenturePolicy.from_dict(
                {
                    **policy.to_dict(),
                    "entry_fee_bps": fees.get("entry_bps", policy.entry_fee_bps),
                    "claim_fee_bps": fees.get("claim_bps", policy.claim_fee_bps),
                    "fee_token": fees.get("token", policy.fee_token),
                    "fee_beneficiary": fees.get("beneficiary", policy.fee_beneficiary),
                    "burn_fees": fees.get("burn", policy.burn_fees),
                }
            )
        venture_types: Dict[int, VentureTypeConfig] = {}
        for key, entry in (data.get("venture_types") or {}).items():
            venture_types[int(key)] = VentureTypeConfig.from_dict(dict(entry or {}))
        supply_caps = {
            ResourceKind.parse(kind): int(cap)
            for kind, cap in (data.get("supply_caps") or {}).items()
        }
        collections = [
            CardCollection(
                collection_id=str(entry["collection_id"]),
                name=str(entry.get("name", entry["collection_id"])),
                card_type=str(entry.get("card_type", "venture")),
                enabled=bool(entry.get("enabled", True)),
                success_boost_bps=int(entry.get("success_boost_bps", 0)),
                reward_boost_bps=int(entry.get("reward_boost_bps", 0)),
            )
            for entry in data.get("card_collections", []) or []
        ]
        card_owners = {
            str(collection_id): {str(token): str(owner) for token, owner in (tokens or {}).items()}
            for collection_id, tokens in (data.get("card_owners") or {}).items()
        }
        colonies = [dict(entry) for entry in data.get("colonies", []) or []]
        return Settings(
            policy=policy,
            venture_types=venture_types,
            supply_caps=supply_caps,
            card_collections=collections,
            card_owners=card_owners,
            colonies=colonies,
            beacon_seed=int(data.get("beacon_seed", 0x5EED)),
        )


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        env_path = os.environ.get("COLONY_VENTURES_SETTINGS")
        self._path = path or (Path(env_path) if env_path else DEFAULT_SETTINGS_PATH)
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = ["DEFAULT_SETTINGS_PATH", "DEFAULT_STATE_DB", "Settings", "SettingsLoader", "get_settings"]
