"""Core data models for Colony Ventures."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Dict, List, Optional

BPS_DENOMINATOR = 10_000
RESOURCE_COUNT = 4


class ResourceKind(IntEnum):
    FOOD = 0
    MATERIALS = 1
    ENERGY = 2
    RESEARCH = 3

    @classmethod
    def parse(cls, value: "ResourceKind | int | str") -> "ResourceKind":
        """Accept an enum member, its index, or its (case-insensitive) name."""

        if isinstance(value, ResourceKind):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"Unknown resource kind: {value}") from None


class VenturePhase(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not VenturePhase.IN_PROGRESS


class VentureOutcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    CRITICAL_SUCCESS = "critical_success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"
    CRITICAL_FAILURE = "critical_failure"

    @property
    def is_success_tier(self) -> bool:
        return self in (VentureOutcome.SUCCESS, VentureOutcome.CRITICAL_SUCCESS)


def empty_vector() -> List[int]:
    return [0] * RESOURCE_COUNT


def normalize_vector(values: Optional[List[int]]) -> List[int]:
    """Return a four-element integer vector, rejecting malformed input."""

    if values is None:
        return empty_vector()
    vector = [int(value) for value in values]
    if len(vector) != RESOURCE_COUNT:
        raise ValueError(
            f"Resource vectors need exactly {RESOURCE_COUNT} entries, got {len(vector)}"
        )
    if any(value < 0 for value in vector):
        raise ValueError("Resource amounts cannot be negative")
    return vector


@dataclass
class VentureTypeConfig:
    """Administrator-owned economic parameters for one venture type."""

    name: str = ""
    min_stake: List[int] = field(default_factory=empty_vector)
    max_stake: List[int] = field(default_factory=empty_vector)
    duration: int = 3600
    cooldown_seconds: int = 0
    enabled: bool = True
    success_rate_bps: int = 5000
    critical_success_bps: int = 500
    critical_failure_bps: int = 500
    reward_multiplier_bps: int = 2000
    partial_return_bps: int = 7500
    failure_loss_bps: int = 5000
    critical_multiplier_bps: int = 20000

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "min_stake": list(self.min_stake),
            "max_stake": list(self.max_stake),
            "duration": self.duration,
            "cooldown_seconds": self.cooldown_seconds,
            "enabled": self.enabled,
            "success_rate_bps": self.success_rate_bps,
            "critical_success_bps": self.critical_success_bps,
            "critical_failure_bps": self.critical_failure_bps,
            "reward_multiplier_bps": self.reward_multiplier_bps,
            "partial_return_bps": self.partial_return_bps,
            "failure_loss_bps": self.failure_loss_bps,
            "critical_multiplier_bps": self.critical_multiplier_bps,
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "VentureTypeConfig":
        return VentureTypeConfig(
            name=str(data.get("name", "")),
            min_stake=normalize_vector(data.get("min_stake")),  # type: ignore[arg-type]
            max_stake=normalize_vector(data.get("max_stake")),  # type: ignore[arg-type]
            duration=int(data.get("duration", 3600)),
            cooldown_seconds=int(data.get("cooldown_seconds", 0)),
            enabled=bool(data.get("enabled", True)),
            success_rate_bps=int(data.get("success_rate_bps", 5000)),
            critical_success_bps=int(data.get("critical_success_bps", 500)),
            critical_failure_bps=int(data.get("critical_failure_bps", 500)),
            reward_multiplier_bps=int(data.get("reward_multiplier_bps", 2000)),
            partial_return_bps=int(data.get("partial_return_bps", 7500)),
            failure_loss_bps=int(data.get("failure_loss_bps", 5000)),
            critical_multiplier_bps=int(data.get("critical_multiplier_bps", 20000)),
        )


@dataclass
class VenturePolicy:
    """Global venture policy shared by every venture type."""

    enabled: bool = True
    max_venture_types: int = 8
    max_active_ventures: int = 5
    claim_window_seconds: int = 0
    streak_bonus_bps: int = 100
    max_streak_bonus_count: int = 10
    colony_bonus_bps: int = 250
    max_success_rate_bps: int = 9500
    partial_success_share_bps: int = 5000
    entry_fee_bps: int = 0
    claim_fee_bps: int = 0
    fee_token: ResourceKind = ResourceKind.ENERGY
    fee_beneficiary: str = "treasury"
    burn_fees: bool = False
    card_system_enabled: bool = True
    card_attach_cooldown_seconds: int = 0
    card_detach_cooldown_seconds: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "enabled": self.enabled,
            "max_venture_types": self.max_venture_types,
            "max_active_ventures": self.max_active_ventures,
            "claim_window_seconds": self.claim_window_seconds,
            "streak_bonus_bps": self.streak_bonus_bps,
            "max_streak_bonus_count": self.max_streak_bonus_count,
            "colony_bonus_bps": self.colony_bonus_bps,
            "max_success_rate_bps": self.max_success_rate_bps,
            "partial_success_share_bps": self.partial_success_share_bps,
            "entry_fee_bps": self.entry_fee_bps,
            "claim_fee_bps": self.claim_fee_bps,
            "fee_token": self.fee_token.name.lower(),
            "fee_beneficiary": self.fee_beneficiary,
            "burn_fees": self.burn_fees,
            "card_system_enabled": self.card_system_enabled,
            "card_attach_cooldown_seconds": self.card_attach_cooldown_seconds,
            "card_detach_cooldown_seconds": self.card_detach_cooldown_seconds,
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "VenturePolicy":
        defaults = VenturePolicy()
        return VenturePolicy(
            enabled=bool(data.get("enabled", defaults.enabled)),
            max_venture_types=int(data.get("max_venture_types", defaults.max_venture_types)),
            max_active_ventures=int(data.get("max_active_ventures", defaults.max_active_ventures)),
            claim_window_seconds=int(data.get("claim_window_seconds", defaults.claim_window_seconds)),
            streak_bonus_bps=int(data.get("streak_bonus_bps", defaults.streak_bonus_bps)),
            max_streak_bonus_count=int(
                data.get("max_streak_bonus_count", defaults.max_streak_bonus_count)
            ),
            colony_bonus_bps=int(data.get("colony_bonus_bps", defaults.colony_bonus_bps)),
            max_success_rate_bps=int(
                data.get("max_success_rate_bps", defaults.max_success_rate_bps)
            ),
            partial_success_share_bps=int(
                data.get("partial_success_share_bps", defaults.partial_success_share_bps)
            ),
            entry_fee_bps=int(data.get("entry_fee_bps", defaults.entry_fee_bps)),
            claim_fee_bps=int(data.get("claim_fee_bps", defaults.claim_fee_bps)),
            fee_token=ResourceKind.parse(data.get("fee_token", defaults.fee_token)),  # type: ignore[arg-type]
            fee_beneficiary=str(data.get("fee_beneficiary", defaults.fee_beneficiary)),
            burn_fees=bool(data.get("burn_fees", defaults.burn_fees)),
            card_system_enabled=bool(
                data.get("card_system_enabled", defaults.card_system_enabled)
            ),
            card_attach_cooldown_seconds=int(
                data.get("card_attach_cooldown_seconds", defaults.card_attach_cooldown_seconds)
            ),
            card_detach_cooldown_seconds=int(
                data.get("card_detach_cooldown_seconds", defaults.card_detach_cooldown_seconds)
            ),
        )


@dataclass
class Venture:
    venture_id: str
    owner: str
    venture_type: int
    staked: List[int]
    start_time: int
    end_time: int
    seed: int
    bonus_multiplier_bps: int
    colony_id: Optional[str] = None
    claim_deadline: int = 0
    phase: VenturePhase = VenturePhase.IN_PROGRESS
    outcome: VentureOutcome = VentureOutcome.PENDING
    rewards: List[int] = field(default_factory=empty_vector)
    burned: List[int] = field(default_factory=empty_vector)
    fee_paid: int = 0
    resolved_at: Optional[int] = None

    def total_staked(self) -> int:
        return sum(self.staked)

    def time_remaining(self, now: int) -> int:
        return max(0, self.end_time - now)

    def deadline_passed(self, now: int) -> bool:
        return self.claim_deadline > 0 and now > self.claim_deadline


@dataclass
class UserProgressionStats:
    total_ventures: int = 0
    successful_ventures: int = 0
    failed_ventures: int = 0
    current_streak: int = 0
    best_streak: int = 0
    last_venture_time: int = 0
    lifetime_staked: int = 0
    lifetime_won: int = 0
    lifetime_lost: int = 0

    def record_success(self) -> None:
        self.successful_ventures += 1
        self.current_streak += 1
        self.best_streak = max(self.best_streak, self.current_streak)

    def record_failure(self) -> None:
        self.failed_ventures += 1
        self.current_streak = 0


@dataclass
class CardCollection:
    collection_id: str
    name: str
    card_type: str = "venture"
    enabled: bool = True
    success_boost_bps: int = 0
    reward_boost_bps: int = 0


@dataclass
class VentureAttachedCard:
    collection_id: str
    token_id: str
    success_boost_bps: int
    reward_boost_bps: int
    attached_at: int
    cooldown_until: int = 0
    locked: bool = False


@dataclass
class VentureStatistics:
    total_started: int = 0
    total_completed: int = 0
    total_failed: int = 0
    total_expired: int = 0
    active: int = 0
    started_by_type: Dict[int, int] = field(default_factory=dict)
    total_staked: List[int] = field(default_factory=empty_vector)
    total_rewarded: List[int] = field(default_factory=empty_vector)
    total_burned: List[int] = field(default_factory=empty_vector)
    total_fees: int = 0


@dataclass
class ClaimResult:
    venture: Venture
    outcome: VentureOutcome
    rewards: List[int]
    burned: List[int]
    fee: int
    clamped_kinds: List[ResourceKind] = field(default_factory=list)
    expired: bool = False


@dataclass
class Event:
    timestamp: datetime
    action: str
    payload: Dict[str, object]


__all__ = [
    "BPS_DENOMINATOR",
    "RESOURCE_COUNT",
    "ResourceKind",
    "VenturePhase",
    "VentureOutcome",
    "VentureTypeConfig",
    "VenturePolicy",
    "Venture",
    "UserProgressionStats",
    "CardCollection",
    "VentureAttachedCard",
    "VentureStatistics",
    "ClaimResult",
    "Event",
    "empty_vector",
    "normalize_vector",
]
