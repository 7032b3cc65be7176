"""Venture outcome bands, reward tables and abandonment refunds.

Everything here is a pure function of its inputs so outcomes can be
replayed from a venture's stored seed.

Outcome banding works on a single basis-point roll in ``[0, 10000)``::

    success        = min(success_rate_bps + bonus_bps, max_success_rate_bps)
    crit_success   = min(critical_success_bps, success)
    failure_mass   = 10000 - success
    crit_failure   = min(critical_failure_bps, failure_mass)
    partial        = (failure_mass - crit_failure) * partial_share_bps / 10000

    [0, crit_success)                  -> CRITICAL_SUCCESS
    [crit_success, success)            -> SUCCESS
    [success, success + partial)       -> PARTIAL_SUCCESS
    [10000 - crit_failure, 10000)      -> CRITICAL_FAILURE
    anything else                      -> FAILURE

A larger bonus widens the success band, which shrinks the failure mass
the failure bands are carved from.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from .models import (
    BPS_DENOMINATOR,
    RESOURCE_COUNT,
    VentureOutcome,
    VenturePolicy,
    VentureTypeConfig,
    empty_vector,
)
from .rng import DeterministicRNG

ABANDON_MAX_RETURN_BPS = 5000


@dataclass(frozen=True)
class OutcomeBands:
    critical_success: int
    success: int
    partial_success: int
    critical_failure: int

    def classify(self, roll: int) -> VentureOutcome:
        if roll < self.critical_success:
            return VentureOutcome.CRITICAL_SUCCESS
        if roll < self.success:
            return VentureOutcome.SUCCESS
        if roll < self.success + self.partial_success:
            return VentureOutcome.PARTIAL_SUCCESS
        if roll >= BPS_DENOMINATOR - self.critical_failure:
            return VentureOutcome.CRITICAL_FAILURE
        return VentureOutcome.FAILURE

    def probabilities(self) -> Dict[VentureOutcome, int]:
        """Width of each band in basis points."""

        failure = (
            BPS_DENOMINATOR - self.success - self.partial_success - self.critical_failure
        )
        return {
            VentureOutcome.CRITICAL_SUCCESS: self.critical_success,
            VentureOutcome.SUCCESS: self.success - self.critical_success,
            VentureOutcome.PARTIAL_SUCCESS: self.partial_success,
            VentureOutcome.FAILURE: failure,
            VentureOutcome.CRITICAL_FAILURE: self.critical_failure,
        }


def compute_bands(
    config: VentureTypeConfig, policy: VenturePolicy, bonus_bps: int
) -> OutcomeBands:
    ceiling = min(policy.max_success_rate_bps, BPS_DENOMINATOR)
    success = max(0, min(config.success_rate_bps + max(0, bonus_bps), ceiling))
    critical_success = min(config.critical_success_bps, success)
    failure_mass = BPS_DENOMINATOR - success
    critical_failure = min(config.critical_failure_bps, failure_mass)
    partial = (failure_mass - critical_failure) * policy.partial_success_share_bps // BPS_DENOMINATOR
    return OutcomeBands(
        critical_success=critical_success,
        success=success,
        partial_success=partial,
        critical_failure=critical_failure,
    )


def roll_for_seed(seed: int) -> int:
    return DeterministicRNG(seed).roll_bps()


def determine_outcome(
    seed: int,
    config: VentureTypeConfig,
    policy: VenturePolicy,
    bonus_bps: int,
) -> Tuple[VentureOutcome, int]:
    """Return the outcome for ``seed`` together with the roll that produced it."""

    roll = roll_for_seed(seed)
    return compute_bands(config, policy, bonus_bps).classify(roll), roll


def compute_bonus_multiplier(
    current_streak: int,
    policy: VenturePolicy,
    *,
    colony_bonus: bool,
    card_success_boost_bps: int,
) -> int:
    streak_part = min(current_streak, policy.max_streak_bonus_count) * policy.streak_bonus_bps
    colony_part = policy.colony_bonus_bps if colony_bonus else 0
    return streak_part + colony_part + max(0, card_success_boost_bps)


def _bps(amount: int, bps: int) -> int:
    return amount * bps // BPS_DENOMINATOR


def compute_rewards(
    staked: List[int],
    outcome: VentureOutcome,
    config: VentureTypeConfig,
    *,
    reward_boost_bps: int = 0,
) -> Tuple[List[int], List[int]]:
    """Return ``(rewards, burned)`` per resource kind for a resolved venture."""

    rewards = empty_vector()
    burned = empty_vector()
    for index in range(RESOURCE_COUNT):
        stake = staked[index]
        if stake <= 0:
            continue
        if outcome is VentureOutcome.CRITICAL_SUCCESS:
            reward = _bps(stake, max(config.critical_multiplier_bps, BPS_DENOMINATOR))
        elif outcome is VentureOutcome.SUCCESS:
            reward = stake + _bps(stake, config.reward_multiplier_bps)
        elif outcome is VentureOutcome.PARTIAL_SUCCESS:
            reward = _bps(stake, config.partial_return_bps)
            burned[index] = stake - reward
        elif outcome is VentureOutcome.FAILURE:
            loss = _bps(stake, config.failure_loss_bps)
            reward = stake - loss
            burned[index] = loss
        elif outcome is VentureOutcome.CRITICAL_FAILURE:
            reward = 0
            burned[index] = stake
        else:
            raise ValueError(f"Cannot compute rewards for outcome {outcome.value}")
        if outcome.is_success_tier and reward_boost_bps > 0 and reward > 0:
            reward += _bps(reward, reward_boost_bps)
        rewards[index] = reward
    return rewards, burned


def abandon_return_bps(elapsed: int, duration: int) -> int:
    """Refund fraction for early exit: linear in elapsed time, capped at 50%."""

    if duration <= 0:
        return ABANDON_MAX_RETURN_BPS
    elapsed = max(0, min(elapsed, duration))
    return elapsed * ABANDON_MAX_RETURN_BPS // duration


def compute_abandon(
    staked: List[int], elapsed: int, duration: int
) -> Tuple[List[int], List[int]]:
    return_bps = abandon_return_bps(elapsed, duration)
    returned = [_bps(stake, return_bps) for stake in staked]
    burned = [stake - back for stake, back in zip(staked, returned)]
    return returned, burned


def fee_for(total: int, fee_bps: int) -> int:
    if total <= 0 or fee_bps <= 0:
        return 0
    return _bps(total, fee_bps)


def estimate_outcomes(
    staked: List[int],
    config: VentureTypeConfig,
    policy: VenturePolicy,
    *,
    bonus_bps: int = 0,
    reward_boost_bps: int = 0,
) -> Dict[str, object]:
    """Reward vectors and band widths for every outcome tier."""

    bands = compute_bands(config, policy, bonus_bps)
    tiers: Dict[str, Dict[str, object]] = {}
    expected = [0.0] * RESOURCE_COUNT
    for outcome, width in bands.probabilities().items():
        rewards, burned = compute_rewards(
            staked, outcome, config, reward_boost_bps=reward_boost_bps
        )
        tiers[outcome.value] = {
            "probability_bps": width,
            "rewards": rewards,
            "burned": burned,
        }
        for index in range(RESOURCE_COUNT):
            expected[index] += rewards[index] * width / BPS_DENOMINATOR
    return {
        "bonus_bps": bonus_bps,
        "reward_boost_bps": reward_boost_bps,
        "tiers": tiers,
        "expected_rewards": [round(value, 2) for value in expected],
    }


__all__ = [
    "ABANDON_MAX_RETURN_BPS",
    "OutcomeBands",
    "abandon_return_bps",
    "compute_abandon",
    "compute_bands",
    "compute_bonus_multiplier",
    "compute_rewards",
    "determine_outcome",
    "estimate_outcomes",
    "fee_for",
    "roll_for_seed",
]
