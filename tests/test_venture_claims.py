"""Tests for venture resolution: claims, expiry, streaks, fees and supply caps."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import pytest

from colony_ventures.config import Settings
from colony_ventures.errors import (
    InsufficientResources,
    InvalidVentureType,
    NotVentureOwner,
    VentureAlreadyClaimed,
    VentureNotFound,
    VentureNotReady,
)
from colony_ventures.models import ResourceKind, VentureOutcome, VenturePhase
from colony_ventures.outcomes import compute_rewards, determine_outcome
from colony_ventures.service import VentureService
from colony_ventures.telemetry import TelemetryCollector

START = 1_700_000_000


class FakeClock:
    def __init__(self, start: int = START) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


def certain(**overrides: Any) -> Dict[str, Any]:
    """A one-hour venture type whose bands leave a single possible outcome."""

    config = {
        "min_stake": [10, 0, 0, 0],
        "duration": 3600,
        "success_rate_bps": 0,
        "critical_success_bps": 0,
        "critical_failure_bps": 0,
        "reward_multiplier_bps": 5000,
        "partial_return_bps": 8000,
        "failure_loss_bps": 3000,
        "critical_multiplier_bps": 20000,
    }
    config.update(overrides)
    return config


SUCCESS = certain(success_rate_bps=10_000)
CRITICAL_SUCCESS = certain(success_rate_bps=10_000, critical_success_bps=10_000)
FAILURE = certain()
CRITICAL_FAILURE = certain(critical_failure_bps=10_000)


def build_settings(
    *,
    policy: Optional[Dict[str, Any]] = None,
    fees: Optional[Dict[str, Any]] = None,
    types: Optional[Dict[int, Dict[str, Any]]] = None,
) -> Settings:
    return Settings.from_dict(
        {
            "beacon_seed": 7,
            "policy": {
                "streak_bonus_bps": 0,
                "colony_bonus_bps": 0,
                "max_success_rate_bps": 10_000,
                "partial_success_share_bps": 0,
                **(policy or {}),
            },
            "fees": fees or {"entry_bps": 0, "claim_bps": 0, "token": "energy"},
            "venture_types": types or {0: SUCCESS, 1: FAILURE},
        }
    )


def build_service(
    root: Path, settings: Optional[Settings] = None
) -> Tuple[VentureService, FakeClock]:
    clock = FakeClock()
    service = VentureService(
        root / "state.sqlite",
        settings or build_settings(),
        clock=clock,
        beacon=lambda: 7,
        telemetry=TelemetryCollector(root / "telemetry.db"),
    )
    return service, clock


def test_claim_before_maturity_reports_remaining_seconds(tmp_path: Path) -> None:
    service, clock = build_service(tmp_path)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])

    clock.advance(3599)
    with pytest.raises(VentureNotReady) as excinfo:
        service.claim_venture("alice", venture.venture_id)
    assert excinfo.value.time_remaining == 1
    assert service.get_venture(venture.venture_id).phase is VenturePhase.IN_PROGRESS
    assert service.balances("alice") == [0, 0, 0, 0]


def test_claim_preconditions(tmp_path: Path) -> None:
    service, clock = build_service(tmp_path)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])
    clock.advance(3600)

    with pytest.raises(VentureNotFound):
        service.claim_venture("alice", "nope")
    with pytest.raises(NotVentureOwner):
        service.claim_venture("bob", venture.venture_id)


def test_successful_claim_pays_out_and_grows_supply(tmp_path: Path) -> None:
    service, clock = build_service(tmp_path)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])
    clock.advance(3600)

    result = service.claim_venture("alice", venture.venture_id)

    assert result.outcome is VentureOutcome.SUCCESS
    assert result.rewards == [150, 0, 0, 0]
    assert result.burned == [0, 0, 0, 0]
    assert result.fee == 0
    assert not result.expired
    assert service.balances("alice") == [150, 0, 0, 0]
    assert service.ledger.global_supply(ResourceKind.FOOD) == 150

    stored = service.get_venture(venture.venture_id)
    assert stored.phase is VenturePhase.COMPLETED
    assert stored.outcome is VentureOutcome.SUCCESS
    assert stored.rewards == [150, 0, 0, 0]
    assert stored.resolved_at == START + 3600
    assert service.active_ventures("alice") == []

    stats = service.get_user_stats("alice")
    assert stats.successful_ventures == 1
    assert stats.current_streak == 1
    assert stats.lifetime_won == 150

    totals = service.global_statistics()
    assert totals.total_completed == 1
    assert totals.active == 0
    assert totals.total_rewarded == [150, 0, 0, 0]
    assert service.export_events()[-1].action == "venture_claimed"

    with pytest.raises(VentureAlreadyClaimed):
        service.claim_venture("alice", venture.venture_id)


def test_critical_success_multiplies_stake(tmp_path: Path) -> None:
    service, clock = build_service(tmp_path, build_settings(types={0: CRITICAL_SUCCESS}))
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])
    clock.advance(3600)

    result = service.claim_venture("alice", venture.venture_id)
    assert result.outcome is VentureOutcome.CRITICAL_SUCCESS
    assert result.rewards == [200, 0, 0, 0]


def test_failure_returns_stake_minus_loss(tmp_path: Path) -> None:
    service, clock = build_service(tmp_path)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 1, [100, 0, 0, 0])
    clock.advance(3600)

    result = service.claim_venture("alice", venture.venture_id)
    assert result.outcome is VentureOutcome.FAILURE
    assert result.rewards == [70, 0, 0, 0]
    assert result.burned == [30, 0, 0, 0]
    assert service.balances("alice") == [70, 0, 0, 0]
    assert service.ledger.global_supply(ResourceKind.FOOD) == 70
    assert service.get_venture(venture.venture_id).phase is VenturePhase.COMPLETED

    stats = service.get_user_stats("alice")
    assert stats.failed_ventures == 1
    assert stats.lifetime_lost == 30


def test_partial_success_counts_as_a_miss(tmp_path: Path) -> None:
    settings = build_settings(policy={"partial_success_share_bps": 10_000})
    service, clock = build_service(tmp_path, settings)
    service.grant_resources("alice", ResourceKind.FOOD, 200)

    first = service.start_venture("alice", 0, [100, 0, 0, 0])
    clock.advance(3600)
    service.claim_venture("alice", first.venture_id)
    assert service.get_user_stats("alice").current_streak == 1

    second = service.start_venture("alice", 1, [100, 0, 0, 0])
    clock.advance(3600)
    result = service.claim_venture("alice", second.venture_id)
    assert result.outcome is VentureOutcome.PARTIAL_SUCCESS
    assert result.rewards == [80, 0, 0, 0]
    assert result.burned == [20, 0, 0, 0]
    assert service.get_user_stats("alice").current_streak == 0


def test_critical_failure_burns_everything(tmp_path: Path) -> None:
    service, clock = build_service(tmp_path, build_settings(types={0: CRITICAL_FAILURE}))
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    service.grant_resources("alice", ResourceKind.ENERGY, 50)
    venture = service.start_venture("alice", 0, [100, 0, 50, 0])
    clock.advance(3600)

    result = service.claim_venture("alice", venture.venture_id)
    assert result.outcome is VentureOutcome.CRITICAL_FAILURE
    assert result.rewards == [0, 0, 0, 0]
    assert result.burned == [100, 0, 50, 0]
    assert service.ledger.global_supply(ResourceKind.FOOD) == 0
    assert service.ledger.global_supply(ResourceKind.ENERGY) == 0


def test_streak_grows_on_success_and_feeds_the_next_bonus(tmp_path: Path) -> None:
    settings = build_settings(policy={"streak_bonus_bps": 100})
    service, clock = build_service(tmp_path, settings)
    service.grant_resources("alice", ResourceKind.FOOD, 1000)

    for _ in range(2):
        venture = service.start_venture("alice", 0, [10, 0, 0, 0])
        clock.advance(3600)
        service.claim_venture("alice", venture.venture_id)

    stats = service.get_user_stats("alice")
    assert stats.current_streak == 2
    assert stats.best_streak == 2

    boosted = service.start_venture("alice", 1, [10, 0, 0, 0])
    assert boosted.bonus_multiplier_bps == 200
    service.abandon_venture("alice", boosted.venture_id)

    stats = service.get_user_stats("alice")
    assert stats.current_streak == 0
    assert stats.best_streak == 2
    assert stats.successful_ventures == 2
    assert stats.failed_ventures == 1


def test_abandon_resets_streak(tmp_path: Path) -> None:
    service, clock = build_service(tmp_path)
    service.grant_resources("alice", ResourceKind.FOOD, 1000)
    venture = service.start_venture("alice", 0, [10, 0, 0, 0])
    clock.advance(3600)
    service.claim_venture("alice", venture.venture_id)

    other = service.start_venture("alice", 0, [10, 0, 0, 0])
    service.abandon_venture("alice", other.venture_id)
    assert service.get_user_stats("alice").current_streak == 0


def test_claim_after_deadline_expires_the_venture(tmp_path: Path) -> None:
    settings = build_settings(
        policy={"claim_window_seconds": 100},
        fees={"entry_bps": 0, "claim_bps": 500, "token": "food"},
    )
    service, clock = build_service(tmp_path, settings)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])

    clock.advance(3600 + 101)
    result = service.claim_venture("alice", venture.venture_id)

    assert result.expired
    assert result.outcome is VentureOutcome.CRITICAL_FAILURE
    assert result.rewards == [0, 0, 0, 0]
    assert result.burned == [100, 0, 0, 0]
    assert result.fee == 0
    assert service.balances("alice") == [0, 0, 0, 0]
    assert service.ledger.global_supply(ResourceKind.FOOD) == 0

    stored = service.get_venture(venture.venture_id)
    assert stored.phase is VenturePhase.EXPIRED
    assert stored.outcome is VentureOutcome.CRITICAL_FAILURE
    assert service.get_user_stats("alice").current_streak == 0
    assert service.global_statistics().total_expired == 1
    assert service.export_events()[-1].action == "venture_expired"

    with pytest.raises(VentureAlreadyClaimed):
        service.claim_venture("alice", venture.venture_id)


def test_abandon_after_deadline_burns_the_whole_stake(tmp_path: Path) -> None:
    settings = build_settings(policy={"claim_window_seconds": 100})
    service, clock = build_service(tmp_path, settings)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])

    clock.advance(3600 + 10_000)
    abandoned = service.abandon_venture("alice", venture.venture_id)

    assert abandoned.phase is VenturePhase.EXPIRED
    assert abandoned.outcome is VentureOutcome.CRITICAL_FAILURE
    assert abandoned.rewards == [0, 0, 0, 0]
    assert abandoned.burned == [100, 0, 0, 0]
    assert service.balances("alice") == [0, 0, 0, 0]
    assert service.active_ventures("alice") == []

    totals = service.global_statistics()
    assert totals.total_expired == 1
    assert totals.total_failed == 0
    assert service.export_events()[-1].action == "venture_expired"


def test_claim_fails_when_the_type_config_disappears(tmp_path: Path) -> None:
    service, _ = build_service(tmp_path)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])

    # Reopen the same database with settings that no longer define type 0.
    service, clock = build_service(tmp_path, build_settings(types={1: FAILURE}))
    clock.advance(3600)
    with pytest.raises(InvalidVentureType):
        service.claim_venture("alice", venture.venture_id)

    assert service.get_venture(venture.venture_id).phase is VenturePhase.IN_PROGRESS
    assert service.balances("alice") == [0, 0, 0, 0]


def test_claim_on_the_deadline_still_resolves(tmp_path: Path) -> None:
    settings = build_settings(policy={"claim_window_seconds": 100})
    service, clock = build_service(tmp_path, settings)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])

    clock.advance(3600 + 100)
    result = service.claim_venture("alice", venture.venture_id)
    assert not result.expired
    assert result.outcome is VentureOutcome.SUCCESS


def test_rewards_beyond_supply_cap_are_clamped_to_stake(tmp_path: Path) -> None:
    service, clock = build_service(tmp_path)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    service.grant_resources("alice", ResourceKind.MATERIALS, 20)
    service.set_supply_cap(ResourceKind.FOOD, 120)
    venture = service.start_venture("alice", 0, [100, 20, 0, 0])
    clock.advance(3600)

    result = service.claim_venture("alice", venture.venture_id)

    assert result.outcome is VentureOutcome.SUCCESS
    assert result.clamped_kinds == [ResourceKind.FOOD]
    assert result.rewards == [100, 30, 0, 0]
    assert service.ledger.global_supply(ResourceKind.FOOD) == 100
    assert service.ledger.global_supply(ResourceKind.MATERIALS) == 30
    assert service.ledger.global_supply(ResourceKind.FOOD) <= service.ledger.supply_cap(
        ResourceKind.FOOD
    )
    notes = service.drain_admin_notifications()
    assert len(notes) == 1
    assert "food" in notes[0]
    assert service.drain_admin_notifications() == []


def test_claim_fee_is_prechecked_and_collected(tmp_path: Path) -> None:
    settings = build_settings(
        fees={"entry_bps": 0, "claim_bps": 500, "token": "energy", "beneficiary": "treasury"}
    )
    service, clock = build_service(tmp_path, settings)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])
    clock.advance(3600)

    with pytest.raises(InsufficientResources) as excinfo:
        service.claim_venture("alice", venture.venture_id)
    assert excinfo.value.required == 7
    assert service.get_venture(venture.venture_id).phase is VenturePhase.IN_PROGRESS
    assert service.balances("alice") == [0, 0, 0, 0]

    service.grant_resources("alice", ResourceKind.ENERGY, 7)
    result = service.claim_venture("alice", venture.venture_id)
    assert result.fee == 7
    assert service.balances("alice") == [150, 0, 0, 0]
    assert service.ledger.get_balance("treasury", ResourceKind.ENERGY) == 7
    assert service.get_venture(venture.venture_id).fee_paid == 7


def test_claim_fee_can_be_paid_from_rewards(tmp_path: Path) -> None:
    settings = build_settings(fees={"entry_bps": 0, "claim_bps": 500, "token": "food"})
    service, clock = build_service(tmp_path, settings)
    service.grant_resources("alice", ResourceKind.FOOD, 100)
    venture = service.start_venture("alice", 0, [100, 0, 0, 0])
    clock.advance(3600)

    result = service.claim_venture("alice", venture.venture_id)
    assert result.fee == 7
    assert service.balances("alice") == [143, 0, 0, 0]


def test_worked_example_scouting_run(tmp_path: Path) -> None:
    scouting = {
        "name": "Scouting Run",
        "min_stake": [10, 0, 0, 0],
        "duration": 3600,
        "success_rate_bps": 7000,
        "critical_success_bps": 500,
        "critical_failure_bps": 300,
        "reward_multiplier_bps": 1500,
        "partial_return_bps": 8000,
        "failure_loss_bps": 3000,
    }
    settings = build_settings(
        policy={"max_success_rate_bps": 9500, "partial_success_share_bps": 5000},
        types={0: scouting},
    )
    service, clock = build_service(tmp_path, settings)
    service.grant_resources("alice", ResourceKind.FOOD, 10)
    venture = service.start_venture("alice", 0, [10, 0, 0, 0])

    clock.advance(1800)
    with pytest.raises(VentureNotReady) as excinfo:
        service.claim_venture("alice", venture.venture_id)
    assert excinfo.value.time_remaining == 1800

    clock.advance(1800)
    result = service.claim_venture("alice", venture.venture_id)

    config = service.get_type_config(0)
    expected_outcome, _roll = determine_outcome(
        venture.seed, config, service.get_policy(), venture.bonus_multiplier_bps
    )
    expected_rewards, expected_burned = compute_rewards([10, 0, 0, 0], expected_outcome, config)
    assert result.outcome is expected_outcome
    assert result.rewards == expected_rewards
    assert result.burned == expected_burned
    assert all(amount >= 0 for amount in result.rewards)
    if result.outcome is VentureOutcome.FAILURE:
        assert result.rewards[0] == 10 - 10 * 3000 // 10_000
