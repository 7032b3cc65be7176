"""Tests for resource balances, supply accounting and fee collection."""
from __future__ import annotations

from pathlib import Path

import pytest

from colony_ventures.config import Settings
from colony_ventures.errors import InsufficientResources, InvalidConfiguration
from colony_ventures.ledger import InMemoryResourceLedger, SqliteResourceLedger
from colony_ventures.models import ResourceKind
from colony_ventures.state import VentureState
from colony_ventures.treasury import FeeTreasury


def test_debit_requires_balance() -> None:
    ledger = InMemoryResourceLedger()
    ledger.credit("alice", ResourceKind.FOOD, 50)

    with pytest.raises(InsufficientResources) as excinfo:
        ledger.debit("alice", ResourceKind.FOOD, 60)
    assert excinfo.value.required == 60
    assert excinfo.value.available == 50
    assert excinfo.value.kind == "food"
    assert ledger.get_balance("alice", ResourceKind.FOOD) == 50

    ledger.debit("alice", "food", 20)
    assert ledger.get_balance("alice", ResourceKind.FOOD) == 30


def test_negative_amounts_are_rejected() -> None:
    ledger = InMemoryResourceLedger()
    with pytest.raises(ValueError):
        ledger.credit("alice", ResourceKind.ENERGY, -1)
    with pytest.raises(ValueError):
        ledger.debit("alice", ResourceKind.ENERGY, -1)


def test_mint_respects_supply_cap() -> None:
    ledger = InMemoryResourceLedger({ResourceKind.RESEARCH: 100})
    ledger.mint("alice", ResourceKind.RESEARCH, 80)
    assert ledger.global_supply(ResourceKind.RESEARCH) == 80
    assert ledger.check_supply_cap(ResourceKind.RESEARCH, 20)
    assert not ledger.check_supply_cap(ResourceKind.RESEARCH, 21)

    with pytest.raises(InvalidConfiguration):
        ledger.mint("bob", ResourceKind.RESEARCH, 21)
    assert ledger.get_balance("bob", ResourceKind.RESEARCH) == 0


def test_zero_cap_means_unbounded() -> None:
    ledger = InMemoryResourceLedger()
    assert ledger.supply_cap(ResourceKind.FOOD) == 0
    assert ledger.check_supply_cap(ResourceKind.FOOD, 10**12)
    with pytest.raises(InvalidConfiguration):
        ledger.set_supply_cap(ResourceKind.FOOD, -5)


def test_supply_decrement_floors_at_zero() -> None:
    ledger = InMemoryResourceLedger()
    ledger.increment_global_supply(ResourceKind.MATERIALS, 10)
    ledger.decrement_global_supply(ResourceKind.MATERIALS, 25)
    assert ledger.global_supply(ResourceKind.MATERIALS) == 0


def test_decay_burns_a_fraction_of_the_balance() -> None:
    ledger = InMemoryResourceLedger()
    ledger.mint("alice", ResourceKind.FOOD, 1000)
    burned = ledger.apply_decay("alice", ResourceKind.FOOD, 250)
    assert burned == 25
    assert ledger.get_balance("alice", ResourceKind.FOOD) == 975
    assert ledger.global_supply(ResourceKind.FOOD) == 975
    with pytest.raises(InvalidConfiguration):
        ledger.apply_decay("alice", ResourceKind.FOOD, 10_001)


def test_sqlite_ledger_persists_between_instances(tmp_path: Path) -> None:
    settings = Settings.from_dict(
        {"supply_caps": {"energy": 500}, "venture_types": {}}
    )
    db_path = tmp_path / "ledger.sqlite"
    ledger = SqliteResourceLedger(VentureState(db_path, settings))
    ledger.mint("alice", ResourceKind.ENERGY, 300)
    ledger.debit("alice", ResourceKind.ENERGY, 40)

    reopened = SqliteResourceLedger(VentureState(db_path, settings))
    assert reopened.get_balance("alice", ResourceKind.ENERGY) == 260
    assert reopened.global_supply(ResourceKind.ENERGY) == 300
    assert reopened.supply_cap(ResourceKind.ENERGY) == 500
    assert not reopened.check_supply_cap(ResourceKind.ENERGY, 201)


def test_treasury_transfers_fees_to_beneficiary() -> None:
    ledger = InMemoryResourceLedger()
    ledger.mint("alice", ResourceKind.ENERGY, 100)
    treasury = FeeTreasury(ledger)

    paid = treasury.collect_fee(ResourceKind.ENERGY, "alice", "treasury", 15, "venture_entry")
    assert paid == 15
    assert ledger.get_balance("alice", ResourceKind.ENERGY) == 85
    assert ledger.get_balance("treasury", ResourceKind.ENERGY) == 15
    assert ledger.global_supply(ResourceKind.ENERGY) == 100
    assert treasury.summary() == {"collected": {"venture_entry": 15}, "burned": {}}


def test_treasury_burn_removes_supply() -> None:
    ledger = InMemoryResourceLedger()
    ledger.mint("alice", ResourceKind.ENERGY, 100)
    treasury = FeeTreasury(ledger)

    treasury.collect_and_burn_fee("energy", "alice", "treasury", 10, "venture_claim")
    assert ledger.get_balance("alice", ResourceKind.ENERGY) == 90
    assert ledger.get_balance("treasury", ResourceKind.ENERGY) == 0
    assert ledger.global_supply(ResourceKind.ENERGY) == 90
    assert treasury.summary()["burned"] == {"venture_claim": 10}


def test_treasury_ignores_zero_fees_and_propagates_shortfalls() -> None:
    ledger = InMemoryResourceLedger()
    treasury = FeeTreasury(ledger)
    assert treasury.collect_fee(ResourceKind.FOOD, "alice", "treasury", 0, "noop") == 0
    with pytest.raises(InsufficientResources):
        treasury.collect_fee(ResourceKind.FOOD, "alice", "treasury", 5, "venture_entry")
