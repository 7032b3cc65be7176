"""Tests for settings loading."""
from __future__ import annotations

from colony_ventures.config import DEFAULT_SETTINGS_PATH, Settings, SettingsLoader, get_settings
from colony_ventures.models import ResourceKind


def test_default_settings_load():
    settings = get_settings()

    assert settings.policy.enabled
    assert settings.policy.max_venture_types == 8
    assert settings.policy.fee_token is ResourceKind.ENERGY
    assert settings.policy.fee_beneficiary == "colony_treasury"
    assert sorted(settings.venture_types) == [0, 1, 2]
    assert settings.venture_types[0].name == "Scouting Run"
    assert settings.venture_types[0].success_rate_bps == 7000
    assert settings.supply_caps[ResourceKind.RESEARCH] == 10_000_000
    assert {c.collection_id for c in settings.card_collections} == {"pioneers", "relics"}


def test_loader_honours_environment_override(tmp_path, monkeypatch):
    custom = tmp_path / "settings.yaml"
    custom.write_text(
        "beacon_seed: 99\n"
        "policy:\n"
        "  max_active_ventures: 2\n"
        "venture_types:\n"
        "  3:\n"
        "    name: Salvage\n"
        "    duration: 60\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("COLONY_VENTURES_SETTINGS", str(custom))

    loader = SettingsLoader()
    assert loader.path == custom
    settings = loader.load()
    assert settings.beacon_seed == 99
    assert settings.policy.max_active_ventures == 2
    assert list(settings.venture_types) == [3]
    assert loader.load() is settings

    custom.write_text("beacon_seed: 100\n", encoding="utf-8")
    assert loader.load().beacon_seed == 99
    assert loader.load(force=True).beacon_seed == 100


def test_explicit_path_wins(monkeypatch, tmp_path):
    monkeypatch.setenv("COLONY_VENTURES_SETTINGS", str(tmp_path / "missing.yaml"))
    assert SettingsLoader(DEFAULT_SETTINGS_PATH).path == DEFAULT_SETTINGS_PATH


def test_fee_block_overrides_policy():
    settings = Settings.from_dict(
        {
            "policy": {"entry_fee_bps": 10, "fee_token": "food"},
            "fees": {"claim_bps": 250, "token": "research", "burn": True},
        }
    )
    policy = settings.policy
    assert policy.entry_fee_bps == 10
    assert policy.claim_fee_bps == 250
    assert policy.fee_token is ResourceKind.RESEARCH
    assert policy.burn_fees


def test_empty_document_uses_defaults():
    settings = Settings.from_dict({})
    assert settings.venture_types == {}
    assert settings.supply_caps == {}
    assert settings.card_collections == []
    assert settings.card_owners == {}
    assert settings.colonies == []
    assert settings.policy.max_active_ventures == 5


def test_card_owners_and_colonies_are_parsed():
    settings = Settings.from_dict(
        {
            "card_owners": {"pioneers": {1: 42, "7": "bob"}},
            "colonies": [{"colony_id": "new-haven", "owner": "42", "tech_level": 2}],
        }
    )
    assert settings.card_owners == {"pioneers": {"1": "42", "7": "bob"}}
    assert settings.colonies[0]["colony_id"] == "new-haven"
