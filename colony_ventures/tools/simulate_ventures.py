"""Venture outcome tuning simulator.

Sweeps a run of deterministic seeds through the outcome bands of one
venture type and compares the observed distribution with the analytic
estimate, so administrators can sanity check a type before enabling it.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import Settings, SettingsLoader
from ..models import RESOURCE_COUNT, VentureOutcome, VentureTypeConfig, normalize_vector
from ..outcomes import compute_rewards, determine_outcome, estimate_outcomes
from ..rng import BeaconSequence, derive_seed


@dataclass
class SimulationConfig:
    venture_type: int = 0
    stake: List[int] = field(default_factory=lambda: [10, 0, 0, 0])
    runs: int = 1000
    bonus_bps: int = 0
    reward_boost_bps: int = 0
    campaign_seed: Optional[int] = None
    overrides: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Dict[str, Any]) -> "SimulationConfig":
        return cls(
            venture_type=int(payload.get("venture_type", 0)),
            stake=normalize_vector(payload.get("stake", [10, 0, 0, 0])),
            runs=int(payload.get("runs", 1000)),
            bonus_bps=int(payload.get("bonus_bps", 0)),
            reward_boost_bps=int(payload.get("reward_boost_bps", 0)),
            campaign_seed=payload.get("campaign_seed"),
            overrides=dict(payload.get("overrides", {})),
        )


def _type_config(settings: Settings, config: SimulationConfig) -> VentureTypeConfig:
    base = settings.venture_types.get(config.venture_type)
    if base is None:
        raise ValueError(f"Venture type {config.venture_type} is not configured")
    if not config.overrides:
        return base
    return VentureTypeConfig.from_dict({**base.to_dict(), **config.overrides})


def run_simulation(
    *,
    settings: Settings,
    config: SimulationConfig,
    output_dir: Optional[Path] = None,
) -> Dict[str, Any]:
    if config.runs <= 0:
        raise ValueError("runs must be positive")
    type_config = _type_config(settings, config)
    policy = settings.policy
    campaign_seed = (
        settings.beacon_seed if config.campaign_seed is None else int(config.campaign_seed)
    )
    beacon = BeaconSequence(campaign_seed)

    counts: Dict[str, int] = {
        outcome.value: 0 for outcome in VentureOutcome if outcome is not VentureOutcome.PENDING
    }
    returned = [0] * RESOURCE_COUNT
    burned_total = [0] * RESOURCE_COUNT
    for index in range(config.runs):
        seed = derive_seed(beacon(), index, "simulation", index)
        outcome, _roll = determine_outcome(seed, type_config, policy, config.bonus_bps)
        counts[outcome.value] += 1
        boost = config.reward_boost_bps if outcome.is_success_tier else 0
        rewards, burned = compute_rewards(
            config.stake, outcome, type_config, reward_boost_bps=boost
        )
        returned = [a + b for a, b in zip(returned, rewards)]
        burned_total = [a + b for a, b in zip(burned_total, burned)]

    estimate = estimate_outcomes(
        config.stake,
        type_config,
        policy,
        bonus_bps=config.bonus_bps,
        reward_boost_bps=config.reward_boost_bps,
    )
    staked_total = sum(config.stake) * config.runs
    result: Dict[str, Any] = {
        "venture_type": config.venture_type,
        "name": type_config.name,
        "runs": config.runs,
        "stake": list(config.stake),
        "bonus_bps": config.bonus_bps,
        "distribution": counts,
        "observed_bps": {
            name: count * 10_000 // config.runs for name, count in counts.items()
        },
        "expected_bps": {
            name: tier["probability_bps"] for name, tier in estimate["tiers"].items()
        },
        "mean_return": [round(value / config.runs, 2) for value in returned],
        "mean_burned": [round(value / config.runs, 2) for value in burned_total],
        "expected_return": estimate["expected_rewards"],
        "return_ratio": round(sum(returned) / staked_total, 4) if staked_total else 0.0,
    }

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        output_path = output_dir / f"venture_simulation_{config.venture_type}_{timestamp}.json"
        output_path.write_text(json.dumps(result, indent=2))
        result["output_path"] = str(output_path)

    return result


def _parse_stake(raw: str) -> List[int]:
    return normalize_vector([int(part) for part in raw.split(",") if part.strip()])


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate venture outcomes over deterministic seeds."
    )
    parser.add_argument("--settings", type=Path, help="Alternate settings YAML file.")
    parser.add_argument("--config", type=Path, help="JSON file describing the scenario.")
    parser.add_argument("--type", dest="venture_type", type=int, help="Venture type to simulate.")
    parser.add_argument("--stake", type=_parse_stake, help="Comma separated stake vector.")
    parser.add_argument("--runs", type=int, help="Number of seeds to sweep.")
    parser.add_argument("--bonus-bps", type=int, help="Success bonus to apply.")
    parser.add_argument("--output-dir", type=Path, help="Write the result JSON here.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    settings = SettingsLoader(args.settings).load()
    config_payload = json.loads(args.config.read_text()) if args.config else {}
    config = SimulationConfig.from_mapping(config_payload)
    if args.venture_type is not None:
        config.venture_type = args.venture_type
    if args.stake is not None:
        config.stake = args.stake
    if args.runs:
        config.runs = args.runs
    if args.bonus_bps is not None:
        config.bonus_bps = args.bonus_bps
    result = run_simulation(settings=settings, config=config, output_dir=args.output_dir)
    print(json.dumps(result, indent=2))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
