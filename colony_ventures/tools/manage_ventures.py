"""Administrative utilities for the venture economy."""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..config import DEFAULT_STATE_DB, SettingsLoader
from ..models import ResourceKind
from ..service import VentureService
from ..telemetry import TelemetryCollector


def _load_service(args: argparse.Namespace) -> VentureService:
    settings = SettingsLoader(args.settings).load()
    telemetry = TelemetryCollector(args.telemetry_db) if args.telemetry_db else None
    return VentureService(args.state_db, settings, telemetry=telemetry)


def _parse_assignments(pairs: List[str]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise SystemExit(f"Expected FIELD=VALUE, got {pair!r}")
        key, raw = pair.split("=", 1)
        value = yaml.safe_load(raw)
        fields[key.strip()] = raw if value is None else value
    return fields


def _summary(service: VentureService) -> Dict[str, Any]:
    totals = service.global_statistics()
    policy = service.get_policy()
    supply = {
        kind.name.lower(): {
            "supply": service.ledger.global_supply(kind),
            "cap": service.ledger.supply_cap(kind),
        }
        for kind in ResourceKind
    }
    return {
        "enabled": policy.enabled,
        "started": totals.total_started,
        "completed": totals.total_completed,
        "abandoned": totals.total_failed,
        "expired": totals.total_expired,
        "active": totals.active,
        "started_by_type": {str(key): value for key, value in sorted(totals.started_by_type.items())},
        "total_staked": totals.total_staked,
        "total_rewarded": totals.total_rewarded,
        "total_burned": totals.total_burned,
        "total_fees": totals.total_fees,
        "supply": supply,
    }


def cmd_summary(args: argparse.Namespace) -> None:
    service = _load_service(args)
    summary = _summary(service)
    if args.json:
        print(json.dumps(summary, indent=2))
        return

    lines: List[str] = []
    lines.append(f"Venture system: {'enabled' if summary['enabled'] else 'disabled'}")
    lines.append(
        f"Started {summary['started']}, completed {summary['completed']}, "
        f"abandoned {summary['abandoned']}, expired {summary['expired']}, "
        f"active {summary['active']}"
    )
    if summary["started_by_type"]:
        lines.append("By type:")
        for name, count in summary["started_by_type"].items():
            lines.append(f"  - type {name}: {count}")
    lines.append("Supply:")
    for name, entry in summary["supply"].items():
        cap = entry["cap"] or "unbounded"
        lines.append(f"  - {name}: {entry['supply']} (cap {cap})")
    lines.append(f"Fees collected: {summary['total_fees']}")
    print("\n".join(lines))


def cmd_config(args: argparse.Namespace) -> None:
    service = _load_service(args)
    payload = {
        "policy": service.get_policy().to_dict(),
        "venture_types": {
            str(venture_type): config.to_dict()
            for venture_type, config in service.configured_types().items()
        },
    }
    if args.json:
        print(json.dumps(payload, indent=2))
        return
    print(yaml.safe_dump(payload, sort_keys=False))


def cmd_enable(args: argparse.Namespace) -> None:
    service = _load_service(args)
    service.set_enabled(True, actor=args.actor)
    print("Venture system enabled.")


def cmd_disable(args: argparse.Namespace) -> None:
    service = _load_service(args)
    service.set_enabled(False, actor=args.actor)
    print("Venture system disabled.")


def cmd_set_policy(args: argparse.Namespace) -> None:
    service = _load_service(args)
    fields = _parse_assignments(args.assignments)
    policy = service.set_policy(actor=args.actor, **fields)
    print(json.dumps({key: policy.to_dict()[key] for key in fields}, indent=2))


def cmd_set_type(args: argparse.Namespace) -> None:
    service = _load_service(args)
    fields = _parse_assignments(args.assignments)
    config = service.update_type_config(args.venture_type, actor=args.actor, **fields)
    print(json.dumps(config.to_dict(), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and administer the venture economy.")
    parser.add_argument(
        "--state-db",
        type=Path,
        default=DEFAULT_STATE_DB,
        help=f"Path to the venture state SQLite database (default: {DEFAULT_STATE_DB}).",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Alternate settings YAML file.",
    )
    parser.add_argument(
        "--telemetry-db",
        type=Path,
        default=None,
        help="Telemetry database (default: COLONY_VENTURES_TELEMETRY_DB or telemetry.db).",
    )
    parser.add_argument("--actor", default="cli", help="Name recorded on admin events.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    summary = subparsers.add_parser("summary", help="Summarise venture activity and supply.")
    summary.add_argument("--json", action="store_true", help="Output JSON for automation.")
    summary.set_defaults(func=cmd_summary)

    config = subparsers.add_parser("config", help="Show the effective policy and venture types.")
    config.add_argument("--json", action="store_true", help="Output JSON instead of YAML.")
    config.set_defaults(func=cmd_config)

    enable = subparsers.add_parser("enable", help="Allow new ventures to start.")
    enable.set_defaults(func=cmd_enable)

    disable = subparsers.add_parser("disable", help="Stop new ventures from starting.")
    disable.set_defaults(func=cmd_disable)

    set_policy = subparsers.add_parser("set-policy", help="Update global policy fields.")
    set_policy.add_argument("assignments", nargs="+", help="FIELD=VALUE pairs.")
    set_policy.set_defaults(func=cmd_set_policy)

    set_type = subparsers.add_parser("set-type", help="Update fields of one venture type.")
    set_type.add_argument("venture_type", type=int, help="Venture type number.")
    set_type.add_argument("assignments", nargs="+", help="FIELD=VALUE pairs.")
    set_type.set_defaults(func=cmd_set_type)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
