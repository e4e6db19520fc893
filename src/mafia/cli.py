"""Mafia CLI — replay a hierarchy scenario against the service.

Usage:
    python -m mafia.cli run scenario.json
    python -m mafia.cli check scenario.json
    python -m mafia.cli --config config.json --env-file .env run scenario.json

Scenario format (JSON):
    {
      "godfather": {"id": 1, "age": 70},
      "members": [
        {"id": 2, "age": 50, "boss": 1},
        {"id": 3, "age": 40, "boss": 2}
      ],
      "operations": [
        {"op": "imprison", "id": 2},
        {"op": "release", "id": 2},
        {"op": "big_bosses", "minimum": 1},
        {"op": "compare", "a": 1, "b": 3},
        {"op": "member", "id": 3}
      ]
    }

Members are enlisted in file order, so a boss must appear before its
subordinates. "minimum" defaults to the configured big_boss_threshold.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from mafia.config import load_config
from mafia.service import MafiaService, ServiceResult


OPERATIONS = ("imprison", "release", "big_bosses", "compare", "member")

# Keys each operation reads; all hold integers
_OPERATION_KEYS = {
    "imprison": ("id",),
    "release": ("id",),
    "big_bosses": (),
    "compare": ("a", "b"),
    "member": ("id",),
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _result_to_dict(result: ServiceResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "failure": result.failure.value if result.failure else None,
        "errors": result.errors,
        "data": result.data,
    }


def load_scenario(path: Path) -> dict[str, Any]:
    """Read and shape-check a scenario file. Raises ValueError if malformed."""
    with path.open("r", encoding="utf-8") as handle:
        try:
            scenario = json.load(handle)
        except json.JSONDecodeError as e:
            raise ValueError(f"Scenario is not valid JSON: {e}") from None

    if not isinstance(scenario, dict):
        raise ValueError("Scenario must be a JSON object")
    godfather = scenario.get("godfather")
    if not isinstance(godfather, dict) or "id" not in godfather or "age" not in godfather:
        raise ValueError("Scenario needs a godfather with 'id' and 'age'")
    if not _is_int(godfather["id"]):
        raise ValueError(f"Godfather id must be an integer: {godfather}")

    members = scenario.get("members", [])
    if not isinstance(members, list):
        raise ValueError("Scenario 'members' must be a list")
    for entry in members:
        if not isinstance(entry, dict) or "id" not in entry or "age" not in entry:
            raise ValueError(f"Member entry needs 'id' and 'age': {entry}")
        boss_id = entry.get("boss")
        if not _is_int(entry["id"]) or (boss_id is not None and not _is_int(boss_id)):
            raise ValueError(f"Member 'id' and 'boss' must be integers: {entry}")

    operations = scenario.get("operations", [])
    if not isinstance(operations, list):
        raise ValueError("Scenario 'operations' must be a list")
    for entry in operations:
        if not isinstance(entry, dict) or entry.get("op") not in OPERATIONS:
            op = entry.get("op") if isinstance(entry, dict) else entry
            raise ValueError(
                f"Unknown operation {op!r}; expected one of {OPERATIONS}"
            )
        for key in _OPERATION_KEYS[entry["op"]]:
            if not _is_int(entry.get(key)):
                raise ValueError(
                    f"Operation {entry['op']!r} needs an integer {key!r}: {entry}"
                )
        if "minimum" in entry and not _is_int(entry["minimum"]):
            raise ValueError(f"Operation 'minimum' must be an integer: {entry}")
    return scenario


def build_service(
    scenario: dict[str, Any],
    config: dict[str, Any],
) -> tuple[MafiaService, list[dict[str, Any]]]:
    """Create the service and enlist the scenario's members.

    Returns the service and the results of the enlistments that failed.
    """
    godfather = scenario["godfather"]
    service = MafiaService.create(godfather["id"], godfather["age"], config=config)
    rejected: list[dict[str, Any]] = []
    for entry in scenario.get("members", []):
        result = service.enlist(entry["id"], entry["age"], boss_id=entry.get("boss"))
        if not result.success:
            rejected.append(_result_to_dict(result))
    return service, rejected


def run_operation(
    service: MafiaService,
    operation: dict[str, Any],
    default_minimum: int,
) -> ServiceResult:
    op = operation["op"]
    if op == "imprison":
        return service.send_to_prison(operation["id"])
    if op == "release":
        return service.release_from_prison(operation["id"])
    if op == "big_bosses":
        return service.find_big_bosses(operation.get("minimum", default_minimum))
    if op == "compare":
        return service.compare_members(operation["a"], operation["b"])
    return service.get_member(operation["id"])


def _replay(args: argparse.Namespace) -> Optional[tuple[MafiaService, dict[str, Any]]]:
    try:
        config = load_config(args.config, args.env_file)
    except (OSError, ValueError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return None
    logging.basicConfig(
        level=config["log_level"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        scenario = load_scenario(args.scenario)
        service, rejected = build_service(scenario, config)
    except (OSError, ValueError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return None

    results = [
        {"operation": operation,
         **_result_to_dict(run_operation(service, operation, config["big_boss_threshold"]))}
        for operation in scenario.get("operations", [])
    ]
    report = {
        "rejected_members": rejected,
        "results": results,
        "status": service.status(),
    }
    return service, report


def cmd_run(args: argparse.Namespace) -> int:
    replayed = _replay(args)
    if replayed is None:
        return 1
    _, report = replayed
    print(json.dumps(report, indent=2))
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Replay a scenario, then report broken invariants."""
    replayed = _replay(args)
    if replayed is None:
        return 1
    service, _ = replayed
    result = service.check_invariants()
    if result.success:
        print("All hierarchy invariants hold.")
        return 0
    for violation in result.errors:
        print(f"VIOLATION: {violation}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mafia",
        description="Mafia hierarchy engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a JSON config file",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: search from working directory)",
    )
    sub = parser.add_subparsers(dest="command")

    p_run = sub.add_parser("run", help="Replay a scenario and print the results")
    p_run.add_argument("scenario", type=Path, help="Scenario JSON file")

    p_check = sub.add_parser("check", help="Replay a scenario and check invariants")
    p_check.add_argument("scenario", type=Path, help="Scenario JSON file")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "run": cmd_run,
        "check": cmd_check,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
