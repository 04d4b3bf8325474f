#!/usr/bin/env python3
"""
strictwatch/cli.py - Command-Line Interface

Usage:
    strictwatch categories
    strictwatch validate policy.yaml
    strictwatch validate policy.yaml --non-interactive --no-terminate
    strictwatch simulate policy.yaml disk-write --context MainThread

Exit Codes (validate):
    0 = valid, every action supported on the described host
    1 = valid, some actions would be dropped
    2 = invalid policy file
"""
import argparse
import json
import sys

from .actions import RecordingActions
from .categories import ViolationCategory
from .config import configure_logging
from .errors import InvalidConfiguration
from .host import HostCapabilities
from .policy import load_policy
from .sinks import MemorySink
from .violation import Operation
from .watchdog import ViolationWatchdog

EXIT_OK = 0
EXIT_DEGRADED = 1
EXIT_INVALID = 2


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="strictwatch",
        description="Runtime violation watchdog policy tools",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("categories", help="List violation categories and their scope")

    validate_parser = subparsers.add_parser("validate", help="Validate a policy file")
    validate_parser.add_argument("policy_file", help="Path to policy YAML")
    _add_host_arguments(validate_parser)

    simulate_parser = subparsers.add_parser("simulate", help="Observe one operation under a policy")
    simulate_parser.add_argument("policy_file", help="Path to policy YAML")
    simulate_parser.add_argument(
        "category",
        choices=[c.value for c in ViolationCategory],
        help="Category of the simulated operation",
    )
    simulate_parser.add_argument("--context", default="MainThread", help="Executing context name")
    simulate_parser.add_argument("--description", default="", help="Operation description")
    _add_host_arguments(simulate_parser)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "categories":
        return run_categories(args)
    if args.command == "validate":
        return run_validate(args)
    if args.command == "simulate":
        return run_simulate(args)
    return EXIT_INVALID


def _add_host_arguments(subparser):
    subparser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Describe a host without a terminal (visual-alert unsupported)",
    )
    subparser.add_argument(
        "--no-terminate",
        action="store_true",
        help="Describe a host that forbids process termination",
    )


def _host_from_args(args) -> HostCapabilities:
    return HostCapabilities(interactive=not args.non_interactive, can_terminate=not args.no_terminate)


def run_categories(args):
    for category in ViolationCategory:
        print(f"{category.value:<22} {category.scope.value}")
    return EXIT_OK


def run_validate(args):
    try:
        policy = load_policy(args.policy_file)
    except InvalidConfiguration as e:
        print(json.dumps({"valid": False, "error": e.notice.to_dict()}, indent=2))
        return EXIT_INVALID

    host = _host_from_args(args)
    supported, unsupported = host.partition(policy.actions)
    summary = {
        "valid": True,
        "policy": policy.to_dict(),
        "policy_hash": policy.policy_hash,
        "effective_actions": sorted(a.value for a in supported),
        "dropped_actions": sorted(a.value for a in unsupported),
    }
    print(json.dumps(summary, indent=2))
    return EXIT_DEGRADED if unsupported else EXIT_OK


def run_simulate(args):
    try:
        policy = load_policy(args.policy_file)
    except InvalidConfiguration as e:
        print(json.dumps({"valid": False, "error": e.notice.to_dict()}, indent=2))
        return EXIT_INVALID

    recorder = RecordingActions()
    sink = MemorySink()
    watchdog = ViolationWatchdog(
        policy,
        sink=sink,
        host=_host_from_args(args),
        terminator=recorder.terminator,
        flasher=recorder.flasher,
    )
    decision = watchdog.observe(
        Operation(ViolationCategory(args.category), args.context, args.description)
    )

    result = decision.to_dict()
    result["reported"] = len(sink)
    result["actions"] = sorted(a.value for a in watchdog.effective_actions) if decision.is_violation else []
    result["recorded_actions"] = [name for name, _ in recorder.performed]
    result["notices"] = [n.to_dict() for n in watchdog.notices]
    print(json.dumps(result, indent=2))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
