#!/usr/bin/env python3
"""Replay a recorded motion trace through the parking detector.

Each input line is a JSON object with a relative time and either derived
signals or raw provider values::

    {"t_ms": 0, "speed_kmh": 15.0, "vibration": 2.0}
    {"t_ms": 1000, "speed_mps": 0.8, "x": 0.1, "y": 0.2, "z": 9.7}

Usage
-----
::

    python scripts/replay_trace.py trace.jsonl
    python scripts/replay_trace.py --fast --drain --json < trace.jsonl

Options::

    --fast              Use the 10 s confirmation policy
    --policy-from-env   Build the policy from PARKPING_* variables
    --drain             Fire timers still pending after the last record
    --json              Output as machine-readable JSON
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from parkping import DEFAULT_POLICY, FAST_POLICY, DetectionPolicy, ParkPingError  # noqa: E402
from parkping.replay import parse_trace, replay_trace  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Replay a JSON-lines motion trace through the parking state machine.",
    )
    parser.add_argument("trace", nargs="?", help="Trace file (default: stdin)")
    parser.add_argument("--fast", action="store_true", help="Use the fast/testing policy")
    parser.add_argument("--policy-from-env", action="store_true", help="Read the policy from PARKPING_* env vars")
    parser.add_argument("--drain", action="store_true", help="Fire pending timers after the last record")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    if args.policy_from_env:
        policy = DetectionPolicy.from_env()
    else:
        policy = FAST_POLICY if args.fast else DEFAULT_POLICY

    try:
        if args.trace:
            with open(args.trace, encoding="utf-8") as fh:
                steps = replay_trace(parse_trace(fh), policy, drain=args.drain)
        else:
            steps = replay_trace(parse_trace(sys.stdin), policy, drain=args.drain)
    except ParkPingError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json_mode:
        print(json.dumps([step.as_dict() for step in steps], indent=2))
        return 0

    for step in steps:
        marker = "  ** PARKED **" if step.parked else ""
        print(f"{step.t_ms:>10} ms  {step.trigger:<13} {step.previous.value:>16} -> {step.state.value}{marker}")
    if not any(step.parked for step in steps):
        print("no parking detected")
    return 0


if __name__ == "__main__":
    sys.exit(main())
