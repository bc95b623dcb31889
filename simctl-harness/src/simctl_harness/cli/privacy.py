from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from simctl_harness.config import DEVICE_SET_TESTING, ConfigError, load_config
from simctl_harness.privacy.engine import PermissionOverrideEngine
from simctl_harness.privacy.types import PrivacyAction, PrivacyService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simctl-privacy",
        description=(
            "Grant, revoke or reset privacy permissions on an iOS simulator. "
            "user-tracking and face-id are written directly to the device TCC database."
        ),
    )
    parser.add_argument("device", help="Simulator UDID, or 'booted'.")
    parser.add_argument("action", choices=[a.value for a in PrivacyAction])
    parser.add_argument(
        "service",
        help=f"One of: {', '.join(s.value for s in PrivacyService)}.",
    )
    parser.add_argument(
        "bundle_id",
        nargs="?",
        default=None,
        help="App bundle identifier (optional only for tool-handled resets).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional YAML/JSON config file.",
    )
    parser.add_argument(
        "--testing",
        action="store_true",
        help="Use the 'testing' simulator device set (simctl --set testing).",
    )
    parser.add_argument(
        "--devices_root",
        type=str,
        default=None,
        help="Override the directory holding per-device data.",
    )
    parser.add_argument("--xcrun", type=str, default=None, help="Path to xcrun.")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON.")
    parser.add_argument(
        "--log_level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config).with_overrides(
            xcrun_path=args.xcrun,
            devices_root=args.devices_root,
            device_set=DEVICE_SET_TESTING if args.testing else None,
        )
    except ConfigError as e:
        parser.error(str(e))

    engine = PermissionOverrideEngine(config=config)
    result = engine.manage(args.action, args.service, args.bundle_id, args.device)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    else:
        print(result.text())
    return 0 if result.ok() else 1


if __name__ == "__main__":
    raise SystemExit(main())
