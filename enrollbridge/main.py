"""EnrollBridge operator CLI.

Usage:
    python -m enrollbridge.main --health-check
    python -m enrollbridge.main --presets
    python -m enrollbridge.main --field-map
    python -m enrollbridge.main --validate-account 1234567890 --zip 19801
    python -m enrollbridge.main --slots X4455 --start-date 1/5/2026
    python -m enrollbridge.main --config path/to/enrollbridge.json --health-check
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from enrollbridge.client import ApiClient
from enrollbridge.config import load_config
from enrollbridge.connectors import IntelliSourceConnector, default_registry
from enrollbridge.field_mapper import field_mapping_info
from enrollbridge.health import format_report

logger = logging.getLogger(__name__)


def list_presets() -> None:
    """Print every utility preset known to the registered connectors."""
    presets = default_registry().get_all_presets()
    print(f"\nUtility Presets ({len(presets)}):")
    print("-" * 80)
    for key, preset in presets.items():
        print(f"  {key:28s} {preset.name:30s} [{preset.state}]")
        print(f"{'':30s} {preset.program_name} | {preset.support_phone}")
    print()


def print_field_map() -> None:
    print(json.dumps(field_mapping_info(), indent=2))


async def run_health_check(config: dict) -> int:
    client = ApiClient(
        config["api_endpoint"],
        config["api_password"],
        config=config,
        correlation_id=config.get("correlation_id"),
        test_mode=config.get("test_mode", False),
    )
    report = await client.health_check()
    print(format_report({config["api_endpoint"]: report}))
    return 0 if report.status != "error" else 1


async def run_validate_account(config: dict, account: str, zip_code: str) -> int:
    outcome = await IntelliSourceConnector().validate_account(
        {"account_number": account, "zip": zip_code}, config,
    )
    print(outcome.model_dump_json(indent=2))
    return 0 if outcome.is_valid else 1


async def run_slots(config: dict, account: str, start_date: str | None) -> int:
    data = {"account_number": account}
    if start_date:
        data["start_date"] = start_date
    outcome = await IntelliSourceConnector().get_schedule_slots(data, config)
    print(outcome.model_dump_json(indent=2))
    return 0 if outcome.success else 1


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="EnrollBridge: utility enrollment platform integration tools"
    )
    parser.add_argument("--health-check", action="store_true",
                        help="Check enrollment platform availability and latency")
    parser.add_argument("--presets", action="store_true", help="List utility program presets")
    parser.add_argument("--field-map", action="store_true",
                        help="Print the form-field to platform-parameter mapping tables")
    parser.add_argument("--validate-account", type=str, metavar="ACCOUNT",
                        help="Validate an account number (requires --zip)")
    parser.add_argument("--zip", type=str, help="ZIP code used with --validate-account")
    parser.add_argument("--slots", type=str, metavar="ACCOUNT",
                        help="List open appointment slots for an account (ADMIN-VIEW for all)")
    parser.add_argument("--start-date", type=str, metavar="M/D/YYYY",
                        help="First date to look up with --slots (default: today)")
    parser.add_argument("--config", type=Path, help="Connector config JSON file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.presets:
        list_presets()
        return

    if args.field_map:
        print_field_map()
        return

    if args.validate_account and not args.zip:
        parser.error("--validate-account requires --zip")

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"Error: could not load config: {exc}")
        sys.exit(1)

    if args.health_check:
        sys.exit(asyncio.run(run_health_check(config)))

    if args.validate_account or args.slots:
        problems = IntelliSourceConnector().validate_config(config)
        if problems:
            for problem in problems:
                print(f"Config error: {problem}")
            sys.exit(1)

    if args.validate_account:
        sys.exit(asyncio.run(run_validate_account(config, args.validate_account, args.zip)))

    if args.slots:
        sys.exit(asyncio.run(run_slots(config, args.slots, args.start_date)))

    parser.print_help()


if __name__ == "__main__":
    main()
