"""CLI interface for chatbridge."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import yaml

from chatbridge.bridge.availability import AvailabilityProbe
from chatbridge.channels.api_client import ChatApiClient
from chatbridge.core.config import BridgeConfig, load_config
from chatbridge.core.errors import BridgeError
from chatbridge.core.logging import setup_logging

logger = logging.getLogger(__name__)


def _configure_logging(config: BridgeConfig, verbose: bool) -> None:
    level = "DEBUG" if verbose else config.logging.level
    setup_logging(
        level=level,
        directory=config.logging.directory,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count,
    )


async def run_validate(args: argparse.Namespace) -> int:
    """Load and validate a configuration file."""
    config = load_config(args.config)
    _configure_logging(config, args.verbose)

    target = f"region {config.region}" if config.region else f"server {config.server}"
    print(f"Configuration OK: application {config.app_id} on {target}")
    if config.working_hours is not None:
        hours = config.working_hours
        print(f"Working hours: {hours.start:%H:%M}-{hours.end:%H:%M} {hours.timezone}, days {hours.days}")
    return 0


async def run_check(args: argparse.Namespace) -> int:
    """Report whether an escalation would find an agent right now."""
    config = load_config(args.config)
    _configure_logging(config, args.verbose)

    api = ChatApiClient.from_config(config)
    result = await AvailabilityProbe(config, api).check()
    if result.agents_available:
        print(f"Agents available in room {config.room()}")
        return 0

    print(f"No escalation possible: {result.reason}")
    return 1


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="chatbridge - bot to live chat escalation bridge")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    validate_parser = subparsers.add_parser("validate", help="Validate a configuration file")
    check_parser = subparsers.add_parser("check", help="Check agent availability for the configured room")

    for sub in (validate_parser, check_parser):
        sub.add_argument(
            "-c",
            "--config",
            type=Path,
            default=Path("chatbridge.yaml"),
            help="Path to configuration file",
        )
        sub.add_argument(
            "-v",
            "--verbose",
            action="store_true",
            help="Enable verbose logging",
        )

    args = parser.parse_args(argv)

    if args.command == "validate":
        return await run_validate(args)
    if args.command == "check":
        return await run_check(args)

    parser.print_help()
    return 2


def run() -> None:
    """Entry point for the console script."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        return
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration: {e}", file=sys.stderr)
        sys.exit(1)
    except BridgeError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Command failed: {e} (run with -v for details)", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    run()
