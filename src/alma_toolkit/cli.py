#!/usr/bin/env python3
"""
Alma Toolkit Command Line Interface

A set of commands which run bulk operations against the Alma API.

Commands:
  conf-code-table        Print the codes and descriptions in an Alma code table
  items-requests         Report the user requests on items in a set
  items-cancel-requests  Cancel item requests of a type and/or subtype on items in a set
  items-scan-in          Scan in the items in a set at a circulation desk
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from argparse import Namespace
from collections.abc import Sequence
from typing import Any

from alma_toolkit import __version__
from alma_toolkit.api import AlmaAbortedError, AlmaAccessError, AlmaClient, AlmaError
from alma_toolkit.config import ConfigError, ToolkitConfig, apply_env_overrides, env_prefix_for, env_var_name
from alma_toolkit.constants import (
    DEFAULT_ALMA_API_HOST,
    DEFAULT_CONCURRENCY,
    DEFAULT_THRESHOLD,
    DEFAULT_TIMEOUT,
    ENV_PREFIX,
    EXIT_ABORTED,
    EXIT_FAILURE,
    EXIT_OK,
    PROJECT_NAME,
)
from alma_toolkit.logging_config import setup_logging
from alma_toolkit.subcommands import REGISTRY, BatchIncompleteError, Subcommand

logger = logging.getLogger(__name__)


def _env_epilog(parser: argparse.ArgumentParser, prefix: str) -> str:
    names = [
        env_var_name(prefix, action)
        for action in parser._actions
        if action.option_strings and action.dest != "help"
    ]
    return "Environment variables read when flag is unset:\n  " + "\n  ".join(names)


def create_parser() -> tuple[argparse.ArgumentParser, dict[str, argparse.ArgumentParser]]:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="almatoolkit",
        allow_abbrev=False,
        description=f"{PROJECT_NAME}: bulk operations against the Alma API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--key",
        help="The Alma API key. You can manage your API keys here: "
        "https://developers.exlibrisgroup.com/manage/keys/. Required.",
    )
    parser.add_argument("--host", default=DEFAULT_ALMA_API_HOST, help="The Alma API host domain name to use.")
    parser.add_argument(
        "--threshold",
        type=int,
        default=DEFAULT_THRESHOLD,
        help="The minimum number of API calls remaining before the tool automatically stops working.",
    )
    parser.add_argument(
        "--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Concurrent API calls per batch."
    )
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="Timeout in seconds for each API call.")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="INFO")
    parser.add_argument("--log-file", help="Also write log records to this file")
    parser.add_argument("--version", action="store_true", help="Print the version then exit.")

    subparsers = parser.add_subparsers(dest="command", metavar="subcommand", help="Available subcommands")
    subcommand_parsers = {}
    for name, subcommand in REGISTRY.items():
        sub_parser = subparsers.add_parser(
            name,
            allow_abbrev=False,
            help=subcommand.description,
            description=subcommand.description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        subcommand.configure(sub_parser)
        sub_parser.epilog = _env_epilog(sub_parser, env_prefix_for(ENV_PREFIX, name))
        subcommand_parsers[name] = sub_parser

    parser.epilog = _env_epilog(parser, ENV_PREFIX)
    return parser, subcommand_parsers


def install_signal_handlers(cancel_event: asyncio.Event) -> None:
    """Set the cancel event on SIGINT/SIGTERM; a second signal exits immediately."""

    def signal_handler(signum: int, _frame: Any) -> None:
        if cancel_event.is_set():
            print(f"\nReceived second signal {signum}, forcing immediate exit...", file=sys.stderr)
            # Use os._exit() instead of sys.exit() to avoid asyncio shutdown issues
            os._exit(EXIT_FAILURE)
        print(f"\nReceived signal {signum}, cancelling... requests in flight will finish", file=sys.stderr)
        print("Press Control-C again to force immediate exit", file=sys.stderr)
        cancel_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def run_subcommand(
    subcommand: Subcommand, args: Namespace, config: ToolkitConfig, client: AlmaClient | None = None
) -> int:
    """
    Check API access for a subcommand, then run it.

    Returns:
        Process exit code
    """
    client = client or AlmaClient(
        host=config.host,
        key=config.key,
        threshold=config.threshold,
        concurrency=config.concurrency,
        timeout=config.timeout,
    )

    async with client:
        try:
            await client.check_api_and_key(subcommand.read_access, subcommand.write_access)
        except AlmaAccessError as e:
            logger.error(f"FATAL: API access check failed, {e}.")
            return EXIT_FAILURE

        try:
            await subcommand.run(args, client)
        except BatchIncompleteError as e:
            logger.error(f"{e}.")
            return e.exit_code
        except AlmaAbortedError as e:
            logger.error(f"Run aborted early: {e}.")
            return EXIT_ABORTED
        except (AlmaError, ConfigError, ValueError, OSError) as e:
            logger.error(f"FATAL: {e}.")
            return EXIT_FAILURE

    logger.info(f"{subcommand.name} finished, remaining API budget {client.budget.remaining}")
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the almatoolkit CLI."""
    argv = list(sys.argv[1:] if argv is None else argv)
    parser, subcommand_parsers = create_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"{PROJECT_NAME} - Version {__version__}.")
        return EXIT_OK

    if not args.command:
        parser.print_help()
        return EXIT_FAILURE

    subcommand = REGISTRY[args.command]
    try:
        apply_env_overrides(parser, args, argv, ENV_PREFIX)
        apply_env_overrides(subcommand_parsers[args.command], args, argv, env_prefix_for(ENV_PREFIX, args.command))
        config = ToolkitConfig.from_args(args)
        if subcommand.validate is not None:
            subcommand.validate(args)
    except ConfigError as e:
        print(f"FATAL: {e}.", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(config.log_level, config.log_file)
    logger.info(f"{PROJECT_NAME} {__version__}: running {subcommand.name} against {config.host}")

    async def _run() -> int:
        client = AlmaClient(
            host=config.host,
            key=config.key,
            threshold=config.threshold,
            concurrency=config.concurrency,
            timeout=config.timeout,
        )
        install_signal_handlers(client.cancel_event)
        return await run_subcommand(subcommand, args, config, client)

    return asyncio.run(_run())


def entry_point() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    entry_point()
