"""
Subcommand declarations and helpers shared by the set-based subcommands.
"""

import argparse
import logging
from argparse import Namespace
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from alma_toolkit.api import AlmaClient, AlmaSet, SetMember
from alma_toolkit.config import ConfigError

from .report import RunOutcome

logger = logging.getLogger(__name__)

CONF_PATH = "/almaws/v1/conf"
BIBS_PATH = "/almaws/v1/bibs"


@dataclass
class Subcommand:
    """A toolkit subcommand and the API access it needs."""

    name: str
    description: str
    configure: Callable[[argparse.ArgumentParser], None]
    run: Callable[[Namespace, AlmaClient], Awaitable[None]]
    read_access: list[str] = field(default_factory=list)
    write_access: list[str] = field(default_factory=list)
    validate: Callable[[Namespace], None] | None = None


def add_output_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output", type=Path, help="Write the CSV report to this file instead of stdout")


def add_set_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--setid", help="The ID of the set we are processing. This flag or --setname is required.")
    parser.add_argument("--setname", help="The name of the set we are processing. This flag or --setid is required.")


def validate_set_arguments(args: Namespace) -> None:
    if not args.setid and not args.setname:
        raise ConfigError("a set name or a set ID is required")
    if args.setid and args.setname:
        raise ConfigError("use either a set name or a set ID, not both")


def describe_set(alma_set: AlmaSet) -> str:
    return f"'{alma_set.name}' (ID {alma_set.id})"


async def load_item_set(client: AlmaClient, args: Namespace, outcome: RunOutcome) -> tuple[AlmaSet, list[SetMember]]:
    """
    Resolve the set named by --setid/--setname and list its members.

    Raises:
        ConfigError: If the set is not an itemized set of items
    """
    alma_set = await client.resolve_set(name=args.setname, set_id=args.setid)
    if not alma_set.is_itemized_item_set:
        raise ConfigError(f"the set {describe_set(alma_set)} must be an itemized set of items")

    logger.info(f"Processing set {describe_set(alma_set)} with {alma_set.number_of_members:,} members")
    report = await client.list_members(alma_set)
    outcome.record(report, f"retrieving the members of {describe_set(alma_set)}")
    return alma_set, report.values
