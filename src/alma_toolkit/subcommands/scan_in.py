"""
Scan in the items in a set at a circulation desk.
"""

import argparse
import logging
from argparse import Namespace

from alma_toolkit.api import AlmaClient
from alma_toolkit.common import pluralize
from alma_toolkit.config import ConfigError

from .base import (
    BIBS_PATH,
    CONF_PATH,
    Subcommand,
    add_output_argument,
    add_set_arguments,
    describe_set,
    load_item_set,
    validate_set_arguments,
)
from .report import RunOutcome, write_csv

logger = logging.getLogger(__name__)

CSV_HEADER = ["Item Link", "Description", "Barcode", "Scanned in"]


def configure(parser: argparse.ArgumentParser) -> None:
    add_set_arguments(parser)
    parser.add_argument("--library", default="", help="The code of the library the items are scanned in at.")
    parser.add_argument("--circdesk", default="", help="The code of the circulation desk the items are scanned in at.")
    parser.add_argument("--department", default="", help="Optional work order department code.")
    parser.add_argument(
        "--dryrun", action="store_true", help="Do not perform any updates. Report on what changes would have been made."
    )
    add_output_argument(parser)


def validate(args: Namespace) -> None:
    validate_set_arguments(args)
    if not args.library:
        raise ConfigError("a library code is required")
    if not args.circdesk:
        raise ConfigError("a circulation desk code is required")


async def run(args: Namespace, client: AlmaClient) -> None:
    if args.dryrun:
        logger.info("Running in dry run mode, no changes will be made in Alma.")
    else:
        logger.warning("Not running in dry run mode, changes will be made in Alma!")

    outcome = RunOutcome()
    alma_set, members = await load_item_set(client, args, outcome)

    barcodes: dict[str, str] = {}
    if not args.dryrun:
        report = await client.scan_in_items(members, args.library, args.circdesk, args.department or None)
        outcome.record(report, f"scanning in members of {describe_set(alma_set)}")
        barcodes = {result.key: result.value for result in report.successes}

    rows = (
        [member.link, member.description, barcodes.get(member.link, ""), "yes" if member.link in barcodes else "no"]
        for member in members
    )
    await write_csv(CSV_HEADER, rows, args.output)

    logger.info(f"{len(barcodes):,} {pluralize(len(barcodes), 'item')} scanned in.")
    outcome.raise_if_incomplete()


SUBCOMMAND = Subcommand(
    name="items-scan-in",
    description="Scan in items in the given set at a library circulation desk.",
    configure=configure,
    run=run,
    read_access=[CONF_PATH],
    write_access=[BIBS_PATH],
    validate=validate,
)
