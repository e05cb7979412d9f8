"""
Cancel item requests of a type and/or subtype on the items in a set.
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

CSV_HEADER = ["Request Link", "Request Type", "Request Subtype", "Matched type and subtype", "Cancelled in Alma"]


def configure(parser: argparse.ArgumentParser) -> None:
    add_set_arguments(parser)
    parser.add_argument("--type", dest="request_type", default="", help="The request type to cancel. ex: WORK_ORDER")
    parser.add_argument("--subtype", dest="request_subtype", default="", help="The request subtype to cancel.")
    parser.add_argument(
        "--reason",
        default="",
        help="Code of the cancel reason. Must be a value from the code table 'RequestCancellationReasons'.",
    )
    parser.add_argument("--note", default="", help="Note with additional information regarding the cancellation")
    parser.add_argument(
        "--dryrun", action="store_true", help="Do not perform any updates. Report on what changes would have been made."
    )
    add_output_argument(parser)


def validate(args: Namespace) -> None:
    validate_set_arguments(args)
    if not args.request_type and not args.request_subtype:
        raise ConfigError("a request type or a request sub type are required")
    if not args.reason:
        raise ConfigError(
            "a reason is required, try the 'conf-code-table' subcommand to find a value "
            "from the 'RequestCancellationReasons' table"
        )


def yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


async def run(args: Namespace, client: AlmaClient) -> None:
    if args.dryrun:
        logger.info("Running in dry run mode, no changes will be made in Alma.")
    else:
        logger.warning("Not running in dry run mode, changes will be made in Alma!")

    outcome = RunOutcome()
    alma_set, members = await load_item_set(client, args, outcome)

    requests_report = await client.list_user_requests(members)
    outcome.record(requests_report, f"retrieving requests on members of {describe_set(alma_set)}")
    requests = requests_report.flat_values()

    matching = [request for request in requests if request.matches(args.request_type, args.request_subtype)]
    matching_links = {request.link for request in matching}
    logger.info(f"{len(matching):,} of {len(requests):,} {pluralize(len(requests), 'request')} matched")

    cancelled_links: set[str] = set()
    if not args.dryrun:
        cancel_report = await client.cancel_user_requests(matching, args.reason, args.note)
        outcome.record(cancel_report, f"cancelling requests on members of {describe_set(alma_set)}")
        cancelled_links = {request.link for request in cancel_report.values}

    rows = (
        [
            request.link,
            request.type,
            request.sub_type,
            yes_no(request.link in matching_links),
            yes_no(request.link in cancelled_links),
        ]
        for request in requests
    )
    await write_csv(CSV_HEADER, rows, args.output)

    logger.info(f"{len(cancelled_links):,} {pluralize(len(cancelled_links), 'request')} cancelled.")
    outcome.raise_if_incomplete()


SUBCOMMAND = Subcommand(
    name="items-cancel-requests",
    description="Cancel item requests of type and/or subtype on items in the given set.",
    configure=configure,
    run=run,
    read_access=[CONF_PATH],
    write_access=[BIBS_PATH],
    validate=validate,
)
