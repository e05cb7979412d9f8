"""
Report the user requests on the items in a set.
"""

import argparse
import logging
from argparse import Namespace

from alma_toolkit.api import AlmaClient
from alma_toolkit.common import pluralize

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

CSV_HEADER = ["Request Link", "Request ID", "Request Type", "Request Subtype", "Request Status", "Barcode", "Title"]


def configure(parser: argparse.ArgumentParser) -> None:
    add_set_arguments(parser)
    add_output_argument(parser)


async def run(args: Namespace, client: AlmaClient) -> None:
    outcome = RunOutcome()
    alma_set, members = await load_item_set(client, args, outcome)

    report = await client.list_user_requests(members)
    outcome.record(report, f"retrieving requests on members of {describe_set(alma_set)}")
    requests = report.flat_values()

    rows = (
        [
            request.link,
            request.request_id,
            request.type,
            request.sub_type,
            request.status,
            request.barcode,
            request.title,
        ]
        for request in requests
    )
    await write_csv(CSV_HEADER, rows, args.output)

    logger.info(f"{len(requests):,} {pluralize(len(requests), 'request')} found on {len(members):,} items.")
    outcome.raise_if_incomplete()


SUBCOMMAND = Subcommand(
    name="items-requests",
    description="Report the user requests on items in the given set.",
    configure=configure,
    run=run,
    read_access=[CONF_PATH, BIBS_PATH],
    validate=validate_set_arguments,
)
