"""
Dump the rows of an Alma code table.
"""

import argparse
from argparse import Namespace

from alma_toolkit.api import AlmaClient
from alma_toolkit.config import ConfigError

from .base import CONF_PATH, Subcommand, add_output_argument
from .report import write_csv

CSV_HEADER = ["Code", "Description"]


def configure(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--table", default="", help="The code table to dump. ex: RequestCancellationReasons")
    add_output_argument(parser)


def validate(args: Namespace) -> None:
    if not args.table:
        raise ConfigError("a code table name is required")


async def run(args: Namespace, client: AlmaClient) -> None:
    rows = await client.code_table(args.table)
    await write_csv(CSV_HEADER, ([row.code, row.description] for row in rows), args.output)


SUBCOMMAND = Subcommand(
    name="conf-code-table",
    description="Print the codes and descriptions in an Alma code table.",
    configure=configure,
    run=run,
    read_access=[CONF_PATH],
    validate=validate,
)
