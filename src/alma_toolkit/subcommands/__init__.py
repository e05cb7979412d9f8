"""
Subcommands this tool understands
"""

from . import cancel_requests, code_table, item_requests, scan_in
from .base import Subcommand
from .report import BatchIncompleteError, RunOutcome, write_csv

REGISTRY: dict[str, Subcommand] = {
    subcommand.name: subcommand
    for subcommand in (
        code_table.SUBCOMMAND,
        item_requests.SUBCOMMAND,
        cancel_requests.SUBCOMMAND,
        scan_in.SUBCOMMAND,
    )
}

__all__ = ["REGISTRY", "BatchIncompleteError", "RunOutcome", "Subcommand", "write_csv"]
