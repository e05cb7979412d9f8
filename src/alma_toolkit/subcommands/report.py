"""
CSV report output and run outcome tracking for subcommands.
"""

import csv
import io
import logging
import sys
from collections.abc import Iterable, Sequence
from pathlib import Path

import aiofiles

from alma_toolkit.api import AbortReason, BatchReport
from alma_toolkit.common import pluralize
from alma_toolkit.constants import EXIT_ABORTED, EXIT_FAILURE

logger = logging.getLogger(__name__)


class BatchIncompleteError(Exception):
    """Raised at the end of a run whose batches failed partly or stopped early."""

    def __init__(self, message: str, exit_code: int):
        self.exit_code = exit_code
        super().__init__(message)


async def write_csv(header: Sequence[str], rows: Iterable[Sequence[str]], output: Path | None = None) -> int:
    """Write a CSV report to stdout, or to output if given.

    Returns:
        Number of data rows written
    """
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer)
    writer.writerow(header)
    row_count = 0
    for row in rows:
        writer.writerow(row)
        row_count += 1

    if output is None:
        sys.stdout.write(buffer.getvalue())
        sys.stdout.flush()
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(output, "w", encoding="utf-8", newline="") as f:
            await f.write(buffer.getvalue())
        logger.info(f"Wrote {row_count:,} {pluralize(row_count, 'row')} to {output}")

    return row_count


class RunOutcome:
    """Collects the failures and early stops of every batch in one subcommand run."""

    def __init__(self):
        self.failure_count = 0
        self.not_attempted = 0
        self.abort_reason: AbortReason | None = None
        self.messages: list[str] = []

    def record(self, report: BatchReport, action: str) -> None:
        """
        Log a batch's failures and remember them for the final summary.

        Args:
            report: The batch report
            action: What the batch was doing, e.g. "cancelling requests on members of 'X'"
        """
        for error in report.errors:
            logger.error(str(error))

        if report.failures:
            self.failure_count += len(report.failures)
            self.messages.append(f"{len(report.failures)} error(s) occurred when {action}")

        if report.aborted:
            if self.abort_reason is None:
                self.abort_reason = report.abort_reason
            self.not_attempted += report.not_attempted
            detail = f"{report.not_attempted:,} {pluralize(report.not_attempted, 'item')} not attempted"
            if report.pages_remaining:
                detail += f", {report.pages_remaining:,} {pluralize(report.pages_remaining, 'page')} not fetched"
            elif report.pages_remaining is None:
                detail += ", remaining pages unknown"
            self.messages.append(f"stopped early when {action} ({detail})")

    @property
    def complete(self) -> bool:
        return self.failure_count == 0 and self.abort_reason is None

    def raise_if_incomplete(self) -> None:
        """Raise BatchIncompleteError describing what went wrong, if anything did."""
        if self.complete:
            return
        summary = "; ".join(self.messages)
        if self.abort_reason is not None:
            reason = self.abort_reason.value.replace("_", " ")
            raise BatchIncompleteError(f"run aborted early ({reason}): {summary}", EXIT_ABORTED)
        raise BatchIncompleteError(summary, EXIT_FAILURE)
