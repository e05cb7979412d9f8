"""
Common utilities

Shared helpers for progress reporting and human-readable output.
"""

import sys
import time
from typing import TextIO


def pluralize(count: int, word: str) -> str:
    """
    Return correct singular/plural form of a word.

    Args:
        count: Number of items
        word: Base word (singular form)

    Returns:
        str: Correctly pluralized word
    """
    return word if count == 1 else f"{word}s"


def format_duration(seconds: float) -> str:
    """
    Format duration as human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        str: Formatted duration (e.g., "1.5s", "2m 30s", "1h 15m")
    """
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        remaining_seconds = seconds % 60
        return f"{minutes}m {remaining_seconds:.0f}s"
    else:
        hours = int(seconds // 3600)
        remaining_minutes = int((seconds % 3600) // 60)
        return f"{hours}h {remaining_minutes}m"


class ProgressReporter:
    """
    Consistent progress reporting for long-running batch operations.

    Reports go to stderr so they never mix with CSV written to stdout.
    """

    def __init__(
        self, operation_name: str, total_items: int | None = None, interval: float = 5.0, stream: TextIO | None = None
    ):
        self.operation_name = operation_name
        self.total_items = total_items
        self.interval = interval
        self.stream = stream
        self.start_time: float | None = None
        self.last_report_time: float | None = None
        self.processed_items = 0
        self.failed_items = 0
        self.last_record_id: str | None = None

    def start(self) -> None:
        """Start progress tracking."""
        self.start_time = time.perf_counter()
        self.last_report_time = self.start_time

    def increment(self, failed: bool = False, force: bool = False, record_id: str | None = None) -> None:
        """
        Count one finished item and report if the interval has elapsed.

        Args:
            failed: Whether the item failed
            force: Force progress report even if time threshold not met
            record_id: ID of the record just processed
        """
        self.processed_items += 1
        if failed:
            self.failed_items += 1
        if record_id:
            self.last_record_id = record_id

        current_time = time.perf_counter()
        if force or (self.last_report_time is not None and current_time - self.last_report_time >= self.interval):
            elapsed = current_time - (self.start_time or current_time)

            parts = []
            if self.total_items:
                percentage = (self.processed_items / self.total_items) * 100
                parts.append(f"{self.processed_items}/{self.total_items} ({percentage:.1f}%)")
            else:
                parts.append(f"{self.processed_items:,} {pluralize(self.processed_items, 'item')}")

            if self.failed_items:
                parts.append(f"{self.failed_items:,} failed")

            parts.append(f"elapsed: {format_duration(elapsed)}")

            if self.last_record_id:
                parts.append(f"current: {self.last_record_id}")

            print(f"{self.operation_name}: {' | '.join(parts)}", file=self.stream or sys.stderr, flush=True)
            self.last_report_time = current_time

    def finish(self) -> None:
        """Complete progress tracking and show final summary."""
        if self.start_time:
            total_time = time.perf_counter() - self.start_time

            parts = [f"Completed {self.operation_name}"]
            parts.append(f"{self.processed_items:,} {pluralize(self.processed_items, 'item')}")
            if self.failed_items:
                parts.append(f"{self.failed_items:,} failed")
            parts.append(f"total time: {format_duration(total_time)}")

            print(" | ".join(parts), file=self.stream or sys.stderr, flush=True)
