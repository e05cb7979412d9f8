"""
Alma API client with a rate-limited concurrent batch executor
"""

from .batch import AbortReason, BatchExecutor, BatchItem, BatchReport, BatchResult, ExecutorState, fetch_pages
from .budget import RateBudget
from .client import AlmaClient
from .exceptions import (
    AlmaAbortedError,
    AlmaAccessError,
    AlmaError,
    AlmaLookupError,
    AlmaRemoteError,
    AlmaTransportError,
    BatchItemError,
)
from .models import AlmaSet, CodeTableRow, SetMember, UserRequest

__all__ = [
    "AbortReason",
    "AlmaAbortedError",
    "AlmaAccessError",
    "AlmaClient",
    "AlmaError",
    "AlmaLookupError",
    "AlmaRemoteError",
    "AlmaSet",
    "AlmaTransportError",
    "BatchExecutor",
    "BatchItem",
    "BatchItemError",
    "BatchReport",
    "BatchResult",
    "CodeTableRow",
    "ExecutorState",
    "RateBudget",
    "SetMember",
    "UserRequest",
    "fetch_pages",
]
