"""Shared test configuration utilities and fixtures."""

import asyncio
from unittest.mock import patch

import pytest
import pytest_asyncio

from alma_toolkit.api import AlmaClient, RateBudget
from tests.test_utils.alma_mocks import TEST_HOST, TEST_KEY


def _no_sleep(seconds):
    """Synchronous sleep stub used to short-circuit tenacity waits in tests."""
    return None


@pytest.fixture(scope="session", autouse=True)
def disable_retry_delays():
    """Disable retry delays globally for all tests to speed up test suite.

    Retries will still happen (testing retry logic), but without wait times.
    Only patches tenacity's internal sleep functions, not asyncio.sleep globally.
    """
    import tenacity

    original_base_run_wait = tenacity.BaseRetrying._run_wait
    original_async_run_wait = tenacity.AsyncRetrying._run_wait

    def _zero_wait(self, retry_state):
        """Invoke original wait logic but force the computed delay to zero."""
        original_base_run_wait(self, retry_state)
        retry_state.upcoming_sleep = 0.0

    async def _zero_wait_async(self, retry_state):
        """Async equivalent that still computes retry metadata without sleeping."""
        await original_async_run_wait(self, retry_state)
        retry_state.upcoming_sleep = 0.0

    with patch("tenacity.nap.sleep", side_effect=_no_sleep):
        with patch.object(tenacity.BaseRetrying, "_run_wait", _zero_wait):
            with patch.object(tenacity.AsyncRetrying, "_run_wait", _zero_wait_async):
                yield


@pytest.fixture
def budget():
    return RateBudget()


@pytest.fixture
def cancel_event():
    return asyncio.Event()


@pytest_asyncio.fixture
async def alma_client():
    """Client pointed at a fake host with a threshold of 10 remaining calls."""
    client = AlmaClient(host=TEST_HOST, key=TEST_KEY, threshold=10, concurrency=3)
    yield client
    await client.close()
