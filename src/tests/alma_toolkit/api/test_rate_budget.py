#!/usr/bin/env python3
"""Tests for the shared remaining-call budget."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from alma_toolkit.api import RateBudget


def test_unknown_until_first_report():
    budget = RateBudget()

    assert budget.remaining is None
    assert not budget.exhausted(10)


@pytest.mark.parametrize(
    "remaining,threshold,expected",
    [(11, 10, False), (10, 10, False), (9, 10, True), (0, 0, False), (0, 1, True)],
)
def test_exhausted_is_strictly_below_threshold(remaining, threshold, expected):
    budget = RateBudget()
    budget.update(remaining)

    assert budget.exhausted(threshold) is expected


def test_samples_are_non_increasing():
    budget = RateBudget()
    samples = []

    for reported in [500, 498, 499, 497, 497, 600, 450]:
        budget.update(reported)
        samples.append(budget.remaining)

    assert samples == [500, 498, 498, 497, 497, 497, 450]
    assert all(later <= earlier for earlier, later in zip(samples, samples[1:]))


def test_concurrent_updates_are_not_lost():
    budget = RateBudget()
    reports = list(range(10_000, 0, -1))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(budget.update, reports))

    assert budget.remaining == 1
