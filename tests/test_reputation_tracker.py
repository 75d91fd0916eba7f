"""
Tests for the clean-message counter.
"""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from reputation_tracker import ReputationTracker


def test_increment_starts_at_one_and_counts_per_user():
    tracker = ReputationTracker()

    async def scenario():
        return [
            await tracker.increment(1),
            await tracker.increment(1),
            await tracker.increment(2),
            await tracker.increment(1),
        ]

    assert asyncio.run(scenario()) == [1, 2, 1, 3]
    assert len(tracker) == 2


def test_concurrent_increments_are_not_lost():
    tracker = ReputationTracker()

    async def scenario():
        counts = await asyncio.gather(*(tracker.increment(77) for _ in range(50)))
        final = await tracker.increment(77)
        return counts, final

    counts, final = asyncio.run(scenario())

    assert sorted(counts) == list(range(1, 51))
    assert final == 51
