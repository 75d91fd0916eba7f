"""
White Guard - Reputation Tracker
Counts clean (non-spam) messages per user since startup.
"""

import asyncio
import logging
from typing import Dict

logger = logging.getLogger(__name__)


class ReputationTracker:
    """
    In-memory clean-message counter.

    Counts only go up; a user leaves this table's concern once whitelisted.
    Nothing is persisted, so counts restart from zero with the process.
    Entries are never evicted.
    """

    def __init__(self):
        self._ham_counts: Dict[int, int] = {}
        self._lock = asyncio.Lock()

    async def increment(self, user_id: int) -> int:
        """Add one clean message for the user and return the new count."""
        async with self._lock:
            count = self._ham_counts.get(user_id, 0) + 1
            self._ham_counts[user_id] = count
        logger.debug(f"Rep: {user_id} now has {count} clean messages")
        return count

    def __len__(self) -> int:
        return len(self._ham_counts)
