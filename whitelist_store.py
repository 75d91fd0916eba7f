"""
White Guard - Whitelist Store
Durable set of trusted user IDs that skip LLM classification.
"""

import asyncio
import logging
import os
from typing import Set

logger = logging.getLogger(__name__)


class WhitelistStore:
    """
    Whitelist backed by a plain text file (one user ID per line) with an
    in-memory set mirror for lookups.

    The file is append-only: promotions add a line, nothing is ever removed.
    A single process is assumed to own the file.
    """

    def __init__(self, path: str):
        self.path = path
        self._users: Set[int] = set()
        self._lock = asyncio.Lock()

    def load(self) -> Set[int]:
        """
        Read the whitelist file into memory.

        A missing or unreadable file gives an empty whitelist; blank and
        unparsable lines are skipped.
        """
        users: Set[int] = set()
        if not os.path.exists(self.path):
            logger.info(f"Whitelist file {self.path} not found, starting empty")
        else:
            try:
                with open(self.path, 'r', encoding='utf-8') as f:
                    for line in f:
                        try:
                            users.add(int(line.strip()))
                        except ValueError:
                            continue
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"⚠️ Could not read whitelist file {self.path}: {e}. Using empty whitelist.")
                users = set()

        self._users = users
        logger.info(f"📋 Whitelist loaded: {len(users)} users")
        return set(users)

    def contains(self, user_id: int) -> bool:
        return user_id in self._users

    async def add(self, user_id: int) -> bool:
        """
        Add a user to the whitelist.

        Returns True if the user was newly added, False if already present.
        The line is written to disk before the in-memory set changes, so a
        failed write (OSError is propagated) leaves the user un-whitelisted.
        """
        async with self._lock:
            if user_id in self._users:
                return False
            await asyncio.to_thread(self._append_line, str(user_id))
            self._users.add(user_id)

        logger.info(f"⭐ User {user_id} added to whitelist ({len(self._users)} total)")
        return True

    def _append_line(self, line: str):
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(self.path, 'ab+') as f:
            # A hand-edited file may lack its final newline
            if f.seek(0, os.SEEK_END) > 0:
                f.seek(-1, os.SEEK_END)
                if f.read(1) != b"\n":
                    f.write(b"\n")
            f.write(f"{line}\n".encode('utf-8'))

    def __len__(self) -> int:
        return len(self._users)
