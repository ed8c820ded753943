"""
Per-user mutual exclusion.

The default-collection swap, restore-with-clear, the starter import and
the automatic-backup replacement are read-then-write sequences. Two
overlapping calls for the same user could both read the same state and
both write, leaving zero or two defaults or a doubled starter set.
Holding the user's lock for the whole sequence, including the commit,
serializes them.

Locks are process-local. Multi-process deployments rely on the store-level
unique indexes as the backstop.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class UserLockRegistry:
    """
    One ``asyncio.Lock`` per user id, created on first use.

    A user's entry is dropped once nobody holds or waits for the lock, so
    the registry only tracks users with work in flight.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._locks

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        """Hold the user's lock for the duration of the block."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[user_id] -= 1
            if self._users[user_id] == 0:
                del self._users[user_id]
                del self._locks[user_id]

    def is_locked(self, user_id: str) -> bool:
        """Whether some coroutine currently holds the user's lock."""
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    def clear(self) -> None:
        """Forget all locks. Only safe when none are held."""
        self._locks.clear()
        self._users.clear()


# Shared by every service in the process
user_locks = UserLockRegistry()
