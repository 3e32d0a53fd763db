"""
In-process serialization of identify calls that touch the same identifiers
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional


def identifier_lock_keys(email: Optional[str], phone: Optional[str]) -> List[str]:
    """
    Normalized, sorted lock keys for an identify request
    Emails are compared case-insensitively here so that near-identical
    requests still queue behind each other
    """
    keys = []
    if email:
        keys.append(f"email:{email.strip().lower()}")
    if phone:
        keys.append(f"phone:{phone.strip()}")
    return sorted(keys)


class IdentifierLocks:
    """
    Registry of asyncio locks keyed by identifier

    Locks are created on demand and discarded once no caller holds or
    waits on them. Keys are always acquired in sorted order so two
    requests sharing several identifiers cannot deadlock.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self):
        return len(self._locks)

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str):
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def acquire(self, keys: Iterable[str]) -> AsyncIterator[None]:
        """Hold every key's lock for the duration of the block"""
        ordered = sorted(set(keys))
        locks = [self._checkout(key) for key in ordered]
        acquired = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._checkin(key)
