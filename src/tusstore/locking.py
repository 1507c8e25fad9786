"""Per-key asyncio locks.

Each key gets its own ``asyncio.Lock`` on first use. The entry is dropped as
soon as no coroutine holds or waits for it, so the table only ever contains
ids with work in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class KeyedLock:
    """A table of mutexes scoped to individual keys.

    Waiters on the same key are served in arrival order (``asyncio.Lock`` is
    FIFO). Distinct keys never contend.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        The lock is released on every exit path, including cancellation
        while waiting.
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def locked(self, key: str) -> bool:
        """Return True if some coroutine currently holds the lock for ``key``."""
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
