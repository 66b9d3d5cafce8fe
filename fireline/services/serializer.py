"""
serializer.py — Per-key single-writer queue.

Operations submitted for the same key run one at a time, in the order
they were submitted; operations for different keys run freely in
parallel. The reconciliation engine keys by Region.key, so a create, an
edit and a delete on the same region always reach the store in the order
the user performed them.

asyncio.Lock wakes waiters first-in first-out and tasks start in the
order they are created, so submission order is preserved without an
explicit queue.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedSerializer:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiting: dict[str, int] = {}

    async def run(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiting[key] = self._waiting.get(key, 0) + 1
        try:
            async with lock:
                return await operation()
        finally:
            self._waiting[key] -= 1
            if self._waiting[key] == 0:
                # Last user of this key; drop the lock so the table doesn't grow.
                del self._waiting[key]
                del self._locks[key]
