"""Per-identity FIFO serialization of store operations."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, TypeVar

T = TypeVar("T")


class IdentityQueue:
    """Run operations for the same identity one at a time, in arrival order.

    ``asyncio.Lock`` wakes waiters first-in first-out, so each identity's lock
    behaves as an operation queue. Locks for different identities are
    independent, and a lock is dropped once nobody holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._pending: Dict[str, int] = {}

    def pending(self, identity: str) -> int:
        return self._pending.get(identity, 0)

    @asynccontextmanager
    async def hold(self, identity: str) -> AsyncIterator[None]:
        lock = self._locks.get(identity)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[identity] = lock
        self._pending[identity] = self._pending.get(identity, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._pending[identity] - 1
            if remaining:
                self._pending[identity] = remaining
            else:
                self._pending.pop(identity, None)
                self._locks.pop(identity, None)

    async def run(self, identity: str, func: Callable[..., T], *args: Any) -> T:
        """Run blocking ``func`` in a worker thread while holding the identity's turn."""
        async with self.hold(identity):
            worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
            try:
                return await asyncio.shield(worker)
            except asyncio.CancelledError:
                # The write keeps going in its thread; hold the turn until it lands.
                await asyncio.wait({worker})
                raise


__all__ = ["IdentityQueue"]
