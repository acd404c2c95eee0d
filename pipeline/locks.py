"""
In-process run exclusion and cooperative cancellation.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable

from core.exceptions import RunCancelledError, RunInProgressError


class RunLockRegistry:
    """
    One lock per config id.

    Acquisition never waits: a second run of the same config is rejected
    with RunInProgressError. Exclusion is per process only.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def is_running(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @property
    def active_count(self) -> int:
        return sum(1 for lock in self._locks.values() if lock.locked())

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        if key is None:
            # ad-hoc runs have no config to collide on
            yield
            return

        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            raise RunInProgressError(
                f"A run for config {key} is already in progress",
                context={"config_id": key}
            )

        await lock.acquire()
        try:
            yield
        finally:
            lock.release()


class CancellationToken:
    """Checked by the execution engine between records."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError("Run cancelled by request")
