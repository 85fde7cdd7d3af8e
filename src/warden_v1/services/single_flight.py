from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

GLOBAL_KEY = "GLOBAL"

FlightKey = int | str


class SingleFlight:
    """Keys (executor ids or `GLOBAL_KEY`) with a remediation currently running."""

    def __init__(self) -> None:
        self._running: set[FlightKey] = set()

    def __contains__(self, key: FlightKey) -> bool:
        return key in self._running

    def running(self, key: FlightKey) -> bool:
        return key in self._running

    def claim(self, key: FlightKey) -> bool:
        # No await between the test and the insert, so this is atomic on the event loop.
        if key in self._running:
            return False
        self._running.add(key)
        return True

    def release(self, key: FlightKey) -> None:
        self._running.discard(key)

    def keys(self) -> set[FlightKey]:
        return set(self._running)

    @asynccontextmanager
    async def hold(self, key: FlightKey) -> AsyncIterator[bool]:
        claimed = self.claim(key)
        try:
            yield claimed
        finally:
            if claimed:
                self.release(key)
