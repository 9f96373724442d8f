"""In-process guard against concurrent duplicate submissions"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sessionhub.exceptions import AlreadyInProgress

logger = logging.getLogger(__name__)


class RequestDeduplicator:
    """
    Tracks keys (payment intent ids) whose request is currently in flight.

    The check and the insert happen without an await in between, so under
    the single event loop no other task can slip in between them. The set
    lives in this process only; the persistent duplicate check in the
    booking service is still required across processes.
    """

    def __init__(self):
        self._in_flight: set[str] = set()

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def acquire(self, key: str) -> None:
        if key in self._in_flight:
            logger.info(f"Duplicate request detected for {key}")
            raise AlreadyInProgress(key)
        self._in_flight.add(key)

    def release(self, key: str) -> None:
        self._in_flight.discard(key)

    @asynccontextmanager
    async def guard(self, key: str) -> AsyncIterator[None]:
        """Hold the key for the duration of the block, released on every exit path"""
        self.acquire(key)
        try:
            yield
        finally:
            self.release(key)
