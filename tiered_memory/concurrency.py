"""
Async reader/writer lock serializing tier mutations.

Any number of readers may hold the lock together; a writer holds it alone.
Waiting writers block new readers so a stream of searches cannot starve an
insert.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Optional, Type, TypeVar

from .errors import TieredMemoryError

T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    error_cls: Type[TieredMemoryError],
    what: str,
) -> T:
    """
    Await an external call, failing with error_cls if it outlives timeout.

    Cancellation of the calling task is not intercepted.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise error_cls(f"{what} timed out after {timeout:g}s") from e


class ReadWriteLock:

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @property
    def locked(self) -> bool:
        return self._writer or self._readers > 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._waiting_writers == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._waiting_writers -= 1
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()
