"""QuotaGuard — serializes quota checks with the writes they admit."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from contextlib import AbstractAsyncContextManager

GLOBAL_SCOPE = "."


class QuotaGuard:
    """Registry of one ``asyncio.Lock`` per quota scope.

    A quota-sensitive operation holds its scope's lock from the usage
    measurement until its mutation is done, so two writers on the same
    scope cannot both pass the check on the same stale usage figure.
    Nested acquisition must always go user scope first, then
    ``GLOBAL_SCOPE``.

    A scope's lock lives only while some task holds or awaits it.
    Coordination is in-process only and assumes one event loop.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        """Number of scopes currently held or awaited."""
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def _locked(self, scope: str) -> AsyncIterator[None]:
        lock = self._locks.get(scope)
        if lock is None:
            lock = self._locks[scope] = asyncio.Lock()
        self._holders[scope] = self._holders.get(scope, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[scope] -= 1
            if not self._holders[scope]:
                del self._holders[scope]
                del self._locks[scope]

    def hold(
        self, scope: str, capacity: int | None
    ) -> AbstractAsyncContextManager[object]:
        """Lock *scope* when it has a capacity; a no-op context otherwise."""
        if capacity is None:
            return contextlib.nullcontext()
        return self._locked(scope)
