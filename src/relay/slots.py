"""Single-current connection slot with replace-and-close semantics."""

from __future__ import annotations

import asyncio
import logging
from typing import Generic, Protocol, TypeVar

LOGGER = logging.getLogger(__name__)


class Closable(Protocol):
    async def close(self, reason: str = ...) -> None:  # pragma: no cover - protocol stub
        ...


T = TypeVar("T", bound=Closable)


class ConnectionSlot(Generic[T]):
    """Holds at most one current connection.

    :meth:`replace` swaps the holder and closes the displaced one while holding
    the slot lock, so two holders never both observe themselves as current.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = asyncio.Lock()
        self._current: T | None = None

    @property
    def current(self) -> T | None:
        return self._current

    def is_current(self, holder: T) -> bool:
        return self._current is holder

    async def replace(self, holder: T) -> T | None:
        async with self._lock:
            previous, self._current = self._current, holder
            if previous is not None and previous is not holder:
                LOGGER.info("Closing previous %s connection", self.name)
                await previous.close("superseded")
        return previous

    async def release(self, holder: T) -> bool:
        """Clear the slot if ``holder`` is still the current one."""

        async with self._lock:
            if self._current is not holder:
                return False
            self._current = None
            return True
