"""
In-Memory Sequence Store

Keeps the last issued number in process memory. Used in development mode
and tests: the value does not survive a restart, so production settings
validation flags it.
"""

import asyncio
import logging

from app.services.sequence.base import BaseSequenceStore

logger = logging.getLogger(__name__)


class InMemorySequenceStore(BaseSequenceStore):
    """
    Process-local sequence store.

    Attributes:
        initial: Value the counter starts from
    """

    def __init__(self, initial: int = 0, timeout: float = 5.0):
        super().__init__(timeout=timeout)
        self._value = initial
        self._reset_pending = False
        self._mutex = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    async def _read(self) -> int:
        return self._value

    async def _compare_and_set(self, expected: int, new_value: int) -> bool:
        async with self._mutex:
            if self._value != expected:
                return False
            self._value = new_value
            return True

    async def _reset(self) -> None:
        async with self._mutex:
            self._value = 0
            self._reset_pending = False

    async def _read_reset_pending(self) -> bool:
        return self._reset_pending

    async def _mark_reset_pending(self) -> None:
        self._reset_pending = True
