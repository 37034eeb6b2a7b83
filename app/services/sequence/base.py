"""
Sequence Store Abstract Base Class

Defines the interface contract for the durable counter behind order numbers.
Database, file and in-memory stores all implement these methods, so the
order number generator behaves identically regardless of the backend.

Contract:
    - read() returns the last issued number (0 after a reset)
    - compare_and_set(expected, new_value) stores new_value only if the
      current value still equals expected, and reports whether it did
    - reset() sets the value back to 0 and clears the pending-reset flag
    - mark_reset_pending() records that a daily reset did not complete;
      every generator sharing the store applies it before issuing
    - exclusive() holds the issuance lock shared by every process using
      the store; issuing a number, storing its order and the daily reset
      all happen under it
    - every call either completes within the store's timeout or raises
      StorageUnavailable
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, TypeVar

from filelock import FileLock, Timeout

from app.core.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def acquire_file_lock(lock: FileLock, backend_name: str) -> None:
    """Acquire ``lock`` in a worker thread, bounded by the lock's own timeout."""
    try:
        await asyncio.to_thread(lock.acquire)
    except Timeout:
        logger.error(f"Issuance lock {lock.lock_file} busy after {lock.timeout}s ({backend_name})")
        raise StorageUnavailable("Order sequence is locked by another process, please retry")
    except OSError as e:
        logger.error(f"Issuance lock {lock.lock_file} failed ({backend_name}): {e}")
        raise StorageUnavailable("Order sequence storage is unavailable") from e


class BaseSequenceStore(ABC):
    """
    Abstract base class for sequence stores.

    Subclasses implement the ``_read``, ``_compare_and_set``, ``_reset`` and
    pending-flag primitives; the public methods wrap them with the timeout
    and error translation shared by every backend. Stores shared between
    processes also override ``_acquire_exclusive``/``_release_exclusive``.

    Example:
        >>> store = get_sequence_store()
        >>> await store.init()
        >>> async with store.exclusive():
        ...     current = await store.read()
        ...     await store.compare_and_set(current, current + 1)
        True
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._exclusive_mutex = asyncio.Lock()

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the name of the storage backend."""
        pass

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> None:
        """Prepare the backing medium (create row/file). Idempotent."""

    async def close(self) -> None:
        """Release resources held by the store."""

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def read(self) -> int:
        """Return the last issued number."""
        return await self._guard("read", self._read())

    async def compare_and_set(self, expected: int, new_value: int) -> bool:
        """Atomically replace ``expected`` with ``new_value``."""
        return await self._guard("compare_and_set", self._compare_and_set(expected, new_value))

    async def reset(self) -> None:
        """Set the last issued number back to 0."""
        await self._guard("reset", self._reset())
        logger.info(f"Sequence reset ({self.backend_name})")

    async def is_reset_pending(self) -> bool:
        """Whether a daily reset failed and must be applied before issuing."""
        return await self._guard("is_reset_pending", self._read_reset_pending())

    async def mark_reset_pending(self) -> None:
        """Flag the sequence so the next issuance, in any process, resets it first."""
        await self._guard("mark_reset_pending", self._mark_reset_pending())
        logger.warning(f"Sequence flagged for a pending reset ({self.backend_name})")

    async def health_check(self) -> bool:
        """Check that the store answers."""
        try:
            await self.read()
            return True
        except StorageUnavailable:
            return False

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """
        Hold the issuance lock of this sequence.

        Callers in this process queue on an asyncio lock; other processes
        are kept out by the backend's cross-process lock, whose acquisition
        gives up with StorageUnavailable after the store's timeout.
        """
        async with self._exclusive_mutex:
            await self._acquire_exclusive()
            try:
                yield
            finally:
                await self._release_exclusive()

    # -------------------------------------------------------------------------
    # Backend primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _read(self) -> int:
        pass

    @abstractmethod
    async def _compare_and_set(self, expected: int, new_value: int) -> bool:
        pass

    @abstractmethod
    async def _reset(self) -> None:
        pass

    @abstractmethod
    async def _read_reset_pending(self) -> bool:
        pass

    @abstractmethod
    async def _mark_reset_pending(self) -> None:
        pass

    async def _acquire_exclusive(self) -> None:
        """Take the cross-process part of the issuance lock (none by default)."""

    async def _release_exclusive(self) -> None:
        pass

    # Exceptions a backend raises when its medium is unreachable
    unavailable_errors: tuple[type[BaseException], ...] = (OSError,)

    async def _guard(self, operation: str, call: Awaitable[T]) -> T:
        """Bound ``call`` by the timeout and translate backend failures."""
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Sequence {operation} timed out after {self.timeout}s ({self.backend_name})")
            raise StorageUnavailable(
                f"Order sequence did not answer within {self.timeout}s"
            )
        except StorageUnavailable:
            raise
        except self.unavailable_errors as e:
            logger.error(f"Sequence {operation} failed ({self.backend_name}): {e}")
            raise StorageUnavailable("Order sequence storage is unavailable") from e
