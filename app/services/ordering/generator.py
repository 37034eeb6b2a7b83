"""
Order Number Generator

Turns the sequence's last issued number into the next order number:

    last_issued = 41  →  store 42  →  "000042"

Issuance is serialized by ``exclusive()``:
    - in-process by an asyncio.Lock
    - across processes by the sequence store's issuance lock
The daily reset takes the same lock, so it never interleaves with an
issuance whose order is not stored yet. Compare-and-set on the store still
guards the counter itself; a lost race (SequenceConflict) is retried a
bounded number of times.

Numbers past the padded width are not wrapped: the field widens
("999999" → "1000000") so numbers stay unique within the business day.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from app.core.exceptions import SequenceConflict, StorageUnavailable
from app.services.sequence.base import BaseSequenceStore

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 6


def format_order_number(value: int, width: int = DEFAULT_WIDTH) -> str:
    """
    Zero-pad ``value`` to ``width`` digits.

    Values that need more digits are returned unpadded and wider, with a
    warning, rather than wrapped.
    """
    if value < 0:
        raise ValueError("Order numbers are positive")
    if value >= 10 ** width:
        logger.warning(
            f"Order number {value} exceeds {width} digits, widening the field"
        )
    return f"{value:0{width}d}"


def parse_order_number(order_number: str) -> int:
    """Inverse of format_order_number."""
    if not order_number.isdigit():
        raise ValueError(f"Invalid order number: {order_number!r}")
    return int(order_number)


class OrderNumberGenerator:
    """
    Issues unique, increasing order numbers from a sequence store.

    Attributes:
        store: Sequence store holding the last issued number
        max_retries: Compare-and-set attempts before giving up
        width: Zero-padded width of formatted numbers

    Example:
        >>> generator = OrderNumberGenerator(InMemorySequenceStore())
        >>> await generator.issue_next()
        '000001'
        >>> await generator.issue_next()
        '000002'
    """

    def __init__(
        self,
        store: BaseSequenceStore,
        max_retries: int = 5,
        width: int = DEFAULT_WIDTH,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.store = store
        self.max_retries = max_retries
        self.width = width
        self._lock = asyncio.Lock()
        self._reset_pending = False

    @property
    def reset_pending(self) -> bool:
        return self._reset_pending

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """
        Hold the issuance lock in this process and in the sequence store.

        Issuing a number and storing its order, claiming a reserved number,
        and the daily reset all run under it, whichever process they run in.
        """
        async with self._lock:
            async with self.store.exclusive():
                yield

    async def mark_reset_pending(self) -> None:
        """
        Record that a scheduled reset did not reach the store.

        The flag is kept here and, when the store answers, in the store, so
        the next issuance in any process resets the sequence first instead
        of continuing from the previous day's value.
        """
        self._reset_pending = True
        try:
            await self.store.mark_reset_pending()
        except StorageUnavailable as e:
            logger.error(f"Pending reset only recorded in this process: {e.message}")
        logger.warning("Sequence reset pending, will retry before the next issuance")

    async def apply_pending_reset(self) -> None:
        """Reset the sequence if a daily reset is pending; the caller must hold ``exclusive()``."""
        if self._reset_pending or await self.store.is_reset_pending():
            await self.reset_locked()
            logger.info("Pending sequence reset applied")

    # -------------------------------------------------------------------------
    # Issuance
    # -------------------------------------------------------------------------

    async def issue_next(self) -> str:
        """Issue the next order number."""
        async with self.exclusive():
            return await self._issue_locked()

    @asynccontextmanager
    async def issuance(self) -> AsyncIterator[str]:
        """
        Issue a number and keep the issuance lock while the caller uses it.

        Usage:
            async with generator.issuance() as order_number:
                await records.create(Order(order_number=order_number, ...))

        The number is consumed even if the block raises.
        """
        async with self.exclusive():
            yield await self._issue_locked()

    async def current(self) -> int:
        """Last issued number, as an integer."""
        return await self.store.read()

    async def reset(self) -> None:
        """Reset the sequence to 0, waiting for any in-flight issuance."""
        async with self.exclusive():
            await self.reset_locked()

    async def reset_locked(self) -> None:
        """Reset the sequence; the caller must hold ``exclusive()``."""
        await self.store.reset()
        self._reset_pending = False

    async def _issue_locked(self) -> str:
        await self.apply_pending_reset()

        last_conflict: Optional[SequenceConflict] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                value = await self._try_issue()
            except SequenceConflict as e:
                last_conflict = e
                logger.warning(
                    f"Sequence conflict (attempt {attempt}/{self.max_retries}): {e}"
                )
                continue

            order_number = format_order_number(value, self.width)
            logger.debug(f"Issued order number {order_number}")
            return order_number

        logger.error(f"Gave up issuing an order number after {self.max_retries} conflicts")
        raise StorageUnavailable(
            "Could not issue an order number, please retry"
        ) from last_conflict

    async def _try_issue(self) -> int:
        current = await self.store.read()
        candidate = current + 1
        if not await self.store.compare_and_set(current, candidate):
            raise SequenceConflict(expected=current, attempted=candidate)
        return candidate
