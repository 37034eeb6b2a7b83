"""
Daily Reset Scheduler

Once per day, at a configured wall-clock time, closes the business day:

    1. archive the day's orders to Excel (optional, failure tolerated)
    2. delete every order
    3. reset the order-number sequence to 0, retrying with a delay

All three steps run under the generator's issuance lock, which spans every
process sharing the sequence store, so no order is numbered or stored in
the middle of a reset. When the sequence cannot be reset after every
attempt, the inconsistency is logged as critical and a pending reset is
flagged in the store, so the next issuance in any process resets the
sequence first.

Missed firings (process down at the scheduled time) are not caught up.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Callable, Optional

from app.core.exceptions import StorageUnavailable
from app.models import ORDER_NUMBER_SORT, Order
from app.services.excel_manager import ExcelManager
from app.services.ordering.generator import OrderNumberGenerator
from app.services.records import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ResetResult:
    """Outcome of one daily reset."""
    business_day: date
    orders_deleted: int = 0
    orders_archived: int = 0
    sequence_reset: bool = False
    reset_attempts: int = 0
    archive_message: Optional[str] = None
    finished_at: Optional[datetime] = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "business_day": self.business_day.isoformat(),
            "orders_deleted": self.orders_deleted,
            "orders_archived": self.orders_archived,
            "sequence_reset": self.sequence_reset,
            "reset_attempts": self.reset_attempts,
            "archive_message": self.archive_message,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "errors": self.errors,
        }


def next_run_after(now: datetime, at: time) -> datetime:
    """
    First instant strictly after ``now`` whose wall-clock time is ``at``.

    ``now`` carries the timezone the reset time is expressed in (naive for
    local time).
    """
    candidate = datetime.combine(now.date(), at, tzinfo=now.tzinfo)
    if candidate <= now:
        candidate = datetime.combine(now.date() + timedelta(days=1), at, tzinfo=now.tzinfo)
    return candidate


class DailyResetScheduler:
    """
    Fires the daily reset.

    Attributes:
        generator: Order number generator whose sequence is reset
        records: Record store holding the orders
        reset_at: Wall-clock time of the reset
        tz: Timezone of ``reset_at`` (None for local time)
        retry_delay: Seconds between sequence reset attempts
        max_attempts: Sequence reset attempts before giving up
        archive: Archive orders to Excel before deleting them

    Example:
        >>> scheduler = DailyResetScheduler(generator, records, reset_at=time(0, 0))
        >>> scheduler.start()          # background asyncio task
        >>> await scheduler.run_once() # or fire immediately
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        generator: OrderNumberGenerator,
        records: RecordStore,
        reset_at: time = time(0, 0),
        tz: Optional[tzinfo] = None,
        retry_delay: float = 5.0,
        max_attempts: int = 12,
        archive: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.generator = generator
        self.records = records
        self.reset_at = reset_at
        self.tz = tz
        self.retry_delay = retry_delay
        self.max_attempts = max_attempts
        self.archive = archive
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.last_result: Optional[ResetResult] = None
        self._task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Timing
    # -------------------------------------------------------------------------

    def next_run(self) -> datetime:
        return next_run_after(self.clock(), self.reset_at)

    def seconds_until_next_run(self) -> float:
        now = self.clock()
        return max((next_run_after(now, self.reset_at) - now).total_seconds(), 0.0)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the background timer (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run_forever(), name="daily-order-reset")
        logger.info(f"Daily reset scheduled at {self.reset_at.strftime('%H:%M')} (next: {self.next_run().isoformat()})")

    async def stop(self) -> None:
        """Cancel the background timer and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Daily reset scheduler stopped")

    async def _run_forever(self) -> None:
        while True:
            delay = self.seconds_until_next_run()
            logger.debug(f"Next daily reset in {delay:.0f}s")
            await asyncio.sleep(delay)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Daily reset failed")
            # Leave the reset minute before computing the next run
            await asyncio.sleep(1)

    # -------------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------------

    async def run_once(self) -> ResetResult:
        """
        Close the current business day now.

        Raises:
            StorageUnavailable: The orders could not be deleted (the sequence
                is left untouched so numbering continues consistently)
        """
        result = ResetResult(business_day=(self.clock() - timedelta(seconds=1)).date())
        logger.info(f"Daily reset started for {result.business_day.isoformat()}")

        async with self.generator.exclusive():
            if self.archive:
                await self._archive_orders(result)

            try:
                result.orders_deleted = await self.records.delete_all(Order)
            except StorageUnavailable as e:
                result.errors.append(f"delete orders: {e.message}")
                self.last_result = result
                logger.error(f"Daily reset aborted, orders not deleted: {e.message}")
                raise

            await self._reset_sequence(result)

        result.finished_at = self.clock()
        self.last_result = result
        logger.info(
            f"Daily reset finished: {result.orders_deleted} order(s) deleted, "
            f"{result.orders_archived} archived, sequence reset={result.sequence_reset}"
        )
        return result

    async def _archive_orders(self, result: ResetResult) -> None:
        try:
            orders = await self.records.list(Order, order_by=ORDER_NUMBER_SORT)
        except StorageUnavailable as e:
            result.errors.append(f"archive: {e.message}")
            logger.error(f"Could not load orders for the archive: {e.message}")
            return
        if not orders:
            return

        rows = [ExcelManager.order_row(order) for order in orders]
        export = await asyncio.to_thread(ExcelManager.archive_orders, rows, result.business_day)
        result.archive_message = export["message"]
        if export["success"]:
            result.orders_archived = export["archived"]
        else:
            result.errors.append(f"archive: {export['message']}")

    async def _reset_sequence(self, result: ResetResult) -> None:
        for attempt in range(1, self.max_attempts + 1):
            result.reset_attempts = attempt
            try:
                await self.generator.reset_locked()
                result.sequence_reset = True
                return
            except StorageUnavailable as e:
                logger.warning(
                    f"Sequence reset failed (attempt {attempt}/{self.max_attempts}): {e.message}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)

        result.errors.append("sequence reset failed")
        logger.critical(
            f"Orders were deleted but the sequence could not be reset after "
            f"{self.max_attempts} attempts; the next issuance will reset it first"
        )
        await self.generator.mark_reset_pending()
