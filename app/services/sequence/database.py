"""
Database Sequence Store

Keeps the last issued number in the single-row ``order_sequence`` table.
Compare-and-set is one conditional UPDATE:

    UPDATE order_sequence
       SET last_issued = :new_value
     WHERE id = 1 AND last_issued = :expected

so two API processes sharing the database can never store the same value
twice: the loser sees ``rowcount == 0`` and retries.

The issuance lock spans processes too. On PostgreSQL it is a session-level
advisory lock; on SQLite it is a file lock next to the database file.
"""

import asyncio
import logging
from typing import Optional

from filelock import FileLock
from sqlalchemy import select, text, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import StorageUnavailable
from app.models import OrderSequence, SEQUENCE_ROW_ID
from app.services.sequence.base import BaseSequenceStore, acquire_file_lock

logger = logging.getLogger(__name__)

# Advisory lock key shared by every process using the database
ISSUANCE_LOCK_KEY = 0x6F726465
ADVISORY_POLL_SECONDS = 0.05


class DatabaseSequenceStore(BaseSequenceStore):
    """Sequence store backed by the ``order_sequence`` table."""

    unavailable_errors = (SQLAlchemyError, OSError)

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ):
        super().__init__(timeout=timeout)
        self.session_maker = session_maker
        self._file_lock: Optional[FileLock] = None
        self._held_file_lock: Optional[FileLock] = None
        self._lock_session: Optional[AsyncSession] = None

    @property
    def backend_name(self) -> str:
        return "database"

    async def init(self) -> None:
        """Insert the counter row if it does not exist yet."""
        await self._guard("init", self._ensure_row())

    async def _ensure_row(self) -> None:
        async with self.session_maker() as session:
            existing = await session.get(OrderSequence, SEQUENCE_ROW_ID)
            if existing is not None:
                return
            session.add(OrderSequence(id=SEQUENCE_ROW_ID, last_issued=0, reset_pending=False))
            try:
                await session.commit()
                logger.info("Created order_sequence row")
            except IntegrityError:
                # Another process created it first
                await session.rollback()

    # -------------------------------------------------------------------------
    # Backend primitives
    # -------------------------------------------------------------------------

    async def _read(self) -> int:
        async with self.session_maker() as session:
            result = await session.execute(
                select(OrderSequence.last_issued).where(OrderSequence.id == SEQUENCE_ROW_ID)
            )
            value = result.scalar_one_or_none()
        if value is None:
            await self._ensure_row()
            return 0
        return value

    async def _compare_and_set(self, expected: int, new_value: int) -> bool:
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(OrderSequence)
                    .where(
                        OrderSequence.id == SEQUENCE_ROW_ID,
                        OrderSequence.last_issued == expected,
                    )
                    .values(last_issued=new_value, updated_at=func.now())
                )
        return result.rowcount == 1

    async def _reset(self) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(OrderSequence)
                    .where(OrderSequence.id == SEQUENCE_ROW_ID)
                    .values(last_issued=0, reset_pending=False, updated_at=func.now())
                )
        if result.rowcount == 0:
            await self._ensure_row()

    async def _read_reset_pending(self) -> bool:
        async with self.session_maker() as session:
            result = await session.execute(
                select(OrderSequence.reset_pending).where(OrderSequence.id == SEQUENCE_ROW_ID)
            )
            return bool(result.scalar_one_or_none())

    async def _mark_reset_pending(self) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    update(OrderSequence)
                    .where(OrderSequence.id == SEQUENCE_ROW_ID)
                    .values(reset_pending=True, updated_at=func.now())
                )

    # -------------------------------------------------------------------------
    # Issuance lock
    # -------------------------------------------------------------------------

    async def _acquire_exclusive(self) -> None:
        engine = self.session_maker.kw.get("bind")
        if engine is None:
            return
        if engine.dialect.name == "postgresql":
            await self._acquire_advisory_lock()
            return

        database = engine.url.database
        if not database or database == ":memory:":
            # Private to this process
            return
        if self._file_lock is None:
            self._file_lock = FileLock(
                f"{database}.issue.lock", timeout=self.timeout, thread_local=False
            )
        await acquire_file_lock(self._file_lock, self.backend_name)
        self._held_file_lock = self._file_lock

    async def _acquire_advisory_lock(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        session = self.session_maker()
        try:
            while True:
                result = await session.execute(
                    text("SELECT pg_try_advisory_lock(:key)"), {"key": ISSUANCE_LOCK_KEY}
                )
                if result.scalar():
                    break
                if loop.time() >= deadline:
                    logger.error(f"Issuance lock busy after {self.timeout}s ({self.backend_name})")
                    raise StorageUnavailable(
                        "Order sequence is locked by another process, please retry"
                    )
                await asyncio.sleep(ADVISORY_POLL_SECONDS)
        except (SQLAlchemyError, OSError) as e:
            await session.close()
            logger.error(f"Issuance lock failed ({self.backend_name}): {e}")
            raise StorageUnavailable("Order sequence storage is unavailable") from e
        except BaseException:
            await session.close()
            raise
        self._lock_session = session

    async def _release_exclusive(self) -> None:
        if self._held_file_lock is not None:
            lock, self._held_file_lock = self._held_file_lock, None
            lock.release()
            return

        if self._lock_session is not None:
            session, self._lock_session = self._lock_session, None
            try:
                await session.execute(
                    text("SELECT pg_advisory_unlock(:key)"), {"key": ISSUANCE_LOCK_KEY}
                )
            except (SQLAlchemyError, OSError) as e:
                # The server drops the lock with the broken connection
                logger.error(f"Could not release issuance lock: {e}")
            finally:
                await session.close()
