"""
Record Store

Generic create/list/delete operations over the SQLAlchemy models (menus,
contacts, reservations, orders). Every call runs in its own session, is
bounded by the storage timeout, and reports failures with the service
exception taxonomy instead of raw database errors.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Any, Awaitable, Sequence, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.exceptions import RecordConflict, StorageUnavailable
from app.database import Base

logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound=Base)
T = TypeVar("T")


class RecordStore:
    """
    Persistence for plain records.

    Example:
        >>> records = get_record_store()
        >>> contact = await records.create(Contact(name="Jane", ...))
        >>> menus = await records.list(MenuItem, order_by=(MenuItem.name,))
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ):
        self.session_maker = session_maker
        self.timeout = timeout

    async def _guard(self, operation: str, model: type, call: Awaitable[T]) -> T:
        name = model.__name__
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"{name} {operation} timed out after {self.timeout}s")
            raise StorageUnavailable(f"Storage did not answer within {self.timeout}s")
        except IntegrityError as e:
            logger.warning(f"{name} {operation} violated a constraint: {e.orig}")
            raise RecordConflict(f"{name} conflicts with an existing record") from e
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"{name} {operation} failed: {e}")
            raise StorageUnavailable("Storage is unavailable") from e

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create(self, record: TModel) -> TModel:
        """Insert ``record`` and return it with server defaults loaded."""
        async def _create() -> TModel:
            async with self.session_maker() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
                return record

        return await self._guard("create", type(record), _create())

    async def list(
        self,
        model: type[TModel],
        order_by: Sequence[Any] = (),
    ) -> Sequence[TModel]:
        """Return every row of ``model``, sorted by the ``order_by`` columns."""
        async def _list() -> Sequence[TModel]:
            query = select(model)
            if order_by:
                query = query.order_by(*order_by)
            async with self.session_maker() as session:
                result = await session.execute(query)
                return result.scalars().all()

        return await self._guard("list", model, _list())

    async def count(self, model: type[TModel], *where: Any) -> int:
        """Count rows of ``model`` matching ``where``."""
        async def _count() -> int:
            query = select(func.count()).select_from(model)
            if where:
                query = query.where(*where)
            async with self.session_maker() as session:
                result = await session.execute(query)
                return result.scalar() or 0

        return await self._guard("count", model, _count())

    async def delete_all(self, model: type[TModel]) -> int:
        """Delete every row of ``model`` and return how many went."""
        async def _delete() -> int:
            async with self.session_maker() as session:
                async with session.begin():
                    result = await session.execute(delete(model))
            return result.rowcount or 0

        deleted = await self._guard("delete_all", model, _delete())
        logger.info(f"Deleted {deleted} {model.__name__} record(s)")
        return deleted

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session_maker() as session:
                await asyncio.wait_for(session.execute(select(func.now())), timeout=self.timeout)
            return True
        except (asyncio.TimeoutError, SQLAlchemyError, OSError) as e:
            logger.error(f"Database health check failed: {e}")
            return False


@lru_cache()
def get_record_store() -> RecordStore:
    """Get the shared record store."""
    from app.database import async_session_maker

    settings = get_settings()
    return RecordStore(async_session_maker, timeout=settings.storage_timeout_seconds)


def reset_record_store() -> None:
    """Clear the cached record store instance."""
    get_record_store.cache_clear()
