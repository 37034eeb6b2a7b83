import os
import tempfile

# Settings are read once; point them at throwaway storage before importing app
_TMP_DIR = tempfile.mkdtemp(prefix="restaurant-tests-")
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["SEQUENCE_BACKEND"] = "database"
os.environ["SCHEDULER_MODE"] = "disabled"
os.environ["DATA_DIRECTORY"] = os.path.join(_TMP_DIR, "data")
os.environ["ARCHIVE_ORDERS_ON_RESET"] = "false"
os.environ["RESET_RETRY_DELAY_SECONDS"] = "0"
os.environ["STORAGE_TIMEOUT_SECONDS"] = "5"

import asyncio
import uuid

import httpx
import pytest

from app.core.exceptions import RecordConflict, StorageUnavailable
from app.database import drop_db, init_db
from app.services.ordering import (
    DailyResetScheduler,
    OrderIntakeService,
    OrderNumberGenerator,
    reset_ordering_services,
)
from app.services.sequence import InMemorySequenceStore, get_sequence_store


class FlakySequenceStore(InMemorySequenceStore):
    """In-memory store whose operations can be switched to fail."""

    def __init__(self, initial: int = 0, timeout: float = 1.0):
        super().__init__(initial=initial, timeout=timeout)
        self.fail_reads = False
        self.fail_resets = 0
        self.cas_conflicts = 0
        self.fail_marks = False
        self.read_calls = 0

    async def _read(self) -> int:
        self.read_calls += 1
        if self.fail_reads:
            raise OSError("disk unplugged")
        return await super()._read()

    async def _compare_and_set(self, expected: int, new_value: int) -> bool:
        if self.cas_conflicts:
            self.cas_conflicts -= 1
            # Someone else issued a number in between
            self._value += 1
            return False
        return await super()._compare_and_set(expected, new_value)

    async def _reset(self) -> None:
        if self.fail_resets:
            self.fail_resets -= 1
            raise OSError("disk unplugged")
        await super()._reset()

    async def _mark_reset_pending(self) -> None:
        if self.fail_marks:
            raise OSError("disk unplugged")
        await super()._mark_reset_pending()


class FakeRecordStore:
    """Record store keeping orders in a list."""

    def __init__(self, create_delay: float = 0.0):
        self.records: list = []
        self.create_delay = create_delay
        self.fail_creates = False
        self.fail_deletes = False

    async def create(self, record):
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.fail_creates:
            raise StorageUnavailable("Storage is unavailable")
        number = getattr(record, "order_number", None)
        if number is not None and any(
            getattr(r, "order_number", None) == number for r in self.records
        ):
            raise RecordConflict("Order conflicts with an existing record")
        if record.id is None:
            record.id = str(uuid.uuid4())
        self.records.append(record)
        return record

    async def list(self, model, order_by=()):
        return [r for r in self.records if isinstance(r, model)]

    async def count(self, model, *where):
        # Only used for order-number lookups
        column_filter = where[0] if where else None
        matches = [r for r in self.records if isinstance(r, model)]
        if column_filter is not None:
            value = column_filter.right.value
            matches = [r for r in matches if r.order_number == value]
        return len(matches)

    async def delete_all(self, model):
        if self.fail_deletes:
            raise StorageUnavailable("Storage is unavailable")
        before = len(self.records)
        self.records = [r for r in self.records if not isinstance(r, model)]
        return before - len(self.records)


@pytest.fixture
def memory_store():
    return FlakySequenceStore()


@pytest.fixture
def generator(memory_store):
    return OrderNumberGenerator(memory_store, max_retries=5)


@pytest.fixture
def fake_records():
    return FakeRecordStore()


@pytest.fixture
def intake(generator, fake_records):
    return OrderIntakeService(generator, fake_records)


@pytest.fixture
def scheduler(generator, fake_records):
    return DailyResetScheduler(
        generator,
        fake_records,
        retry_delay=0,
        max_attempts=3,
        archive=False,
    )


@pytest.fixture
async def db():
    """Fresh SQLite schema and freshly built services."""
    reset_ordering_services()
    await drop_db()
    await init_db()
    await get_sequence_store().init()
    yield
    reset_ordering_services()


@pytest.fixture
async def client(db):
    from app.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
