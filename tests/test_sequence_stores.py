import json

import pytest
from filelock import FileLock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.exceptions import StorageUnavailable
from app.database import async_session_maker
from app.services.sequence import FileSequenceStore, InMemorySequenceStore
from app.services.sequence.database import DatabaseSequenceStore


async def test_memory_compare_and_set():
    store = InMemorySequenceStore()

    assert await store.compare_and_set(0, 1) is True
    assert await store.compare_and_set(0, 2) is False
    assert await store.read() == 1

    await store.reset()
    assert await store.read() == 0


# =============================================================================
# FILE STORE
# =============================================================================

async def test_file_store_creates_document(tmp_path):
    path = tmp_path / "seq" / "order_sequence.json"
    store = FileSequenceStore(path)

    await store.init()

    assert json.loads(path.read_text())["last_issued"] == 0
    assert await store.read() == 0


async def test_file_store_compare_and_set(tmp_path):
    store = FileSequenceStore(tmp_path / "order_sequence.json")
    await store.init()

    assert await store.compare_and_set(0, 1) is True
    assert await store.compare_and_set(0, 5) is False
    assert await store.read() == 1


async def test_file_store_survives_restart(tmp_path):
    path = tmp_path / "order_sequence.json"
    store = FileSequenceStore(path)
    await store.init()
    await store.compare_and_set(0, 41)

    restarted = FileSequenceStore(path)
    await restarted.init()

    assert await restarted.read() == 41
    await restarted.reset()
    assert await store.read() == 0


async def test_file_store_corrupt_document(tmp_path):
    path = tmp_path / "order_sequence.json"
    path.write_text("{not json")
    store = FileSequenceStore(path)

    with pytest.raises(StorageUnavailable):
        await store.read()


async def test_file_store_negative_value_is_corrupt(tmp_path):
    path = tmp_path / "order_sequence.json"
    path.write_text(json.dumps({"last_issued": -3}))

    with pytest.raises(StorageUnavailable):
        await FileSequenceStore(path).read()


async def test_file_store_lock_timeout(tmp_path):
    path = tmp_path / "order_sequence.json"
    store = FileSequenceStore(path, timeout=0.5)
    await store.init()

    with FileLock(str(store.lock_path)):
        with pytest.raises(StorageUnavailable):
            await store.compare_and_set(0, 1)

    assert await store.read() == 0


async def test_file_store_pending_reset_flag(tmp_path):
    path = tmp_path / "order_sequence.json"
    store = FileSequenceStore(path)
    await store.init()
    await store.compare_and_set(0, 41)

    await store.mark_reset_pending()

    other = FileSequenceStore(path)
    assert await other.is_reset_pending() is True
    assert await other.read() == 41

    await other.reset()
    assert await store.is_reset_pending() is False
    assert json.loads(path.read_text())["reset_pending"] is False


async def test_file_store_issuance_lock_spans_instances(tmp_path):
    path = tmp_path / "order_sequence.json"
    holder = FileSequenceStore(path)
    other = FileSequenceStore(path, timeout=0.3)
    await holder.init()

    async with holder.exclusive():
        with pytest.raises(StorageUnavailable):
            async with other.exclusive():
                pass

    async with other.exclusive():
        assert await other.compare_and_set(0, 1) is True


# =============================================================================
# DATABASE STORE
# =============================================================================

async def test_database_store_roundtrip(db):
    store = DatabaseSequenceStore(async_session_maker)
    await store.init()

    assert await store.read() == 0
    assert await store.compare_and_set(0, 1) is True
    assert await store.compare_and_set(0, 2) is False
    assert await store.read() == 1

    await store.reset()
    assert await store.read() == 0


async def test_database_store_init_is_idempotent(db):
    store = DatabaseSequenceStore(async_session_maker)
    await store.init()
    await store.compare_and_set(0, 7)

    await DatabaseSequenceStore(async_session_maker).init()

    assert await store.read() == 7


async def test_database_store_shared_between_instances(db):
    first = DatabaseSequenceStore(async_session_maker)
    second = DatabaseSequenceStore(async_session_maker)

    assert await first.compare_and_set(0, 1) is True
    # second still believes the value is 0
    assert await second.compare_and_set(0, 1) is False
    assert await second.read() == 1


async def test_database_store_pending_reset_flag(db):
    worker = DatabaseSequenceStore(async_session_maker)
    api = DatabaseSequenceStore(async_session_maker)
    await worker.compare_and_set(0, 41)

    assert await api.is_reset_pending() is False
    await worker.mark_reset_pending()
    assert await api.is_reset_pending() is True

    await api.reset()
    assert await worker.is_reset_pending() is False
    assert await worker.read() == 0


async def test_database_store_issuance_lock_spans_instances(db):
    holder = DatabaseSequenceStore(async_session_maker)
    other = DatabaseSequenceStore(async_session_maker, timeout=0.3)

    async with holder.exclusive():
        with pytest.raises(StorageUnavailable):
            async with other.exclusive():
                pass

    async with other.exclusive():
        assert await other.read() == 0


async def test_database_store_unavailable(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/seq.db")
    maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    store = DatabaseSequenceStore(maker, timeout=2.0)

    with pytest.raises(StorageUnavailable):
        await store.read()
    assert await store.health_check() is False

    await engine.dispose()
