"""
File Sequence Store

Stores the last issued number in a small JSON document guarded by a
cross-process file lock:

    {"last_issued": 42, "reset_pending": false, "updated_at": "2026-10-19T12:00:00"}

Writes go to a temporary file that replaces the document, so a crash never
leaves a half-written counter behind. Blocking file work runs in a worker
thread.

Two lock files sit next to the document:
    - ``<name>.lock`` guards each single read or write
    - ``<name>.issue.lock`` is the issuance lock held through issue+persist
      and through the daily reset
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path

from filelock import FileLock, Timeout

from app.core.exceptions import StorageUnavailable
from app.services.sequence.base import BaseSequenceStore, acquire_file_lock

logger = logging.getLogger(__name__)


class FileSequenceStore(BaseSequenceStore):
    """
    JSON file backed sequence store.

    Attributes:
        path: Location of the JSON document
        lock_path: Location of the companion lock file
        issue_lock_path: Location of the issuance lock file
    """

    unavailable_errors = (OSError, ValueError, Timeout)

    def __init__(self, path: Path, timeout: float = 5.0):
        super().__init__(timeout=timeout)
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.issue_lock_path = self.path.with_name(self.path.name + ".issue.lock")
        # The lock must be released before asyncio.wait_for gives up
        self._lock = FileLock(str(self.lock_path), timeout=timeout * 0.8)
        # Acquired and released from different threads
        self._issue_lock = FileLock(str(self.issue_lock_path), timeout=timeout, thread_local=False)

    @property
    def backend_name(self) -> str:
        return "file"

    async def init(self) -> None:
        await self._guard("init", asyncio.to_thread(self._init_sync))

    # -------------------------------------------------------------------------
    # Synchronous helpers (run in a thread)
    # -------------------------------------------------------------------------

    def _init_sync(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if not self.path.exists():
                self._write_sync(0)
                logger.info(f"Created sequence file: {self.path}")

    def _load_sync(self) -> tuple[int, bool]:
        if not self.path.exists():
            return 0, False
        data = json.loads(self.path.read_text(encoding="utf-8"))
        value = data.get("last_issued")
        if not isinstance(value, int) or value < 0:
            raise StorageUnavailable(f"Sequence file {self.path} is corrupt")
        return value, bool(data.get("reset_pending", False))

    def _write_sync(self, value: int, reset_pending: bool = False) -> None:
        payload = {
            "last_issued": value,
            "reset_pending": reset_pending,
            "updated_at": datetime.now().isoformat(),
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, self.path)

    def _read_sync(self) -> int:
        with self._lock:
            return self._load_sync()[0]

    def _compare_and_set_sync(self, expected: int, new_value: int) -> bool:
        with self._lock:
            current, reset_pending = self._load_sync()
            if current != expected:
                return False
            self._write_sync(new_value, reset_pending)
            return True

    def _reset_sync(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self._write_sync(0)

    def _read_reset_pending_sync(self) -> bool:
        with self._lock:
            return self._load_sync()[1]

    def _mark_reset_pending_sync(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            current, _ = self._load_sync()
            self._write_sync(current, reset_pending=True)

    # -------------------------------------------------------------------------
    # Backend primitives
    # -------------------------------------------------------------------------

    async def _read(self) -> int:
        return await asyncio.to_thread(self._read_sync)

    async def _compare_and_set(self, expected: int, new_value: int) -> bool:
        return await asyncio.to_thread(self._compare_and_set_sync, expected, new_value)

    async def _reset(self) -> None:
        await asyncio.to_thread(self._reset_sync)

    async def _read_reset_pending(self) -> bool:
        return await asyncio.to_thread(self._read_reset_pending_sync)

    async def _mark_reset_pending(self) -> None:
        await asyncio.to_thread(self._mark_reset_pending_sync)

    async def _acquire_exclusive(self) -> None:
        self.issue_lock_path.parent.mkdir(parents=True, exist_ok=True)
        await acquire_file_lock(self._issue_lock, self.backend_name)

    async def _release_exclusive(self) -> None:
        self._issue_lock.release()
