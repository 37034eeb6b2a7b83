"""
Sequence Store Factory

Provides a single entry point for obtaining the order-number sequence store.
The rest of the application only sees BaseSequenceStore.

Usage:
    from app.services.sequence import get_sequence_store

    store = get_sequence_store()
    await store.init()

Backend switching:
    - SEQUENCE_BACKEND=database → DatabaseSequenceStore (default)
    - SEQUENCE_BACKEND=file → FileSequenceStore (JSON file + file lock)
    - SEQUENCE_BACKEND=memory → InMemorySequenceStore (not durable)
"""

import logging
from functools import lru_cache

from app.core.config import SequenceBackend, get_settings
from app.services.sequence.base import BaseSequenceStore
from app.services.sequence.file import FileSequenceStore
from app.services.sequence.memory import InMemorySequenceStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_sequence_store() -> BaseSequenceStore:
    """
    Get the configured sequence store instance.

    The instance is cached so every request, the generator and the
    scheduler share the same store.

    Returns:
        BaseSequenceStore: Configured sequence store
    """
    settings = get_settings()
    timeout = settings.storage_timeout_seconds

    if settings.sequence_backend == SequenceBackend.MEMORY:
        logger.info("Sequence Store: Using InMemorySequenceStore")
        return InMemorySequenceStore(timeout=timeout)

    if settings.sequence_backend == SequenceBackend.FILE:
        logger.info(f"Sequence Store: Using FileSequenceStore ({settings.sequence_file_path})")
        return FileSequenceStore(settings.sequence_file_path, timeout=timeout)

    from app.database import async_session_maker
    from app.services.sequence.database import DatabaseSequenceStore

    logger.info("Sequence Store: Using DatabaseSequenceStore")
    return DatabaseSequenceStore(async_session_maker, timeout=timeout)


def reset_sequence_store() -> None:
    """
    Clear the cached sequence store instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_sequence_store.cache_clear()
    logger.debug("Sequence store cache cleared")


__all__ = [
    "get_sequence_store",
    "reset_sequence_store",
    "BaseSequenceStore",
    "InMemorySequenceStore",
    "FileSequenceStore",
]
