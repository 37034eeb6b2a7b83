"""
Celery Tasks
Background tasks for the daily order reset.
"""

import asyncio
import logging
from datetime import datetime
import time

from app.celery_worker import celery_app
from app.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


async def _run_daily_reset() -> dict:
    from app.database import engine
    from app.services.ordering import get_reset_scheduler, reset_ordering_services
    from app.services.sequence import get_sequence_store

    # Each task run gets its own event loop, so services are rebuilt per run
    reset_ordering_services()
    store = get_sequence_store()
    try:
        await store.init()
        result = await get_reset_scheduler().run_once()
        return result.to_dict()
    finally:
        await store.close()
        await engine.dispose()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
)
def reset_daily_orders(self) -> dict:
    """
    Close the business day: archive and delete orders, reset the sequence.

    Retried when the orders could not be deleted (the sequence is only reset
    after a successful delete) and when the sequence could not be reset. A
    retry finds no orders left and resets the sequence again.
    """
    from app.core.exceptions import StorageUnavailable

    task_id = self.request.id
    logger.info(f"Task {task_id}: daily order reset started")
    start_time = time.time()

    try:
        result = asyncio.run(_run_daily_reset())
    except StorageUnavailable as e:
        elapsed = round(time.time() - start_time, 3)
        logger.error(f"Task {task_id}: daily reset failed after {elapsed}s - {e.message}")
        raise self.retry(exc=e)

    if not result['sequence_reset']:
        logger.error(f"Task {task_id}: orders deleted but the sequence was not reset, retrying")
        raise self.retry(exc=StorageUnavailable("Order sequence could not be reset"))

    result['task_id'] = task_id
    result['processing_time_seconds'] = round(time.time() - start_time, 3)
    logger.info(f"Task {task_id}: daily reset completed in {result['processing_time_seconds']}s")
    return result


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }


@celery_app.task
def clear_order_archive() -> dict:
    """
    Clear the Excel order archive (for testing/reset purposes).
    """
    success = ExcelManager.clear_archive()
    return {
        'success': success,
        'message': 'Order archive cleared' if success else 'Failed to clear order archive',
        'timestamp': datetime.now().isoformat()
    }
