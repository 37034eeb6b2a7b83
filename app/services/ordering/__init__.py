"""
Ordering Services Factory

Wires the order number generator, intake service and daily reset scheduler
around the shared sequence and record stores.

Usage:
    from app.services.ordering import get_intake_service

    intake = get_intake_service()
    confirmation = await intake.submit({"mealName": "Soup", "quantity": 2, "tableNumber": 5})
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.ordering.generator import (
    OrderNumberGenerator,
    format_order_number,
    parse_order_number,
)
from app.services.ordering.intake import OrderIntakeService
from app.services.ordering.scheduler import DailyResetScheduler, ResetResult, next_run_after
from app.services.records import get_record_store, reset_record_store
from app.services.sequence import get_sequence_store, reset_sequence_store

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_number_generator() -> OrderNumberGenerator:
    """Get the process-wide order number generator."""
    settings = get_settings()
    return OrderNumberGenerator(
        get_sequence_store(),
        max_retries=settings.sequence_max_retries,
        width=settings.order_number_width,
    )


@lru_cache()
def get_intake_service() -> OrderIntakeService:
    """Get the order intake service."""
    return OrderIntakeService(get_order_number_generator(), get_record_store())


@lru_cache()
def get_reset_scheduler() -> DailyResetScheduler:
    """Get the daily reset scheduler."""
    settings = get_settings()
    return DailyResetScheduler(
        get_order_number_generator(),
        get_record_store(),
        reset_at=settings.reset_at,
        tz=settings.reset_tz,
        retry_delay=settings.reset_retry_delay_seconds,
        max_attempts=settings.reset_max_attempts,
        archive=settings.archive_orders_on_reset,
    )


def reset_ordering_services() -> None:
    """
    Clear every cached ordering service and store.

    Useful for testing or when configuration changes at runtime.
    """
    get_reset_scheduler.cache_clear()
    get_intake_service.cache_clear()
    get_order_number_generator.cache_clear()
    reset_record_store()
    reset_sequence_store()
    logger.debug("Ordering services cache cleared")


__all__ = [
    "get_order_number_generator",
    "get_intake_service",
    "get_reset_scheduler",
    "reset_ordering_services",
    "OrderNumberGenerator",
    "OrderIntakeService",
    "DailyResetScheduler",
    "ResetResult",
    "format_order_number",
    "parse_order_number",
    "next_run_after",
]
