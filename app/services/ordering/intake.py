"""
Order Intake Service

Validates an incoming order, gives it an order number, stores it and
returns the confirmation.

Flow:
    request ─▶ validate ─▶ issue number ─▶ persist ─▶ confirmation
                  │               │             │
          ValidationError  StorageUnavailable  StorageUnavailable
          (no side effect)                     (number stays consumed)

Two ways to obtain the number:
    - no ``orderNumber`` in the request: a fresh number is issued
    - ``orderNumber`` present: it must come from GET /generateOrderNumber
      earlier in the same business day and must not be used by another order
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ValidationError
from app.models import Order
from app.schemas import OrderConfirmation, OrderCreate, OrderResponse
from app.services.ordering.generator import (
    OrderNumberGenerator,
    format_order_number,
    parse_order_number,
)
from app.services.records import RecordStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _describe_errors(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", ())) or "body"
        parts.append(f"{field}: {error.get('msg')}")
    return "; ".join(parts)


class OrderIntakeService:
    """
    Coordinates order validation, numbering and persistence.

    Attributes:
        generator: Issues order numbers
        records: Persists the order
        clock: Returns the creation timestamp of new orders
    """

    def __init__(
        self,
        generator: OrderNumberGenerator,
        records: RecordStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.generator = generator
        self.records = records
        self.clock = clock

    @staticmethod
    def validate(request: Union[OrderCreate, dict[str, Any]]) -> OrderCreate:
        """Turn a raw request into an OrderCreate or raise ValidationError."""
        if isinstance(request, OrderCreate):
            return request
        try:
            return OrderCreate.model_validate(request)
        except PydanticValidationError as e:
            raise ValidationError(_describe_errors(e), errors=e.errors()) from e

    async def submit(self, request: Union[OrderCreate, dict[str, Any]]) -> OrderConfirmation:
        """
        Place an order.

        Runs to completion even if the caller is cancelled (e.g. the client
        disconnects): once a number is issued the order is stored.

        Raises:
            ValidationError: Missing or invalid fields, or an unusable orderNumber
            StorageUnavailable: Sequence or record storage failed
            RecordConflict: The supplied orderNumber was taken concurrently
        """
        order_data = self.validate(request)
        return await asyncio.shield(self._submit(order_data))

    async def _submit(self, order_data: OrderCreate) -> OrderConfirmation:
        if order_data.order_number is None:
            async with self.generator.issuance() as order_number:
                order = await self._persist(order_data, order_number)
        else:
            async with self.generator.exclusive():
                # A reserved number from before a failed reset is stale
                await self.generator.apply_pending_reset()
                order_number = await self._claim_reserved(order_data.order_number)
                order = await self._persist(order_data, order_number)

        logger.info(
            f"Order #{order.order_number} created: {order.quantity}x {order.meal_name} "
            f"for table {order.table_number}"
        )
        return OrderConfirmation(
            order_number=order.order_number,
            order=OrderResponse.model_validate(order),
        )

    async def _claim_reserved(self, supplied: str) -> str:
        """Check that ``supplied`` was issued today and is still free."""
        value = parse_order_number(supplied)
        last_issued = await self.generator.current()
        if value < 1 or value > last_issued:
            raise ValidationError(
                f"Order number {supplied} was not issued today, "
                f"request one from /generateOrderNumber"
            )

        order_number = format_order_number(value, self.generator.width)
        in_use = await self.records.count(Order, Order.order_number == order_number)
        if in_use:
            raise ValidationError(f"Order number {order_number} is already in use")
        return order_number

    async def _persist(self, order_data: OrderCreate, order_number: str) -> Order:
        order = Order(
            order_number=order_number,
            meal_name=order_data.meal_name,
            side_item=order_data.side_item,
            quantity=order_data.quantity,
            table_number=order_data.table_number,
            created_at=self.clock(),
        )
        try:
            return await self.records.create(order)
        except Exception:
            logger.error(f"Order #{order_number} could not be stored, number stays consumed")
            raise
