import asyncio
import re

import pytest

from app.core.exceptions import StorageUnavailable, ValidationError
from app.models import Order
from app.services.ordering import OrderIntakeService


SOUP = {"mealName": "Soup", "quantity": 2, "tableNumber": 5}


async def test_submit_issues_number_and_stores_order(intake, fake_records):
    confirmation = await intake.submit(SOUP)

    assert confirmation.order_number == "000001"
    assert confirmation.order.order_number == "000001"
    assert confirmation.order.meal_name == "Soup"
    assert confirmation.order.quantity == 2
    assert confirmation.order.table_number == 5
    assert confirmation.order.created_at is not None

    [stored] = fake_records.records
    assert isinstance(stored, Order)
    assert stored.order_number == "000001"


async def test_confirmation_serializes_camel_case(intake):
    confirmation = await intake.submit({**SOUP, "sideItem": "Lemonade"})
    body = confirmation.model_dump(by_alias=True)

    assert body["orderNumber"] == "000001"
    assert body["order"]["mealName"] == "Soup"
    assert body["order"]["sideItem"] == "Lemonade"
    assert body["order"]["tableNumber"] == 5


async def test_legacy_soft_drink_field(intake):
    confirmation = await intake.submit({**SOUP, "softDrink": "Coke"})
    assert confirmation.order.side_item == "Coke"


@pytest.mark.parametrize(
    "payload",
    [
        {"mealName": "Soup", "quantity": 0, "tableNumber": 5},
        {"mealName": "Soup", "quantity": -1, "tableNumber": 5},
        {"quantity": 2, "tableNumber": 5},
        {"mealName": "", "quantity": 2, "tableNumber": 5},
        {"mealName": "Soup", "quantity": 2},
        {"mealName": "Soup", "quantity": "many", "tableNumber": 5},
    ],
)
async def test_invalid_request_has_no_side_effects(intake, memory_store, fake_records, payload):
    with pytest.raises(ValidationError):
        await intake.submit(payload)

    assert memory_store.read_calls == 0
    assert await memory_store.read() == 0
    assert fake_records.records == []


async def test_validation_error_names_the_field(intake):
    with pytest.raises(ValidationError) as exc_info:
        await intake.submit({"quantity": 2, "tableNumber": 5})

    assert "meal_name" in exc_info.value.message or "mealName" in exc_info.value.message


async def test_concurrent_submits_get_distinct_numbers(intake, fake_records):
    confirmations = await asyncio.gather(*(intake.submit(SOUP) for _ in range(50)))
    numbers = [c.order_number for c in confirmations]

    assert len(set(numbers)) == 50
    assert all(re.fullmatch(r"\d{6}", n) for n in numbers)
    assert len(fake_records.records) == 50


async def test_storage_failure_then_recovery(intake, memory_store):
    await memory_store.compare_and_set(0, 5)
    memory_store.fail_reads = True

    with pytest.raises(StorageUnavailable):
        await intake.submit(SOUP)

    memory_store.fail_reads = False
    confirmation = await intake.submit(SOUP)

    assert confirmation.order_number == "000006"


async def test_persistence_failure_consumes_the_number(intake, fake_records):
    fake_records.fail_creates = True
    with pytest.raises(StorageUnavailable):
        await intake.submit(SOUP)

    fake_records.fail_creates = False
    confirmation = await intake.submit(SOUP)

    assert confirmation.order_number == "000002"


async def test_reset_then_submit_starts_at_one(intake, scheduler, memory_store):
    await memory_store.compare_and_set(0, 41)

    await scheduler.run_once()
    assert await memory_store.read() == 0

    confirmation = await intake.submit(SOUP)
    assert confirmation.order_number == "000001"


# =============================================================================
# RESERVED ORDER NUMBERS
# =============================================================================

async def test_reserved_number_is_used(intake, generator):
    reserved = await generator.issue_next()

    confirmation = await intake.submit({**SOUP, "orderNumber": reserved})

    assert confirmation.order_number == reserved
    assert await generator.current() == 1


async def test_reserved_number_is_normalized(intake, generator):
    await generator.issue_next()

    confirmation = await intake.submit({**SOUP, "orderNumber": "1"})

    assert confirmation.order_number == "000001"


async def test_reserved_number_cannot_be_reused(intake, generator):
    reserved = await generator.issue_next()
    await intake.submit({**SOUP, "orderNumber": reserved})

    with pytest.raises(ValidationError):
        await intake.submit({**SOUP, "orderNumber": reserved})


async def test_unissued_number_is_rejected(intake, generator, fake_records):
    await generator.issue_next()

    with pytest.raises(ValidationError):
        await intake.submit({**SOUP, "orderNumber": "000009"})
    with pytest.raises(ValidationError):
        await intake.submit({**SOUP, "orderNumber": "000000"})

    assert fake_records.records == []


async def test_reserved_number_from_before_a_failed_reset_is_rejected(intake, scheduler, memory_store, fake_records):
    await memory_store.compare_and_set(0, 41)
    memory_store.fail_resets = 3
    result = await scheduler.run_once()
    assert result.sequence_reset is False

    with pytest.raises(ValidationError):
        await intake.submit({**SOUP, "orderNumber": "000030"})

    assert await memory_store.read() == 0
    assert fake_records.records == []
    confirmation = await intake.submit(SOUP)
    assert confirmation.order_number == "000001"


async def test_non_numeric_order_number_is_rejected(intake, memory_store):
    with pytest.raises(ValidationError):
        await intake.submit({**SOUP, "orderNumber": "12ab"})
    assert memory_store.read_calls == 0


async def test_empty_order_number_issues_a_fresh_one(intake):
    confirmation = await intake.submit({**SOUP, "orderNumber": ""})
    assert confirmation.order_number == "000001"


# =============================================================================
# CANCELLATION
# =============================================================================

async def test_cancelled_submit_still_stores_the_order(generator, fake_records):
    fake_records.create_delay = 0.2
    intake = OrderIntakeService(generator, fake_records)

    task = asyncio.create_task(intake.submit(SOUP))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await asyncio.sleep(0.3)
    assert len(fake_records.records) == 1
    assert await generator.current() == 1
