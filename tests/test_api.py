import asyncio
from datetime import datetime, timezone

from app.main import app
from app.models import Order
from app.services.ordering import (
    OrderIntakeService,
    OrderNumberGenerator,
    get_intake_service,
    get_order_number_generator,
    get_reset_scheduler,
)
from app.services.records import get_record_store
from app.services.sequence import get_sequence_store

from conftest import FlakySequenceStore


SOUP = {"mealName": "Soup", "quantity": 2, "tableNumber": 5}


async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert "documentation" in response.json()


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "operational"
    assert data["database"] == "healthy"
    assert data["sequence_store"] == "healthy"
    assert data["scheduler"] == "disabled"
    assert data["last_issued"] == 0


# =============================================================================
# MENU / CONTACTS / RESERVATIONS
# =============================================================================

async def test_menu_create_and_list(client):
    assert (await client.get("/menus")).json() == []

    response = await client.post("/menus", json={
        "name": "Couscous royal",
        "description": "Semolina, vegetables and meats",
        "price": 16.9,
        "image": "/images/couscous.jpg",
    })
    assert response.status_code == 201
    created = response.json()
    assert created["id"]

    menus = (await client.get("/menus")).json()
    assert [m["name"] for m in menus] == ["Couscous royal"]


async def test_menu_item_requires_price(client):
    response = await client.post("/menus", json={"name": "Tea", "description": "Mint", "image": "x"})
    assert response.status_code == 400


async def test_contact_message(client):
    response = await client.post("/contacts", json={
        "name": "Jane",
        "email": "jane@example.com",
        "subject": "Allergies",
        "message": "Do you serve gluten-free bread?",
    })

    assert response.status_code == 200
    assert response.json()["contactId"]


async def test_contact_missing_message(client):
    response = await client.post("/contacts", json={"name": "Jane", "email": "jane@example.com"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "validation_error"
    assert "message" in body["detail"]


async def test_contact_invalid_email(client):
    response = await client.post("/contacts", json={
        "name": "Jane", "email": "not-an-email", "message": "Hi",
    })
    assert response.status_code == 400


async def test_reservation(client):
    response = await client.post("/reservations", json={
        "firstname": "Jane",
        "name": "Doe",
        "email": "jane@example.com",
        "phone": "+33 6 12 34 56 78",
        "dateTime": "2026-10-24T19:30:00",
        "guests": 4,
    })

    assert response.status_code == 200
    assert response.json()["reservationId"]


async def test_reservation_missing_fields(client):
    response = await client.post("/reservations", json={"firstname": "Jane", "guests": 2})
    assert response.status_code == 400


# =============================================================================
# ORDERS
# =============================================================================

async def test_generate_then_place_orders(client):
    response = await client.get("/generateOrderNumber")
    assert response.status_code == 200
    assert response.json() == {"orderNumber": "000001"}

    response = await client.post("/commandes", json=SOUP)
    assert response.status_code == 201
    body = response.json()
    assert body["orderNumber"] == "000002"
    assert body["order"]["orderNumber"] == "000002"
    assert body["order"]["mealName"] == "Soup"
    assert body["order"]["quantity"] == 2
    assert body["order"]["tableNumber"] == 5


async def test_place_order_with_reserved_number(client):
    reserved = (await client.get("/generateOrderNumber")).json()["orderNumber"]

    response = await client.post("/commandes", json={**SOUP, "orderNumber": reserved, "softDrink": "Coke"})
    assert response.status_code == 201
    assert response.json()["orderNumber"] == reserved
    assert response.json()["order"]["sideItem"] == "Coke"

    again = await client.post("/commandes", json={**SOUP, "orderNumber": reserved})
    assert again.status_code == 400


async def test_invalid_order_does_not_touch_sequence(client):
    response = await client.post("/commandes", json={"mealName": "Soup", "quantity": 0, "tableNumber": 5})
    assert response.status_code == 400

    response = await client.post("/commandes", json={"quantity": 1, "tableNumber": 5})
    assert response.status_code == 400

    assert await get_sequence_store().read() == 0


async def test_list_orders(client):
    for _ in range(3):
        await client.post("/commandes", json=SOUP)

    response = await client.get("/commandes")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert [o["orderNumber"] for o in body["orders"]] == ["000001", "000002", "000003"]


async def test_concurrent_orders_get_distinct_numbers(client):
    responses = await asyncio.gather(*(client.post("/commandes", json=SOUP) for _ in range(20)))

    assert [r.status_code for r in responses] == [201] * 20
    numbers = [r.json()["orderNumber"] for r in responses]
    assert sorted(numbers) == [f"{n:06d}" for n in range(1, 21)]

    listed = (await client.get("/commandes")).json()
    assert listed["total"] == 20


async def test_list_orders_sorts_widened_numbers_numerically(client):
    records = get_record_store()
    for number in ["1000000", "999999", "000002"]:
        await records.create(Order(
            order_number=number,
            meal_name="Soup",
            quantity=1,
            table_number=3,
            created_at=datetime.now(timezone.utc),
        ))

    listed = (await client.get("/commandes")).json()

    assert [o["orderNumber"] for o in listed["orders"]] == ["000002", "999999", "1000000"]


async def test_daily_reset_scenario(client):
    store = get_sequence_store()
    await store.compare_and_set(0, 41)
    await client.post("/commandes", json=SOUP)

    result = await get_reset_scheduler().run_once()
    assert result.orders_deleted == 1
    assert await store.read() == 0

    response = await client.post("/commandes", json=SOUP)
    assert response.json()["orderNumber"] == "000001"

    listed = (await client.get("/commandes")).json()
    assert listed["total"] == 1


async def test_storage_outage_then_recovery(client):
    store = FlakySequenceStore(initial=7)
    generator = OrderNumberGenerator(store)
    app.dependency_overrides[get_order_number_generator] = lambda: generator
    app.dependency_overrides[get_intake_service] = lambda: OrderIntakeService(generator, get_record_store())

    store.fail_reads = True
    response = await client.post("/commandes", json=SOUP)
    assert response.status_code == 500
    assert response.json()["error"] == "storage_unavailable"

    response = await client.get("/generateOrderNumber")
    assert response.status_code == 500

    store.fail_reads = False
    response = await client.post("/commandes", json=SOUP)
    assert response.status_code == 201
    assert response.json()["orderNumber"] == "000008"
