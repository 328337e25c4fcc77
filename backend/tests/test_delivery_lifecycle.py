"""
Integration tests for the delivery lifecycle.

Paid order -> delivery -> picked up -> in transit -> delivered, with the
order cascade, access rules, public tracking and the list filters.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.domain.delivery.delivery_service import DeliveryService
from backend.app.services.audit import get_audit_trail, AuditAction
from backend.tests.factories import place_order, place_paid_order

TRACKING_RE = re.compile(r"TRK-\d{8}-[A-Z0-9]{6}")


async def create_delivery(client, headers, order_id, **extra):
    return await client.post("/v1/deliveries", json={"order_id": order_id, **extra}, headers=headers)


async def move(client, headers, delivery_id, **body):
    return await client.put(f"/v1/deliveries/{delivery_id}", json=body, headers=headers)


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.mark.asyncio
async def test_create_delivery_for_paid_order(client, admin_headers, paid_order, driver):
    response = await create_delivery(client, admin_headers, paid_order["id"], driver_id=driver.id)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Delivery created successfully"

    delivery = body["data"]
    assert TRACKING_RE.fullmatch(delivery["tracking_number"])
    assert delivery["status"] == "pending"
    assert delivery["shipping_provider"] == "internal"
    assert delivery["shipping_address"] == paid_order["shipping_address"]
    assert delivery["estimated_delivery_date"] is not None
    assert delivery["pickup_time"] is None
    assert delivery["order"]["status"] == "shipped"
    assert delivery["order"]["member"]["full_name"] == "Siti Aminah"
    assert delivery["driver"]["license_plate"] == "D 1234 ABC"


@pytest.mark.asyncio
async def test_create_delivery_marks_order_shipped(client, admin_headers, member_headers, paid_order):
    await create_delivery(client, admin_headers, paid_order["id"])

    order = (await client.get(f"/v1/orders/{paid_order['id']}", headers=member_headers)).json()["data"]
    assert order["status"] == "shipped"
    assert TRACKING_RE.fullmatch(order["delivery"]["tracking_number"])


@pytest.mark.asyncio
async def test_processing_order_can_be_shipped(client, admin_headers, paid_order):
    response = await client.post(f"/v1/orders/{paid_order['id']}/process", headers=admin_headers)
    assert response.json()["data"]["status"] == "processing"

    response = await create_delivery(client, admin_headers, paid_order["id"])
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_unpaid_order_cannot_be_shipped(client, admin_headers, member_headers):
    order = await place_order(client, member_headers)

    response = await create_delivery(client, admin_headers, order["id"])

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "ERR_CONFLICT_001"
    assert "paid or processing" in body["error"]

    listing = await client.get("/v1/deliveries", headers=admin_headers)
    assert listing.json()["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_second_delivery_for_order_rejected(client, admin_headers, paid_order):
    first = await create_delivery(client, admin_headers, paid_order["id"])
    assert first.status_code == 201

    second = await create_delivery(client, admin_headers, paid_order["id"])

    assert second.status_code == 400
    assert second.json()["success"] is False

    listing = await client.get("/v1/deliveries", headers=admin_headers)
    assert listing.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_duplicate_check_runs_for_processing_order(client, admin_headers, paid_order, db_session):
    from backend.app.models.order import Order
    from backend.app.models.order_enums import OrderStatus

    await create_delivery(client, admin_headers, paid_order["id"])

    order = await db_session.get(Order, paid_order["id"])
    order.status = OrderStatus.PROCESSING
    await db_session.commit()

    response = await create_delivery(client, admin_headers, paid_order["id"])

    assert response.status_code == 400
    assert response.json()["error"] == "Delivery already exists for this order"


@pytest.mark.asyncio
async def test_missing_order_or_driver_is_404(client, admin_headers, paid_order):
    response = await create_delivery(client, admin_headers, 9999)
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"

    response = await create_delivery(client, admin_headers, paid_order["id"], driver_id=9999)
    assert response.status_code == 404
    assert "Driver" in response.json()["error"]


@pytest.mark.asyncio
async def test_tracking_number_collisions_are_retried_then_rejected(client, admin_headers, member_headers, mocker):
    first_order = await place_paid_order(client, member_headers)
    second_order = await place_paid_order(client, member_headers)
    taken = (await create_delivery(client, admin_headers, first_order["id"])).json()["data"]["tracking_number"]

    generator = mocker.patch.object(DeliveryService, "generate_tracking_number", return_value=taken)

    response = await create_delivery(client, admin_headers, second_order["id"])

    assert response.status_code == 400
    assert generator.call_count == 5


@pytest.mark.asyncio
async def test_full_delivery_walk(client, admin_headers, member_headers, paid_order, driver):
    created = await create_delivery(client, admin_headers, paid_order["id"], driver_id=driver.id)
    delivery_id = created.json()["data"]["id"]

    response = await move(client, admin_headers, delivery_id, status="picked_up")
    assert response.status_code == 200
    assert response.json()["data"]["pickup_time"] is not None

    response = await move(client, admin_headers, delivery_id, status="in_transit", current_location="Cimahi")
    assert response.status_code == 200
    assert response.json()["data"]["in_transit_time"] is not None

    response = await move(client, admin_headers, delivery_id, status="delivered")
    assert response.status_code == 200
    assert response.json()["message"] == "Delivery status updated successfully"

    detail = (await client.get(f"/v1/deliveries/{delivery_id}", headers=member_headers)).json()["data"]
    assert detail["status"] == "delivered"
    assert detail["actual_delivery_date"] is not None
    assert detail["order"]["status"] == "delivered"
    assert detail["estimated_remaining_time"] is None
    assert detail["is_delayed"] is False
    assert detail["allowed_transitions"] == []
    assert [e["status"] for e in detail["tracking_history"]] == [
        "pending", "picked_up", "in_transit", "delivered"
    ]
    assert detail["tracking_history"][1]["description"] == "Picked up by Agus Wijaya"
    assert detail["tracking_history"][2]["location"] == "Cimahi"
    assert [i["product_name"] for i in detail["items"]] == ["Beras 5kg", "Minyak Goreng 1L"]

    order = (await client.get(f"/v1/orders/{paid_order['id']}", headers=member_headers)).json()["data"]
    assert order["status"] == "delivered"


@pytest.mark.asyncio
async def test_illegal_transition_changes_nothing(client, admin_headers, member_headers, paid_order):
    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]

    response = await move(client, admin_headers, delivery_id, status="delivered", delivery_notes="left at door")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid status transition"
    assert body["error_code"] == "ERR_VALIDATION_002"
    assert body["details"] == {"from": "pending", "to": "delivered"}

    detail = (await client.get(f"/v1/deliveries/{delivery_id}", headers=member_headers)).json()["data"]
    assert detail["status"] == "pending"
    assert detail["delivery_notes"] is None
    assert detail["actual_delivery_date"] is None
    assert detail["order"]["status"] == "shipped"
    assert detail["allowed_transitions"] == ["picked_up", "cancelled"]


@pytest.mark.asyncio
async def test_terminal_delivery_cannot_move(client, admin_headers, paid_order):
    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]
    assert (await move(client, admin_headers, delivery_id, status="cancelled")).status_code == 200

    response = await move(client, admin_headers, delivery_id, status="picked_up")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cancelled_delivery_leaves_order_shipped(client, admin_headers, member_headers, paid_order):
    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]
    response = await move(client, admin_headers, delivery_id, status="cancelled")
    assert response.json()["message"] == "Delivery status updated successfully"

    order = (await client.get(f"/v1/orders/{paid_order['id']}", headers=member_headers)).json()["data"]
    assert order["status"] == "shipped"

    assert (await client.post(f"/v1/orders/{paid_order['id']}/cancel", headers=member_headers)).status_code == 400
    assert (await create_delivery(client, admin_headers, paid_order["id"])).status_code == 400


@pytest.mark.asyncio
async def test_notes_and_location_update_without_status(client, admin_headers, paid_order):
    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]

    response = await move(
        client, admin_headers, delivery_id,
        delivery_notes="Call before arriving", current_location="Gudang Sindang"
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["delivery_notes"] == "Call before arriving"
    assert data["current_location"] == "Gudang Sindang"
    assert response.json()["message"] == "Delivery updated successfully"


@pytest.mark.asyncio
async def test_estimate_defaults_to_two_days_out(client, admin_headers, paid_order):
    before = datetime.now(timezone.utc)
    response = await create_delivery(client, admin_headers, paid_order["id"])
    after = datetime.now(timezone.utc)

    estimate = parse_ts(response.json()["data"]["estimated_delivery_date"])
    assert before + timedelta(days=2) - timedelta(seconds=1) <= estimate
    assert estimate <= after + timedelta(days=2) + timedelta(seconds=1)


@pytest.mark.asyncio
async def test_supplied_estimate_is_kept_as_utc(client, admin_headers, member_headers, paid_order):
    response = await create_delivery(
        client, admin_headers, paid_order["id"], estimated_delivery_date="2031-05-05T00:00:00+07:00"
    )

    assert response.status_code == 201
    expected = datetime(2031, 5, 4, 17, 0, tzinfo=timezone.utc)
    assert parse_ts(response.json()["data"]["estimated_delivery_date"]) == expected

    detail = (await client.get(
        f"/v1/deliveries/{response.json()['data']['id']}", headers=member_headers
    )).json()["data"]
    assert parse_ts(detail["estimated_delivery_date"]) == expected


@pytest.mark.asyncio
async def test_estimate_update_without_status(client, admin_headers, member_headers, paid_order):
    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]

    response = await move(client, admin_headers, delivery_id, estimated_delivery_date="2030-01-01T10:00:00Z")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "pending"

    detail = (await client.get(f"/v1/deliveries/{delivery_id}", headers=member_headers)).json()["data"]
    assert parse_ts(detail["estimated_delivery_date"]) == datetime(2030, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert detail["status"] == "pending"


@pytest.mark.asyncio
async def test_retry_after_failed_attempt(client, admin_headers, member_headers, paid_order, db_session):
    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]

    for status in ("picked_up", "in_transit", "failed"):
        assert (await move(client, admin_headers, delivery_id, status=status)).status_code == 200

    response = await move(client, admin_headers, delivery_id, status="picked_up")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "picked_up"
    assert data["in_transit_time"] is None

    detail = (await client.get(f"/v1/deliveries/{delivery_id}", headers=member_headers)).json()["data"]
    assert [e["status"] for e in detail["tracking_history"]] == ["pending", "picked_up"]

    retries = await get_audit_trail(
        db_session, entity_type="delivery", entity_id=delivery_id, action=AuditAction.DELIVERY_RETRIED
    )
    assert len(retries) == 1
    assert retries[0].meta_data["from"] == "failed"


@pytest.mark.asyncio
async def test_owner_may_update_their_delivery(client, admin_headers, member_headers, paid_order):
    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]

    response = await move(client, member_headers, delivery_id, delivery_notes="Titip di pos satpam")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_other_member_is_forbidden(client, admin_headers, other_headers, paid_order):
    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]

    detail = await client.get(f"/v1/deliveries/{delivery_id}", headers=other_headers)
    update = await move(client, other_headers, delivery_id, status="picked_up")

    assert detail.status_code == 403
    assert detail.json()["error"] == "Forbidden - Not your delivery"
    assert update.status_code == 403


@pytest.mark.asyncio
async def test_missing_delivery_is_404(client, admin_headers):
    assert (await client.get("/v1/deliveries/4242", headers=admin_headers)).status_code == 404
    assert (await move(client, admin_headers, 4242, status="picked_up")).status_code == 404


@pytest.mark.asyncio
async def test_deliveries_require_authentication(client):
    response = await client.post("/v1/deliveries", json={"order_id": 1})

    assert response.status_code == 401
    assert response.json()["success"] is False
    assert (await client.get("/v1/deliveries")).status_code == 401
    assert (await client.get("/v1/deliveries/1")).status_code == 401


@pytest.mark.asyncio
async def test_unknown_fields_are_rejected(client, admin_headers, paid_order):
    response = await create_delivery(client, admin_headers, paid_order["id"], priority="express")
    assert response.status_code == 400
    assert response.json()["error"] == "Validation error"

    delivery_id = (await create_delivery(client, admin_headers, paid_order["id"])).json()["data"]["id"]
    response = await move(client, admin_headers, delivery_id, status="teleported")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_public_tracking_is_sanitized(client, admin_headers, paid_order, driver):
    created = (await create_delivery(client, admin_headers, paid_order["id"], driver_id=driver.id)).json()["data"]
    await move(client, admin_headers, created["id"], status="picked_up")

    response = await client.get(f"/v1/deliveries/track/{created['tracking_number'].lower()}")

    assert response.status_code == 200
    text = response.text
    assert "081234567890" not in text
    assert driver.phone not in text
    assert "member_id" not in text
    assert "driver_id" not in text

    data = response.json()["data"]
    assert data["tracking_number"] == created["tracking_number"]
    assert data["current_status"] == "picked_up"
    assert data["current_status_info"]["title"] == "Picked Up"
    assert data["order_info"]["order_number"] == paid_order["order_number"]
    assert data["order_info"]["recipient"] == "Siti Aminah"
    assert data["order_info"]["address"]["city"] == "Bandung"
    assert data["driver_info"] == {"name": "Agus Wijaya", "vehicle": "motorcycle - D 1234 ABC"}
    assert data["shipping_info"]["provider"] == "internal"
    assert data["shipping_info"]["is_delayed"] is False
    assert len(data["tracking_events"]) == 2
    assert len(data["items"]) == 2


@pytest.mark.asyncio
async def test_unknown_tracking_number_is_404(client):
    response = await client.get("/v1/deliveries/track/TRK-00000000-ZZZZZZ")

    assert response.status_code == 404
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_list_is_scoped_and_filterable(client, admin_headers, member_headers, other_headers, driver):
    mine = await place_paid_order(client, member_headers)
    theirs = await place_paid_order(client, other_headers)
    my_delivery = (await create_delivery(client, admin_headers, mine["id"], driver_id=driver.id)).json()["data"]
    their_delivery = (await create_delivery(client, admin_headers, theirs["id"])).json()["data"]
    await move(client, admin_headers, their_delivery["id"], status="picked_up")

    member_view = (await client.get("/v1/deliveries", headers=member_headers)).json()
    assert [d["id"] for d in member_view["data"]] == [my_delivery["id"]]
    assert member_view["pagination"] == {"page": 1, "limit": 20, "total": 1, "total_pages": 1}

    admin_view = (await client.get("/v1/deliveries", headers=admin_headers)).json()
    assert admin_view["pagination"]["total"] == 2

    picked = (await client.get("/v1/deliveries", params={"status": "picked_up"}, headers=admin_headers)).json()
    assert [d["id"] for d in picked["data"]] == [their_delivery["id"]]

    suffix = my_delivery["tracking_number"][-6:].lower()
    by_code = (await client.get("/v1/deliveries", params={"tracking_number": suffix}, headers=admin_headers)).json()
    assert [d["id"] for d in by_code["data"]] == [my_delivery["id"]]

    by_driver = (await client.get("/v1/deliveries", params={"driver_id": driver.id}, headers=admin_headers)).json()
    assert by_driver["pagination"]["total"] == 1

    by_order = (await client.get("/v1/deliveries", params={"order_id": theirs["id"]}, headers=admin_headers)).json()
    assert [d["id"] for d in by_order["data"]] == [their_delivery["id"]]


@pytest.mark.asyncio
@pytest.mark.parametrize("term", ["_", "%", "TRK_", "\\"])
async def test_tracking_filter_matches_literally(client, admin_headers, paid_order, term):
    await create_delivery(client, admin_headers, paid_order["id"])

    listing = (await client.get("/v1/deliveries", params={"tracking_number": term}, headers=admin_headers)).json()

    assert listing["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_list_pagination_and_limit_clamp(client, admin_headers, member_headers):
    for _ in range(3):
        order = await place_paid_order(client, member_headers)
        await create_delivery(client, admin_headers, order["id"])

    page = (await client.get("/v1/deliveries", params={"page": 2, "limit": 2}, headers=admin_headers)).json()
    assert len(page["data"]) == 1
    assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}

    clamped = (await client.get("/v1/deliveries", params={"limit": 500}, headers=admin_headers)).json()
    assert clamped["pagination"]["limit"] == 50
