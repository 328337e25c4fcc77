"""
Integration tests for member notifications written by the delivery lifecycle.
"""

import pytest

from backend.tests.factories import place_paid_order


@pytest.mark.asyncio
async def test_member_is_notified_of_delivery_progress(client, admin_headers, member_headers, other_headers):
    order = await place_paid_order(client, member_headers)
    created = (await client.post("/v1/deliveries", json={"order_id": order["id"]}, headers=admin_headers)).json()["data"]
    await client.put(f"/v1/deliveries/{created['id']}", json={"status": "picked_up"}, headers=admin_headers)
    await client.put(f"/v1/deliveries/{created['id']}", json={"delivery_notes": "no status"}, headers=admin_headers)

    inbox = (await client.get("/v1/notifications", headers=member_headers)).json()["data"]

    assert [n["title"] for n in inbox] == ["Picked Up", "Order Shipped"]
    assert all(n["type"] == "DELIVERY_UPDATE" for n in inbox)
    assert created["tracking_number"] in inbox[1]["message"]
    assert inbox[0]["metadata_payload"] == {"delivery_id": created["id"], "status": "picked_up"}

    assert (await client.get("/v1/notifications", headers=other_headers)).json()["data"] == []


@pytest.mark.asyncio
async def test_mark_read(client, admin_headers, member_headers, other_headers):
    order = await place_paid_order(client, member_headers)
    await client.post("/v1/deliveries", json={"order_id": order["id"]}, headers=admin_headers)
    notification = (await client.get("/v1/notifications", headers=member_headers)).json()["data"][0]

    assert (await client.patch(f"/v1/notifications/{notification['id']}/read", headers=other_headers)).status_code == 404

    response = await client.patch(f"/v1/notifications/{notification['id']}/read", headers=member_headers)
    assert response.status_code == 200

    unread = (await client.get("/v1/notifications", params={"unread_only": True}, headers=member_headers)).json()
    assert unread["data"] == []


@pytest.mark.asyncio
async def test_mark_all_read(client, admin_headers, member_headers):
    for _ in range(2):
        order = await place_paid_order(client, member_headers)
        await client.post("/v1/deliveries", json={"order_id": order["id"]}, headers=admin_headers)

    response = await client.patch("/v1/notifications/read-all", headers=member_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "2 notifications marked as read"
