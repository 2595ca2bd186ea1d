from __future__ import annotations

import uuid

import pytest

from coursepay.utils.enums import SubscriptionStatus

pytestmark = pytest.mark.anyio


async def test_subscription_lifecycle_over_http(client, auth_headers):
    student_id = uuid.uuid4()
    headers = auth_headers(student_id)

    created = await client.post(
        "/api/v1/subscriptions",
        json={"course_id": str(uuid.uuid4()), "billing_cycle": "monthly", "amount": "299.00"},
        headers=headers,
    )
    assert created.status_code == 201
    sub_id = created.json()["data"]["subscription_id"]
    base = f"/api/v1/subscriptions/{sub_id}"

    paused = await client.post(f"{base}/pause", json={"reason": "travel"}, headers=headers)
    assert paused.status_code == 200

    resumed = await client.post(f"{base}/resume", headers=headers)
    assert resumed.status_code == 200

    cancelled = await client.post(f"{base}/cancel", json={"reason": "done"}, headers=headers)
    assert cancelled.status_code == 200

    again = await client.post(f"{base}/cancel", headers=headers)
    assert again.status_code == 409
    assert again.json()["error_code"] == "INVALID_STATE"

    details = await client.get(base, headers=headers)
    assert details.status_code == 200
    data = details.json()["data"]
    assert data["status"] == "cancelled"
    assert sorted(e["event_type"] for e in data["events"]) == ["cancelled", "created", "paused", "resumed"]

    listing = await client.get("/api/v1/subscriptions", headers=headers)
    assert [s["id"] for s in listing.json()["data"]] == [sub_id]


async def test_duplicate_active_subscription_is_conflict(client, auth_headers):
    headers = auth_headers(uuid.uuid4())
    payload = {"course_id": str(uuid.uuid4()), "billing_cycle": "yearly", "amount": "2999.00"}

    first = await client.post("/api/v1/subscriptions", json=payload, headers=headers)
    second = await client.post("/api/v1/subscriptions", json=payload, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 409


async def test_other_students_subscription_is_hidden(client, auth_headers, make_subscription):
    subscription = await make_subscription()
    url = f"/api/v1/subscriptions/{subscription.id}"

    stranger = await client.get(url, headers=auth_headers(uuid.uuid4()))
    stranger_cancel = await client.post(f"{url}/cancel", headers=auth_headers(uuid.uuid4()))
    admin = await client.get(url, headers=auth_headers(uuid.uuid4(), role="admin"))

    assert stranger.status_code == 404
    assert stranger_cancel.status_code == 404
    assert admin.status_code == 200
    assert admin.json()["data"]["status"] == SubscriptionStatus.active.value


async def test_renew_over_http(client, auth_headers, make_subscription, fake_gateway):
    student_id = uuid.uuid4()
    subscription = await make_subscription(student_id=student_id)

    response = await client.post(
        f"/api/v1/subscriptions/{subscription.id}/renew", headers=auth_headers(student_id)
    )

    assert response.status_code == 200
    assert response.json()["data"]["payment_id"]
    assert len(fake_gateway.orders) == 1
