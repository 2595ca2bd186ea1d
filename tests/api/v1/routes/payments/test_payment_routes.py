from __future__ import annotations

import json
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from coursepay.models.invoice import Invoice
from coursepay.models.payment import Payment
from coursepay.models.refund import Refund
from coursepay.utils.enums import PaymentStatus

pytestmark = pytest.mark.anyio


async def test_create_payment_for_authenticated_student(client, auth_headers, db_session, fake_gateway):
    student_id = uuid.uuid4()

    response = await client.post(
        "/api/v1/payments",
        json={"gateway": "razorpay", "amount": "499.00", "currency": "INR", "description": "SQL course"},
        headers=auth_headers(student_id),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["order_id"] == "order_1"

    payment = await db_session.get(Payment, uuid.UUID(body["data"]["payment_id"]))
    assert payment.student_id == student_id
    assert payment.status == PaymentStatus.pending
    assert fake_gateway.orders[0]["metadata"]["student_id"] == str(student_id)


async def test_create_payment_requires_token(client):
    response = await client.post(
        "/api/v1/payments",
        json={"gateway": "razorpay", "amount": "10", "description": "SQL course"},
    )

    assert response.status_code == 401
    assert response.json()["status"] == "error"


async def test_create_payment_rejects_invalid_token(client):
    response = await client.post(
        "/api/v1/payments",
        json={"gateway": "razorpay", "amount": "10", "description": "SQL course"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


async def test_create_payment_request_validation(client, auth_headers):
    response = await client.post(
        "/api/v1/payments",
        json={"gateway": "razorpay", "amount": "0", "description": "SQL course"},
        headers=auth_headers(uuid.uuid4()),
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "VALIDATION_ERROR"
    assert body["details"][0]["field"] == "amount"


async def test_gateway_failure_maps_to_error_envelope(client, auth_headers, fake_gateway):
    fake_gateway.fail_orders = True

    response = await client.post(
        "/api/v1/payments",
        json={"gateway": "razorpay", "amount": "10", "description": "SQL course"},
        headers=auth_headers(uuid.uuid4()),
    )

    assert response.status_code == 502
    body = response.json()
    assert body["error_code"] == "GATEWAY_ERROR"
    assert body["data"]["payment_id"]


async def test_payment_visible_to_owner_and_admin_only(client, auth_headers, make_payment):
    owner_id = uuid.uuid4()
    payment = await make_payment(student_id=owner_id)
    url = f"/api/v1/payments/{payment.id}"

    owner = await client.get(url, headers=auth_headers(owner_id))
    stranger = await client.get(url, headers=auth_headers(uuid.uuid4()))
    admin = await client.get(url, headers=auth_headers(uuid.uuid4(), role="admin"))

    assert owner.status_code == 200
    assert owner.json()["data"]["id"] == str(payment.id)
    assert owner.json()["data"]["refunds"] == []
    assert stranger.status_code == 404
    assert admin.status_code == 200


async def test_refund_requires_admin(client, auth_headers, make_payment, db_session):
    payment = await make_payment(status=PaymentStatus.completed, gateway_payment_id="pay_1")
    payload = {"payment_id": str(payment.id), "amount": "100.00", "reason": "duplicate"}

    student = await client.post("/api/v1/payments/refunds", json=payload, headers=auth_headers(uuid.uuid4()))
    assert student.status_code == 403
    assert (await db_session.execute(select(func.count(Refund.id)))).scalar_one() == 0

    admin = await client.post(
        "/api/v1/payments/refunds", json=payload, headers=auth_headers(uuid.uuid4(), role="super_admin")
    )
    assert admin.status_code == 200
    assert admin.json()["data"]["gateway_refund_id"] == "rfnd_1"


async def test_refund_request_rejects_sub_cent_amount(client, auth_headers, make_payment):
    payment = await make_payment(status=PaymentStatus.completed, gateway_payment_id="pay_1")

    response = await client.post(
        "/api/v1/payments/refunds",
        json={"payment_id": str(payment.id), "amount": "0.001", "reason": "x"},
        headers=auth_headers(uuid.uuid4(), role="admin"),
    )

    assert response.status_code == 422
    assert response.json()["details"][0]["field"] == "amount"


async def test_refund_of_pending_payment_is_conflict(client, auth_headers, make_payment):
    payment = await make_payment(status=PaymentStatus.pending)

    response = await client.post(
        "/api/v1/payments/refunds",
        json={"payment_id": str(payment.id), "amount": "10.00", "reason": "x"},
        headers=auth_headers(uuid.uuid4(), role="admin"),
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "INVALID_STATE"


async def test_razorpay_webhook_always_answers_200(client, make_payment, db_session):
    payment = await make_payment(gateway_order_id="order_hook")
    payload = json.dumps({"event": "captured", "order_id": "order_hook", "payment_id": "pay_hook"})

    rejected = await client.post(
        "/api/v1/payments/razorpay/webhook",
        content=payload,
        headers={"X-Razorpay-Signature": "forged", "Content-Type": "application/json"},
    )
    assert rejected.status_code == 200
    await db_session.refresh(payment)
    assert payment.status == PaymentStatus.pending

    accepted = await client.post(
        "/api/v1/payments/razorpay/webhook",
        content=payload,
        headers={"X-Razorpay-Signature": "valid-signature", "Content-Type": "application/json"},
    )
    assert accepted.status_code == 200
    await db_session.refresh(payment)
    assert payment.status == PaymentStatus.completed
    assert payment.amount == Decimal("500.00")
    assert (await db_session.execute(select(func.count(Invoice.id)))).scalar_one() == 1


async def test_stripe_webhook_without_stripe_configured_still_answers_200(client):
    response = await client.post(
        "/api/v1/payments/stripe/webhook",
        content=b'{"type": "payment_intent.succeeded"}',
        headers={"Stripe-Signature": "t=1,v1=abc"},
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"received": True}
