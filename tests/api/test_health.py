import pytest

pytestmark = pytest.mark.anyio


async def test_health_lists_loaded_gateways(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["gateways"] == ["razorpay"]


async def test_unknown_route_uses_error_envelope(client):
    response = await client.get("/api/v1/nope")

    assert response.status_code == 404
    assert response.json() == {"status": "error", "msg": "Not Found"}
