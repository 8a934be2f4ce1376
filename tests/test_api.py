import httpx
import pytest
import pytest_asyncio

from main import app
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


@pytest_asyncio.fixture
async def client(container):
    app.state.container = container
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.container


def _auth(container, user) -> dict:
    return {"Authorization": f"Bearer {container.tokens.create_access_token(user)}"}


@pytest.mark.asyncio
async def test_health_carries_request_id(client):
    resp = await client.get("/health", headers={"X-Request-ID": "req-1"})
    assert resp.status_code == 200
    assert resp.json()["code"] == BusinessCode.SUCCESS
    assert resp.headers["X-Request-ID"] == "req-1"


@pytest.mark.asyncio
async def test_missing_token_is_401(client):
    resp = await client.get("/api/v1/bookings")
    assert resp.status_code == 401
    assert resp.json()["code"] == BusinessCode.UNAUTHORIZED


@pytest.mark.asyncio
async def test_garbage_token_is_401(client):
    resp = await client.get("/api/v1/bookings", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json()["code"] == BusinessCode.TOKEN_INVALID


@pytest.mark.asyncio
async def test_booking_to_escrow_over_http(client, container, people):
    customer, artisan, _ = people
    headers = _auth(container, customer)

    created = await client.post(
        "/api/v1/bookings", json={"artisan_id": artisan.id, "amount": 10000}, headers=headers
    )
    assert created.status_code == 200
    order_id = created.json()["data"]["id"]

    intent = await client.post("/api/v1/payments/create-intent", json={"order_id": order_id}, headers=headers)
    assert intent.status_code == 200
    payment_id = intent.json()["data"]["payment_id"]

    # still processing, nothing to release yet
    early = await client.post(f"/api/v1/payments/release/{payment_id}", headers=headers)
    assert early.status_code == 409
    assert early.json()["code"] == BusinessCode.PAYMENT_NOT_IN_ESCROW

    await container.payments.on_charge_confirmed(intent.json()["data"]["intent_id"])
    released = await client.post(f"/api/v1/payments/release/{payment_id}", headers=headers)
    assert released.status_code == 200
    assert released.json()["data"]["status"] == "released"

    listed = await client.get("/api/v1/payments", params={"status": "released"}, headers=headers)
    assert [p["id"] for p in listed.json()["data"]] == [payment_id]


@pytest.mark.asyncio
async def test_unknown_order_is_404(client, container, people):
    customer, _, _ = people
    resp = await client.post(
        "/api/v1/payments/create-intent", json={"order_id": 404404}, headers=_auth(container, customer)
    )
    assert resp.status_code == 404
    body = resp.json()
    assert body["code"] == BusinessCode.ORDER_NOT_FOUND
    assert body["error"]["details"] == {"order_id": 404404}


@pytest.mark.asyncio
async def test_validation_errors_use_the_envelope(client, container, people):
    customer, _, _ = people
    resp = await client.post(
        "/api/v1/bookings", json={"artisan_id": 1, "amount": -5}, headers=_auth(container, customer)
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["field"] == "amount"


@pytest.mark.asyncio
async def test_webhook_endpoint_verifies_signature(client, sandbox):
    headers, body = sandbox.build_webhook("customer.updated")

    ok = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
    assert ok.status_code == 200
    assert ok.json()["data"]["type"] == "customer.updated"

    headers = {k: v for k, v in headers.items() if k != "x-sandbox-signature"}
    rejected = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
    assert rejected.status_code == 400
    assert rejected.json()["code"] == PaymentCode.SIGNATURE_ERROR


@pytest.mark.asyncio
async def test_payout_run_is_admin_only(client, container, people):
    customer, _, admin = people
    denied = await client.post("/api/v1/payouts/run", headers=_auth(container, customer))
    assert denied.status_code == 403
    assert denied.json()["code"] == BusinessCode.FORBIDDEN

    allowed = await client.post("/api/v1/payouts/run", headers=_auth(container, admin))
    assert allowed.status_code == 200
    assert allowed.json()["data"]["created"] == []
