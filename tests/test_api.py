from decimal import Decimal

import httpx
import pytest

from thriftverse.database import get_session_factory
from thriftverse.main import app
from thriftverse.presentation.api import get_esewa_gateway, get_fonepay_gateway

from conftest import PRODUCT_ID, SELLER_ID

ADDRESS = {"street": "Jhamsikhel Road", "city": "Lalitpur", "district": "Lalitpur", "phone": "9800000000"}


@pytest.fixture
async def client(session_factory, esewa_gateway, fonepay_gateway):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_esewa_gateway] = lambda: esewa_gateway
    app.dependency_overrides[get_fonepay_gateway] = lambda: fonepay_gateway
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def _payment_request(**overrides):
    body = {
        "product_id": PRODUCT_ID,
        "product_name": "Vintage Denim Jacket",
        "amount": "1000",
        "shipping_option": "home",
        "delivery_charge": "170",
        "buyer_name": "Ram Sharma",
        "buyer_email": "buyer@example.com",
        "shipping_address": ADDRESS,
    }
    body.update(overrides)
    return body


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_esewa_checkout_flow(client, add_product, esewa_callback):
    await add_product()

    response = await client.post("/api/payments/esewa", json=_payment_request())
    assert response.status_code == 200
    payment = response.json()
    assert "esewaForm" in payment["form_html"]

    callback = esewa_callback(payment["transaction_uuid"], "1170")
    response = await client.get("/api/payments/esewa/success", params=callback)
    assert response.status_code == 200
    verification = response.json()
    assert verification["transaction_uuid"] == payment["transaction_uuid"]
    assert verification["transaction_code"] == "000AWEO"

    response = await client.get(f"/api/orders/{verification['order_id']}")
    assert response.status_code == 200
    order = response.json()
    assert order["order_code"] == verification["order_code"]
    assert order["status"] == "completed"
    assert Decimal(order["amount"]) == Decimal("1170")

    response = await client.get(f"/api/orders/by-transaction/{payment['transaction_uuid']}")
    assert response.json()["id"] == order["id"]


async def test_esewa_callback_with_bad_signature(client, add_product, esewa_callback):
    await add_product()
    payment = (await client.post("/api/payments/esewa", json=_payment_request())).json()

    callback = esewa_callback(payment["transaction_uuid"], "1170", tamper={"total_amount": "1"})
    response = await client.get("/api/payments/esewa/success", params=callback)

    assert response.status_code == 400
    assert response.json()["detail"] == "Payment verification failed"
    response = await client.get(f"/api/orders/by-transaction/{payment['transaction_uuid']}")
    assert response.status_code == 404


async def test_fonepay_checkout_flow(client, add_product, fonepay_callback):
    await add_product()

    response = await client.post("/api/payments/fonepay", json=_payment_request(shipping_option="none", delivery_charge=None))
    assert response.status_code == 200
    payment = response.json()
    assert payment["redirect_url"].startswith("https://dev-clientapi.fonepay.com/api/merchantRequest?")

    response = await client.get(
        "/api/payments/fonepay/success", params=fonepay_callback(payment["transaction_uuid"], "1000")
    )
    assert response.status_code == 200
    assert Decimal(response.json()["amount"]) == Decimal("1000")


async def test_checkout_for_missing_product(client):
    response = await client.post("/api/payments/esewa", json=_payment_request())
    assert response.status_code == 404


async def test_checkout_with_stale_delivery_quote(client, add_product):
    await add_product()
    response = await client.post("/api/payments/esewa", json=_payment_request(delivery_charge="120"))
    assert response.status_code == 400


async def test_checkout_with_underquoted_amount(client, add_product):
    await add_product(price="1000")
    response = await client.post("/api/payments/esewa", json=_payment_request(amount="1"))
    assert response.status_code == 400


async def test_checkout_with_negative_tax(client, add_product):
    await add_product()
    response = await client.post("/api/payments/esewa", json=_payment_request(tax_amount="-170"))
    assert response.status_code == 422


async def test_unverified_payment_cannot_be_turned_into_an_order(client, add_product):
    await add_product()
    payment = (await client.post("/api/payments/esewa", json=_payment_request())).json()

    response = await client.post(f"/api/orders/from-payment/{payment['transaction_uuid']}")

    assert response.status_code == 409
    assert payment["transaction_uuid"] in response.json()["detail"]


async def test_order_from_verified_payment_is_idempotent(client, add_product, stage_payment):
    await add_product()
    tx = await stage_payment()

    first = await client.post(f"/api/orders/from-payment/{tx}")
    second = await client.post(f"/api/orders/from-payment/{tx}")

    assert first.status_code == second.status_code == 200
    assert first.json()["id"] == second.json()["id"]


async def test_cod_order_and_status_updates(client, add_product):
    await add_product()
    body = {
        "product_id": PRODUCT_ID,
        "buyer_name": "Ram Sharma",
        "buyer_email": "buyer@example.com",
        "shipping_address": ADDRESS,
        "shipping_option": "branch",
        "idempotency_key": "checkout-7",
    }

    response = await client.post("/api/orders/cod", json=body)
    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "pending"
    assert order["payment_method"] == "COD"
    assert Decimal(order["platform_earnings"]) == Decimal("50")

    assert (await client.post("/api/orders/cod", json=body)).json()["id"] == order["id"]

    response = await client.patch(f"/api/orders/{order['id']}/status", json={"status": "completed"})
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    response = await client.patch(f"/api/orders/{order['id']}/status", json={"status": "pending"})
    assert response.status_code == 409

    response = await client.get("/api/orders", params={"seller_id": SELLER_ID, "status": "completed"})
    assert response.json()["count"] == 1


async def test_unknown_order(client):
    assert (await client.get("/api/orders/missing")).status_code == 404
    assert (await client.patch("/api/orders/missing/status", json={"status": "completed"})).status_code == 404


async def test_payment_failure_redirect(client, stage_payment):
    tx = await stage_payment()
    response = await client.post("/api/payments/failure", json={"transaction_uuid": tx, "reason": "cancelled"})
    assert response.json() == {"status": "ok", "known_transaction": True}
