"""
API endpoint tests (httpx ASGI transport, in-memory DB)
"""

import hashlib
import hmac
import json
import time
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import urlencode

import pytest
from httpx import ASGITransport, AsyncClient

import src.api.admin as admin_module
import src.api.auth as auth_module
import src.api.orders as orders_module
from api_server import app
from src.api.auth import sign_init_data, validate_telegram_init_data
from src.database.engine import get_session
from src.database.models import Box

TEST_BOT_TOKEN = "123456:TEST"
TEST_ADMIN_TOKEN = "admin-secret"
TEST_WEBHOOK_SECRET = "webhook-secret"


def make_init_data(telegram_id=555, username="miniapp_user", auth_date=None):
    """Signed initData string as the Telegram client sends it"""
    fields = {
        "auth_date": str(auth_date or int(time.time())),
        "query_id": "AAH",
        "user": json.dumps({"id": telegram_id, "username": username, "first_name": "Mini"}),
    }
    data_check_string = "\n".join(f"{key}={fields[key]}" for key in sorted(fields))
    fields["hash"] = sign_init_data(data_check_string, TEST_BOT_TOKEN)
    return urlencode(fields)


def tma_headers(**kwargs):
    return {"Authorization": f"tma {make_init_data(**kwargs)}"}


ADMIN_HEADERS = {"Authorization": f"Bearer {TEST_ADMIN_TOKEN}"}


@pytest.fixture
async def client(session_maker, monkeypatch):
    monkeypatch.setattr(auth_module, "BOT_TOKEN", TEST_BOT_TOKEN)
    monkeypatch.setattr(auth_module, "ADMIN_API_TOKEN", TEST_ADMIN_TOKEN)
    monkeypatch.setattr(orders_module, "PAYMENT_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)

    async def override_get_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def api_box(session_maker):
    async with session_maker() as session:
        box = Box(name="Fitness Box", price=1000)
        session.add(box)
        await session.commit()
        return box


# ============================================================================
# AUTH
# ============================================================================


def test_validate_init_data_roundtrip():
    data = validate_telegram_init_data(make_init_data(telegram_id=42), TEST_BOT_TOKEN)
    assert data["user"]["id"] == 42


def test_validate_init_data_rejects_tampering():
    from fastapi import HTTPException

    tampered = make_init_data(telegram_id=42).replace("42", "43")
    with pytest.raises(HTTPException) as exc:
        validate_telegram_init_data(tampered, TEST_BOT_TOKEN)
    assert exc.value.status_code == 401


def test_validate_init_data_rejects_expired():
    from fastapi import HTTPException

    old = make_init_data(auth_date=int(time.time()) - 10 * 86400)
    with pytest.raises(HTTPException):
        validate_telegram_init_data(old, TEST_BOT_TOKEN)


@pytest.mark.asyncio
async def test_me_creates_user(client):
    response = await client.get("/api/user/me", headers=tma_headers(telegram_id=777, username="Fit"))

    assert response.status_code == 200
    body = response.json()
    assert body["telegram_id"] == 777
    assert body["loyalty_points"] == 0


@pytest.mark.asyncio
async def test_missing_auth_is_rejected(client):
    response = await client.get("/api/user/me", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_admin_requires_token(client):
    assert (await client.get("/api/admin/promo-codes")).status_code == 401
    assert (
        await client.get("/api/admin/promo-codes", headers={"X-Admin-Token": "wrong"})
    ).status_code == 401
    assert (
        await client.get("/api/admin/promo-codes", headers={"X-Admin-Token": TEST_ADMIN_TOKEN})
    ).status_code == 200


# ============================================================================
# PROMO
# ============================================================================


@pytest.mark.asyncio
async def test_validate_promo_endpoint(client):
    created = await client.post(
        "/api/admin/promo-codes",
        json={"code": "save20", "discount_percent": 20, "max_uses": 1},
        headers=ADMIN_HEADERS,
    )
    assert created.status_code == 201
    assert created.json()["code"] == "SAVE20"

    response = await client.post(
        "/api/promo/validate", json={"code": "SAVE20", "order_amount": 1000}, headers=tma_headers()
    )

    assert response.status_code == 200
    body = response.json()
    assert body["discount_amount"] == 200
    assert body["final_amount"] == 800


@pytest.mark.asyncio
async def test_validate_promo_not_found_body(client):
    response = await client.post(
        "/api/promo/validate", json={"code": "NOPE", "order_amount": 1000}, headers=tma_headers()
    )

    assert response.status_code == 404
    assert response.json() == {"error": "not_found", "message": "Промокод не найден"}


@pytest.mark.asyncio
async def test_duplicate_promo_code_conflict(client):
    payload = {"code": "DUP", "discount_percent": 5}
    assert (await client.post("/api/admin/promo-codes", json=payload, headers=ADMIN_HEADERS)).status_code == 201
    assert (await client.post("/api/admin/promo-codes", json=payload, headers=ADMIN_HEADERS)).status_code == 409


# ============================================================================
# ORDERS & WEBHOOK
# ============================================================================


def signed(payload: dict):
    body = json.dumps(payload).encode()
    signature = hmac.new(TEST_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return body, {"X-Webhook-Signature": signature, "Content-Type": "application/json"}


@pytest.mark.asyncio
async def test_checkout_and_webhook(client, api_box):
    headers = tma_headers()
    created = await client.post(
        "/api/orders",
        json={
            "box_id": api_box.id,
            "customer_name": "Mini",
            "customer_phone": "+79990000000",
            "delivery_method": "courier",
            "payment_method": "card",
        },
        headers=headers,
    )
    assert created.status_code == 201
    order_id = created.json()["order_id"]
    assert created.json()["total_price"] == 1000

    body, webhook_headers = signed({"order_id": order_id, "payment_id": "p1", "status": "succeeded"})
    paid = await client.post("/api/payments/webhook", content=body, headers=webhook_headers)

    assert paid.status_code == 200
    assert paid.json()["newly_paid"] is True
    assert paid.json()["cashback_points"] == 50

    # Redelivery
    again = await client.post("/api/payments/webhook", content=body, headers=webhook_headers)
    assert again.status_code == 200
    assert again.json()["newly_paid"] is False

    balance = await client.get("/api/loyalty/balance", headers=headers)
    assert balance.json()["total_points"] == 50

    orders = await client.get("/api/orders/my", headers=headers)
    assert [o["status"] for o in orders.json()] == ["paid"]


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(client):
    body, _ = signed({"order_id": "x", "status": "succeeded"})
    response = await client.post(
        "/api/payments/webhook",
        content=body,
        headers={"X-Webhook-Signature": "deadbeef", "Content-Type": "application/json"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_webhook_ignores_non_success_status(client):
    body, headers = signed({"order_id": "x", "status": "canceled"})
    response = await client.post("/api/payments/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["processed"] is False


@pytest.mark.asyncio
async def test_checkout_points_over_balance(client, api_box):
    response = await client.post(
        "/api/orders",
        json={
            "box_id": api_box.id,
            "customer_name": "Mini",
            "customer_phone": "+79990000000",
            "delivery_method": "courier",
            "payment_method": "card",
            "loyalty_points": 100,
        },
        headers=tma_headers(),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "insufficient_balance"


# ============================================================================
# LOYALTY / REFERRAL / FAVORITES
# ============================================================================


@pytest.mark.asyncio
async def test_admin_award_and_history(client):
    await client.get("/api/user/me", headers=tma_headers(username="winner"))

    awarded = await client.post(
        "/api/admin/loyalty/award",
        json={"username": "@Winner", "points": 300, "description": "Конкурс"},
        headers=ADMIN_HEADERS,
    )
    assert awarded.status_code == 200
    assert awarded.json()["balance"] == 300

    history = await client.get("/api/loyalty/history", headers=tma_headers(username="winner"))
    assert [entry["points"] for entry in history.json()] == [300]

    missing = await client.post(
        "/api/admin/loyalty/award", json={"username": "ghost", "points": 10}, headers=ADMIN_HEADERS
    )
    assert missing.status_code == 404
    assert missing.json()["error"] == "user_not_found"


@pytest.mark.asyncio
async def test_referral_code_endpoint(client):
    first = await client.post("/api/referral/code", headers=tma_headers(username="anna"))
    second = await client.post("/api/referral/code", headers=tma_headers(username="anna"))

    assert first.status_code == 200
    code = first.json()["referral_code"]
    assert code.startswith("ANNA")
    assert second.json()["referral_code"] == code
    assert first.json()["referral_link"].endswith(f"?start=ref_{code}")


@pytest.mark.asyncio
async def test_favorites_toggle(client, api_box):
    headers = tma_headers()

    toggled = await client.post("/api/favorites/toggle", json={"box_id": api_box.id}, headers=headers)
    assert toggled.json() == {"is_favorite": True}

    listed = await client.get("/api/favorites", headers=headers)
    assert [f["box_id"] for f in listed.json()] == [api_box.id]

    toggled = await client.post("/api/favorites/toggle", json={"box_id": api_box.id}, headers=headers)
    assert toggled.json() == {"is_favorite": False}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.json() == {"status": "healthy"}


# ============================================================================
# CATALOG
# ============================================================================


@pytest.mark.asyncio
async def test_admin_manages_catalog(client):
    created = await client.post(
        "/api/admin/boxes",
        json={"name": "Yoga Box", "price": 1990, "category": "yoga"},
        headers=ADMIN_HEADERS,
    )
    assert created.status_code == 201
    box_id = created.json()["id"]

    listed = await client.get("/api/boxes", params={"category": "yoga"})
    assert [b["id"] for b in listed.json()] == [box_id]

    updated = await client.patch(f"/api/admin/boxes/{box_id}", json={"price": 1790}, headers=ADMIN_HEADERS)
    assert updated.json()["price"] == 1790
    assert updated.json()["name"] == "Yoga Box"

    hidden = await client.patch(
        f"/api/admin/boxes/{box_id}/available", json={"is_available": False}, headers=ADMIN_HEADERS
    )
    assert hidden.json()["is_available"] is False
    assert (await client.get("/api/boxes")).json() == []
    assert (await client.get(f"/api/boxes/{box_id}")).status_code == 404
    assert len((await client.get("/api/admin/boxes", headers=ADMIN_HEADERS)).json()) == 1


@pytest.mark.asyncio
async def test_product_endpoints(client):
    created = await client.post(
        "/api/admin/products",
        json={"name": "Protein Bar", "price": 150, "category": "food"},
        headers=ADMIN_HEADERS,
    )
    product_id = created.json()["id"]

    fetched = await client.get(f"/api/products/{product_id}")
    assert fetched.json()["name"] == "Protein Bar"
    assert (await client.get("/api/products/missing")).status_code == 404
    assert (await client.post("/api/admin/products", json={"name": "Bad", "price": -1}, headers=ADMIN_HEADERS)).status_code == 422
    assert (await client.post("/api/admin/products", json={"name": "X", "price": 1})).status_code == 401


@pytest.mark.asyncio
async def test_checkout_box_created_via_admin(client):
    created = await client.post(
        "/api/admin/boxes", json={"name": "Fitness Box", "price": 1000}, headers=ADMIN_HEADERS
    )

    response = await client.post(
        "/api/orders",
        json={
            "box_id": created.json()["id"],
            "customer_name": "Mini",
            "customer_phone": "+79990000000",
            "delivery_method": "courier",
            "payment_method": "card",
        },
        headers=tma_headers(),
    )

    assert response.status_code == 201
    assert response.json()["total_price"] == 1000


# ============================================================================
# BROADCASTS
# ============================================================================


@pytest.mark.asyncio
async def test_admin_broadcast_send(client, monkeypatch):
    # Recipient: Mini App user created on first request
    await client.get("/api/user/me", headers=tma_headers(telegram_id=777))

    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.session.close = AsyncMock()
    monkeypatch.setattr(admin_module, "Bot", MagicMock(return_value=bot))

    created = await client.post(
        "/api/admin/broadcasts",
        json={
            "title": "Осень",
            "message": "Новые боксы в каталоге",
            "buttons": [{"label": "Открыть", "start_app_param": "catalog"}],
        },
        headers=ADMIN_HEADERS,
    )
    assert created.status_code == 201
    assert created.json()["status"] == "draft"
    broadcast_id = created.json()["id"]

    sent = await client.post(f"/api/admin/broadcasts/{broadcast_id}/send", headers=ADMIN_HEADERS)

    assert sent.status_code == 200
    assert sent.json()["status"] == "sent"
    assert sent.json()["sent_count"] == 1
    assert bot.send_message.call_args.kwargs["chat_id"] == 777
    bot.session.close.assert_awaited()

    again = await client.post(f"/api/admin/broadcasts/{broadcast_id}/send", headers=ADMIN_HEADERS)
    assert again.status_code == 409
    assert (await client.delete(f"/api/admin/broadcasts/{broadcast_id}", headers=ADMIN_HEADERS)).status_code == 200


@pytest.mark.asyncio
async def test_admin_broadcast_not_found(client, monkeypatch):
    bot = MagicMock()
    bot.session.close = AsyncMock()
    monkeypatch.setattr(admin_module, "Bot", MagicMock(return_value=bot))

    assert (await client.get("/api/admin/broadcasts/missing", headers=ADMIN_HEADERS)).status_code == 404
    assert (await client.post("/api/admin/broadcasts/missing/send", headers=ADMIN_HEADERS)).status_code == 404
