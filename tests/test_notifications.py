"""
Price-change notification tests — fan-out through the product update
endpoint, the recipient's inbox and failure reporting.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from conftest import register_user
from pandamarket.services import notification_service


async def _create_product(client: AsyncClient, headers: dict, price: int = 1000) -> int:
    resp = await client.post(
        "/api/v1/products",
        json={"name": "Camera", "description": "Mirrorless body", "price": price},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


async def _inbox(client: AsyncClient, headers: dict) -> list[dict]:
    resp = await client.get("/api/v1/notifications", headers=headers)
    assert resp.status_code == 200
    return resp.json()["items"]


# ---------------------------------------------------------------------------
# Fan-out through the API
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_price_change_notifies_favoriter_once(async_client: AsyncClient, seller, buyer):
    _, seller_headers = seller
    _, buyer_headers = buyer
    pid = await _create_product(async_client, seller_headers, price=1000)
    await async_client.post(f"/api/v1/products/{pid}/favorites", headers=buyer_headers)

    resp = await async_client.patch(f"/api/v1/products/{pid}", json={"price": 2000}, headers=seller_headers)
    assert resp.status_code == 200
    assert resp.json()["price"] == 2000

    inbox = await _inbox(async_client, buyer_headers)
    assert len(inbox) == 1
    assert inbox[0]["type"] == "PRICE_CHANGED"
    assert inbox[0]["payload"] == {"product_id": pid, "price": 2000}
    assert inbox[0]["read_at"] is None

    # The seller did not favorite their own product.
    assert await _inbox(async_client, seller_headers) == []


@pytest.mark.asyncio
async def test_every_favoriter_is_notified(async_client: AsyncClient, seller):
    _, seller_headers = seller
    pid = await _create_product(async_client, seller_headers)
    fans = [await register_user(async_client, f"fan{i}@example.com") for i in range(3)]
    for _, headers in fans:
        await async_client.post(f"/api/v1/products/{pid}/favorites", headers=headers)
    _, bystander = await register_user(async_client, "bystander@example.com")

    await async_client.patch(f"/api/v1/products/{pid}", json={"price": 500}, headers=seller_headers)

    for _, headers in fans:
        inbox = await _inbox(async_client, headers)
        assert [n["payload"]["price"] for n in inbox] == [500]
    assert await _inbox(async_client, bystander) == []


@pytest.mark.asyncio
async def test_non_price_update_and_same_price_do_not_notify(async_client: AsyncClient, seller, buyer):
    _, seller_headers = seller
    _, buyer_headers = buyer
    pid = await _create_product(async_client, seller_headers, price=1000)
    await async_client.post(f"/api/v1/products/{pid}/favorites", headers=buyer_headers)

    await async_client.patch(f"/api/v1/products/{pid}", json={"name": "Camera kit"}, headers=seller_headers)
    await async_client.patch(f"/api/v1/products/{pid}", json={"price": 1000}, headers=seller_headers)

    assert await _inbox(async_client, buyer_headers) == []


@pytest.mark.asyncio
async def test_unfavorited_user_is_not_notified(async_client: AsyncClient, seller, buyer):
    _, seller_headers = seller
    _, buyer_headers = buyer
    pid = await _create_product(async_client, seller_headers)
    await async_client.post(f"/api/v1/products/{pid}/favorites", headers=buyer_headers)
    await async_client.delete(f"/api/v1/products/{pid}/favorites", headers=buyer_headers)

    await async_client.patch(f"/api/v1/products/{pid}", json={"price": 1}, headers=seller_headers)
    assert await _inbox(async_client, buyer_headers) == []


@pytest.mark.asyncio
async def test_forbidden_price_change_notifies_nobody(async_client: AsyncClient, seller, buyer):
    _, seller_headers = seller
    _, buyer_headers = buyer
    pid = await _create_product(async_client, seller_headers)
    await async_client.post(f"/api/v1/products/{pid}/favorites", headers=buyer_headers)

    resp = await async_client.patch(f"/api/v1/products/{pid}", json={"price": 1}, headers=buyer_headers)
    assert resp.status_code == 403
    assert await _inbox(async_client, buyer_headers) == []


@pytest.mark.asyncio
async def test_marketplace_scenario(async_client: AsyncClient, seller, buyer):
    """Price drop, then deletion: the notification survives, the favorite does not."""
    _, seller_headers = seller
    _, buyer_headers = buyer
    pid = await _create_product(async_client, seller_headers, price=1000)

    resp = await async_client.post(f"/api/v1/products/{pid}/favorites", headers=buyer_headers)
    assert resp.status_code == 201
    resp = await async_client.patch(f"/api/v1/products/{pid}", json={"price": 2000}, headers=seller_headers)
    assert resp.status_code == 200
    assert len(await _inbox(async_client, buyer_headers)) == 1

    resp = await async_client.delete(f"/api/v1/products/{pid}", headers=seller_headers)
    assert resp.status_code == 204

    favorites = await async_client.get("/api/v1/users/me/favorites", headers=buyer_headers)
    assert favorites.json()["total"] == 0
    inbox = await _inbox(async_client, buyer_headers)
    assert len(inbox) == 1
    assert inbox[0]["payload"]["product_id"] == pid


@pytest.mark.asyncio
async def test_fan_out_failure_is_reported_and_price_kept(
    async_client: AsyncClient, seller, buyer, monkeypatch
):
    _, seller_headers = seller
    _, buyer_headers = buyer
    pid = await _create_product(async_client, seller_headers, price=1000)
    await async_client.post(f"/api/v1/products/{pid}/favorites", headers=buyer_headers)

    attempts = []

    async def failing_insert(db, batch):
        attempts.append(len(batch))
        raise OperationalError("INSERT INTO notifications", {}, Exception("disk I/O error"))

    monkeypatch.setattr(notification_service, "create_notifications", failing_insert)

    resp = await async_client.patch(f"/api/v1/products/{pid}", json={"price": 900}, headers=seller_headers)
    assert resp.status_code == 500
    assert resp.json()["code"] == "fanout_partial_failure"
    assert attempts == [1, 1, 1]

    monkeypatch.undo()
    product = await async_client.get(f"/api/v1/products/{pid}")
    assert product.json()["price"] == 900
    assert await _inbox(async_client, buyer_headers) == []


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_inbox_requires_session(async_client: AsyncClient):
    assert (await async_client.get("/api/v1/notifications")).status_code == 401
    assert (await async_client.get("/api/v1/notifications/unread-count")).status_code == 401


@pytest.mark.asyncio
async def test_mark_read_and_unread_count(async_client: AsyncClient, seller, buyer):
    _, seller_headers = seller
    _, buyer_headers = buyer
    pid = await _create_product(async_client, seller_headers, price=1000)
    await async_client.post(f"/api/v1/products/{pid}/favorites", headers=buyer_headers)
    for price in (1100, 1200):
        await async_client.patch(f"/api/v1/products/{pid}", json={"price": price}, headers=seller_headers)

    count = await async_client.get("/api/v1/notifications/unread-count", headers=buyer_headers)
    assert count.json() == {"count": 2}

    inbox = await _inbox(async_client, buyer_headers)
    assert [n["payload"]["price"] for n in inbox] == [1200, 1100]
    newest = inbox[0]["id"]

    # Someone else's notification.
    resp = await async_client.patch(f"/api/v1/notifications/{newest}/read", headers=seller_headers)
    assert resp.status_code == 403
    resp = await async_client.patch("/api/v1/notifications/999/read", headers=buyer_headers)
    assert resp.status_code == 404

    resp = await async_client.patch(f"/api/v1/notifications/{newest}/read", headers=buyer_headers)
    assert resp.status_code == 200
    first_read_at = resp.json()["read_at"]
    assert first_read_at is not None
    again = await async_client.patch(f"/api/v1/notifications/{newest}/read", headers=buyer_headers)
    # Second-resolution compare; SQLite hands the stored value back without its offset.
    assert again.json()["read_at"][:19] == first_read_at[:19]

    count = await async_client.get("/api/v1/notifications/unread-count", headers=buyer_headers)
    assert count.json() == {"count": 1}

    unread = await async_client.get(
        "/api/v1/notifications", params={"unread_only": True}, headers=buyer_headers
    )
    assert unread.json()["total"] == 1

    resp = await async_client.post("/api/v1/notifications/read-all", headers=buyer_headers)
    assert resp.status_code == 200
    count = await async_client.get("/api/v1/notifications/unread-count", headers=buyer_headers)
    assert count.json() == {"count": 0}
