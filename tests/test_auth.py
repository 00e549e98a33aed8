"""
Auth endpoint and session middleware tests — registration, login, refresh,
logout and how protected routes treat missing or bad access cookies.
"""
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import register_user
from pandamarket.config import settings
from pandamarket.models import User
from pandamarket.tokens import TokenKind, create_token, verify_token

ACCESS = settings.ACCESS_TOKEN_COOKIE_NAME
REFRESH = settings.REFRESH_TOKEN_COOKIE_NAME


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_register_sets_both_cookies(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/auth/register", json={
        "email": "Panda@Example.com",
        "nickname": "panda",
        "password": "bamboo123",
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["email"] == "panda@example.com"
    assert data["nickname"] == "panda"
    assert "password" not in data
    assert "password_hash" not in data

    assert verify_token(resp.cookies[ACCESS], TokenKind.ACCESS).user_id == data["id"]
    assert verify_token(resp.cookies[REFRESH], TokenKind.REFRESH).user_id == data["id"]

    set_cookie = resp.headers.get_list("set-cookie")
    assert all("HttpOnly" in header for header in set_cookie)
    assert any(f"Path={settings.REFRESH_TOKEN_COOKIE_PATH}" in header for header in set_cookie)


@pytest.mark.asyncio
async def test_register_duplicate_email_returns_409(async_client: AsyncClient, db_session: AsyncSession):
    await register_user(async_client, "dup@example.com", "first")
    resp = await async_client.post("/api/v1/auth/register", json={
        "email": "DUP@example.com",
        "nickname": "second",
        "password": "whatever1",
    })
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"
    assert ACCESS not in resp.cookies

    count = (await db_session.execute(select(func.count()).select_from(User))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_register_validation(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/auth/register", json={
        "email": "not-an-email",
        "nickname": "x",
        "password": "secret123",
    })
    assert resp.status_code == 422

    resp = await async_client.post("/api/v1/auth/register", json={
        "email": "short@example.com",
        "nickname": "x",
        "password": "abc",
    })
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_password_is_stored_hashed(async_client: AsyncClient, db_session: AsyncSession):
    await register_user(async_client, "hash@example.com", password="plaintext1")
    user = (await db_session.execute(select(User))).scalar_one()
    assert user.password_hash != "plaintext1"
    assert user.password_hash.startswith("$2")


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_login_success(async_client: AsyncClient):
    user_id, _ = await register_user(async_client, "login@example.com", password="secret123")

    resp = await async_client.post("/api/v1/auth/login", json={
        "email": "login@example.com",
        "password": "secret123",
    })
    assert resp.status_code == 200
    assert resp.json()["id"] == user_id
    assert verify_token(resp.cookies[ACCESS], TokenKind.ACCESS).user_id == user_id
    assert verify_token(resp.cookies[REFRESH], TokenKind.REFRESH).user_id == user_id


@pytest.mark.asyncio
async def test_login_wrong_password_and_unknown_email_look_the_same(async_client: AsyncClient):
    await register_user(async_client, "who@example.com", password="secret123")

    wrong = await async_client.post("/api/v1/auth/login", json={
        "email": "who@example.com", "password": "nope",
    })
    unknown = await async_client.post("/api/v1/auth/login", json={
        "email": "nobody@example.com", "password": "secret123",
    })
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()
    assert ACCESS not in wrong.cookies


@pytest.mark.asyncio
async def test_login_ignores_stale_access_cookie(async_client: AsyncClient):
    await register_user(async_client, "stale@example.com", password="secret123")

    resp = await async_client.post(
        "/api/v1/auth/login",
        json={"email": "stale@example.com", "password": "secret123"},
        headers={"Cookie": f"{ACCESS}=expired.or.garbage"},
    )
    assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Refresh / logout
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_refresh_rotates_both_tokens(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/auth/register", json={
        "email": "rot@example.com", "nickname": "rot", "password": "secret123",
    })
    old_refresh = resp.cookies[REFRESH]
    old_access = resp.cookies[ACCESS]

    # The cookie jar sends the refresh cookie (Path=/api/v1/auth).
    resp = await async_client.post("/api/v1/auth/refresh")
    assert resp.status_code == 200
    assert resp.json()["email"] == "rot@example.com"
    assert resp.cookies[REFRESH] != old_refresh
    assert resp.cookies[ACCESS] != old_access
    assert verify_token(resp.cookies[ACCESS], TokenKind.ACCESS).user_id == resp.json()["id"]


@pytest.mark.asyncio
async def test_refresh_without_cookie_returns_401(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/auth/refresh")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(async_client: AsyncClient):
    user_id, _ = await register_user(async_client, "mix@example.com")
    access = create_token(user_id, TokenKind.ACCESS)
    resp = await async_client.post(
        "/api/v1/auth/refresh", headers={"Cookie": f"{REFRESH}={access}"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_refresh_for_missing_user_returns_401(async_client: AsyncClient):
    token = create_token(9999, TokenKind.REFRESH)
    resp = await async_client.post(
        "/api/v1/auth/refresh", headers={"Cookie": f"{REFRESH}={token}"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_logout_clears_cookies(async_client: AsyncClient):
    _, headers = await register_user(async_client, "bye@example.com")
    resp = await async_client.post("/api/v1/auth/logout", headers=headers)
    assert resp.status_code == 204
    cleared = resp.headers.get_list("set-cookie")
    assert any(header.startswith(f"{ACCESS}=") and "Max-Age=0" in header for header in cleared)
    assert any(header.startswith(f"{REFRESH}=") and "Max-Age=0" in header for header in cleared)


# ---------------------------------------------------------------------------
# Session middleware on protected routes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_me_requires_session(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/me")
    assert resp.status_code == 401
    assert resp.json()["code"] == "authentication_error"


@pytest.mark.asyncio
async def test_me_with_valid_cookie(async_client: AsyncClient):
    user_id, headers = await register_user(async_client, "me@example.com", "meme")
    resp = await async_client.get("/api/v1/users/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["id"] == user_id
    assert resp.json()["nickname"] == "meme"


@pytest.mark.asyncio
async def test_invalid_access_cookie_rejected_before_handler(async_client: AsyncClient):
    resp = await async_client.get(
        "/api/v1/products", headers={"Cookie": f"{ACCESS}=not-a-token"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_expired_access_cookie_rejected(async_client: AsyncClient):
    user_id, _ = await register_user(async_client, "late@example.com")
    expired = create_token(user_id, TokenKind.ACCESS, ttl=timedelta(seconds=-1))
    resp = await async_client.get("/api/v1/users/me", headers={"Cookie": f"{ACCESS}={expired}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_access_token(async_client: AsyncClient):
    user_id, _ = await register_user(async_client, "swap@example.com")
    refresh = create_token(user_id, TokenKind.REFRESH)
    resp = await async_client.get("/api/v1/users/me", headers={"Cookie": f"{ACCESS}={refresh}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_anonymous_mutation_is_401_even_for_missing_resource(async_client: AsyncClient):
    resp = await async_client.patch("/api/v1/products/12345", json={"price": 1})
    assert resp.status_code == 401
    resp = await async_client.delete("/api/v1/articles/12345")
    assert resp.status_code == 401
    resp = await async_client.post("/api/v1/products/12345/favorites")
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_me(async_client: AsyncClient):
    _, headers = await register_user(async_client, "edit@example.com", "before")
    resp = await async_client.patch("/api/v1/users/me", json={"nickname": "after"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["nickname"] == "after"

    resp = await async_client.patch("/api/v1/users/me", json={}, headers=headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_change_password(async_client: AsyncClient):
    _, headers = await register_user(async_client, "pw@example.com", password="oldpass1")

    resp = await async_client.patch("/api/v1/users/me/password", json={
        "current_password": "wrong", "new_password": "newpass1",
    }, headers=headers)
    assert resp.status_code == 401

    resp = await async_client.patch("/api/v1/users/me/password", json={
        "current_password": "oldpass1", "new_password": "newpass1",
    }, headers=headers)
    assert resp.status_code == 204

    old = await async_client.post("/api/v1/auth/login", json={
        "email": "pw@example.com", "password": "oldpass1",
    })
    new = await async_client.post("/api/v1/auth/login", json={
        "email": "pw@example.com", "password": "newpass1",
    })
    assert old.status_code == 401
    assert new.status_code == 200
