"""Accounts + session API tests.

Learn: Tests cover:
1. Registration, duplicate prevention, the registration lock (429)
2. Login → tokens in the body and in cookies
3. Token refresh from body and from cookie
4. /auth/verify — the three failure shapes (401, 401 expired, 403)
5. Logout — idempotent, always clears cookies
"""

from datetime import datetime, timedelta, timezone

import pytest

from qureka.auth.jwt import IdentityClaims, TokenCodec
from qureka.config import settings

REGISTER_BODY = {
    "username": "alice",
    "password": "secure_password_123",
    "name": "Alice",
    "age": 21,
    "gender": "F",
    "phone": "010-1234-5678",
    "email": "alice@example.com",
}


def _set_cookies(r) -> dict[str, str]:
    """Map cookie name → full Set-Cookie header line."""
    cookies = {}
    for line in r.headers.get_list("set-cookie"):
        name = line.split("=", 1)[0]
        cookies[name] = line
    return cookies


async def _register(client, **overrides):
    body = {**REGISTER_BODY, **overrides}
    r = await client.post("/api/v1/users/register", json=body)
    assert r.status_code == 201, r.text
    return r.json()


async def _login(client, remember_me: bool = False):
    r = await client.post(
        "/api/v1/users/login",
        json={
            "username": "alice",
            "password": "secure_password_123",
            "remember_me": remember_me,
        },
    )
    assert r.status_code == 200, r.text
    return r


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_user(client):
    user = await _register(client)
    assert user["username"] == "alice"
    assert user["name"] == "Alice"
    assert "id" in user
    assert "password" not in user
    assert "password_hash" not in user


@pytest.mark.asyncio
async def test_register_duplicate_username(client):
    await _register(client)
    r = await client.post(
        "/api/v1/users/register",
        json={**REGISTER_BODY, "phone": "010-9999-9999", "email": None},
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_register_duplicate_phone(client):
    await _register(client)
    r = await client.post(
        "/api/v1/users/register",
        json={**REGISTER_BODY, "username": "alice2", "email": None},
    )
    assert r.status_code == 409
    assert "Phone" in r.json()["detail"]


@pytest.mark.asyncio
async def test_register_missing_fields(client):
    r = await client.post("/api/v1/users/register", json={"username": "alice"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_register_while_locked(client, lock):
    """A registration already in flight for the same username → 429."""
    assert lock.acquire("alice")

    r = await client.post("/api/v1/users/register", json=REGISTER_BODY)
    assert r.status_code == 429
    assert "in progress" in r.json()["detail"]

    lock.release("alice")
    await _register(client)


@pytest.mark.asyncio
async def test_register_releases_lock(client, lock):
    await _register(client)
    assert not lock.held("alice")


@pytest.mark.asyncio
async def test_check_username(client):
    r = await client.post("/api/v1/users/check-username", json={"username": "alice"})
    assert r.status_code == 200
    assert r.json() == {"available": True}

    await _register(client)
    r = await client.post("/api/v1/users/check-username", json={"username": "alice"})
    assert r.status_code == 409

    r = await client.post("/api/v1/users/check-username", json={})
    assert r.status_code == 400


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_sets_tokens_and_cookies(client):
    await _register(client)
    r = await _login(client)

    data = r.json()
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["token_type"] == "bearer"
    assert data["user"]["username"] == "alice"
    assert data["remember_me"] is False

    cookies = _set_cookies(r)
    assert "Max-Age=3600" in cookies["access_token"]
    assert "HttpOnly" in cookies["access_token"]
    assert "Max-Age=604800" in cookies["refresh_token"]
    assert "HttpOnly" in cookies["refresh_token"]
    assert "HttpOnly" not in cookies["remember_me"]


@pytest.mark.asyncio
async def test_login_remember_me_cookie_lifetime(client):
    await _register(client)
    r = await _login(client, remember_me=True)

    cookies = _set_cookies(r)
    assert "Max-Age=2592000" in cookies["refresh_token"]
    assert "Max-Age=2592000" in cookies["remember_me"]
    assert cookies["remember_me"].startswith("remember_me=true")


@pytest.mark.asyncio
async def test_login_wrong_password(client):
    await _register(client)
    r = await client.post(
        "/api/v1/users/login", json={"username": "alice", "password": "wrong"}
    )
    assert r.status_code == 401
    assert "set-cookie" not in r.headers


@pytest.mark.asyncio
async def test_login_missing_password(client):
    r = await client.post("/api/v1/users/login", json={"username": "alice"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_login_response_not_cached(client):
    await _register(client)
    r = await _login(client)
    assert r.headers["Cache-Control"] == "no-store"


# ═══════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_with_body(client):
    await _register(client)
    tokens = (await _login(client)).json()
    client.cookies.clear()

    r = await client.post(
        "/api/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]}
    )
    assert r.status_code == 200
    data = r.json()
    assert data["access_token"]
    assert data["user"]["username"] == "alice"
    assert set(_set_cookies(r)) == {"access_token"}


@pytest.mark.asyncio
async def test_refresh_with_cookie(client):
    await _register(client)
    await _login(client)

    # No body: the refresh_token cookie from login is used
    r = await client.post("/api/v1/auth/refresh-token")
    assert r.status_code == 200
    assert r.json()["access_token"]


@pytest.mark.asyncio
async def test_refresh_without_token(client):
    r = await client.post("/api/v1/auth/refresh-token")
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_refresh_invalid_token_clears_cookies(client):
    r = await client.post(
        "/api/v1/auth/refresh-token", json={"refresh_token": "not-a-token"}
    )
    assert r.status_code == 401
    cookies = _set_cookies(r)
    for name in ("access_token", "refresh_token", "remember_me"):
        assert "Max-Age=0" in cookies[name]


@pytest.mark.asyncio
async def test_refresh_after_relogin_rejected(client):
    """A second login replaces the stored refresh token."""
    await _register(client)
    first = (await _login(client)).json()
    await _login(client)
    client.cookies.clear()

    r = await client.post(
        "/api/v1/auth/refresh-token", json={"refresh_token": first["refresh_token"]}
    )
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Verify / current user
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_verify_with_bearer(client):
    await _register(client)
    tokens = (await _login(client, remember_me=True)).json()
    client.cookies.clear()

    r = await client.get(
        "/api/v1/auth/verify",
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert r.status_code == 200
    user = r.json()["user"]
    assert user["username"] == "alice"
    assert user["name"] == "Alice"
    assert user["remember_me"] is True


@pytest.mark.asyncio
async def test_verify_with_cookie(client):
    await _register(client)
    await _login(client)

    r = await client.get("/api/v1/auth/verify")
    assert r.status_code == 200
    assert r.json()["user"]["remember_me"] is False


@pytest.mark.asyncio
async def test_verify_without_token(client):
    r = await client.get("/api/v1/auth/verify")
    assert r.status_code == 401
    assert "expired" not in r.json()


@pytest.mark.asyncio
async def test_verify_ignores_token_in_body(client):
    """The gate reads the header and cookie only, never the JSON body."""
    await _register(client)
    tokens = (await _login(client)).json()
    client.cookies.clear()

    r = await client.request(
        "GET", "/api/v1/auth/verify", json={"access_token": tokens["access_token"]}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_verify_garbage_token(client):
    r = await client.get(
        "/api/v1/auth/verify", headers={"Authorization": "Bearer garbage"}
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_verify_expired_token(client):
    two_hours_ago = datetime.now(timezone.utc) - timedelta(hours=2)
    stale_codec = TokenCodec(
        access_secret=settings.access_token_secret,
        refresh_secret=settings.refresh_token_secret,
        clock=lambda: two_hours_ago,
    )
    token = stale_codec.issue_access(
        IdentityClaims(subject_id=1, username="alice", display_name="Alice")
    )

    r = await client.get(
        "/api/v1/auth/verify", headers={"Authorization": f"Bearer {token}"}
    )
    assert r.status_code == 401
    assert r.json()["expired"] is True


@pytest.mark.asyncio
async def test_get_me(client):
    await _register(client)
    tokens = (await _login(client)).json()

    r = await client.get(
        "/api/v1/users/me",
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert r.status_code == 200
    assert r.json()["username"] == "alice"
    assert r.json()["email"] == "alice@example.com"


@pytest.mark.asyncio
async def test_get_me_unauthenticated(client):
    r = await client.get("/api/v1/users/me")
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_revokes_refresh_token(client):
    await _register(client)
    tokens = (await _login(client)).json()

    r = await client.post(
        "/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]}
    )
    assert r.status_code == 200
    assert r.json() == {}
    cookies = _set_cookies(r)
    for name in ("access_token", "refresh_token", "remember_me"):
        assert "Max-Age=0" in cookies[name]

    r = await client.post(
        "/api/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_logout_twice(client):
    await _register(client)
    await _login(client)

    r1 = await client.post("/api/v1/auth/logout")
    r2 = await client.post("/api/v1/auth/logout")
    assert r1.status_code == 200
    assert r2.status_code == 200
    assert r2.json() == {}


@pytest.mark.asyncio
async def test_logout_with_access_token_only(client):
    """Bearer access token alone still revokes the stored refresh token."""
    await _register(client)
    tokens = (await _login(client)).json()
    client.cookies.clear()

    r = await client.post(
        "/api/v1/auth/logout",
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert r.status_code == 200

    r = await client.post(
        "/api/v1/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_logout_with_replaced_token_keeps_newer_session(client):
    """Logging out an old device must not end the session of the newer one."""
    await _register(client)
    old = (await _login(client)).json()
    new = (await _login(client)).json()
    client.cookies.clear()

    r = await client.post(
        "/api/v1/auth/logout",
        headers={"Authorization": f"Bearer {old['refresh_token']}"},
    )
    assert r.status_code == 200

    r = await client.post(
        "/api/v1/auth/refresh-token", json={"refresh_token": new["refresh_token"]}
    )
    assert r.status_code == 200
