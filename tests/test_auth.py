import pytest


async def test_register_returns_public_user(async_client):
    resp = await async_client.post(
        "/api/auth/register", json={"email": "New.User@Example.com", "password": "secret123"}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == "new.user@example.com"
    assert body["plan"] == "free"
    assert isinstance(body["id"], int)
    assert "createdAt" in body and "updatedAt" in body
    assert "password" not in body and "hashedPassword" not in body


async def test_register_keeps_requested_plan(async_client):
    resp = await async_client.post(
        "/api/auth/register", json={"email": "pro@example.com", "password": "secret123", "plan": "pro"}
    )
    assert resp.status_code == 200
    assert resp.json()["plan"] == "pro"


async def test_register_duplicate_email(async_client):
    payload = {"email": "dup@example.com", "password": "secret123"}
    assert (await async_client.post("/api/auth/register", json=payload)).status_code == 200

    resp = await async_client.post("/api/auth/register", json={**payload, "email": "DUP@example.com"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "User with this email already exists"


@pytest.mark.parametrize(
    "payload",
    [
        {"password": "secret123"},
        {"email": "x@example.com"},
        {"email": "not-an-email", "password": "secret123"},
        {"email": "short@example.com", "password": "123"},
    ],
)
async def test_register_invalid_body(async_client, payload):
    resp = await async_client.post("/api/auth/register", json=payload)
    assert resp.status_code == 400
    assert "error" in resp.json()


async def test_login_returns_token(async_client):
    creds = {"email": "login@example.com", "password": "secret123"}
    await async_client.post("/api/auth/register", json=creds)

    resp = await async_client.post("/api/auth/login", json=creds)
    assert resp.status_code == 200
    token = resp.json()["token"]
    assert isinstance(token, str) and token.count(".") == 2


async def test_login_wrong_password(async_client):
    await async_client.post("/api/auth/register", json={"email": "pw@example.com", "password": "secret123"})

    resp = await async_client.post("/api/auth/login", json={"email": "pw@example.com", "password": "wrong-one"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid email or password"


async def test_login_unknown_user(async_client):
    resp = await async_client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "secret123"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid email or password"


async def test_protected_route_requires_token(async_client):
    resp = await async_client.get("/api/instances")
    assert resp.status_code == 401
    assert resp.json()["error"] == "Authentication required"


async def test_protected_route_rejects_garbage_token(async_client):
    resp = await async_client.get("/api/instances", headers={"Authorization": "Bearer not.a.jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid or expired token"


async def test_raw_token_without_bearer_prefix(async_client, auth_headers):
    raw = auth_headers["Authorization"].split(" ", 1)[1]
    resp = await async_client.get("/api/instances", headers={"Authorization": raw})
    assert resp.status_code == 200
    assert resp.json() == []


async def test_token_for_deleted_user(async_client):
    from app.core.security import create_access_token

    resp = await async_client.get(
        "/api/instances", headers={"Authorization": f"Bearer {create_access_token(999999)}"}
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "User not found"
