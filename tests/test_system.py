from fastapi.testclient import TestClient

from app.core.config import settings
from app.api.v1.debug import list_tree
from app.main import app


def test_status(client):
    resp = client.get("/api/status")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "online"
    assert body["service"] == settings.SERVICE_NAME
    assert body["timestamp"].endswith("Z")
    assert body["uptime"] >= 0
    assert isinstance(body["instances"], int)
    assert set(body["memoryUsage"]) == {"rss", "vms"}


def test_version(client):
    assert client.get("/api/version").json() == {
        "version": "1.0.0",
        "name": settings.APP_NAME,
        "description": settings.DESCRIPTION,
    }


def test_api_index(client):
    body = client.get("/api", headers={"x-forwarded-proto": "https", "x-forwarded-host": "wa.example.com"}).json()
    assert body["baseUrl"] == "https://wa.example.com/api"
    paths = {(e["method"], e["path"]) for e in body["endpoints"]}
    assert ("POST", "/api/send") in paths
    assert ("GET", "/api/instances/:id/qr") in paths


def test_response_headers(client):
    resp = client.get("/api/version", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_health_with_lifespan():
    with TestClient(app) as c:
        resp = c.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "OK"
    assert body["database"] == "ok"


def test_debug_files(client, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "WEB_DIR", str(tmp_path))
    (tmp_path / ".next" / "static" / "chunks").mkdir(parents=True)
    (tmp_path / ".next" / "BUILD_ID").write_text("abc")

    body = client.get("/api/debug-files").json()
    assert body["exists"] is True
    assert body["nextDir"] == str(tmp_path / ".next")
    assert "BUILD_ID" in body["files"]
    assert "static/chunks/" in body["files"]


def test_debug_files_without_build(client, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "WEB_DIR", str(tmp_path))
    body = client.get("/api/debug-files").json()
    assert body["exists"] is False
    assert body["files"] == []


def test_list_tree_stops_at_limit(tmp_path):
    for d in ("a", "b", "c"):
        (tmp_path / d).mkdir()
        for i in range(4):
            (tmp_path / d / f"f{i}.js").write_text("x")

    files = list_tree(tmp_path, limit=5)
    assert files == ["a/", "b/", "c/", "a/f0.js", "a/f1.js"]
    assert list_tree(tmp_path / "missing") == []


async def test_debug_instances(async_client, auth_headers, new_instance):
    instance_id = await new_instance(auth_headers)

    resp = await async_client.get("/api/debug/instances", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["instances"][instance_id]["hasSocket"] is True

    assert (await async_client.get("/api/debug/instances")).status_code == 401
