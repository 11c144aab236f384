"""App-level behaviour: health, root, error envelopes, rate limiting."""

from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.errors import format_validation_errors
from app.main import create_app
from conftest import API, FakeBusinessCentral, make_erp_client


def test_health(client):
    resp = client.get(f"{API}/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["version"] == "1.0.0"
    assert "uptime" in body and "timestamp" in body


def test_health_detailed_anonymous(client):
    body = client.get(f"{API}/health/detailed").json()
    bc = body["services"]["businessCentral"]
    assert bc["configured"] is True
    assert "tokenCached" not in bc
    assert body["system"]["python"]


def test_health_detailed_signed_in(client, admin_headers):
    body = client.get(f"{API}/health/detailed", headers=admin_headers).json()
    assert body["services"]["businessCentral"]["tokenCached"] is False


def test_root_lists_endpoints(client):
    body = client.get("/").json()
    assert body["status"] == "running"
    assert body["endpoints"]["salesOrders"] == f"{API}/sales-orders"


def test_unknown_endpoint(client):
    resp = client.get(f"{API}/nope")
    assert resp.status_code == 404
    assert resp.json() == {
        "success": False,
        "error": "Endpoint not found",
        "path": f"{API}/nope",
        "method": "GET",
    }


def test_unhandled_error_is_generic_500(test_settings, fake_bc):
    app = create_app(test_settings, erp=make_erp_client(fake_bc))

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database on fire")

    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/boom")

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Internal server error"}


def test_rate_limit():
    settings = Settings(
        _env_file=None,
        RATE_LIMIT_ENABLED=True,
        RATE_LIMIT_MAX_REQUESTS=2,
        RATE_LIMIT_WINDOW_MS=60_000,
        SEED_DEFAULT_USERS=False,
    )
    app = create_app(settings, erp=make_erp_client(FakeBusinessCentral()))

    with TestClient(app) as client:
        first = client.get(f"{API}/health")
        second = client.get(f"{API}/health")
        third = client.get(f"{API}/health")

    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert second.status_code == 200
    assert third.status_code == 429
    assert third.json() == {
        "success": False,
        "error": "Too many requests from this IP, please try again later.",
    }
    assert int(third.headers["Retry-After"]) > 0


def test_format_validation_errors():
    errors = [
        {"loc": ("body", "items", 0, "quantity"), "msg": "Input should be greater than 0"},
        {"loc": ("query", "limit"), "msg": "Input should be less than or equal to 100"},
        {"loc": ("body",), "msg": "Value error, Passwords must match"},
    ]
    assert format_validation_errors(errors) == [
        "items[0].quantity: Input should be greater than 0",
        "limit: Input should be less than or equal to 100",
        "Passwords must match",
    ]
