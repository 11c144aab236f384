"""Shared fixtures: an app wired to a fake Business Central and logged-in staff."""

import os

# cheap hashing and a fixed key; must be set before app modules read settings
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app
from app.services.business_central import AccessTokenCache, BusinessCentralClient

API = "/api/v1"

BC_HOST = "https://bc.test"
TOKEN_URL = "https://login.test/tenant/oauth2/v2.0/token"

PRODUCTS = [
    {"id": "11111111-1111-1111-1111-111111111111", "number": "1000", "displayName": "Bicycle", "unitPrice": 4000},
    {"id": "22222222-2222-2222-2222-222222222222", "number": "1001", "displayName": "Touring Bicycle", "unitPrice": 5000},
]
CUSTOMERS = [
    {"id": "33333333-3333-3333-3333-333333333333", "number": "10000", "displayName": "Adatum Corporation"},
]


class FakeBusinessCentral:
    """Answers like Business Central and records every request it sees."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_requests = 0
        self.fail_create = False
        self.fail_catalog = False
        self.products = list(PRODUCTS)
        self.customers = list(CUSTOMERS)
        # "METHOD lastSegment" -> canned reply, e.g. "GET companies"
        self.replies: dict[str, httpx.Response] = {}
        self._created = 0

    def requests_for(self, method: str, fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and fragment in r.url.path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": "bc-token", "expires_in": 3600})

        self.requests.append(request)
        path = request.url.path
        canned = self.replies.get(f"{request.method} {path.rsplit('/', 1)[-1]}")
        if canned is not None:
            return canned

        if path.endswith("/salesOrders") and request.method == "POST":
            if self.fail_create:
                return httpx.Response(
                    400,
                    json={"error": {"code": "BadRequest", "message": "Customer does not exist"}},
                )
            self._created += 1
            return httpx.Response(
                201,
                json={"id": f"bc-{self._created}", "number": f"S-{1000 + self._created}", "status": "Draft"},
            )
        if "/salesOrders(" in path:
            if request.method == "GET":
                return httpx.Response(200, json={"id": "bc-1", "status": "Open"})
            return httpx.Response(200, json={"id": "bc-1", "status": "Draft"})
        if path.endswith("/items") or path.endswith("/customers"):
            if self.fail_catalog:
                return httpx.Response(500, json={"error": {"code": "Internal", "message": "boom"}})
            records = self.products if path.endswith("/items") else self.customers
            odata_filter = request.url.params.get("$filter", "")
            if odata_filter.startswith("id eq "):
                wanted = odata_filter[len("id eq "):]
                records = [r for r in records if r["id"] == wanted]
            return httpx.Response(200, json={"value": records})
        if path.endswith("/companies"):
            return httpx.Response(200, json={"value": [{"id": "c-1", "name": "CRONUS USA, Inc."}]})
        return httpx.Response(404, json={"error": {"code": "NotFound"}})


def make_erp_client(fake: FakeBusinessCentral, base_url: str = BC_HOST) -> BusinessCentralClient:
    transport = httpx.MockTransport(fake.handler)
    token_cache = AccessTokenCache(
        token_url=TOKEN_URL,
        client_id="client-id",
        client_secret="client-secret",
        scope=f"{BC_HOST}/.default",
        transport=transport,
    )
    return BusinessCentralClient(
        base_url=base_url,
        tenant_id="tenant",
        company_id="company",
        token_cache=token_cache,
        transport=transport,
    )


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def login(client: TestClient, username: str, password: str) -> dict:
    resp = client.post(f"{API}/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        STORAGE_BACKEND="memory",
        SEED_DEFAULT_USERS=True,
        RATE_LIMIT_ENABLED=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def fake_bc() -> FakeBusinessCentral:
    return FakeBusinessCentral()


@pytest.fixture
def client(test_settings, fake_bc):
    app = create_app(test_settings, erp=make_erp_client(fake_bc))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_token(client) -> str:
    return login(client, "admin", "admin123")["accessToken"]


@pytest.fixture
def cashier_token(client) -> str:
    return login(client, "cashier", "cashier123")["accessToken"]


@pytest.fixture
def admin_headers(admin_token) -> dict:
    return auth_headers(admin_token)


@pytest.fixture
def cashier_headers(cashier_token) -> dict:
    return auth_headers(cashier_token)
