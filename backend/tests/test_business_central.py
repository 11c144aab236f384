"""Unit tests for the Business Central client, token cache and payload mapping."""

from datetime import datetime, timezone
from uuid import UUID

import httpx
import pytest

from app.core.config import Settings
from app.services.business_central import (
    AccessTokenCache,
    BusinessCentralAuthError,
    BusinessCentralClient,
    BusinessCentralNotConfiguredError,
    BusinessCentralResponseError,
    build_id_filter,
    build_search_filter,
    describe_error,
    escape_odata_string,
    to_business_central_order,
)
from conftest import BC_HOST, TOKEN_URL, FakeBusinessCentral, make_erp_client


def _order(**overrides) -> dict:
    order = {
        "order_number": "SO-1",
        "customer_id": "10000",
        "customer_name": "Adatum Corporation",
        "customer_address": {"street": "1 Main St", "city": "Atlanta", "postal_code": "31772"},
        "items": [
            {"product_id": "P1", "product_name": "Bicycle", "quantity": 2, "unit_price": 10, "line_total": 20},
        ],
        "order_date": datetime(2024, 3, 5, 18, 30, tzinfo=timezone.utc),
    }
    order.update(overrides)
    return order


# ---------------------------------------------------------------------------
# Payload mapping
# ---------------------------------------------------------------------------

def test_order_mapping_applies_defaults():
    body = to_business_central_order(_order())

    assert body["customerNumber"] == "10000"
    assert body["orderDate"] == "2024-03-05"
    assert body["externalDocumentNumber"] == "SO-1"
    assert body["sellToCustomerName"] == "Adatum Corporation"
    assert body["sellToAddress"] == {
        "street": "1 Main St",
        "city": "Atlanta",
        "state": "",
        "countryRegionCode": "US",
        "postalCode": "31772",
    }
    assert body["salesOrderLines"] == [
        {"itemId": "P1", "quantity": 2, "unitPrice": 10, "lineAmount": 20, "description": "Bicycle"},
    ]
    assert body["currencyCode"] == "USD"
    assert body["paymentTermsCode"] == "NET30"
    assert body["shipmentMethodCode"] == "STANDARD"


def test_order_mapping_keeps_explicit_values():
    body = to_business_central_order(
        _order(
            currency_code="EUR",
            payment_terms="COD",
            shipment_method="PICKUP",
            customer_address={"country": "DE"},
            items=[{"product_id": "P2", "quantity": 1, "unit_price": 5, "line_total": 5, "description": "Gift wrap"}],
        )
    )
    assert body["currencyCode"] == "EUR"
    assert body["paymentTermsCode"] == "COD"
    assert body["shipmentMethodCode"] == "PICKUP"
    assert body["sellToAddress"]["countryRegionCode"] == "DE"
    assert body["salesOrderLines"][0]["description"] == "Gift wrap"


def test_order_mapping_defaults_date_to_today():
    body = to_business_central_order(_order(order_date=None))
    assert body["orderDate"] == datetime.now(timezone.utc).date().isoformat()


# ---------------------------------------------------------------------------
# OData filters
# ---------------------------------------------------------------------------

def test_escape_odata_string():
    assert escape_odata_string("O'Neil") == "O''Neil"
    assert escape_odata_string("plain") == "plain"


def test_search_filter_escapes_quotes():
    assert build_search_filter("O'Neil") == "contains(displayName,'O''Neil') or contains(number,'O''Neil')"


def test_search_filter_cannot_break_out_of_literal():
    odata_filter = build_search_filter("x') or true or contains(number,'")
    # every quote in the term is doubled, so the literal never closes early
    assert "'x'') or true or contains(number,'''" in odata_filter


def test_search_filter_combines_with_raw_filter():
    assert build_search_filter("bike", base_filter="blocked eq false") == (
        "(blocked eq false) and (contains(displayName,'bike') or contains(number,'bike'))"
    )


def test_search_filter_keeps_or_in_raw_filter_grouped():
    odata_filter = build_search_filter("bike", base_filter="blocked eq false or type eq 'Service'")
    assert odata_filter == (
        "(blocked eq false or type eq 'Service') and "
        "(contains(displayName,'bike') or contains(number,'bike'))"
    )


def test_id_filter():
    entity_id = UUID("11111111-1111-1111-1111-111111111111")
    assert build_id_filter(entity_id) == "id eq 11111111-1111-1111-1111-111111111111"


# ---------------------------------------------------------------------------
# Token cache
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_token_cached_until_expiry():
    fake = FakeBusinessCentral()
    now = [1000.0]
    cache = AccessTokenCache(
        token_url=TOKEN_URL,
        client_id="client-id",
        client_secret="client-secret",
        scope="scope",
        transport=httpx.MockTransport(fake.handler),
        clock=lambda: now[0],
    )

    assert await cache.get_token() == "bc-token"
    assert await cache.get_token() == "bc-token"
    assert fake.token_requests == 1
    assert cache.expires_at == 1000.0 + 3600

    now[0] += 3600
    assert not cache.is_valid()
    await cache.get_token()
    assert fake.token_requests == 2


@pytest.mark.asyncio
async def test_token_request_is_client_credentials_form():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = dict(httpx.QueryParams(request.content.decode()))
        return httpx.Response(200, json={"access_token": "t", "expires_in": 60})

    cache = AccessTokenCache(TOKEN_URL, "cid", "csecret", "https://bc.test/.default",
                             transport=httpx.MockTransport(handler))
    await cache.get_token()

    assert seen["content_type"] == "application/x-www-form-urlencoded"
    assert seen["body"] == {
        "grant_type": "client_credentials",
        "client_id": "cid",
        "client_secret": "csecret",
        "scope": "https://bc.test/.default",
    }


@pytest.mark.asyncio
async def test_token_failure_raises_auth_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "invalid_client"})

    cache = AccessTokenCache(TOKEN_URL, "cid", "bad", "scope", transport=httpx.MockTransport(handler))
    with pytest.raises(BusinessCentralAuthError, match="Failed to authenticate with Business Central"):
        await cache.get_token()
    assert not cache.is_valid()


def test_client_from_settings():
    client = BusinessCentralClient.from_settings(
        Settings(
            _env_file=None,
            BC_BASE_URL="https://api.businesscentral.dynamics.com/v2.0/",
            BC_TENANT_ID="tenant",
            BC_COMPANY_ID="company",
        )
    )
    assert client.api_url == "https://api.businesscentral.dynamics.com/v2.0/tenant/company/api/v2.0"
    assert client.token_cache.token_url == "https://login.microsoftonline.com/tenant/oauth2/v2.0/token"
    assert client.token_cache.scope == "https://api.businesscentral.dynamics.com/v2.0/.default"
    assert client.is_configured


# ---------------------------------------------------------------------------
# REST client
# ---------------------------------------------------------------------------

class _Order:
    def __init__(self, **fields):
        self.__dict__.update(fields)


@pytest.mark.asyncio
async def test_create_sales_order():
    fake = FakeBusinessCentral()
    client = make_erp_client(fake)

    created = await client.create_sales_order(_Order(**_order()))

    assert created.id == "bc-1"
    assert created.status == "Draft"
    request = fake.requests_for("POST", "/salesOrders")[0]
    assert str(request.url) == f"{BC_HOST}/tenant/company/api/v2.0/salesOrders"
    assert request.headers["authorization"] == "Bearer bc-token"


@pytest.mark.asyncio
async def test_create_sales_order_error_propagates():
    fake = FakeBusinessCentral()
    fake.fail_create = True
    client = make_erp_client(fake)

    with pytest.raises(httpx.HTTPStatusError) as excinfo:
        await client.create_sales_order(_Order(**_order()))

    message, details = describe_error(excinfo.value)
    assert message == "Request failed with status code 400"
    assert details == {"error": {"code": "BadRequest", "message": "Customer does not exist"}}


@pytest.mark.asyncio
async def test_create_sales_order_rejects_non_json_reply():
    fake = FakeBusinessCentral()
    fake.replies["POST salesOrders"] = httpx.Response(201, text="<html>gateway</html>")
    client = make_erp_client(fake)

    with pytest.raises(BusinessCentralResponseError) as excinfo:
        await client.create_sales_order(_Order(**_order()))

    assert "Invalid JSON" in str(excinfo.value)


@pytest.mark.asyncio
async def test_create_sales_order_rejects_non_object_reply():
    fake = FakeBusinessCentral()
    fake.replies["POST salesOrders"] = httpx.Response(201, json=["bc-1"])
    client = make_erp_client(fake)

    with pytest.raises(BusinessCentralResponseError):
        await client.create_sales_order(_Order(**_order()))


@pytest.mark.asyncio
async def test_list_sends_encoded_filter():
    fake = FakeBusinessCentral()
    client = make_erp_client(fake)
    odata_filter = build_search_filter("Tour & Co")

    await client.get_products(odata_filter)

    request = fake.requests_for("GET", "/items")[0]
    assert request.url.params["$filter"] == odata_filter
    assert "&" not in request.url.query.decode().split("=", 1)[1]


@pytest.mark.asyncio
async def test_list_without_filter_sends_no_params():
    fake = FakeBusinessCentral()
    client = make_erp_client(fake)

    customers = await client.get_customers()

    assert customers == fake.customers
    assert fake.requests_for("GET", "/customers")[0].url.query == b""


@pytest.mark.asyncio
async def test_unconfigured_client_refuses_calls():
    client = make_erp_client(FakeBusinessCentral(), base_url="")
    assert not client.is_configured
    with pytest.raises(BusinessCentralNotConfiguredError):
        await client.get_products()


@pytest.mark.asyncio
async def test_connection_test():
    client = make_erp_client(FakeBusinessCentral())
    result = await client.test_connection()
    assert result["success"] is True
    assert result["companies"][0]["name"] == "CRONUS USA, Inc."


@pytest.mark.asyncio
async def test_connection_test_never_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(handler)
    client = BusinessCentralClient(
        base_url=BC_HOST,
        tenant_id="tenant",
        company_id="company",
        token_cache=AccessTokenCache(TOKEN_URL, "cid", "secret", "scope", transport=transport),
        transport=transport,
    )

    result = await client.test_connection()

    assert result["success"] is False
    assert result["message"] == "Failed to connect to Business Central"
    assert result["error"] == "Failed to authenticate with Business Central"


@pytest.mark.asyncio
async def test_connection_test_handles_unexpected_body():
    fake = FakeBusinessCentral()
    fake.replies["GET companies"] = httpx.Response(200, json=[])
    client = make_erp_client(fake)

    result = await client.test_connection()

    assert result["success"] is False
    assert result["message"] == "Failed to connect to Business Central"
    assert result["error"].startswith("Unexpected list body")
