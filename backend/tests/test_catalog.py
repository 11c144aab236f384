"""API tests for the product and customer proxies."""

import pytest

from conftest import API, PRODUCTS


def test_list_products(client, cashier_headers):
    resp = client.get(f"{API}/products", headers=cashier_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"] == PRODUCTS
    assert body["count"] == 2


def test_list_products_combines_filter_and_search(client, cashier_headers, fake_bc):
    client.get(
        f"{API}/products",
        headers=cashier_headers,
        params={"filter": "blocked eq false", "search": "O'Neil"},
    )

    request = fake_bc.requests_for("GET", "/items")[0]
    assert request.url.params["$filter"] == (
        "(blocked eq false) and (contains(displayName,'O''Neil') or contains(number,'O''Neil'))"
    )


def test_get_product_by_id(client, cashier_headers, fake_bc):
    product_id = PRODUCTS[1]["id"]

    resp = client.get(f"{API}/products/{product_id}", headers=cashier_headers)

    assert resp.status_code == 200
    assert resp.json()["data"]["displayName"] == "Touring Bicycle"
    assert fake_bc.requests_for("GET", "/items")[0].url.params["$filter"] == f"id eq {product_id}"


def test_get_product_not_found(client, cashier_headers):
    resp = client.get(f"{API}/products/99999999-9999-9999-9999-999999999999", headers=cashier_headers)
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "Product not found"}


def test_product_id_must_be_uuid(client, cashier_headers, fake_bc):
    resp = client.get(f"{API}/products/1 or true", headers=cashier_headers)
    assert resp.status_code == 400
    assert fake_bc.requests == []


def test_search_products(client, cashier_headers, fake_bc):
    resp = client.get(f"{API}/products/search/bike", headers=cashier_headers)

    body = resp.json()
    assert body["searchTerm"] == "bike"
    assert body["count"] == len(body["data"])
    assert fake_bc.requests_for("GET", "/items")[0].url.params["$filter"] == (
        "contains(displayName,'bike') or contains(number,'bike')"
    )


def test_products_require_auth(client):
    assert client.get(f"{API}/products").status_code == 401


@pytest.mark.parametrize(
    "path, error",
    [
        ("/products", "Failed to get products"),
        ("/products/search/bike", "Failed to search products"),
        ("/customers", "Failed to get customers"),
        ("/customers/33333333-3333-3333-3333-333333333333", "Failed to get customer"),
    ],
)
def test_business_central_failure_is_bad_gateway(client, cashier_headers, fake_bc, path, error):
    fake_bc.fail_catalog = True

    resp = client.get(f"{API}{path}", headers=cashier_headers)

    assert resp.status_code == 502
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == error
    assert body["message"] == "Request failed with status code 500"
    assert body["details"] == {"error": {"code": "Internal", "message": "boom"}}


def test_list_customers(client, admin_headers):
    body = client.get(f"{API}/customers", headers=admin_headers).json()
    assert body["count"] == 1
    assert body["data"][0]["displayName"] == "Adatum Corporation"


def test_get_customer(client, cashier_headers):
    resp = client.get(f"{API}/customers/33333333-3333-3333-3333-333333333333", headers=cashier_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["number"] == "10000"

    missing = client.get(f"{API}/customers/44444444-4444-4444-4444-444444444444", headers=cashier_headers)
    assert missing.status_code == 404
    assert missing.json()["error"] == "Customer not found"


def test_search_customers_escapes_term(client, cashier_headers, fake_bc):
    resp = client.get(f"{API}/customers/search/it's", headers=cashier_headers)

    assert resp.json()["searchTerm"] == "it's"
    assert fake_bc.requests_for("GET", "/customers")[0].url.params["$filter"] == (
        "contains(displayName,'it''s') or contains(number,'it''s')"
    )
