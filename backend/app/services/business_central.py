"""Business Central (ERP) integration: OAuth2 token cache, REST client, payload mapping.

All calls go to `{BC_BASE_URL}/{tenant}/{company}/api/v2.0`. Nothing here retries;
HTTP errors are logged and re-raised so callers decide what a failure means.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable
from uuid import UUID

import httpx

from app.core.config import Settings
from app.models.mixins import utcnow

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("displayName", "number")


class BusinessCentralError(Exception):
    """Base error for the ERP integration."""


class BusinessCentralAuthError(BusinessCentralError):
    pass


class BusinessCentralNotConfiguredError(BusinessCentralError):
    pass


class BusinessCentralResponseError(BusinessCentralError):
    """A 2xx reply whose body is not a JSON object."""


# everything an ERP call can raise
ERP_ERRORS = (httpx.HTTPError, BusinessCentralError)


def read_json_object(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError as exc:
        raise BusinessCentralResponseError(
            f"Invalid JSON from Business Central (status {response.status_code})"
        ) from exc
    if not isinstance(data, dict):
        raise BusinessCentralResponseError(
            f"Unexpected {type(data).__name__} body from Business Central (status {response.status_code})"
        )
    return data


@dataclass(frozen=True)
class BusinessCentralOrder:
    """Identity of a sales order as created in Business Central."""

    id: str | None
    number: str | None
    status: str | None


# ---------------------------------------------------------------------------
# Helpers – OData filters and payload mapping
# ---------------------------------------------------------------------------


def escape_odata_string(value: str) -> str:
    """Escape a value for use inside an OData single-quoted string literal."""
    return value.replace("'", "''")


def build_search_filter(
    term: str,
    fields: Iterable[str] = SEARCH_FIELDS,
    base_filter: str = "",
) -> str:
    """Substring search over `fields`, ORed together, optionally ANDed with a raw filter.

    >>> build_search_filter("O'Neil")
    "contains(displayName,'O''Neil') or contains(number,'O''Neil')"
    """
    literal = escape_odata_string(term)
    search = " or ".join(f"contains({field},'{literal}')" for field in fields)
    if base_filter:
        return f"({base_filter}) and ({search})"
    return search


def build_id_filter(entity_id: UUID) -> str:
    # UUID has already been parsed, so this cannot smuggle in OData syntax
    return f"id eq {entity_id}"


def _get(source, name: str, default=None):
    if isinstance(source, dict):
        return source.get(name, default)
    return getattr(source, name, default)


def to_business_central_order(order) -> dict:
    """Map a local sales order onto the Business Central `salesOrders` body."""
    address = _get(order, "customer_address") or {}
    order_date = _get(order, "order_date")
    return {
        "customerNumber": _get(order, "customer_id"),
        "orderDate": (order_date or utcnow()).date().isoformat(),
        "externalDocumentNumber": _get(order, "order_number"),
        "sellToCustomerName": _get(order, "customer_name"),
        "sellToAddress": {
            "street": _get(address, "street") or "",
            "city": _get(address, "city") or "",
            "state": _get(address, "state") or "",
            "countryRegionCode": _get(address, "country") or "US",
            "postalCode": _get(address, "postal_code") or "",
        },
        "salesOrderLines": [
            {
                "itemId": _get(item, "product_id"),
                "quantity": _get(item, "quantity"),
                "unitPrice": _get(item, "unit_price"),
                "lineAmount": _get(item, "line_total"),
                "description": _get(item, "description") or _get(item, "product_name") or "",
            }
            for item in _get(order, "items") or []
        ],
        "currencyCode": _get(order, "currency_code") or "USD",
        "paymentTermsCode": _get(order, "payment_terms") or "NET30",
        "shipmentMethodCode": _get(order, "shipment_method") or "STANDARD",
    }


def describe_error(exc: Exception) -> tuple[str, Any]:
    """Message plus the ERP's error body (if any) for an integration failure."""
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        try:
            body = response.json()
        except ValueError:
            body = response.text or None
        return f"Request failed with status code {response.status_code}", body
    return str(exc) or exc.__class__.__name__, None


# ---------------------------------------------------------------------------
# OAuth2 client-credentials token cache
# ---------------------------------------------------------------------------


class AccessTokenCache:
    """Holds one bearer token and fetches a new one once it has expired."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self._timeout = timeout
        self._transport = transport
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def is_valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def get_token(self) -> str:
        if self.is_valid():
            return self._token
        async with self._lock:
            # another request may have refreshed while we waited
            if self.is_valid():
                return self._token
            form = {
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": self.scope,
            }
            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    resp = await client.post(self.token_url, data=form)
                    resp.raise_for_status()
                    payload = resp.json()
                token = payload["access_token"]
                expires_in = float(payload.get("expires_in", 3600))
            except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
                logger.error("Failed to get Business Central access token: %s", exc)
                raise BusinessCentralAuthError("Failed to authenticate with Business Central") from exc

            self._token = token
            self._expires_at = self._clock() + expires_in
            logger.info("Obtained Business Central access token (expires in %ss)", int(expires_in))
            return token


# ---------------------------------------------------------------------------
# REST client
# ---------------------------------------------------------------------------


class BusinessCentralClient:
    def __init__(
        self,
        base_url: str,
        tenant_id: str,
        company_id: str,
        token_cache: AccessTokenCache,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.tenant_id = tenant_id
        self.company_id = company_id
        self.token_cache = token_cache
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "BusinessCentralClient":
        base_url = settings.BC_BASE_URL.rstrip("/")
        token_cache = AccessTokenCache(
            token_url=f"{settings.BC_AUTHORITY_URL.rstrip('/')}/{settings.BC_TENANT_ID}/oauth2/v2.0/token",
            client_id=settings.BC_CLIENT_ID,
            client_secret=settings.BC_CLIENT_SECRET,
            scope=settings.BC_SCOPE or f"{base_url}/.default",
            timeout=settings.BC_TIMEOUT_SECONDS,
            transport=transport,
        )
        return cls(
            base_url=base_url,
            tenant_id=settings.BC_TENANT_ID,
            company_id=settings.BC_COMPANY_ID,
            token_cache=token_cache,
            timeout=settings.BC_TIMEOUT_SECONDS,
            transport=transport,
        )

    @property
    def api_url(self) -> str:
        return f"{self.base_url}/{self.tenant_id}/{self.company_id}/api/v2.0"

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.tenant_id)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if not self.is_configured:
            raise BusinessCentralNotConfiguredError("Business Central is not configured")
        token = await self.token_cache.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        async with httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
            return response

    async def create_sales_order(self, order) -> BusinessCentralOrder:
        body = to_business_central_order(order)
        logger.info(
            "Creating sales order in Business Central: order=%s customer=%s",
            order.order_number,
            order.customer_id,
        )
        try:
            resp = await self._request("POST", "/salesOrders", json=body)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Business Central rejected sales order %s: %s %s",
                order.order_number,
                exc.response.status_code,
                exc.response.text,
            )
            raise
        except (httpx.RequestError, BusinessCentralError) as exc:
            logger.error("Failed to create sales order %s in Business Central: %s", order.order_number, exc)
            raise

        try:
            data = read_json_object(resp)
        except BusinessCentralResponseError as exc:
            logger.error("Bad reply creating sales order %s in Business Central: %s", order.order_number, exc)
            raise
        created = BusinessCentralOrder(id=data.get("id"), number=data.get("number"), status=data.get("status"))
        logger.info("Sales order %s created in Business Central as %s", order.order_number, created.id)
        return created

    async def get_sales_order(self, bc_order_id: str) -> dict:
        try:
            resp = await self._request("GET", f"/salesOrders({bc_order_id})")
        except (httpx.HTTPError, BusinessCentralError) as exc:
            logger.error("Failed to get sales order %s from Business Central: %s", bc_order_id, exc)
            raise
        return read_json_object(resp)

    async def update_sales_order(self, bc_order_id: str, patch: dict) -> dict:
        try:
            resp = await self._request("PATCH", f"/salesOrders({bc_order_id})", json=patch)
        except (httpx.HTTPError, BusinessCentralError) as exc:
            logger.error("Failed to update sales order %s in Business Central: %s", bc_order_id, exc)
            raise
        return read_json_object(resp)

    async def _list(self, path: str, filter: str = "") -> list[dict]:
        params = {"$filter": filter} if filter else None
        try:
            resp = await self._request("GET", path, params=params)
        except (httpx.HTTPError, BusinessCentralError) as exc:
            logger.error("Failed to get %s from Business Central: %s", path.lstrip("/"), exc)
            raise
        return read_json_object(resp).get("value", [])

    async def get_products(self, filter: str = "") -> list[dict]:
        return await self._list("/items", filter)

    async def get_customers(self, filter: str = "") -> list[dict]:
        return await self._list("/customers", filter)

    async def test_connection(self) -> dict:
        """Reachability check against `/companies`. Never raises."""
        try:
            resp = await self._request("GET", "/companies")
            companies = read_json_object(resp).get("value", [])
        except ERP_ERRORS as exc:
            logger.error("Business Central connection test failed: %s", exc)
            message, _ = describe_error(exc)
            return {
                "success": False,
                "message": "Failed to connect to Business Central",
                "error": message,
            }
        return {
            "success": True,
            "message": "Successfully connected to Business Central",
            "companies": companies,
        }
