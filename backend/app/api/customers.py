"""Customer endpoints, proxied to Business Central `/customers`."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.deps import get_erp_client, require_staff
from app.core.errors import APIError
from app.models.user import User
from app.schemas.base import ApiResponse
from app.schemas.catalog import CatalogList, CatalogSearch, ErpRecord
from app.services.business_central import (
    ERP_ERRORS,
    BusinessCentralClient,
    build_id_filter,
    build_search_filter,
    describe_error,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])


async def _fetch(erp: BusinessCentralClient, odata_filter: str, failure: str) -> list[ErpRecord]:
    try:
        return await erp.get_customers(odata_filter)
    except ERP_ERRORS as exc:
        message, details = describe_error(exc)
        logger.error("%s: %s", failure, message)
        raise APIError(status.HTTP_502_BAD_GATEWAY, failure, message, details)


@router.get("", response_model=CatalogList)
async def list_customers(
    raw_filter: str | None = Query(None, alias="filter"),
    search: str | None = None,
    current_user: User = Depends(require_staff),
    erp: BusinessCentralClient = Depends(get_erp_client),
):
    """List customers, optionally narrowed by a raw OData `filter` and a name/number `search`."""
    odata_filter = raw_filter or ""
    if search:
        odata_filter = build_search_filter(search, base_filter=odata_filter)

    customers = await _fetch(erp, odata_filter, "Failed to get customers")
    return CatalogList(data=customers, count=len(customers))


@router.get("/search/{term}", response_model=CatalogSearch)
async def search_customers(
    term: str,
    current_user: User = Depends(require_staff),
    erp: BusinessCentralClient = Depends(get_erp_client),
):
    customers = await _fetch(erp, build_search_filter(term), "Failed to search customers")
    return CatalogSearch(data=customers, count=len(customers), search_term=term)


@router.get("/{customer_id}", response_model=ApiResponse[ErpRecord])
async def get_customer(
    customer_id: UUID,
    current_user: User = Depends(require_staff),
    erp: BusinessCentralClient = Depends(get_erp_client),
):
    customers = await _fetch(erp, build_id_filter(customer_id), "Failed to get customer")
    if not customers:
        raise APIError(status.HTTP_404_NOT_FOUND, "Customer not found")
    return ApiResponse(data=customers[0])
