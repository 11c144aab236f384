"""Product endpoints, proxied to Business Central `/items`."""

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

router = APIRouter(prefix="/products", tags=["products"])


async def _fetch(erp: BusinessCentralClient, odata_filter: str, failure: str) -> list[ErpRecord]:
    try:
        return await erp.get_products(odata_filter)
    except ERP_ERRORS as exc:
        message, details = describe_error(exc)
        logger.error("%s: %s", failure, message)
        raise APIError(status.HTTP_502_BAD_GATEWAY, failure, message, details)


@router.get("", response_model=CatalogList)
async def list_products(
    raw_filter: str | None = Query(None, alias="filter"),
    search: str | None = None,
    current_user: User = Depends(require_staff),
    erp: BusinessCentralClient = Depends(get_erp_client),
):
    """List products. `filter` is a raw OData expression, `search` matches name or number."""
    odata_filter = raw_filter or ""
    if search:
        odata_filter = build_search_filter(search, base_filter=odata_filter)

    products = await _fetch(erp, odata_filter, "Failed to get products")
    return CatalogList(data=products, count=len(products))


@router.get("/search/{term}", response_model=CatalogSearch)
async def search_products(
    term: str,
    current_user: User = Depends(require_staff),
    erp: BusinessCentralClient = Depends(get_erp_client),
):
    products = await _fetch(erp, build_search_filter(term), "Failed to search products")
    return CatalogSearch(data=products, count=len(products), search_term=term)


@router.get("/{product_id}", response_model=ApiResponse[ErpRecord])
async def get_product(
    product_id: UUID,
    current_user: User = Depends(require_staff),
    erp: BusinessCentralClient = Depends(get_erp_client),
):
    products = await _fetch(erp, build_id_filter(product_id), "Failed to get product")
    if not products:
        raise APIError(status.HTTP_404_NOT_FOUND, "Product not found")
    return ApiResponse(data=products[0])
