"""Sales order endpoints. Local store first, Business Central mirror second."""

import logging
import math
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from app.core.deps import get_erp_client, get_sales_order_service, require_admin, require_staff
from app.core.errors import APIError
from app.models.sales_order import SalesOrderStatus
from app.models.user import User
from app.schemas.base import ApiResponse
from app.schemas.sales_order import (
    Pagination,
    SalesOrderCreate,
    SalesOrderCreateResponse,
    SalesOrderListResponse,
    SalesOrderQuery,
    SalesOrderResponse,
    SalesOrderStats,
    SalesOrderUpdate,
)
from app.services.business_central import BusinessCentralClient
from app.services.sales_orders import InvalidStatusTransition, SalesOrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sales-orders", tags=["sales-orders"])

SALES_ORDER_NOT_FOUND = "Sales order not found"


@router.post(
    "",
    response_model=ApiResponse[SalesOrderCreateResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_sales_order(
    body: SalesOrderCreate,
    current_user: User = Depends(require_staff),
    service: SalesOrderService = Depends(get_sales_order_service),
):
    """Create a sales order and try to mirror it into Business Central.

    The order is created even when Business Central is unreachable;
    `bcIntegration.success` tells the caller which case it was.
    """
    try:
        order, integration = await service.create(body)
    except InvalidStatusTransition as exc:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid status transition", str(exc))
    if integration.success:
        message = "Sales order created and sent to Business Central"
    else:
        message = "Sales order created locally but failed to send to Business Central"

    logger.info("Sales order %s created by %s (bc ok=%s)", order.id, current_user.id, integration.success)
    data = SalesOrderCreateResponse.model_validate(
        {**SalesOrderResponse.model_validate(order).model_dump(), "bc_integration": integration}
    )
    return ApiResponse(message=message, data=data)


@router.get("", response_model=ApiResponse[SalesOrderListResponse])
async def list_sales_orders(
    page: int = Query(1),
    limit: int = Query(10),
    order_status: SalesOrderStatus | None = Query(None, alias="status"),
    customer_id: str | None = Query(None, alias="customerId"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    sort_by: str = Query("orderDate", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    current_user: User = Depends(require_staff),
    service: SalesOrderService = Depends(get_sales_order_service),
):
    """List sales orders with filters, sorting and pagination."""
    try:
        # validated by wire name so error paths read like the query string
        query = SalesOrderQuery.model_validate(
            {
                "page": page,
                "limit": limit,
                "status": order_status,
                "customerId": customer_id,
                "startDate": start_date,
                "endDate": end_date,
                "sortBy": sort_by,
                "sortOrder": sort_order,
            }
        )
    except ValidationError as exc:
        # report query problems through the same 400 envelope as body errors
        raise RequestValidationError(exc.errors())

    orders, total = await service.search(query)
    total_pages = math.ceil(total / query.limit)
    return ApiResponse(
        data=SalesOrderListResponse(
            orders=[SalesOrderResponse.model_validate(o) for o in orders],
            pagination=Pagination(
                page=query.page,
                limit=query.limit,
                total_orders=total,
                total_pages=total_pages,
                has_next_page=query.page < total_pages,
                has_prev_page=query.page > 1,
            ),
        )
    )


@router.get("/stats", response_model=ApiResponse[SalesOrderStats])
async def sales_order_stats(
    current_user: User = Depends(require_staff),
    service: SalesOrderService = Depends(get_sales_order_service),
):
    return ApiResponse(data=await service.stats())


@router.get("/bc-test", response_model=ApiResponse[dict])
async def test_business_central(
    current_user: User = Depends(require_admin),
    erp: BusinessCentralClient = Depends(get_erp_client),
):
    """Check the Business Central connection. The result is returned as-is, failure included."""
    return ApiResponse(data=await erp.test_connection())


@router.get("/{order_id}", response_model=ApiResponse[SalesOrderResponse])
async def get_sales_order(
    order_id: str,
    current_user: User = Depends(require_staff),
    service: SalesOrderService = Depends(get_sales_order_service),
):
    order = await service.get(order_id)
    if order is None:
        raise APIError(status.HTTP_404_NOT_FOUND, SALES_ORDER_NOT_FOUND)
    return ApiResponse(data=SalesOrderResponse.model_validate(order))


async def _apply_update(service: SalesOrderService, order_id: str, body: SalesOrderUpdate):
    try:
        order = await service.update(order_id, body.changes())
    except InvalidStatusTransition as exc:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid status transition", str(exc))
    if order is None:
        raise APIError(status.HTTP_404_NOT_FOUND, SALES_ORDER_NOT_FOUND)
    return ApiResponse(
        message="Sales order updated successfully",
        data=SalesOrderResponse.model_validate(order),
    )


@router.put("/{order_id}", response_model=ApiResponse[SalesOrderResponse])
async def replace_sales_order(
    order_id: str,
    body: SalesOrderUpdate,
    current_user: User = Depends(require_staff),
    service: SalesOrderService = Depends(get_sales_order_service),
):
    """PUT and PATCH share merge semantics: only the sent fields change."""
    return await _apply_update(service, order_id, body)


@router.patch("/{order_id}", response_model=ApiResponse[SalesOrderResponse])
async def update_sales_order(
    order_id: str,
    body: SalesOrderUpdate,
    current_user: User = Depends(require_staff),
    service: SalesOrderService = Depends(get_sales_order_service),
):
    return await _apply_update(service, order_id, body)


@router.delete("/{order_id}", response_model=ApiResponse[None])
async def delete_sales_order(
    order_id: str,
    current_user: User = Depends(require_admin),
    service: SalesOrderService = Depends(get_sales_order_service),
):
    """Hard-delete a sales order (admin only). Business Central is not touched."""
    if not await service.delete(order_id):
        raise APIError(status.HTTP_404_NOT_FOUND, SALES_ORDER_NOT_FOUND)
    logger.info("Sales order %s deleted by %s", order_id, current_user.id)
    return ApiResponse(message="Sales order deleted successfully")
