"""Sales order orchestration: local store first, Business Central mirror second.

Sync policy (local write first): the local write is the one that has to
succeed. Mirroring a new order into Business Central happens afterwards; a
failure there is logged and reported back as `bcIntegration` metadata, and the
locally created order is still returned. Reads and updates of mirrored orders
also talk to Business Central, and their failures are only logged.
"""

import itertools
import logging
import time

from app.models.mixins import new_id, utcnow
from app.models.sales_order import SalesOrder, SalesOrderStatus
from app.repositories.base import SalesOrderRepository
from app.schemas.sales_order import (
    BcIntegration,
    SalesOrderCreate,
    SalesOrderQuery,
    SalesOrderStats,
)
from app.services.business_central import (
    BusinessCentralClient,
    ERP_ERRORS,
    describe_error,
    to_business_central_order,
)

logger = logging.getLogger(__name__)

_order_sequence = itertools.count(1)


class InvalidStatusTransition(Exception):
    pass


def generate_order_number() -> str:
    """Order number: SO-<epoch ms>-<per-process sequence>."""
    return f"SO-{int(time.time() * 1000)}-{next(_order_sequence)}"


def check_status_change(order: SalesOrder, new_status: str | None) -> None:
    """Processing is reached only through Business Central and never undone to pending."""
    if new_status is None or new_status == order.status:
        return
    if order.status == SalesOrderStatus.PROCESSING.value and new_status == SalesOrderStatus.PENDING.value:
        raise InvalidStatusTransition("Cannot move a processing order back to pending")
    if new_status == SalesOrderStatus.PROCESSING.value and not order.bc_order_id:
        raise InvalidStatusTransition(
            "Only orders sent to Business Central can be marked as processing"
        )


class SalesOrderService:
    def __init__(self, orders: SalesOrderRepository, erp: BusinessCentralClient):
        self.orders = orders
        self.erp = erp

    async def create(self, payload: SalesOrderCreate) -> tuple[SalesOrder, BcIntegration]:
        now = utcnow()
        order = SalesOrder(
            id=new_id(),
            order_number=payload.order_number or generate_order_number(),
            customer_id=payload.customer_id,
            customer_name=payload.customer_name,
            customer_address=payload.customer_address.model_dump(mode="json"),
            items=[item.model_dump(mode="json") for item in payload.items],
            subtotal=payload.subtotal,
            tax_amount=payload.tax_amount,
            total_amount=payload.total_amount,
            currency_code=payload.currency_code or "USD",
            payment_method=payload.payment_method,
            payment_terms=payload.payment_terms,
            shipment_method=payload.shipment_method,
            order_date=payload.order_date or now,
            notes=payload.notes,
            status=SalesOrderStatus.PENDING.value,
            bc_order_id=None,
            bc_status=None,
            created_at=now,
            updated_at=now,
        )
        # new orders start as pending; processing needs a Business Central id
        check_status_change(order, payload.status.value)
        order.status = payload.status.value
        order = await self.orders.add(order)
        logger.info(
            "Sales order created locally: id=%s number=%s customer=%s",
            order.id,
            order.order_number,
            order.customer_id,
        )
        return await self._mirror_new_order(order)

    async def _mirror_new_order(self, order: SalesOrder) -> tuple[SalesOrder, BcIntegration]:
        try:
            created = await self.erp.create_sales_order(order)
        except ERP_ERRORS as exc:
            message, details = describe_error(exc)
            logger.error("Failed to send sales order %s to Business Central: %s", order.id, message)
            return order, BcIntegration(success=False, error=message, details=details)

        synced = await self.orders.update(
            order.id,
            {
                "bc_order_id": created.id,
                "bc_status": created.status,
                "status": SalesOrderStatus.PROCESSING.value,
            },
        )
        logger.info("Sales order %s sent to Business Central as %s", order.id, created.id)
        return synced or order, BcIntegration(
            success=True, bc_order_id=created.id, bc_status=created.status
        )

    async def get(self, order_id: str) -> SalesOrder | None:
        order = await self.orders.get(order_id)
        if order is None or not order.bc_order_id:
            return order
        try:
            remote = await self.erp.get_sales_order(order.bc_order_id)
        except ERP_ERRORS as exc:
            logger.warning(
                "Could not refresh Business Central status for %s (bc=%s): %s",
                order_id,
                order.bc_order_id,
                exc,
            )
            return order
        return await self.orders.update(order_id, {"bc_status": remote.get("status")}) or order

    async def search(self, query: SalesOrderQuery) -> tuple[list[SalesOrder], int]:
        return await self.orders.search(query)

    async def update(self, order_id: str, changes: dict) -> SalesOrder | None:
        current = await self.orders.get(order_id)
        if current is None:
            return None
        check_status_change(current, changes.get("status"))

        order = await self.orders.update(order_id, changes)
        if order is not None and order.bc_order_id:
            try:
                await self.erp.update_sales_order(order.bc_order_id, to_business_central_order(order))
            except ERP_ERRORS as exc:
                logger.error(
                    "Failed to update sales order %s in Business Central (bc=%s): %s",
                    order_id,
                    order.bc_order_id,
                    exc,
                )
            else:
                logger.info("Sales order %s updated in Business Central", order_id)
        return order

    async def delete(self, order_id: str) -> bool:
        deleted = await self.orders.delete(order_id)
        if deleted:
            logger.info("Sales order deleted: id=%s", order_id)
        return deleted

    async def stats(self) -> SalesOrderStats:
        return await self.orders.stats(utcnow())
