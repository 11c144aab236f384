"""Repository contracts shared by the in-memory and SQL stores."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Iterable

from app.core.security import hash_password
from app.models.mixins import new_id, utcnow
from app.models.sales_order import SalesOrder, SalesOrderStatus
from app.models.user import User, UserRole
from app.schemas.sales_order import (
    RecentActivity,
    Revenue,
    SalesOrderQuery,
    SalesOrderStats,
    StatusBreakdown,
)

# public sort key -> model attribute
SORT_COLUMNS = {
    "orderDate": "order_date",
    "totalAmount": "total_amount",
    "status": "status",
    "customerName": "customer_name",
}

RECENT_WINDOW = timedelta(days=30)
STATUS_VALUES = {status.value for status in SalesOrderStatus}


class SalesOrderRepository(ABC):
    @abstractmethod
    async def add(self, order: SalesOrder) -> SalesOrder: ...

    @abstractmethod
    async def get(self, order_id: str) -> SalesOrder | None: ...

    @abstractmethod
    async def search(self, query: SalesOrderQuery) -> tuple[list[SalesOrder], int]:
        """Filter, sort and paginate. Returns the page and the filtered total."""

    @abstractmethod
    async def update(self, order_id: str, fields: dict) -> SalesOrder | None:
        """Shallow-merge `fields` into the order and refresh `updated_at`."""

    @abstractmethod
    async def delete(self, order_id: str) -> bool: ...

    @abstractmethod
    async def stats(self, now: datetime | None = None) -> SalesOrderStats: ...


class UserRepository(ABC):
    """Lookups only ever see active users."""

    @abstractmethod
    async def find_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def find_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    async def find_by_id(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def create(self, data: dict) -> User:
        """Create from a dict holding a plain-text `password`."""

    @abstractmethod
    async def update(self, user_id: str, fields: dict) -> User | None:
        """Merge `fields`; a `password` entry is re-hashed."""

    @abstractmethod
    async def soft_delete(self, user_id: str) -> bool: ...

    @abstractmethod
    async def touch_last_login(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def list_active(self, limit: int = 50, offset: int = 0) -> list[User]: ...

    @abstractmethod
    async def count_active(self) -> int: ...


def build_user(data: dict) -> User:
    now = utcnow()
    return User(
        id=data.get("id") or new_id(),
        username=data["username"],
        email=data["email"],
        password_hash=hash_password(data["password"]),
        first_name=data["first_name"],
        last_name=data["last_name"],
        role=UserRole(data.get("role") or UserRole.CASHIER).value,
        is_active=True,
        last_login=None,
        created_at=now,
        updated_at=now,
    )


def prepare_user_fields(fields: dict) -> dict:
    """Map API-level user fields onto model columns."""
    fields = dict(fields)
    if fields.get("password"):
        fields["password_hash"] = hash_password(fields.pop("password"))
    else:
        fields.pop("password", None)
    if isinstance(fields.get("role"), UserRole):
        fields["role"] = fields["role"].value
    return fields


def compute_stats(orders: Iterable[SalesOrder], now: datetime | None = None) -> SalesOrderStats:
    """Aggregate counts and revenue. Revenue only counts completed orders."""
    now = now or utcnow()
    since = now - RECENT_WINDOW
    orders = list(orders)

    breakdown = StatusBreakdown()
    for order in orders:
        if order.status in STATUS_VALUES:
            setattr(breakdown, order.status, getattr(breakdown, order.status) + 1)

    completed = [o for o in orders if o.status == SalesOrderStatus.COMPLETED.value]
    total_revenue = sum(o.total_amount for o in completed)
    recent = [o for o in orders if o.order_date >= since]

    return SalesOrderStats(
        total_orders=len(orders),
        status_breakdown=breakdown,
        revenue=Revenue(
            total=total_revenue,
            average=total_revenue / len(completed) if completed else 0.0,
        ),
        recent_activity=RecentActivity(
            orders_last_30_days=len(recent),
            revenue_last_30_days=sum(
                o.total_amount for o in recent if o.status == SalesOrderStatus.COMPLETED.value
            ),
        ),
    )
