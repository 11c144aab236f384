"""Process-lifetime stores. Each store serializes access with an asyncio.Lock."""

import asyncio
from datetime import datetime

from app.models.mixins import utcnow
from app.models.sales_order import SalesOrder
from app.models.user import User
from app.repositories.base import (
    SORT_COLUMNS,
    SalesOrderRepository,
    UserRepository,
    build_user,
    compute_stats,
    prepare_user_fields,
)
from app.schemas.sales_order import SalesOrderQuery, SalesOrderStats


def _sort_key(value):
    # None sorts after everything else in ascending order
    return (value is None, value)


class InMemorySalesOrderRepository(SalesOrderRepository):
    def __init__(self):
        self._orders: list[SalesOrder] = []  # insertion order == creation order
        self._lock = asyncio.Lock()

    async def add(self, order: SalesOrder) -> SalesOrder:
        async with self._lock:
            self._orders.append(order)
        return order

    async def get(self, order_id: str) -> SalesOrder | None:
        async with self._lock:
            return next((o for o in self._orders if o.id == order_id), None)

    async def search(self, query: SalesOrderQuery) -> tuple[list[SalesOrder], int]:
        async with self._lock:
            orders = list(self._orders)

        if query.status:
            orders = [o for o in orders if o.status == query.status.value]
        if query.customer_id:
            orders = [o for o in orders if o.customer_id == query.customer_id]
        if query.start_date:
            orders = [o for o in orders if o.order_date >= query.start_date]
        if query.end_date:
            orders = [o for o in orders if o.order_date <= query.end_date]

        attr = SORT_COLUMNS[query.sort_by]
        orders.sort(key=lambda o: _sort_key(getattr(o, attr)), reverse=query.sort_order == "desc")

        start = (query.page - 1) * query.limit
        return orders[start:start + query.limit], len(orders)

    async def update(self, order_id: str, fields: dict) -> SalesOrder | None:
        async with self._lock:
            order = next((o for o in self._orders if o.id == order_id), None)
            if order is None:
                return None
            for key, value in fields.items():
                setattr(order, key, value)
            order.updated_at = utcnow()
            return order

    async def delete(self, order_id: str) -> bool:
        async with self._lock:
            for index, order in enumerate(self._orders):
                if order.id == order_id:
                    del self._orders[index]
                    return True
            return False

    async def stats(self, now: datetime | None = None) -> SalesOrderStats:
        async with self._lock:
            orders = list(self._orders)
        return compute_stats(orders, now)


class InMemoryUserRepository(UserRepository):
    def __init__(self):
        self._users: list[User] = []
        self._lock = asyncio.Lock()

    def _find_active(self, predicate) -> User | None:
        return next((u for u in self._users if u.is_active and predicate(u)), None)

    async def find_by_username(self, username: str) -> User | None:
        async with self._lock:
            return self._find_active(lambda u: u.username == username)

    async def find_by_email(self, email: str) -> User | None:
        async with self._lock:
            return self._find_active(lambda u: u.email == email)

    async def find_by_id(self, user_id: str) -> User | None:
        async with self._lock:
            return self._find_active(lambda u: u.id == user_id)

    async def create(self, data: dict) -> User:
        user = build_user(data)
        async with self._lock:
            self._users.append(user)
        return user

    async def update(self, user_id: str, fields: dict) -> User | None:
        fields = prepare_user_fields(fields)
        async with self._lock:
            user = self._find_active(lambda u: u.id == user_id)
            if user is None:
                return None
            for key, value in fields.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            return user

    async def soft_delete(self, user_id: str) -> bool:
        async with self._lock:
            user = self._find_active(lambda u: u.id == user_id)
            if user is None:
                return False
            user.is_active = False
            user.updated_at = utcnow()
            return True

    async def touch_last_login(self, user_id: str) -> User | None:
        async with self._lock:
            user = self._find_active(lambda u: u.id == user_id)
            if user is None:
                return None
            user.last_login = user.updated_at = utcnow()
            return user

    async def list_active(self, limit: int = 50, offset: int = 0) -> list[User]:
        async with self._lock:
            active = [u for u in self._users if u.is_active]
        return active[offset:offset + limit]

    async def count_active(self) -> int:
        async with self._lock:
            return sum(1 for u in self._users if u.is_active)
