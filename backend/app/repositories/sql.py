"""SQLAlchemy-backed stores honouring the same contracts as the in-memory ones."""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.mixins import utcnow
from app.models.sales_order import SalesOrder, SalesOrderStatus
from app.models.user import User
from app.repositories.base import (
    RECENT_WINDOW,
    SORT_COLUMNS,
    STATUS_VALUES,
    SalesOrderRepository,
    UserRepository,
    build_user,
    prepare_user_fields,
)
from app.schemas.sales_order import (
    RecentActivity,
    Revenue,
    SalesOrderQuery,
    SalesOrderStats,
    StatusBreakdown,
)


class SqlSalesOrderRepository(SalesOrderRepository):
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def add(self, order: SalesOrder) -> SalesOrder:
        async with self._session_factory() as session:
            session.add(order)
            await session.commit()
        return order

    async def get(self, order_id: str) -> SalesOrder | None:
        async with self._session_factory() as session:
            return await session.get(SalesOrder, order_id)

    async def search(self, query: SalesOrderQuery) -> tuple[list[SalesOrder], int]:
        stmt = select(SalesOrder)
        if query.status:
            stmt = stmt.where(SalesOrder.status == query.status.value)
        if query.customer_id:
            stmt = stmt.where(SalesOrder.customer_id == query.customer_id)
        if query.start_date:
            stmt = stmt.where(SalesOrder.order_date >= query.start_date)
        if query.end_date:
            stmt = stmt.where(SalesOrder.order_date <= query.end_date)

        column = getattr(SalesOrder, SORT_COLUMNS[query.sort_by])
        ordering = column.desc() if query.sort_order == "desc" else column.asc()

        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(stmt.subquery()))
            result = await session.execute(
                stmt.order_by(ordering, SalesOrder.created_at.asc())
                .offset((query.page - 1) * query.limit)
                .limit(query.limit)
            )
            return list(result.scalars().all()), total or 0

    async def update(self, order_id: str, fields: dict) -> SalesOrder | None:
        async with self._session_factory() as session:
            order = await session.get(SalesOrder, order_id)
            if order is None:
                return None
            for key, value in fields.items():
                setattr(order, key, value)
            order.updated_at = utcnow()
            await session.commit()
            return order

    async def delete(self, order_id: str) -> bool:
        async with self._session_factory() as session:
            order = await session.get(SalesOrder, order_id)
            if order is None:
                return False
            await session.delete(order)
            await session.commit()
            return True

    async def stats(self, now: datetime | None = None) -> SalesOrderStats:
        now = now or utcnow()
        since = now - RECENT_WINDOW
        completed = SalesOrderStatus.COMPLETED.value

        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(SalesOrder.status, func.count()).group_by(SalesOrder.status)
                )
            ).all()
            revenue_total, completed_count = (
                await session.execute(
                    select(func.coalesce(func.sum(SalesOrder.total_amount), 0.0), func.count())
                    .where(SalesOrder.status == completed)
                )
            ).one()
            recent_count = await session.scalar(
                select(func.count()).select_from(SalesOrder).where(SalesOrder.order_date >= since)
            )
            recent_revenue = await session.scalar(
                select(func.coalesce(func.sum(SalesOrder.total_amount), 0.0)).where(
                    SalesOrder.order_date >= since,
                    SalesOrder.status == completed,
                )
            )

        counts = {status: count for status, count in rows}
        breakdown = StatusBreakdown(**{s: counts.get(s, 0) for s in STATUS_VALUES})
        return SalesOrderStats(
            total_orders=sum(counts.values()),
            status_breakdown=breakdown,
            revenue=Revenue(
                total=revenue_total,
                average=revenue_total / completed_count if completed_count else 0.0,
            ),
            recent_activity=RecentActivity(
                orders_last_30_days=recent_count or 0,
                revenue_last_30_days=recent_revenue or 0.0,
            ),
        )


class SqlUserRepository(UserRepository):
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _first_active(self, *criteria) -> User | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User).where(User.is_active.is_(True), *criteria).limit(1)
            )
            return result.scalar_one_or_none()

    async def find_by_username(self, username: str) -> User | None:
        return await self._first_active(User.username == username)

    async def find_by_email(self, email: str) -> User | None:
        return await self._first_active(User.email == email)

    async def find_by_id(self, user_id: str) -> User | None:
        return await self._first_active(User.id == user_id)

    async def create(self, data: dict) -> User:
        user = build_user(data)
        async with self._session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    async def _mutate(self, user_id: str, apply) -> User | None:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if user is None or not user.is_active:
                return None
            apply(user)
            user.updated_at = utcnow()
            await session.commit()
            return user

    async def update(self, user_id: str, fields: dict) -> User | None:
        fields = prepare_user_fields(fields)

        def apply(user: User) -> None:
            for key, value in fields.items():
                setattr(user, key, value)

        return await self._mutate(user_id, apply)

    async def soft_delete(self, user_id: str) -> bool:
        def apply(user: User) -> None:
            user.is_active = False

        return await self._mutate(user_id, apply) is not None

    async def touch_last_login(self, user_id: str) -> User | None:
        def apply(user: User) -> None:
            user.last_login = utcnow()

        return await self._mutate(user_id, apply)

    async def list_active(self, limit: int = 50, offset: int = 0) -> list[User]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User)
                .where(User.is_active.is_(True))
                .order_by(User.created_at.asc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count_active(self) -> int:
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(User).where(User.is_active.is_(True))
            )
            return total or 0
