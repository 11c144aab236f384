"""Sales order model. Line items and the customer address are embedded JSON."""

import enum
from datetime import datetime

from sqlalchemy import String, Float, Text, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import UTCDateTime
from app.models.mixins import UUIDPrimaryKeyMixin, TimestampMixin


class SalesOrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SalesOrder(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "sales_orders"
    __table_args__ = (
        Index("ix_sales_orders_status_date", "status", "order_date"),
    )

    order_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_id: Mapped[str] = mapped_column(String(64), default="", nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    customer_address: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(10), default="USD", nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    payment_terms: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    shipment_method: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    order_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SalesOrderStatus.PENDING.value, nullable=False
    )

    # Business Central mirror
    bc_order_id: Mapped[str | None] = mapped_column(String(64))
    bc_status: Mapped[str | None] = mapped_column(String(50))

    def __repr__(self) -> str:
        return f"<SalesOrder {self.order_number} total={self.total_amount}>"
