"""SQLAlchemy models for the POS service."""

from app.models.user import User, UserRole
from app.models.sales_order import SalesOrder, SalesOrderStatus

__all__ = [
    "User",
    "UserRole",
    "SalesOrder",
    "SalesOrderStatus",
]
