from app.repositories.base import SalesOrderRepository, UserRepository
from app.repositories.memory import InMemorySalesOrderRepository, InMemoryUserRepository
from app.repositories.sql import SqlSalesOrderRepository, SqlUserRepository

__all__ = [
    "SalesOrderRepository",
    "UserRepository",
    "InMemorySalesOrderRepository",
    "InMemoryUserRepository",
    "SqlSalesOrderRepository",
    "SqlUserRepository",
]
