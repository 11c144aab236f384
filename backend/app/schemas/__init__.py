from app.schemas.base import ApiResponse, CamelModel
from app.schemas.auth import (
    LoginRequest, LoginResponse, RefreshTokenRequest, TokenPair,
    RegisterRequest, ChangePasswordRequest, ProfileUpdate, AdminUserUpdate,
    UserResponse, UserListResponse,
)
from app.schemas.catalog import CatalogList, CatalogSearch
from app.schemas.sales_order import (
    SalesOrderCreate, SalesOrderUpdate, SalesOrderQuery,
    SalesOrderResponse, SalesOrderCreateResponse, SalesOrderListResponse,
    SalesOrderStats, BcIntegration,
)

__all__ = [
    "ApiResponse", "CamelModel", "CatalogList", "CatalogSearch",
    "LoginRequest", "LoginResponse", "RefreshTokenRequest", "TokenPair",
    "RegisterRequest", "ChangePasswordRequest", "ProfileUpdate", "AdminUserUpdate",
    "UserResponse", "UserListResponse",
    "SalesOrderCreate", "SalesOrderUpdate", "SalesOrderQuery",
    "SalesOrderResponse", "SalesOrderCreateResponse", "SalesOrderListResponse",
    "SalesOrderStats", "BcIntegration",
]
