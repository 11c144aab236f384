"""Dependency injection: stores, ERP client, bearer-token auth and role gates.

Route access by role:
┌──────────────────────────────┬───────┬─────────┬─────────┐
│ Routes                       │ Admin │ Manager │ Cashier │
├──────────────────────────────┼───────┼─────────┼─────────┤
│ auth: profile, password      │  ✓    │   ✓     │   ✓     │
│ auth: register, users/*      │  ✓    │         │         │
│ sales-orders: create/read/   │  ✓    │   ✓     │   ✓     │
│   update, stats              │       │         │         │
│ sales-orders: delete,        │  ✓    │         │         │
│   bc-test                    │       │         │         │
│ products, customers          │  ✓    │   ✓     │   ✓     │
└──────────────────────────────┴───────┴─────────┴─────────┘
"""

import logging

from fastapi import Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import Settings
from app.core.errors import APIError
from app.core.security import ACCESS_TOKEN_TYPE, ExpiredSignatureError, JWTError, decode_token
from app.models.user import User, UserRole
from app.repositories.base import SalesOrderRepository, UserRepository
from app.services.business_central import BusinessCentralClient
from app.services.sales_orders import SalesOrderService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = (UserRole.ADMIN.value, UserRole.MANAGER.value, UserRole.CASHIER.value)


# ── Stores & services ──────────────────────────────
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_user_repository(request: Request) -> UserRepository:
    return request.app.state.users


def get_sales_order_repository(request: Request) -> SalesOrderRepository:
    return request.app.state.sales_orders


def get_erp_client(request: Request) -> BusinessCentralClient:
    return request.app.state.business_central


def get_sales_order_service(
    orders: SalesOrderRepository = Depends(get_sales_order_repository),
    erp: BusinessCentralClient = Depends(get_erp_client),
) -> SalesOrderService:
    return SalesOrderService(orders, erp)


# ── Authentication ─────────────────────────────────
def _unauthorized(error: str) -> APIError:
    return APIError(status.HTTP_401_UNAUTHORIZED, error)


async def resolve_user(token: str, users: UserRepository, config: Settings | None = None) -> User:
    """Verify an access token and load its active user. Raises APIError(401).

    Deactivated users are not returned by the store, so their tokens fail as
    "user not found".
    """
    try:
        payload = decode_token(token, config)
    except ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except JWTError as exc:
        logger.info("Token verification failed: %s", exc)
        raise _unauthorized("Invalid token")

    user_id = payload.get("sub")
    if not user_id or payload.get("type") != ACCESS_TOKEN_TYPE:
        raise _unauthorized("Invalid token")

    user = await users.find_by_id(user_id)
    if user is None:
        raise _unauthorized("Invalid token - user not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    users: UserRepository = Depends(get_user_repository),
    config: Settings = Depends(get_settings),
) -> User:
    """Require a valid bearer token. Raises 401 with a reason-specific message."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Access token required")
    return await resolve_user(credentials.credentials, users, config)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    users: UserRepository = Depends(get_user_repository),
    config: Settings = Depends(get_settings),
) -> User | None:
    """Like get_current_user, but a missing or bad token just means anonymous."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return await resolve_user(credentials.credentials, users, config)
    except APIError:
        return None


def require_role(*allowed_roles: str):
    """Dependency factory: checks the user has one of the allowed roles."""

    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed_roles:
            raise APIError(status.HTTP_403_FORBIDDEN, "Insufficient permissions")
        return user

    return checker


require_admin = require_role(UserRole.ADMIN.value)
require_staff = require_role(*STAFF_ROLES)
