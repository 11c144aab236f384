"""Authentication and user administration endpoints."""

import logging
import math

from fastapi import APIRouter, Depends, Query, status

from app.core.config import Settings
from app.core.deps import get_current_user, get_settings, get_user_repository, require_admin
from app.core.errors import APIError
from app.core.security import (
    REFRESH_TOKEN_TYPE,
    ExpiredSignatureError,
    JWTError,
    create_access_token,
    create_refresh_token,
    decode_token,
    dummy_verify,
    verify_password,
)
from app.models.user import User, UserRole
from app.repositories.base import UserRepository
from app.schemas.auth import (
    AdminUserUpdate,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    RefreshTokenRequest,
    RegisterRequest,
    TokenPair,
    UserListResponse,
    UserPagination,
    UserResponse,
)
from app.schemas.base import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_REFRESH_TOKEN = "Invalid refresh token"


def issue_tokens(user_id: str, config: Settings) -> dict:
    """Fresh access + refresh pair. Refresh tokens are rotated, never reused."""
    return {
        "access_token": create_access_token(user_id, config=config),
        "refresh_token": create_refresh_token(user_id, config=config),
        "expires_in": config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


async def _ensure_email_free(users: UserRepository, email: str | None, user_id: str | None = None):
    if not email:
        return
    existing = await users.find_by_email(email)
    if existing and existing.id != user_id:
        raise APIError(status.HTTP_409_CONFLICT, "Email already exists")


# ── Public ─────────────────────────────────────────
@router.post("/login", response_model=ApiResponse[LoginResponse])
async def login(
    body: LoginRequest,
    users: UserRepository = Depends(get_user_repository),
    config: Settings = Depends(get_settings),
):
    """Authenticate via username + password, return an access/refresh token pair."""
    user = await users.find_by_username(body.username)
    if user is None:
        dummy_verify()
        logger.info("Login failed: unknown username %s", body.username)
        raise APIError(status.HTTP_401_UNAUTHORIZED, INVALID_CREDENTIALS)

    # inactive accounts get the same answer as bad passwords
    if not verify_password(body.password, user.password_hash) or not user.is_active:
        logger.info("Login failed for user %s", user.id)
        raise APIError(status.HTTP_401_UNAUTHORIZED, INVALID_CREDENTIALS)

    user = await users.touch_last_login(user.id) or user
    logger.info("User logged in: id=%s username=%s role=%s", user.id, user.username, user.role)
    return ApiResponse(
        message="Login successful",
        data=LoginResponse(user=UserResponse.model_validate(user), **issue_tokens(user.id, config)),
    )


@router.post("/refresh-token", response_model=ApiResponse[TokenPair])
async def refresh_token(
    body: RefreshTokenRequest,
    users: UserRepository = Depends(get_user_repository),
    config: Settings = Depends(get_settings),
):
    """Exchange a refresh token for a new access + refresh pair."""
    try:
        payload = decode_token(body.refresh_token, config)
    except ExpiredSignatureError:
        raise APIError(status.HTTP_401_UNAUTHORIZED, "Refresh token expired")
    except JWTError as exc:
        logger.info("Refresh token rejected: %s", exc)
        raise APIError(status.HTTP_401_UNAUTHORIZED, INVALID_REFRESH_TOKEN)

    if payload.get("type") != REFRESH_TOKEN_TYPE or not payload.get("sub"):
        raise APIError(status.HTTP_401_UNAUTHORIZED, INVALID_REFRESH_TOKEN)

    user = await users.find_by_id(payload["sub"])
    if user is None or not user.is_active:
        raise APIError(status.HTTP_401_UNAUTHORIZED, INVALID_REFRESH_TOKEN)

    return ApiResponse(message="Token refreshed successfully", data=TokenPair(**issue_tokens(user.id, config)))


# ── Current user ───────────────────────────────────
@router.get("/profile", response_model=ApiResponse[UserResponse])
async def get_profile(current_user: User = Depends(get_current_user)):
    return ApiResponse(data=UserResponse.model_validate(current_user))


@router.put("/profile", response_model=ApiResponse[UserResponse])
async def update_profile(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
):
    changes = body.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    await _ensure_email_free(users, changes.get("email"), current_user.id)

    user = await users.update(current_user.id, changes)
    if user is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "User not found")

    logger.info("Profile updated: id=%s", user.id)
    return ApiResponse(message="Profile updated successfully", data=UserResponse.model_validate(user))


@router.put("/change-password", response_model=ApiResponse[UserResponse])
async def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
):
    if not verify_password(body.current_password, current_user.password_hash):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Current password is incorrect")

    user = await users.update(current_user.id, {"password": body.new_password})
    if user is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "User not found")

    logger.info("Password changed: id=%s", user.id)
    return ApiResponse(message="Password changed successfully", data=UserResponse.model_validate(user))


@router.post("/logout", response_model=ApiResponse[None])
async def logout(current_user: User = Depends(get_current_user)):
    """Tokens are stateless; the client discards them."""
    logger.info("User logged out: id=%s username=%s", current_user.id, current_user.username)
    return ApiResponse(message="Logout successful")


# ── Administration ─────────────────────────────────
@router.post(
    "/register",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    body: RegisterRequest,
    current_user: User = Depends(require_admin),
    users: UserRepository = Depends(get_user_repository),
):
    """Create a user account (admin only)."""
    if await users.find_by_username(body.username):
        raise APIError(status.HTTP_409_CONFLICT, "Username already exists")
    await _ensure_email_free(users, body.email)

    user = await users.create(body.model_dump(exclude={"confirm_password"}, mode="json"))
    logger.info(
        "User registered: id=%s username=%s role=%s by=%s",
        user.id,
        user.username,
        user.role,
        current_user.id,
    )
    return ApiResponse(message="User registered successfully", data=UserResponse.model_validate(user))


def _matches(user: User, role: UserRole | None, search: str | None) -> bool:
    if role and user.role != role.value:
        return False
    if search:
        needle = search.lower()
        haystack = (user.username, user.email, user.first_name, user.last_name)
        return any(needle in (value or "").lower() for value in haystack)
    return True


@router.get("/users", response_model=ApiResponse[UserListResponse])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: UserRole | None = None,
    search: str | None = None,
    current_user: User = Depends(require_admin),
    users: UserRepository = Depends(get_user_repository),
):
    """List active users.

    Role/search filters apply to the requested page after it has been sliced,
    so a filtered page can hold fewer than `limit` users and `total` counts all
    active users.
    """
    page_users = await users.list_active(limit=limit, offset=(page - 1) * limit)
    page_users = [u for u in page_users if _matches(u, role, search)]
    total = await users.count_active()

    return ApiResponse(
        data=UserListResponse(
            users=[UserResponse.model_validate(u) for u in page_users],
            pagination=UserPagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit),
            ),
        )
    )


@router.get("/users/{user_id}", response_model=ApiResponse[UserResponse])
async def get_user(
    user_id: str,
    current_user: User = Depends(require_admin),
    users: UserRepository = Depends(get_user_repository),
):
    user = await users.find_by_id(user_id)
    if user is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "User not found")
    return ApiResponse(data=UserResponse.model_validate(user))


@router.put("/users/{user_id}", response_model=ApiResponse[UserResponse])
async def update_user(
    user_id: str,
    body: AdminUserUpdate,
    current_user: User = Depends(require_admin),
    users: UserRepository = Depends(get_user_repository),
):
    changes = body.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    await _ensure_email_free(users, changes.get("email"), user_id)

    user = await users.update(user_id, changes)
    if user is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "User not found")

    logger.info("User updated: id=%s by=%s", user.id, current_user.id)
    return ApiResponse(message="User updated successfully", data=UserResponse.model_validate(user))


@router.delete("/users/{user_id}", response_model=ApiResponse[None])
async def delete_user(
    user_id: str,
    current_user: User = Depends(require_admin),
    users: UserRepository = Depends(get_user_repository),
):
    """Deactivate a user. Admins cannot deactivate themselves."""
    if user_id == current_user.id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Cannot delete your own account")

    if not await users.soft_delete(user_id):
        raise APIError(status.HTTP_404_NOT_FOUND, "User not found")

    logger.info("User deactivated: id=%s by=%s", user_id, current_user.id)
    return ApiResponse(message="User deleted successfully")
