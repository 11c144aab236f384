"""Auth request/response schemas."""

from datetime import datetime

from pydantic import EmailStr, Field, model_validator

from app.models.user import UserRole
from app.schemas.base import CamelModel


# ── Login / tokens ─────────────────────────────────
class LoginRequest(CamelModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=6)


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


# ── Users ──────────────────────────────────────────
class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9]+$")
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    role: UserRole = UserRole.CASHIER

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords must match")
        return self


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)
    confirm_new_password: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_new_password:
            raise ValueError("New passwords must match")
        return self


class ProfileUpdate(CamelModel):
    first_name: str | None = Field(default=None, min_length=2, max_length=50)
    last_name: str | None = Field(default=None, min_length=2, max_length=50)
    email: EmailStr | None = None


class AdminUserUpdate(ProfileUpdate):
    role: UserRole | None = None


class UserResponse(CamelModel):
    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    last_login: datetime | None = None
    created_at: datetime
    updated_at: datetime


class LoginResponse(TokenPair):
    user: UserResponse


class UserPagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class UserListResponse(CamelModel):
    users: list[UserResponse]
    pagination: UserPagination
