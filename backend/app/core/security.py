"""JWT token management and password hashing."""

import uuid
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from app.core.config import Settings, settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

__all__ = [
    "ACCESS_TOKEN_TYPE",
    "REFRESH_TOKEN_TYPE",
    "ExpiredSignatureError",
    "JWTError",
    "hash_password",
    "verify_password",
    "dummy_verify",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def dummy_verify() -> None:
    """Burn the same time as a real verify so unknown usernames are not observable."""
    pwd_context.dummy_verify()


def _encode(user_id: str, token_type: str, lifetime: timedelta, config: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
        # keeps two tokens minted in the same second distinct
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM)


def create_access_token(
    user_id: str,
    expires_delta: timedelta | None = None,
    config: Settings | None = None,
) -> str:
    config = config or settings
    return _encode(
        user_id,
        ACCESS_TOKEN_TYPE,
        expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
        config,
    )


def create_refresh_token(
    user_id: str,
    expires_delta: timedelta | None = None,
    config: Settings | None = None,
) -> str:
    config = config or settings
    return _encode(
        user_id,
        REFRESH_TOKEN_TYPE,
        expires_delta or timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
        config,
    )


def decode_token(token: str, config: Settings | None = None) -> dict:
    """Decode and validate a JWT with the signing key of `config` (process settings by default).

    Raises ExpiredSignatureError for expired tokens and JWTError for anything
    else that fails verification.
    """
    config = config or settings
    return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
