import secrets

from pydantic_settings import BaseSettings


def _generate_secret() -> str:
    """Generate a random secret key if none is provided via env."""
    return secrets.token_urlsafe(64)


class Settings(BaseSettings):
    PROJECT_NAME: str = "POS Service Backend"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api"
    API_VERSION: str = "v1"

    # Auth
    SECRET_KEY: str = _generate_secret()  # MUST be set via .env in production
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24h
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12
    SEED_DEFAULT_USERS: bool = True

    # Storage: "memory" (process lifetime) or "sql"
    STORAGE_BACKEND: str = "memory"
    DATABASE_URL: str = "sqlite+aiosqlite:///./pos_service.db"

    # Business Central
    BC_BASE_URL: str = ""
    BC_TENANT_ID: str = ""
    BC_CLIENT_ID: str = ""
    BC_CLIENT_SECRET: str = ""
    BC_COMPANY_ID: str = ""
    BC_AUTHORITY_URL: str = "https://login.microsoftonline.com"
    BC_SCOPE: str = ""  # defaults to "<BC_BASE_URL>/.default"
    BC_TIMEOUT_SECONDS: float = 30.0

    # HTTP
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_MS: int = 15 * 60 * 1000
    RATE_LIMIT_MAX_REQUESTS: int = 100
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:3002"

    class Config:
        env_file = ".env"

    @property
    def api_base_path(self) -> str:
        return f"{self.API_PREFIX.rstrip('/')}/{self.API_VERSION}"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
