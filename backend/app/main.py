import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from app.api import auth, customers, health, products, sales_orders
from app.core.config import Settings, settings
from app.core.errors import register_exception_handlers
from app.core.logging_config import configure_logging
from app.core.middleware import RateLimitMiddleware, RequestLoggingMiddleware
from app.db.base import create_engine, create_session_factory, init_models
from app.db.seed import seed_default_users
from app.repositories import (
    InMemorySalesOrderRepository,
    InMemoryUserRepository,
    SqlSalesOrderRepository,
    SqlUserRepository,
)
from app.services.business_central import BusinessCentralClient

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings = settings,
    erp: BusinessCentralClient | None = None,
) -> FastAPI:
    """Build the application. `erp` replaces the client built from settings (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(app_settings.LOG_LEVEL)

        engine = None
        if app_settings.STORAGE_BACKEND == "sql":
            engine = create_engine(app_settings.DATABASE_URL)
            await init_models(engine)
            session_factory = create_session_factory(engine)
            app.state.users = SqlUserRepository(session_factory)
            app.state.sales_orders = SqlSalesOrderRepository(session_factory)
        else:
            app.state.users = InMemoryUserRepository()
            app.state.sales_orders = InMemorySalesOrderRepository()
        logger.info("Storage backend: %s", app_settings.STORAGE_BACKEND)

        if app_settings.SEED_DEFAULT_USERS:
            created = await seed_default_users(app.state.users)
            if created:
                logger.warning("Seeded %d default user(s); change their passwords", created)

        app.state.business_central = erp or BusinessCentralClient.from_settings(app_settings)
        if not app.state.business_central.is_configured:
            logger.warning("Business Central is not configured; ERP calls will fail")

        logger.info(
            "%s %s started (%s), API base %s",
            app_settings.PROJECT_NAME,
            app_settings.VERSION,
            app_settings.ENVIRONMENT,
            app_settings.api_base_path,
        )
        yield

        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        description="POS order entry backed by Business Central",
        version=app_settings.VERSION,
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    if app_settings.RATE_LIMIT_ENABLED:
        app.add_middleware(
            RateLimitMiddleware,
            window_ms=app_settings.RATE_LIMIT_WINDOW_MS,
            max_requests=app_settings.RATE_LIMIT_MAX_REQUESTS,
        )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    # added last, so outermost: rate-limited responses still carry CORS headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    base_path = app_settings.api_base_path
    app.include_router(health.router, prefix=base_path)
    app.include_router(auth.router, prefix=base_path)
    app.include_router(sales_orders.router, prefix=base_path)
    app.include_router(products.router, prefix=base_path)
    app.include_router(customers.router, prefix=base_path)

    @app.get("/")
    async def root():
        return {
            "message": f"{app_settings.PROJECT_NAME} API",
            "version": app_settings.VERSION,
            "status": "running",
            "endpoints": {
                "health": f"{base_path}/health",
                "auth": f"{base_path}/auth",
                "salesOrders": f"{base_path}/sales-orders",
                "products": f"{base_path}/products",
                "customers": f"{base_path}/customers",
            },
        }

    return app


app = create_app()
