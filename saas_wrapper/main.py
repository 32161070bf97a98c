import uvicorn
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from saas_wrapper.api.core.exceptions.base import register_exception_handlers
from saas_wrapper.api.core.middleware.logging import logging_middleware
from saas_wrapper.api.router import api_router
from saas_wrapper.database.connection import AsyncSessionLocal
from saas_wrapper.modules.billing.gateway import (
    MockPaymentGateway,
    PaymentGateway,
    StripePaymentGateway,
)
from saas_wrapper.modules.events.publisher import (
    EventPublisher,
    InMemoryEventPublisher,
    RedisStreamEventPublisher,
)
from saas_wrapper.redis.client import close_redis_pool, get_redis_client
from saas_wrapper.utils.logger import setup_logging
from saas_wrapper.utils.settings.app import AppSettings
from saas_wrapper.utils.settings.credits import CreditSettings


is_production = AppSettings().ENVIRONMENT.upper() == "PROD"


async def build_event_publisher(app: FastAPI) -> EventPublisher:
    if CreditSettings().EVENT_PUBLISHER_BACKEND == "memory":
        app.state.redis = None
        return InMemoryEventPublisher()
    redis_client = await get_redis_client()
    app.state.redis = redis_client
    return RedisStreamEventPublisher(redis_client)


def build_payment_gateway() -> PaymentGateway:
    if CreditSettings().PAYMENT_GATEWAY_BACKEND == "mock":
        return MockPaymentGateway()
    return StripePaymentGateway()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger = setup_logging(is_production)
    logger.info("Starting SaaS Wrapper API...")
    AppSettings().validate_prod()

    app.state.session_factory = AsyncSessionLocal
    app.state.event_publisher = await build_event_publisher(app)
    app.state.payment_gateway = build_payment_gateway()
    logger.info(
        "Application state ready",
        event_publisher=type(app.state.event_publisher).__name__,
        payment_gateway=type(app.state.payment_gateway).__name__,
    )

    yield

    # Shutdown
    await close_redis_pool()
    logger.info("Shutting down SaaS Wrapper API...")


app = FastAPI(
    title="SaaS Wrapper API",
    description="Credit ledger and application entitlements for multi-tenant SaaS",
    version=AppSettings().API_VERSION,
    lifespan=lifespan,
    docs_url=None if is_production else "/docs",
    redoc_url=None if is_production else "/redoc",
    openapi_url=None if is_production else "/openapi.json",
)

# Register global exception handlers
register_exception_handlers(app)

app_settings = AppSettings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
app.middleware("http")(logging_middleware)

app.include_router(api_router)


def run_dev_server():
    """Run development server with auto-reload."""
    uvicorn.run(
        "saas_wrapper.main:app", host="0.0.0.0", port=8010, reload=True, access_log=False
    )


def run_prod_server():
    """Run production server."""
    uvicorn.run(
        "saas_wrapper.main:app", host="0.0.0.0", port=8010, reload=False, access_log=False
    )
