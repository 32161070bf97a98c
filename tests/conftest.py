"""Global test configuration and fixtures for the SaaS Wrapper API."""

import os

# Settings are read at import time by the app module
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("EVENT_PUBLISHER_BACKEND", "memory")
os.environ.setdefault("PAYMENT_GATEWAY_BACKEND", "mock")
os.environ.setdefault("ENVIRONMENT", "TEST")

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from saas_wrapper.database.models import (
    Application,
    Base,
    CustomRole,
    Entity,
    EntityType,
    ORGANIZATION_ADMIN_ROLE_NAME,
)
from saas_wrapper.modules.billing.gateway import MockPaymentGateway
from saas_wrapper.modules.events.publisher import InMemoryEventPublisher
from tests.factories import (
    ApplicationFactory,
    ApplicationModuleFactory,
    CreditLedgerFactory,
    CustomRoleFactory,
    EntityFactory,
)

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def async_engine():
    """Fresh schema per test. In-memory SQLite shares one connection via StaticPool."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, pool_pre_ping=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest_asyncio.fixture
async def app(session_factory, publisher, gateway) -> AsyncGenerator[FastAPI, None]:
    """FastAPI application wired to the test database and in-memory collaborators."""
    from saas_wrapper.main import app

    async with LifespanManager(app):
        app.state.session_factory = session_factory
        app.state.event_publisher = publisher
        app.state.payment_gateway = gateway
        yield app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test-saas-wrapper-api",
    ) as ac:
        yield ac


# Test Data Fixtures
@pytest.fixture
def tenant_id():
    return uuid4()


@pytest_asyncio.fixture
async def root_organization(db_session: AsyncSession, tenant_id) -> Entity:
    """Active default root organization of the test tenant."""
    return await EntityFactory.create_async(
        db_session,
        tenant_id=tenant_id,
        entity_type=EntityType.ORGANIZATION,
        entity_name="Acme Holdings",
        is_default=True,
        created_at=datetime.now(timezone.utc) - timedelta(days=30),
    )


@pytest_asyncio.fixture
async def location(db_session: AsyncSession, tenant_id, root_organization) -> Entity:
    return await EntityFactory.create_async(
        db_session,
        tenant_id=tenant_id,
        entity_type=EntityType.LOCATION,
        entity_name="Downtown Branch",
        parent_entity_id=root_organization.id,
    )


@pytest.fixture
def create_ledger(db_session: AsyncSession, tenant_id):
    """Factory for ledger rows with a given balance."""

    async def _create(entity: Entity, available, total=None, **kwargs):
        ledger = await CreditLedgerFactory.create_async(
            db_session,
            tenant_id=tenant_id,
            entity_id=entity.id,
            available_credits=available,
            total_credits=total if total is not None else available,
            **kwargs,
        )
        await db_session.commit()
        return ledger

    return _create


@pytest_asyncio.fixture
async def crm_application(db_session: AsyncSession) -> Application:
    """CRM application with a leads module (explicit actions) and a reports module (no actions)."""
    application = await ApplicationFactory.create_async(
        db_session, app_code="crm", app_name="CRM"
    )
    await ApplicationModuleFactory.create_async(
        db_session,
        app_id=application.id,
        module_code="leads",
        module_name="Leads",
        permissions=["view", "create"],
    )
    await ApplicationModuleFactory.create_async(
        db_session,
        app_id=application.id,
        module_code="reports",
        module_name="Reports",
        permissions=None,
    )
    return application


@pytest_asyncio.fixture
async def hr_application(db_session: AsyncSession) -> Application:
    application = await ApplicationFactory.create_async(
        db_session, app_code="hr", app_name="HR"
    )
    await ApplicationModuleFactory.create_async(
        db_session,
        app_id=application.id,
        module_code="employees",
        module_name="Employees",
        permissions=["view", "edit"],
    )
    return application


@pytest_asyncio.fixture
async def platform_application(db_session: AsyncSession) -> Application:
    """The wrapper's own application row; never an event target."""
    return await ApplicationFactory.create_async(
        db_session, app_code="wrapper", app_name="Wrapper"
    )


@pytest_asyncio.fixture
async def admin_role(db_session: AsyncSession, tenant_id) -> CustomRole:
    return await CustomRoleFactory.create_async(
        db_session,
        tenant_id=tenant_id,
        role_name=ORGANIZATION_ADMIN_ROLE_NAME,
        is_system_role=True,
    )
