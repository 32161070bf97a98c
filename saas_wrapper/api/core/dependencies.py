from typing import Annotated, AsyncGenerator
from uuid import UUID

from fastapi import Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.modules.billing.gateway import PaymentGateway
from saas_wrapper.modules.credit_config.service import CreditConfigurationService
from saas_wrapper.modules.credits import (
    CreditBalanceService,
    CreditExpiryService,
    CreditOperationsService,
    CreditPurchaseService,
)
from saas_wrapper.modules.entitlements import ApplicationAssignmentService
from saas_wrapper.modules.events.publisher import EventPublisher


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session from app state."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def get_event_publisher(request: Request) -> EventPublisher:
    """Get the inter-app event publisher configured at startup."""
    return request.app.state.event_publisher


def get_payment_gateway(request: Request) -> PaymentGateway:
    """Get the payment gateway configured at startup."""
    return request.app.state.payment_gateway


async def get_actor_id(
    x_actor_id: Annotated[str | None, Header()] = None,
) -> UUID | None:
    """Acting user, as forwarded by the authenticating proxy."""
    if not x_actor_id:
        return None
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise WrapperException(
            MessageCode.INVALID_INPUT,
            status.HTTP_400_BAD_REQUEST,
            details={"header": "X-Actor-Id", "value": x_actor_id},
        )


AsyncSessionDep = Annotated[AsyncSession, Depends(get_db_session)]
EventPublisherDep = Annotated[EventPublisher, Depends(get_event_publisher)]
PaymentGatewayDep = Annotated[PaymentGateway, Depends(get_payment_gateway)]
ActorDep = Annotated[UUID | None, Depends(get_actor_id)]


async def get_credit_balance_service(db: AsyncSessionDep) -> CreditBalanceService:
    """Get credit balance service with database session."""
    return CreditBalanceService(db)


async def get_credit_operations_service(
    db: AsyncSessionDep, publisher: EventPublisherDep
) -> CreditOperationsService:
    """Get credit operations service with database session and event publisher."""
    return CreditOperationsService(db, publisher)


async def get_credit_purchase_service(
    db: AsyncSessionDep, gateway: PaymentGatewayDep
) -> CreditPurchaseService:
    """Get credit purchase service with database session and payment gateway."""
    return CreditPurchaseService(db, gateway)


async def get_credit_expiry_service(db: AsyncSessionDep) -> CreditExpiryService:
    """Get credit expiry service with database session."""
    return CreditExpiryService(db)


async def get_credit_configuration_service(
    db: AsyncSessionDep,
) -> CreditConfigurationService:
    """Get credit configuration service with database session."""
    return CreditConfigurationService(db)


async def get_application_assignment_service(
    db: AsyncSessionDep, publisher: EventPublisherDep
) -> ApplicationAssignmentService:
    """Get application assignment service with database session and event publisher."""
    return ApplicationAssignmentService(db, publisher)


CreditBalanceServiceDep = Annotated[
    CreditBalanceService, Depends(get_credit_balance_service)
]
CreditOperationsServiceDep = Annotated[
    CreditOperationsService, Depends(get_credit_operations_service)
]
CreditPurchaseServiceDep = Annotated[
    CreditPurchaseService, Depends(get_credit_purchase_service)
]
CreditExpiryServiceDep = Annotated[
    CreditExpiryService, Depends(get_credit_expiry_service)
]
CreditConfigurationServiceDep = Annotated[
    CreditConfigurationService, Depends(get_credit_configuration_service)
]
ApplicationAssignmentServiceDep = Annotated[
    ApplicationAssignmentService, Depends(get_application_assignment_service)
]
