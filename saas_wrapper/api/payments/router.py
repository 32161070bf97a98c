"""Normalized payment notifications."""

from fastapi import APIRouter

from saas_wrapper.api.core.dependencies import CreditPurchaseServiceDep
from saas_wrapper.api.core.messages import APIResponse, MessageCode
from saas_wrapper.api.payments.schemas import PaymentEvent, PaymentEventResponse
from saas_wrapper.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/events", response_model=PaymentEventResponse)
async def handle_payment_event(
    event: PaymentEvent,
    purchases: CreditPurchaseServiceDep,
) -> PaymentEventResponse:
    """Apply a payment event forwarded by the billing webhook relay."""
    logger.info(
        "Payment event received",
        event_type=event.event_type,
        checkout_session_id=event.checkout_session_id,
    )
    result = await purchases.handle_payment_event(event)
    if not result.handled:
        message_code = MessageCode.PAYMENT_EVENT_IGNORED
    elif result.purchase and result.purchase.status == "completed":
        message_code = MessageCode.PURCHASE_COMPLETED
    else:
        message_code = MessageCode.SUCCESS
    return APIResponse.success(message_code=message_code, data=result)
