"""Payment event schemas."""

from typing import Any

from pydantic import BaseModel

from saas_wrapper.api.core.messages import APIResponse
from saas_wrapper.api.credits.schemas import PurchaseModel


class PaymentEventType:
    CHECKOUT_COMPLETED = "checkout.completed"
    CHECKOUT_EXPIRED = "checkout.expired"
    PAYMENT_FAILED = "payment.failed"


class PaymentEvent(BaseModel):
    """Provider-neutral payment notification."""

    event_type: str
    checkout_session_id: str | None = None
    payment_reference: str | None = None
    data: dict[str, Any] = {}


class PaymentEventResultModel(BaseModel):
    event_type: str
    handled: bool
    purchase: PurchaseModel | None = None


PaymentEventResponse = APIResponse[PaymentEventResultModel]
