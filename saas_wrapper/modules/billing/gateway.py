"""Payment gateway port with Stripe and mock implementations."""

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

import stripe  # type: ignore
from fastapi import status
from stripe import StripeError  # type: ignore

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.utils.logger import get_logger
from saas_wrapper.utils.settings.app import AppSettings
from saas_wrapper.utils.settings.stripe import StripeSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str | None


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str


@dataclass(frozen=True)
class SubscriptionInfo:
    subscription_id: str
    status: str
    plan_id: str | None = None
    metadata: dict = field(default_factory=dict)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to the smallest unit (cents)."""
    return int((amount * 100).quantize(Decimal("1")))


class PaymentGateway(ABC):
    @abstractmethod
    async def create_checkout_session(
        self,
        tenant_id: UUID,
        purchase_id: UUID,
        description: str,
        total_amount: Decimal,
        currency: str,
    ) -> CheckoutSession: ...

    @abstractmethod
    async def create_refund(
        self,
        payment_reference: str,
        amount: Decimal | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        """Refund a payment.

        Repeating a call with the same idempotency key returns the original
        refund instead of refunding again.
        """

    @abstractmethod
    async def retrieve_subscription(self, subscription_id: str) -> SubscriptionInfo: ...


class StripePaymentGateway(PaymentGateway):
    def __init__(self, api_key: str | None = None):
        stripe.api_key = api_key or StripeSettings().STRIPE_SECRET_KEY.get_secret_value()
        self.frontend_url = AppSettings().FRONTEND_URL

    async def create_checkout_session(
        self,
        tenant_id: UUID,
        purchase_id: UUID,
        description: str,
        total_amount: Decimal,
        currency: str,
    ) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": currency,
                            "unit_amount": to_minor_units(total_amount),
                            "product_data": {"name": description},
                        },
                        "quantity": 1,
                    }
                ],
                success_url=f"{self.frontend_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.frontend_url}/billing/cancel",
                metadata={
                    "tenant_id": str(tenant_id),
                    "purchase_id": str(purchase_id),
                },
            )
        except StripeError as e:
            logger.error(f"Stripe checkout session failed for purchase {purchase_id}: {e}")
            raise WrapperException(
                MessageCode.PAYMENT_GATEWAY_ERROR,
                status.HTTP_502_BAD_GATEWAY,
                details={"provider": "stripe", "error": str(e)},
            ) from e

        return CheckoutSession(session_id=session.id, url=session.url)

    async def create_refund(
        self,
        payment_reference: str,
        amount: Decimal | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        params: dict = {"payment_intent": payment_reference}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        try:
            refund = stripe.Refund.create(**params)
        except StripeError as e:
            logger.error(f"Stripe refund failed for {payment_reference}: {e}")
            raise WrapperException(
                MessageCode.PAYMENT_GATEWAY_ERROR,
                status.HTTP_502_BAD_GATEWAY,
                details={"provider": "stripe", "error": str(e)},
            ) from e

        return RefundResult(refund_id=refund.id, status=refund.status)

    async def retrieve_subscription(self, subscription_id: str) -> SubscriptionInfo:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
        except StripeError as e:
            logger.error(f"Stripe subscription lookup failed for {subscription_id}: {e}")
            raise WrapperException(
                MessageCode.PAYMENT_GATEWAY_ERROR,
                status.HTTP_502_BAD_GATEWAY,
                details={"provider": "stripe", "error": str(e)},
            ) from e

        metadata = dict(subscription.get("metadata") or {})
        return SubscriptionInfo(
            subscription_id=subscription.id,
            status=subscription.status,
            plan_id=metadata.get("plan_id"),
            metadata=metadata,
        )


class MockPaymentGateway(PaymentGateway):
    """Deterministic gateway for development and tests. Never charges."""

    def __init__(self, fail_refunds: bool = False):
        self._counter = itertools.count(1)
        self.fail_refunds = fail_refunds
        self.checkouts: list[dict] = []
        self.refunds: list[dict] = []
        self.refunds_by_key: dict[str, RefundResult] = {}

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_mock_{next(self._counter):06d}"

    async def create_checkout_session(
        self,
        tenant_id: UUID,
        purchase_id: UUID,
        description: str,
        total_amount: Decimal,
        currency: str,
    ) -> CheckoutSession:
        session_id = self._next_id("cs")
        self.checkouts.append(
            {
                "session_id": session_id,
                "tenant_id": tenant_id,
                "purchase_id": purchase_id,
                "total_amount": total_amount,
                "currency": currency,
            }
        )
        return CheckoutSession(
            session_id=session_id,
            url=f"https://checkout.mock.local/{session_id}",
        )

    async def create_refund(
        self,
        payment_reference: str,
        amount: Decimal | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        if idempotency_key in self.refunds_by_key:
            return self.refunds_by_key[idempotency_key]
        if self.fail_refunds:
            raise WrapperException(
                MessageCode.PAYMENT_GATEWAY_ERROR,
                status.HTTP_502_BAD_GATEWAY,
                details={"provider": "mock", "error": "refund declined"},
            )
        refund_id = self._next_id("re")
        self.refunds.append(
            {"refund_id": refund_id, "payment_reference": payment_reference, "amount": amount}
        )
        refund = RefundResult(refund_id=refund_id, status="succeeded")
        if idempotency_key:
            self.refunds_by_key[idempotency_key] = refund
        return refund

    async def retrieve_subscription(self, subscription_id: str) -> SubscriptionInfo:
        return SubscriptionInfo(subscription_id=subscription_id, status="active")
