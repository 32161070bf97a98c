"""Checkout-backed credit purchases and refunds."""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.api.credits.schemas import CheckoutModel, PurchaseModel
from saas_wrapper.api.payments.schemas import (
    PaymentEvent,
    PaymentEventResultModel,
    PaymentEventType,
)
from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import CreditPurchase, PurchaseStatus, TransactionType
from saas_wrapper.database.models.base import as_utc, utc_now
from saas_wrapper.modules.billing.gateway import PaymentGateway
from saas_wrapper.modules.credits.constants import CREDIT_PACKAGES, REFUND_OPERATION
from saas_wrapper.modules.credits.core import CreditCoreService, validate_credit_amount
from saas_wrapper.modules.credits.operations import CreditOperationsService
from saas_wrapper.utils.settings.credits import CreditSettings
from saas_wrapper.utils.settings.stripe import StripeSettings

CENT = Decimal("0.01")


def to_purchase_model(purchase: CreditPurchase) -> PurchaseModel:
    return PurchaseModel(
        id=purchase.id,
        tenant_id=purchase.tenant_id,
        entity_id=purchase.entity_id,
        package_id=purchase.package_id,
        credit_amount=purchase.credit_amount,
        total_amount=purchase.total_amount,
        currency=purchase.currency,
        status=PurchaseStatus(purchase.status).value,
        checkout_session_id=purchase.checkout_session_id,
        payment_reference=purchase.payment_reference,
        refund_reference=purchase.refund_reference,
        paid_at=as_utc(purchase.paid_at),
        refunded_at=as_utc(purchase.refunded_at),
    )


class CreditPurchaseService(BaseService):
    def __init__(self, db: AsyncSession, gateway: PaymentGateway):
        super().__init__(db)
        self.gateway = gateway
        self.core = CreditCoreService(db)
        self.operations = CreditOperationsService(db)

    async def _get_purchase(self, **criteria) -> CreditPurchase:
        stmt = select(CreditPurchase).execution_options(populate_existing=True)
        for column, value in criteria.items():
            stmt = stmt.where(getattr(CreditPurchase, column) == value)
        purchase = (await self.db.execute(stmt)).scalar_one_or_none()
        if purchase is None:
            raise WrapperException(
                MessageCode.PURCHASE_NOT_FOUND,
                status.HTTP_404_NOT_FOUND,
                details={k: str(v) for k, v in criteria.items()},
            )
        return purchase

    async def create_checkout(
        self,
        tenant_id: UUID,
        requested_by: UUID | None = None,
        package_id: str | None = None,
        credit_amount: Decimal | None = None,
        entity_id: UUID | None = None,
    ) -> CheckoutModel:
        """Create a pending purchase and a gateway checkout session for it."""
        if package_id:
            package = CREDIT_PACKAGES.get(package_id)
            if package is None:
                raise WrapperException(
                    MessageCode.PACKAGE_NOT_FOUND,
                    status.HTTP_404_NOT_FOUND,
                    details={"package_id": package_id},
                )
            credits = package.credits
            total_amount = package.price
            unit_price = (package.price / package.credits).quantize(Decimal("0.000001"))
            currency = package.currency.lower()
            description = package.name
        elif credit_amount is not None:
            credits = validate_credit_amount(credit_amount)
            unit_price = CreditSettings().CREDIT_UNIT_PRICE
            total_amount = (credits * unit_price).quantize(CENT, rounding=ROUND_HALF_UP)
            currency = StripeSettings().STRIPE_CURRENCY
            description = f"{credits} credits"
        else:
            raise WrapperException(
                MessageCode.INVALID_INPUT,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                details={"reason": "package_id or credit_amount is required"},
            )

        entity_id = await self.core.resolve_entity_id(tenant_id, entity_id)
        await self.core.require_active_entity(tenant_id, entity_id)

        purchase = CreditPurchase(
            tenant_id=tenant_id,
            entity_id=entity_id,
            package_id=package_id,
            credit_amount=credits,
            unit_price=unit_price,
            total_amount=total_amount,
            currency=currency,
            status=PurchaseStatus.PENDING,
            requested_by=requested_by,
        )
        self.db.add(purchase)
        try:
            await self.db.flush()
            purchase_id = purchase.id
            session = await self.gateway.create_checkout_session(
                tenant_id=tenant_id,
                purchase_id=purchase_id,
                description=description,
                total_amount=total_amount,
                currency=currency,
            )
            purchase.checkout_session_id = session.session_id
            purchase.checkout_url = session.url
            await self.db.commit()
        except (SQLAlchemyError, WrapperException):
            await self.db.rollback()
            raise

        self.logger.info(
            f"Created checkout {session.session_id} for {credits} credits (tenant {tenant_id})"
        )
        return CheckoutModel(
            purchase_id=purchase_id,
            checkout_session_id=session.session_id,
            checkout_url=session.url,
            credit_amount=credits,
            total_amount=total_amount,
            currency=currency,
            status=PurchaseStatus.PENDING.value,
        )

    async def complete_purchase(
        self, checkout_session_id: str, payment_reference: str | None = None
    ) -> PurchaseModel:
        """Mark a checkout as paid and credit the ledger. Safe to call repeatedly."""
        purchase = await self._get_purchase(checkout_session_id=checkout_session_id)
        if purchase.status == PurchaseStatus.COMPLETED:
            self.logger.info(f"Checkout {checkout_session_id} already completed")
            return to_purchase_model(purchase)
        if purchase.status != PurchaseStatus.PENDING:
            raise WrapperException(
                MessageCode.PURCHASE_STATE_CONFLICT,
                status.HTTP_409_CONFLICT,
                details={"status": purchase.status},
            )

        purchase_id = purchase.id
        tenant_id = purchase.tenant_id
        entity_id = purchase.entity_id
        credit_amount = purchase.credit_amount
        package_id = purchase.package_id
        requested_by = purchase.requested_by

        try:
            # Claim the purchase first so concurrent completions credit only once
            claimed = await self.db.execute(
                update(CreditPurchase)
                .where(
                    CreditPurchase.id == purchase_id,
                    CreditPurchase.status == PurchaseStatus.PENDING,
                )
                .values(
                    status=PurchaseStatus.COMPLETED,
                    paid_at=utc_now(),
                    payment_reference=payment_reference or checkout_session_id,
                )
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                await self.db.rollback()
                purchase = await self._get_purchase(id=purchase_id)
                return to_purchase_model(purchase)

            # Commits the status change together with the ledger credit
            await self.operations.purchase_credits(
                tenant_id=tenant_id,
                entity_id=entity_id,
                amount=credit_amount,
                metadata={
                    "purchaseId": str(purchase_id),
                    "checkoutSessionId": checkout_session_id,
                    "packageId": package_id,
                },
                initiated_by=requested_by,
            )
        except (SQLAlchemyError, WrapperException):
            await self.db.rollback()
            raise

        self.logger.info(f"Completed purchase {purchase_id}: {credit_amount} credits")
        return to_purchase_model(await self._get_purchase(id=purchase_id))

    async def refund_purchase(
        self,
        purchase_id: UUID,
        requested_by: UUID | None = None,
        tenant_id: UUID | None = None,
    ) -> PurchaseModel:
        """Take the purchased credits back out of the ledger and refund the payment.

        Only completed purchases whose credits are still available can be
        refunded. The purchase is claimed with a conditional UPDATE before the
        ledger debit, so a second refund of the same purchase gets a conflict.
        A gateway failure rolls the claim and the debit back.
        """
        criteria = {"id": purchase_id}
        if tenant_id is not None:
            criteria["tenant_id"] = tenant_id
        purchase = await self._get_purchase(**criteria)
        if purchase.status != PurchaseStatus.COMPLETED:
            raise WrapperException(
                MessageCode.PURCHASE_STATE_CONFLICT,
                status.HTTP_409_CONFLICT,
                details={"status": purchase.status},
            )

        tenant_id = purchase.tenant_id
        entity_id = purchase.entity_id
        amount = purchase.credit_amount
        payment_reference = purchase.payment_reference or purchase.checkout_session_id

        try:
            claimed = await self.db.execute(
                update(CreditPurchase)
                .where(
                    CreditPurchase.id == purchase_id,
                    CreditPurchase.status == PurchaseStatus.COMPLETED,
                )
                .values(status=PurchaseStatus.REFUNDED, refunded_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                raise WrapperException(
                    MessageCode.PURCHASE_STATE_CONFLICT,
                    status.HTTP_409_CONFLICT,
                    details={"purchase_id": str(purchase_id), "reason": "already refunded"},
                )

            previous_balance, new_balance = await self.core.debit(
                tenant_id, entity_id, amount, updated_by=requested_by, reduce_total=True
            )
            self.core.record_transaction(
                tenant_id=tenant_id,
                entity_id=entity_id,
                transaction_type=TransactionType.REFUND,
                amount=-amount,
                previous_balance=previous_balance,
                new_balance=new_balance,
                operation_code=REFUND_OPERATION,
                description=f"Refund of purchase {purchase_id}",
                metadata={"purchaseId": str(purchase_id)},
                initiated_by=requested_by,
            )
            refund = await self.gateway.create_refund(
                payment_reference, idempotency_key=f"refund-{purchase_id}"
            )
            await self.db.execute(
                update(CreditPurchase)
                .where(CreditPurchase.id == purchase_id)
                .values(refund_reference=refund.refund_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except (SQLAlchemyError, WrapperException):
            await self.db.rollback()
            raise

        self.logger.info(f"Refunded purchase {purchase_id}: {amount} credits")
        return to_purchase_model(await self._get_purchase(id=purchase_id))

    async def handle_payment_event(self, event: PaymentEvent) -> PaymentEventResultModel:
        """Apply a normalized payment notification."""
        if event.event_type == PaymentEventType.CHECKOUT_COMPLETED and event.checkout_session_id:
            purchase = await self.complete_purchase(
                event.checkout_session_id, event.payment_reference
            )
            return PaymentEventResultModel(
                event_type=event.event_type, handled=True, purchase=purchase
            )

        if (
            event.event_type
            in (PaymentEventType.CHECKOUT_EXPIRED, PaymentEventType.PAYMENT_FAILED)
            and event.checkout_session_id
        ):
            purchase = await self._get_purchase(
                checkout_session_id=event.checkout_session_id
            )
            if purchase.status == PurchaseStatus.PENDING:
                purchase.status = PurchaseStatus.FAILED
                await self.db.commit()
                self.logger.info(
                    f"Marked purchase {purchase.id} as failed ({event.event_type})"
                )
            return PaymentEventResultModel(
                event_type=event.event_type,
                handled=True,
                purchase=to_purchase_model(purchase),
            )

        self.logger.info(f"Ignoring payment event {event.event_type}")
        return PaymentEventResultModel(event_type=event.event_type, handled=False)
