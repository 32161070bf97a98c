from decimal import Decimal
from uuid import uuid4
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.attributes import set_committed_value

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.api.payments.schemas import PaymentEvent, PaymentEventType
from saas_wrapper.database.models import CreditTransaction, PurchaseStatus
from saas_wrapper.modules.billing.gateway import MockPaymentGateway
from saas_wrapper.modules.credits import CreditCoreService, CreditPurchaseService
from tests.factories import CreditPurchaseFactory
from tests.utils.assertions import assert_wrapper_exception


@pytest.fixture
def service(db_session, gateway):
    return CreditPurchaseService(db_session, gateway)


async def _completed_purchase(service, tenant_id, **checkout_kwargs):
    checkout = await service.create_checkout(tenant_id, **checkout_kwargs)
    await service.complete_purchase(checkout.checkout_session_id, "pi_123")
    return checkout


class TestCreateCheckout:
    async def test_package_checkout(
        self, service, gateway: MockPaymentGateway, tenant_id, root_organization
    ):
        root_id = root_organization.id

        checkout = await service.create_checkout(tenant_id, package_id="starter")

        assert checkout.status == "pending"
        assert checkout.credit_amount == Decimal("1000")
        assert checkout.total_amount == Decimal("49")
        assert checkout.currency == "usd"
        assert checkout.checkout_session_id == "cs_mock_000001"
        assert checkout.checkout_url.endswith("cs_mock_000001")
        assert gateway.checkouts[0]["purchase_id"] == checkout.purchase_id

        purchase = await service._get_purchase(id=checkout.purchase_id)
        assert purchase.entity_id == root_id
        assert purchase.status == PurchaseStatus.PENDING

    async def test_custom_amount_checkout(self, service, tenant_id, location):
        checkout = await service.create_checkout(
            tenant_id, credit_amount=Decimal("2500"), entity_id=location.id
        )

        assert checkout.credit_amount == Decimal("2500")
        assert checkout.total_amount == Decimal("2.50")

    @pytest.mark.parametrize(
        "kwargs, message_code, status_code",
        [
            ({"package_id": "platinum"}, MessageCode.PACKAGE_NOT_FOUND, 404),
            ({"credit_amount": Decimal("0")}, MessageCode.INVALID_AMOUNT, 422),
            ({}, MessageCode.INVALID_INPUT, 422),
        ],
    )
    async def test_invalid_checkout_request(
        self, service, gateway, tenant_id, root_organization, kwargs, message_code, status_code
    ):
        with pytest.raises(WrapperException) as exc_info:
            await service.create_checkout(tenant_id, **kwargs)

        assert_wrapper_exception(exc_info.value, message_code, status_code)
        assert gateway.checkouts == []


class TestCompletePurchase:
    async def test_completion_credits_ledger_once(
        self, service, db_session, tenant_id, root_organization
    ):
        root_id = root_organization.id
        checkout = await service.create_checkout(tenant_id, package_id="starter")

        first = await service.complete_purchase(checkout.checkout_session_id, "pi_123")
        second = await service.complete_purchase(checkout.checkout_session_id, "pi_123")

        assert first.status == second.status == "completed"
        assert first.payment_reference == "pi_123"
        assert first.paid_at is not None

        ledger = await CreditCoreService(db_session).get_ledger(tenant_id, root_id)
        assert ledger.available_credits == Decimal("1000.00")
        transactions = (
            await db_session.execute(
                select(CreditTransaction).where(CreditTransaction.entity_id == root_id)
            )
        ).scalars().all()
        assert len(transactions) == 1
        assert transactions[0].metadata_json["purchaseId"] == str(checkout.purchase_id)

    async def test_failed_purchase_cannot_complete(self, service, db_session, tenant_id):
        purchase = await CreditPurchaseFactory.create_async(
            db_session, tenant_id=tenant_id, status=PurchaseStatus.FAILED
        )
        session_id = purchase.checkout_session_id
        await db_session.commit()

        with pytest.raises(WrapperException) as exc_info:
            await service.complete_purchase(session_id)

        assert_wrapper_exception(exc_info.value, MessageCode.PURCHASE_STATE_CONFLICT, 409)

    async def test_unknown_checkout_session(self, service):
        with pytest.raises(WrapperException) as exc_info:
            await service.complete_purchase("cs_unknown")

        assert_wrapper_exception(exc_info.value, MessageCode.PURCHASE_NOT_FOUND, 404)


class TestRefundPurchase:
    async def test_refund_removes_purchased_credits(
        self, service, gateway, db_session, tenant_id, root_organization
    ):
        root_id = root_organization.id
        checkout = await _completed_purchase(service, tenant_id, package_id="starter")

        refunded = await service.refund_purchase(checkout.purchase_id, tenant_id=tenant_id)

        assert refunded.status == "refunded"
        assert refunded.refund_reference == "re_mock_000002"
        assert gateway.refunds[0]["payment_reference"] == "pi_123"
        ledger = await CreditCoreService(db_session).get_ledger(tenant_id, root_id)
        assert ledger.available_credits == Decimal("0.00")
        assert ledger.total_credits == Decimal("0.00")

        refund_rows = (
            await db_session.execute(
                select(CreditTransaction).where(
                    CreditTransaction.entity_id == root_id,
                    CreditTransaction.transaction_type == "refund",
                )
            )
        ).scalars().all()
        assert [row.amount for row in refund_rows] == [Decimal("-1000.00")]

    async def test_gateway_failure_restores_balance(
        self, db_session, tenant_id, root_organization
    ):
        root_id = root_organization.id
        service = CreditPurchaseService(db_session, MockPaymentGateway(fail_refunds=True))
        checkout = await _completed_purchase(service, tenant_id, package_id="starter")
        purchase_id = checkout.purchase_id

        with pytest.raises(WrapperException) as exc_info:
            await service.refund_purchase(purchase_id)

        assert_wrapper_exception(exc_info.value, MessageCode.PAYMENT_GATEWAY_ERROR, 502)
        ledger = await CreditCoreService(db_session).get_ledger(tenant_id, root_id)
        assert ledger.available_credits == Decimal("1000.00")
        purchase = await service._get_purchase(id=purchase_id)
        assert purchase.status == PurchaseStatus.COMPLETED

    async def test_second_refund_conflicts_even_with_stale_status(
        self, service, gateway, db_session, tenant_id, root_organization
    ):
        root_id = root_organization.id
        checkout = await _completed_purchase(service, tenant_id, package_id="starter")
        # Enough balance that a second refund would not fail on funds
        await service.operations.purchase_credits(tenant_id, None, Decimal("1000"))
        await service.refund_purchase(checkout.purchase_id)

        read_purchase = service._get_purchase

        async def stale_read(**criteria):
            purchase = await read_purchase(**criteria)
            set_committed_value(purchase, "status", PurchaseStatus.COMPLETED.value)
            return purchase

        with patch.object(service, "_get_purchase", side_effect=stale_read):
            with pytest.raises(WrapperException) as exc_info:
                await service.refund_purchase(checkout.purchase_id)

        assert_wrapper_exception(exc_info.value, MessageCode.PURCHASE_STATE_CONFLICT, 409)
        assert len(gateway.refunds) == 1
        ledger = await CreditCoreService(db_session).get_ledger(tenant_id, root_id)
        assert ledger.available_credits == Decimal("1000.00")

    async def test_retry_after_failed_commit_refunds_once(
        self, service, gateway, db_session, tenant_id, root_organization
    ):
        root_id = root_organization.id
        checkout = await _completed_purchase(service, tenant_id, package_id="starter")
        commit = db_session.commit
        attempts = []

        async def commit_fails_once():
            attempts.append(1)
            if len(attempts) == 1:
                raise OperationalError("COMMIT", {}, Exception("connection lost"))
            await commit()

        with patch.object(db_session, "commit", side_effect=commit_fails_once):
            with pytest.raises(OperationalError):
                await service.refund_purchase(checkout.purchase_id)
            refunded = await service.refund_purchase(checkout.purchase_id)

        assert refunded.status == "refunded"
        assert len(gateway.refunds) == 1
        assert refunded.refund_reference == gateway.refunds[0]["refund_id"]
        ledger = await CreditCoreService(db_session).get_ledger(tenant_id, root_id)
        assert ledger.available_credits == Decimal("0.00")

    async def test_spent_credits_cannot_be_refunded(
        self, service, db_session, tenant_id, root_organization
    ):
        checkout = await _completed_purchase(service, tenant_id, package_id="starter")
        await service.operations.consume_credits(
            tenant_id, None, Decimal("10"), "leads.create"
        )

        with pytest.raises(WrapperException) as exc_info:
            await service.refund_purchase(checkout.purchase_id)

        assert_wrapper_exception(exc_info.value, MessageCode.INSUFFICIENT_CREDITS, 402)

    async def test_pending_purchase_cannot_be_refunded(
        self, service, tenant_id, root_organization
    ):
        checkout = await service.create_checkout(tenant_id, package_id="starter")

        with pytest.raises(WrapperException) as exc_info:
            await service.refund_purchase(checkout.purchase_id)

        assert_wrapper_exception(exc_info.value, MessageCode.PURCHASE_STATE_CONFLICT, 409)

    async def test_refund_scoped_to_tenant(self, service, tenant_id, root_organization):
        checkout = await _completed_purchase(service, tenant_id, package_id="starter")

        with pytest.raises(WrapperException) as exc_info:
            await service.refund_purchase(checkout.purchase_id, tenant_id=uuid4())

        assert_wrapper_exception(exc_info.value, MessageCode.PURCHASE_NOT_FOUND, 404)


class TestHandlePaymentEvent:
    async def test_checkout_completed(self, service, tenant_id, root_organization):
        checkout = await service.create_checkout(tenant_id, credit_amount=Decimal("300"))

        result = await service.handle_payment_event(
            PaymentEvent(
                event_type=PaymentEventType.CHECKOUT_COMPLETED,
                checkout_session_id=checkout.checkout_session_id,
                payment_reference="pi_999",
            )
        )

        assert result.handled is True
        assert result.purchase.status == "completed"
        assert result.purchase.payment_reference == "pi_999"

    @pytest.mark.parametrize(
        "event_type", [PaymentEventType.CHECKOUT_EXPIRED, PaymentEventType.PAYMENT_FAILED]
    )
    async def test_pending_purchase_marked_failed(
        self, service, tenant_id, root_organization, event_type
    ):
        checkout = await service.create_checkout(tenant_id, package_id="starter")

        result = await service.handle_payment_event(
            PaymentEvent(
                event_type=event_type, checkout_session_id=checkout.checkout_session_id
            )
        )

        assert result.handled is True
        assert result.purchase.status == "failed"

    async def test_expiry_after_completion_is_a_no_op(
        self, service, tenant_id, root_organization
    ):
        checkout = await _completed_purchase(service, tenant_id, package_id="starter")

        result = await service.handle_payment_event(
            PaymentEvent(
                event_type=PaymentEventType.CHECKOUT_EXPIRED,
                checkout_session_id=checkout.checkout_session_id,
            )
        )

        assert result.purchase.status == "completed"

    async def test_unrelated_event_is_ignored(self, service):
        result = await service.handle_payment_event(
            PaymentEvent(event_type="invoice.upcoming")
        )

        assert result.handled is False
        assert result.purchase is None
