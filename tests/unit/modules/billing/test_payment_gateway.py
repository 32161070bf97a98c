from decimal import Decimal
from uuid import uuid4

import pytest

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.modules.billing.gateway import MockPaymentGateway, to_minor_units
from tests.utils.assertions import assert_wrapper_exception


@pytest.mark.parametrize(
    "amount, expected",
    [(Decimal("49"), 4900), (Decimal("2.50"), 250), (Decimal("0.015"), 2)],
)
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


class TestMockPaymentGateway:
    async def test_checkout_sessions_get_sequential_ids(self):
        gateway = MockPaymentGateway()
        purchase_id = uuid4()

        first = await gateway.create_checkout_session(
            uuid4(), purchase_id, "Starter Package", Decimal("49"), "usd"
        )
        second = await gateway.create_checkout_session(
            uuid4(), uuid4(), "Starter Package", Decimal("49"), "usd"
        )

        assert (first.session_id, second.session_id) == ("cs_mock_000001", "cs_mock_000002")
        assert first.url == "https://checkout.mock.local/cs_mock_000001"
        assert gateway.checkouts[0]["purchase_id"] == purchase_id

    async def test_refund(self):
        gateway = MockPaymentGateway()

        refund = await gateway.create_refund("pi_123")

        assert refund.status == "succeeded"
        assert gateway.refunds == [
            {"refund_id": refund.refund_id, "payment_reference": "pi_123", "amount": None}
        ]

    async def test_refund_with_same_idempotency_key_is_not_repeated(self):
        gateway = MockPaymentGateway()

        first = await gateway.create_refund("pi_123", idempotency_key="refund-1")
        again = await gateway.create_refund("pi_123", idempotency_key="refund-1")
        other = await gateway.create_refund("pi_123", idempotency_key="refund-2")

        assert again == first
        assert other.refund_id != first.refund_id
        assert [r["refund_id"] for r in gateway.refunds] == [first.refund_id, other.refund_id]

    async def test_declined_refund(self):
        gateway = MockPaymentGateway(fail_refunds=True)

        with pytest.raises(WrapperException) as exc_info:
            await gateway.create_refund("pi_123")

        assert_wrapper_exception(exc_info.value, MessageCode.PAYMENT_GATEWAY_ERROR, 502)
        assert gateway.refunds == []

    async def test_retrieve_subscription(self):
        gateway = MockPaymentGateway()

        subscription = await gateway.retrieve_subscription("sub_123")

        assert subscription.subscription_id == "sub_123"
        assert subscription.status == "active"
        assert subscription.plan_id is None
