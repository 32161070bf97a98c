"""Factories for credit ledger models."""

from decimal import Decimal

import factory
from saas_wrapper.database.models import (
    CreditLedgerEntry,
    CreditPurchase,
    CreditTransaction,
    PurchaseStatus,
    TransactionType,
)
from saas_wrapper.database.models.base import utc_now
from .base import AsyncSQLAlchemyModelFactory, UUIDFactory


class CreditLedgerFactory(AsyncSQLAlchemyModelFactory[CreditLedgerEntry]):
    """Factory for creating CreditLedgerEntry instances."""

    class Meta:
        model = CreditLedgerEntry

    id = UUIDFactory()
    tenant_id = UUIDFactory()
    entity_id = UUIDFactory()
    available_credits = Decimal("100.00")
    total_credits = factory.SelfAttribute("available_credits")
    period_type = "month"
    credit_expiry = None
    is_active = True
    last_updated_at = factory.LazyFunction(utc_now)
    created_at = factory.LazyFunction(utc_now)


class CreditTransactionFactory(AsyncSQLAlchemyModelFactory[CreditTransaction]):
    """Factory for creating CreditTransaction instances."""

    class Meta:
        model = CreditTransaction

    id = UUIDFactory()
    tenant_id = UUIDFactory()
    entity_id = UUIDFactory()
    transaction_type = TransactionType.CONSUMPTION
    amount = Decimal("-1.00")
    previous_balance = Decimal("100.00")
    new_balance = Decimal("99.00")
    operation_code = "leads.create"
    description = factory.Faker("sentence", nb_words=4)
    metadata_json = factory.LazyFunction(dict)
    created_at = factory.LazyFunction(utc_now)


class CreditPurchaseFactory(AsyncSQLAlchemyModelFactory[CreditPurchase]):
    """Factory for creating CreditPurchase instances."""

    class Meta:
        model = CreditPurchase

    id = UUIDFactory()
    tenant_id = UUIDFactory()
    entity_id = UUIDFactory()
    package_id = None
    credit_amount = Decimal("500.00")
    unit_price = Decimal("0.001")
    total_amount = Decimal("0.50")
    currency = "usd"
    status = PurchaseStatus.PENDING
    checkout_session_id = factory.Sequence(lambda n: f"cs_test_{n:06d}")
    created_at = factory.LazyFunction(utc_now)
