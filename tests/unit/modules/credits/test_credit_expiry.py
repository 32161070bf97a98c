"""Expiry of unused credits and the expiring-soon views."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import select

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.database.models import CreditTransaction, TransactionType
from saas_wrapper.modules.credits import CreditCoreService, CreditExpiryService
from tests.factories import CreditLedgerFactory

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


async def _transactions(db_session, entity_id) -> list[CreditTransaction]:
    result = await db_session.execute(
        select(CreditTransaction).where(CreditTransaction.entity_id == entity_id)
    )
    return list(result.scalars().all())


@pytest.fixture
def service(db_session):
    return CreditExpiryService(db_session)


class TestProcessExpiredCredits:
    async def test_unused_credits_are_debited(
        self, service, db_session, tenant_id, root_organization, location, create_ledger
    ):
        root_id, location_id = root_organization.id, location.id
        await create_ledger(
            root_organization,
            Decimal("40.00"),
            Decimal("100.00"),
            credit_expiry=NOW - timedelta(days=1),
        )
        await create_ledger(
            location, Decimal("10.00"), credit_expiry=NOW + timedelta(days=3)
        )

        result = await service.process_expired_credits(now=NOW)

        assert result.processed_count == 1
        assert result.error_count == 0
        assert result.total_expired == Decimal("40.00")
        [expired] = result.expired
        assert expired.entity_id == root_id
        assert expired.previous_balance == Decimal("40.00")
        assert expired.new_balance == Decimal("0.00")

        core = CreditCoreService(db_session)
        ledger = await core.get_ledger(tenant_id, root_id)
        assert ledger.available_credits == Decimal("0.00")
        assert ledger.total_credits == Decimal("100.00")
        assert ledger.credit_expiry is None
        location_ledger = await core.get_ledger(tenant_id, location_id)
        assert location_ledger.available_credits == Decimal("10.00")

        [transaction] = await _transactions(db_session, root_id)
        assert transaction.transaction_type == TransactionType.EXPIRY.value
        assert transaction.amount == Decimal("-40.00")
        assert transaction.operation_code == "credit_expiry"
        assert transaction.id == expired.transaction_id
        assert await _transactions(db_session, location_id) == []

    async def test_second_run_expires_nothing(
        self, service, db_session, root_organization, create_ledger
    ):
        root_id = root_organization.id
        await create_ledger(
            root_organization, Decimal("40.00"), credit_expiry=NOW - timedelta(hours=1)
        )

        await service.process_expired_credits(now=NOW)
        second = await service.process_expired_credits(now=NOW + timedelta(days=1))

        assert second.processed_count == 0
        assert second.total_expired == Decimal("0.00")
        assert len(await _transactions(db_session, root_id)) == 1

    async def test_empty_ledgers_are_skipped(
        self, service, root_organization, create_ledger
    ):
        await create_ledger(
            root_organization,
            Decimal("0.00"),
            Decimal("50.00"),
            credit_expiry=NOW - timedelta(days=1),
        )

        result = await service.process_expired_credits(now=NOW)

        assert result.processed_count == 0
        assert result.expired == []

    async def test_failed_ledger_does_not_stop_the_run(
        self, service, db_session, tenant_id, root_organization, location, create_ledger
    ):
        root_id, location_id = root_organization.id, location.id
        await create_ledger(
            root_organization, Decimal("40.00"), credit_expiry=NOW - timedelta(days=2)
        )
        await create_ledger(
            location, Decimal("10.00"), credit_expiry=NOW - timedelta(days=1)
        )
        debit = service.core.debit

        async def debit_failing_for_root(tenant, entity_id, amount, **kwargs):
            if entity_id == root_id:
                raise WrapperException(MessageCode.LEDGER_CONFLICT, 409)
            return await debit(tenant, entity_id, amount, **kwargs)

        with patch.object(service.core, "debit", side_effect=debit_failing_for_root):
            result = await service.process_expired_credits(now=NOW)

        assert result.processed_count == 1
        assert result.error_count == 1
        assert [e.entity_id for e in result.expired] == [location_id]
        core = CreditCoreService(db_session)
        root_ledger = await core.get_ledger(tenant_id, root_id)
        assert root_ledger.available_credits == Decimal("40.00")
        assert root_ledger.credit_expiry is not None
        assert await _transactions(db_session, root_id) == []

    async def test_tenant_scope(
        self, service, db_session, tenant_id, root_organization, create_ledger
    ):
        other_tenant_id = uuid4()
        await create_ledger(
            root_organization, Decimal("40.00"), credit_expiry=NOW - timedelta(days=1)
        )
        other = await CreditLedgerFactory.create_async(
            db_session,
            tenant_id=other_tenant_id,
            available_credits=Decimal("25.00"),
            credit_expiry=NOW - timedelta(days=1),
        )
        other_entity_id = other.entity_id
        await db_session.commit()

        result = await service.process_expired_credits(tenant_id=tenant_id, now=NOW)

        assert [e.tenant_id for e in result.expired] == [tenant_id]
        ledger = await CreditCoreService(db_session).get_ledger(
            other_tenant_id, other_entity_id
        )
        assert ledger.available_credits == Decimal("25.00")


class TestExpiringCredits:
    async def test_lists_ledgers_expiring_within_window(
        self, service, tenant_id, root_organization, location, create_ledger
    ):
        root_id, location_id = root_organization.id, location.id
        await create_ledger(
            root_organization,
            Decimal("40.00"),
            credit_expiry=NOW + timedelta(days=1, hours=12),
        )
        await create_ledger(
            location, Decimal("10.00"), credit_expiry=NOW + timedelta(days=20)
        )

        within_week = await service.get_expiring_credits(tenant_id, 7, now=NOW)
        within_month = await service.get_expiring_credits(tenant_id, 30, now=NOW)

        assert [(e.entity_id, e.days_until_expiry) for e in within_week] == [
            (root_id, 2)
        ]
        assert within_week[0].available_credits == Decimal("40.00")
        assert [e.entity_id for e in within_month] == [root_id, location_id]

    async def test_already_expired_and_empty_ledgers_are_not_listed(
        self, service, tenant_id, root_organization, location, create_ledger
    ):
        await create_ledger(
            root_organization, Decimal("40.00"), credit_expiry=NOW - timedelta(days=1)
        )
        await create_ledger(
            location,
            Decimal("0.00"),
            Decimal("10.00"),
            credit_expiry=NOW + timedelta(days=1),
        )

        assert await service.get_expiring_credits(tenant_id, 7, now=NOW) == []

    async def test_entity_filter(
        self, service, tenant_id, root_organization, location, create_ledger
    ):
        location_id = location.id
        await create_ledger(
            root_organization, Decimal("40.00"), credit_expiry=NOW + timedelta(days=1)
        )
        await create_ledger(
            location, Decimal("10.00"), credit_expiry=NOW + timedelta(days=2)
        )

        expiring = await service.get_expiring_credits(
            tenant_id, 7, entity_id=location_id, now=NOW
        )

        assert [e.entity_id for e in expiring] == [location_id]


async def test_expiry_stats(service, tenant_id, root_organization, location, create_ledger):
    await create_ledger(
        root_organization, Decimal("40.00"), credit_expiry=NOW + timedelta(days=3)
    )
    await create_ledger(location, Decimal("10.00"), credit_expiry=NOW + timedelta(days=20))

    stats = await service.get_expiry_stats(tenant_id, now=NOW)

    assert stats.expiring_within_7_days.count == 1
    assert stats.expiring_within_7_days.credits == Decimal("40.00")
    assert stats.expiring_within_30_days.count == 2
    assert stats.expiring_within_30_days.credits == Decimal("50.00")
    assert stats.expired_unprocessed.count == 0
    assert stats.expired_unprocessed.credits == Decimal("0.00")
