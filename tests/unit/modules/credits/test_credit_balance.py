from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from saas_wrapper.database.models import TransactionType
from saas_wrapper.modules.credits import CreditBalanceService
from saas_wrapper.modules.credits.balance import current_month_range
from saas_wrapper.modules.credits.constants import BalanceStatus
from tests.factories import CreditTransactionFactory


@pytest.fixture
def service(db_session):
    return CreditBalanceService(db_session)


class TestCurrentBalance:
    async def test_root_balance_by_default(
        self, service, tenant_id, root_organization, create_ledger
    ):
        root_id = root_organization.id
        await create_ledger(root_organization, Decimal("750.00"), Decimal("1000.00"))

        balance = await service.get_current_balance(tenant_id)

        assert balance.entity_id == root_id
        assert balance.available_credits == Decimal("750.00")
        assert balance.total_credits == Decimal("1000.00")
        assert balance.status == BalanceStatus.ACTIVE
        assert balance.alerts == []

    async def test_missing_ledger_returns_zero_snapshot(
        self, service, tenant_id, location
    ):
        location_id = location.id

        balance = await service.get_current_balance(tenant_id, location_id)

        assert balance.entity_id == location_id
        assert balance.available_credits == Decimal("0")
        assert balance.status == BalanceStatus.NO_CREDITS
        assert [a.type for a in balance.alerts] == ["no_credit_record"]

    async def test_tenant_without_organizations(self, service):
        balance = await service.get_current_balance(uuid4())

        assert balance.entity_id is None
        assert balance.status == BalanceStatus.NO_CREDITS

    async def test_entity_balance_none_without_ledger(self, service, tenant_id, location):
        assert await service.get_entity_balance(tenant_id, location.id) is None

    @pytest.mark.parametrize(
        "available, expected_status, expected_alert",
        [
            (Decimal("50.00"), BalanceStatus.ACTIVE, "low_balance"),
            (Decimal("10.00"), BalanceStatus.ACTIVE, "critical_balance"),
            (Decimal("0.00"), BalanceStatus.INSUFFICIENT_CREDITS, "critical_balance"),
        ],
    )
    async def test_balance_alerts(
        self,
        service,
        tenant_id,
        root_organization,
        create_ledger,
        available,
        expected_status,
        expected_alert,
    ):
        await create_ledger(root_organization, available, Decimal("1000.00"))

        balance = await service.get_current_balance(tenant_id)

        assert balance.status == expected_status
        assert [a.type for a in balance.alerts] == [expected_alert]

    @pytest.mark.parametrize("days, severity", [(5, "critical"), (20, "warning")])
    async def test_expiry_warning(
        self, service, tenant_id, root_organization, create_ledger, days, severity
    ):
        await create_ledger(
            root_organization,
            Decimal("500.00"),
            credit_expiry=datetime.now(timezone.utc) + timedelta(days=days),
        )

        balance = await service.get_current_balance(tenant_id)

        [alert] = balance.alerts
        assert alert.type == "expiry_warning"
        assert alert.severity == severity

    async def test_inactive_ledger(
        self, service, tenant_id, root_organization, create_ledger
    ):
        await create_ledger(root_organization, Decimal("500.00"), is_active=False)

        balance = await service.get_current_balance(tenant_id)

        assert balance.status == BalanceStatus.INACTIVE


class TestTransactionHistory:
    async def test_newest_first_with_pagination(
        self, service, db_session, tenant_id, root_organization
    ):
        root_id = root_organization.id
        start = datetime.now(timezone.utc) - timedelta(hours=5)
        for hour in range(5):
            await CreditTransactionFactory.create_async(
                db_session,
                tenant_id=tenant_id,
                entity_id=root_id,
                operation_code=f"op.{hour}",
                created_at=start + timedelta(hours=hour),
            )
        await CreditTransactionFactory.create_async(db_session, entity_id=root_id)
        await db_session.commit()

        first_page = await service.get_transaction_history(tenant_id, page=1, limit=2)
        last_page = await service.get_transaction_history(tenant_id, page=3, limit=2)

        assert [t.operation_code for t in first_page.items] == ["op.4", "op.3"]
        assert first_page.pagination.total == 5
        assert first_page.pagination.has_more is True
        assert [t.operation_code for t in last_page.items] == ["op.0"]
        assert last_page.pagination.offset == 4
        assert last_page.pagination.has_more is False

    async def test_filters(self, service, db_session, tenant_id, root_organization, location):
        root_id, location_id = root_organization.id, location.id
        now = datetime.now(timezone.utc)
        await CreditTransactionFactory.create_async(
            db_session,
            tenant_id=tenant_id,
            entity_id=root_id,
            transaction_type=TransactionType.PURCHASE,
            amount=Decimal("100.00"),
            created_at=now - timedelta(days=10),
        )
        await CreditTransactionFactory.create_async(
            db_session, tenant_id=tenant_id, entity_id=root_id, created_at=now
        )
        await CreditTransactionFactory.create_async(
            db_session, tenant_id=tenant_id, entity_id=location_id, created_at=now
        )
        await db_session.commit()

        by_entity = await service.get_transaction_history(tenant_id, entity_id=location_id)
        by_type = await service.get_transaction_history(
            tenant_id, transaction_type=TransactionType.PURCHASE
        )
        recent = await service.get_transaction_history(
            tenant_id, entity_id=root_id, start_date=now - timedelta(days=1)
        )

        assert [t.entity_id for t in by_entity.items] == [location_id]
        assert [t.amount for t in by_type.items] == [Decimal("100.00")]
        assert [t.transaction_type for t in recent.items] == ["consumption"]


class TestUsageSummary:
    async def test_totals_by_type_and_operation(
        self, service, db_session, tenant_id, root_organization
    ):
        root_id = root_organization.id
        rows = [
            (TransactionType.PURCHASE, "purchase", Decimal("500.00")),
            (TransactionType.CONSUMPTION, "leads.create", Decimal("-30.00")),
            (TransactionType.CONSUMPTION, "leads.create", Decimal("-30.00")),
            (TransactionType.CONSUMPTION, "reports.export", Decimal("-5.00")),
            (TransactionType.REFUND, "refund", Decimal("-100.00")),
            (TransactionType.ALLOCATION, "application_allocation:crm", Decimal("-15.00")),
            (TransactionType.TRANSFER, "transfer_out", Decimal("-20.00")),
        ]
        for transaction_type, operation_code, amount in rows:
            await CreditTransactionFactory.create_async(
                db_session,
                tenant_id=tenant_id,
                entity_id=root_id,
                transaction_type=transaction_type,
                operation_code=operation_code,
                amount=amount,
            )
        await CreditTransactionFactory.create_async(
            db_session,
            tenant_id=tenant_id,
            entity_id=root_id,
            amount=Decimal("-999.00"),
            created_at=datetime.now(timezone.utc) - timedelta(days=400),
        )
        await db_session.commit()

        summary = await service.get_usage_summary(tenant_id)

        assert summary.total_consumed == Decimal("65.00")
        assert summary.total_purchased == Decimal("500.00")
        assert summary.total_refunded == Decimal("100.00")
        assert summary.total_allocated == Decimal("15.00")
        assert summary.net_credits == Decimal("320.00")
        assert summary.transaction_count == 7
        assert summary.by_transaction_type["transfer"] == Decimal("20.00")
        assert summary.by_operation == {
            "leads.create": Decimal("60.00"),
            "reports.export": Decimal("5.00"),
        }

    async def test_stats_cover_active_ledgers(
        self, service, db_session, tenant_id, root_organization, location, create_ledger
    ):
        await create_ledger(root_organization, Decimal("300.00"), Decimal("500.00"))
        await create_ledger(location, Decimal("50.00"))
        await CreditTransactionFactory.create_async(
            db_session, tenant_id=tenant_id, amount=Decimal("-4.00")
        )
        await db_session.commit()

        stats = await service.get_credit_stats(tenant_id)

        assert stats.total_available == Decimal("350.00")
        assert stats.total_credits == Decimal("550.00")
        assert stats.entity_count == 2
        assert stats.transaction_count == 1
        assert stats.transaction_volume == Decimal("4.00")
        assert stats.usage.total_consumed == Decimal("4.00")


def test_current_month_range_handles_december():
    start, end = current_month_range(datetime(2025, 12, 15, 10, tzinfo=timezone.utc))

    assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 1, tzinfo=timezone.utc) - timedelta(microseconds=1)
