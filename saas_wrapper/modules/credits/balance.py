"""Read-only views over the credit ledger and transaction log."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from saas_wrapper.api.core.messages import Paginated, PaginationInfo
from saas_wrapper.api.credits.schemas import (
    BalanceAlertModel,
    CreditBalanceModel,
    CreditStatsModel,
    CreditTransactionModel,
    UsagePeriodModel,
    UsageSummaryModel,
)
from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import (
    CreditLedgerEntry,
    CreditTransaction,
    TransactionType,
)
from saas_wrapper.database.models.base import ZERO, CreditAmount, as_utc
from saas_wrapper.modules.credits.constants import BalanceStatus
from saas_wrapper.modules.credits.core import CreditCoreService
from saas_wrapper.utils.settings.credits import CreditSettings


def current_month_range(now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or datetime.now(timezone.utc)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        next_start = start.replace(year=start.year + 1, month=1)
    else:
        next_start = start.replace(month=start.month + 1)
    return start, next_start - timedelta(microseconds=1)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CreditBalanceService(BaseService):
    """Snapshot reads. No locks are taken."""

    def __init__(self, db):
        super().__init__(db)
        self.core = CreditCoreService(db)
        self.settings = CreditSettings()

    def build_alerts(self, ledger: CreditLedgerEntry) -> list[BalanceAlertModel]:
        alerts = []
        available = ledger.available_credits
        if available <= self.settings.CRITICAL_BALANCE_THRESHOLD:
            alerts.append(
                BalanceAlertModel(
                    type="critical_balance",
                    severity="critical",
                    message=f"You have only {available} credits remaining",
                )
            )
        elif available <= self.settings.LOW_BALANCE_THRESHOLD:
            alerts.append(
                BalanceAlertModel(
                    type="low_balance",
                    severity="warning",
                    message=f"You have {available} credits remaining",
                )
            )

        expiry = as_utc(ledger.credit_expiry)
        if expiry:
            days_until_expiry = (expiry - datetime.now(timezone.utc)).days
            if 0 < days_until_expiry <= self.settings.EXPIRY_WARNING_DAYS:
                alerts.append(
                    BalanceAlertModel(
                        type="expiry_warning",
                        severity="critical" if days_until_expiry <= 7 else "warning",
                        message=f"{available} credits expire in {days_until_expiry} days",
                    )
                )
        return alerts

    def to_snapshot(self, ledger: CreditLedgerEntry) -> CreditBalanceModel:
        if not ledger.is_active:
            balance_status = BalanceStatus.INACTIVE
        elif ledger.available_credits > 0:
            balance_status = BalanceStatus.ACTIVE
        else:
            balance_status = BalanceStatus.INSUFFICIENT_CREDITS

        return CreditBalanceModel(
            tenant_id=ledger.tenant_id,
            entity_id=ledger.entity_id,
            available_credits=ledger.available_credits,
            total_credits=ledger.total_credits,
            period_type=ledger.period_type,
            credit_expiry=as_utc(ledger.credit_expiry),
            last_updated_at=as_utc(ledger.last_updated_at),
            status=balance_status,
            alerts=self.build_alerts(ledger),
        )

    async def get_current_balance(
        self, tenant_id: UUID, entity_id: UUID | None = None
    ) -> CreditBalanceModel:
        """Balance of an entity, or of the root organization when none is given.

        A missing ledger yields a zeroed snapshot with status ``no_credits``.
        """
        if entity_id is None:
            entity_id = await self.core.find_root_organization(tenant_id)

        ledger = None
        if entity_id is not None:
            ledger = await self.core.get_ledger(tenant_id, entity_id)

        if ledger is None:
            return CreditBalanceModel(
                tenant_id=tenant_id,
                entity_id=entity_id,
                available_credits=ZERO,
                total_credits=ZERO,
                period_type="month",
                status=BalanceStatus.NO_CREDITS,
                alerts=[
                    BalanceAlertModel(
                        type="no_credit_record",
                        severity="info",
                        message="This entity does not have a credit record yet",
                    )
                ],
            )
        return self.to_snapshot(ledger)

    async def get_entity_balance(
        self, tenant_id: UUID, entity_id: UUID
    ) -> CreditBalanceModel | None:
        ledger = await self.core.get_ledger(tenant_id, entity_id)
        if ledger is None:
            return None
        return self.to_snapshot(ledger)

    async def get_transaction_history(
        self,
        tenant_id: UUID,
        entity_id: UUID | None = None,
        transaction_type: TransactionType | str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> Paginated[CreditTransactionModel]:
        filters = [CreditTransaction.tenant_id == tenant_id]
        if entity_id:
            filters.append(CreditTransaction.entity_id == entity_id)
        if transaction_type:
            filters.append(CreditTransaction.transaction_type == transaction_type)
        if start_date:
            filters.append(CreditTransaction.created_at >= _to_utc(start_date))
        if end_date:
            filters.append(CreditTransaction.created_at <= _to_utc(end_date))

        total = (
            await self.db.execute(
                select(func.count()).select_from(CreditTransaction).where(*filters)
            )
        ).scalar_one()

        page = max(page, 1)
        offset = (page - 1) * limit
        result = await self.db.execute(
            select(CreditTransaction)
            .where(*filters)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id)
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        items = [
            CreditTransactionModel.model_validate(t) for t in result.scalars().all()
        ]
        return Paginated[CreditTransactionModel](
            items=items,
            pagination=PaginationInfo(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + len(items) < total,
            ),
        )

    async def get_usage_summary(
        self,
        tenant_id: UUID,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        entity_id: UUID | None = None,
    ) -> UsageSummaryModel:
        """Aggregate credit movements over a period, the current month by default."""
        if start_date is None or end_date is None:
            default_start, default_end = current_month_range()
            start_date = start_date or default_start
            end_date = end_date or default_end
        start_date, end_date = _to_utc(start_date), _to_utc(end_date)

        filters = [
            CreditTransaction.tenant_id == tenant_id,
            CreditTransaction.created_at >= start_date,
            CreditTransaction.created_at <= end_date,
        ]
        if entity_id:
            filters.append(CreditTransaction.entity_id == entity_id)

        by_type_rows = await self.db.execute(
            select(
                CreditTransaction.transaction_type,
                func.sum(CreditTransaction.amount),
                func.sum(func.abs(CreditTransaction.amount, type_=CreditAmount)),
                func.count(),
            )
            .where(*filters)
            .group_by(CreditTransaction.transaction_type)
        )
        signed: dict[str, Decimal] = {}
        by_transaction_type: dict[str, Decimal] = {}
        transaction_count = 0
        for transaction_type, signed_sum, abs_sum, count in by_type_rows.all():
            signed[transaction_type] = signed_sum or ZERO
            by_transaction_type[transaction_type] = abs_sum or ZERO
            transaction_count += count

        by_operation_rows = await self.db.execute(
            select(CreditTransaction.operation_code, func.sum(CreditTransaction.amount))
            .where(
                *filters,
                CreditTransaction.transaction_type == TransactionType.CONSUMPTION,
            )
            .group_by(CreditTransaction.operation_code)
        )
        by_operation = {
            (operation_code or "unknown"): abs(total or ZERO)
            for operation_code, total in by_operation_rows.all()
        }

        total_consumed = abs(signed.get(TransactionType.CONSUMPTION.value, ZERO))
        total_purchased = signed.get(TransactionType.PURCHASE.value, ZERO)
        total_refunded = abs(signed.get(TransactionType.REFUND.value, ZERO))
        total_allocated = abs(signed.get(TransactionType.ALLOCATION.value, ZERO))
        total_expired = abs(signed.get(TransactionType.EXPIRY.value, ZERO))

        return UsageSummaryModel(
            period=UsagePeriodModel(start_date=start_date, end_date=end_date),
            total_consumed=total_consumed,
            total_purchased=total_purchased,
            total_refunded=total_refunded,
            total_allocated=total_allocated,
            total_expired=total_expired,
            net_credits=total_purchased
            - total_consumed
            - total_refunded
            - total_allocated
            - total_expired,
            transaction_count=transaction_count,
            by_transaction_type=by_transaction_type,
            by_operation=by_operation,
        )

    async def get_credit_stats(self, tenant_id: UUID) -> CreditStatsModel:
        ledger_row = (
            await self.db.execute(
                select(
                    func.sum(CreditLedgerEntry.available_credits),
                    func.sum(CreditLedgerEntry.total_credits),
                    func.count(),
                ).where(
                    CreditLedgerEntry.tenant_id == tenant_id,
                    CreditLedgerEntry.is_active.is_(True),
                )
            )
        ).one()
        transaction_row = (
            await self.db.execute(
                select(
                    func.count(),
                    func.sum(func.abs(CreditTransaction.amount, type_=CreditAmount)),
                ).where(CreditTransaction.tenant_id == tenant_id)
            )
        ).one()

        return CreditStatsModel(
            total_available=ledger_row[0] or ZERO,
            total_credits=ledger_row[1] or ZERO,
            entity_count=ledger_row[2],
            usage=await self.get_usage_summary(tenant_id),
            transaction_count=transaction_row[0],
            transaction_volume=transaction_row[1] or ZERO,
        )
