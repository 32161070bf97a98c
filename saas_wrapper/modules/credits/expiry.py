"""Expiry of unused credits on ledgers whose credit_expiry has passed."""

import math
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.credits.schemas import (
    ExpiredCreditsModel,
    ExpiringCreditsModel,
    ExpiryRunModel,
    ExpiryStatsModel,
    ExpiryWindowModel,
)
from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import CreditLedgerEntry, TransactionType
from saas_wrapper.database.models.base import ZERO, as_utc, utc_now
from saas_wrapper.modules.credits.constants import EXPIRY_OPERATION
from saas_wrapper.modules.credits.core import CreditCoreService

SECONDS_PER_DAY = 86400


class CreditExpiryService(BaseService):
    def __init__(self, db):
        super().__init__(db)
        self.core = CreditCoreService(db)

    async def find_expired_ledgers(
        self, now: datetime, tenant_id: UUID | None = None
    ) -> list[tuple[UUID, UUID, datetime]]:
        """(tenant_id, entity_id, credit_expiry) of active ledgers holding expired credits."""
        stmt = select(
            CreditLedgerEntry.tenant_id,
            CreditLedgerEntry.entity_id,
            CreditLedgerEntry.credit_expiry,
        ).where(
            CreditLedgerEntry.is_active.is_(True),
            CreditLedgerEntry.credit_expiry.is_not(None),
            CreditLedgerEntry.credit_expiry <= now,
            CreditLedgerEntry.available_credits > 0,
        )
        if tenant_id is not None:
            stmt = stmt.where(CreditLedgerEntry.tenant_id == tenant_id)
        result = await self.db.execute(stmt.order_by(CreditLedgerEntry.credit_expiry))
        return [tuple(row) for row in result.all()]

    async def expire_ledger(
        self, tenant_id: UUID, entity_id: UUID, expired_at: datetime
    ) -> ExpiredCreditsModel | None:
        """Debit everything still available on the ledger and clear its expiry.

        Returns None when nothing was left to expire.
        """
        ledger = await self.core.get_ledger(tenant_id, entity_id)
        if ledger is None or ledger.available_credits <= 0:
            return None
        ledger_id = ledger.id
        amount = ledger.available_credits

        previous_balance, new_balance = await self.core.debit(tenant_id, entity_id, amount)
        try:
            transaction = self.core.record_transaction(
                tenant_id=tenant_id,
                entity_id=entity_id,
                transaction_type=TransactionType.EXPIRY,
                amount=-amount,
                previous_balance=previous_balance,
                new_balance=new_balance,
                operation_code=EXPIRY_OPERATION,
                description=f"{amount} unused credits expired",
                metadata={"expiredAt": expired_at.isoformat()},
            )
            await self.db.execute(
                update(CreditLedgerEntry)
                .where(CreditLedgerEntry.id == ledger_id)
                .values(credit_expiry=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.flush()
            transaction_id = transaction.id
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        self.logger.info(f"Expired {amount} credits on entity {entity_id}")
        return ExpiredCreditsModel(
            tenant_id=tenant_id,
            entity_id=entity_id,
            transaction_id=transaction_id,
            expired_credits=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            expired_at=expired_at,
        )

    async def process_expired_credits(
        self, tenant_id: UUID | None = None, now: datetime | None = None
    ) -> ExpiryRunModel:
        """Expire unused credits on every ledger past its expiry.

        Each ledger is committed on its own; a failure is logged, counted and
        does not stop the run.
        """
        now = now or utc_now()
        expired = []
        error_count = 0
        for ledger_tenant_id, entity_id, credit_expiry in await self.find_expired_ledgers(
            now, tenant_id
        ):
            try:
                result = await self.expire_ledger(
                    ledger_tenant_id, entity_id, as_utc(credit_expiry)
                )
            except (SQLAlchemyError, WrapperException) as e:
                await self.db.rollback()
                error_count += 1
                self.logger.error(f"Failed to expire credits for entity {entity_id}: {e}")
                continue
            if result is not None:
                expired.append(result)

        total_expired = sum((e.expired_credits for e in expired), ZERO)
        self.logger.info(
            f"Credit expiry run: {len(expired)} processed, {error_count} errors, {total_expired} credits expired"
        )
        return ExpiryRunModel(
            processed_count=len(expired),
            error_count=error_count,
            total_expired=total_expired,
            expired=expired,
            processed_at=now,
        )

    async def get_expiring_credits(
        self,
        tenant_id: UUID,
        days_ahead: int = 7,
        entity_id: UUID | None = None,
        now: datetime | None = None,
    ) -> list[ExpiringCreditsModel]:
        """Ledgers whose unused credits expire within ``days_ahead`` days, soonest first."""
        now = now or utc_now()
        stmt = select(CreditLedgerEntry).where(
            CreditLedgerEntry.tenant_id == tenant_id,
            CreditLedgerEntry.is_active.is_(True),
            CreditLedgerEntry.available_credits > 0,
            CreditLedgerEntry.credit_expiry > now,
            CreditLedgerEntry.credit_expiry <= now + timedelta(days=days_ahead),
        )
        if entity_id is not None:
            stmt = stmt.where(CreditLedgerEntry.entity_id == entity_id)
        result = await self.db.execute(
            stmt.order_by(CreditLedgerEntry.credit_expiry).execution_options(
                populate_existing=True
            )
        )

        expiring = []
        for ledger in result.scalars().all():
            credit_expiry = as_utc(ledger.credit_expiry)
            expiring.append(
                ExpiringCreditsModel(
                    entity_id=ledger.entity_id,
                    available_credits=ledger.available_credits,
                    total_credits=ledger.total_credits,
                    credit_expiry=credit_expiry,
                    days_until_expiry=math.ceil(
                        (credit_expiry - now).total_seconds() / SECONDS_PER_DAY
                    ),
                )
            )
        return expiring

    async def _expiry_window(
        self, tenant_id: UUID, after: datetime | None, until: datetime
    ) -> ExpiryWindowModel:
        stmt = select(func.count(), func.sum(CreditLedgerEntry.available_credits)).where(
            CreditLedgerEntry.tenant_id == tenant_id,
            CreditLedgerEntry.is_active.is_(True),
            CreditLedgerEntry.available_credits > 0,
            CreditLedgerEntry.credit_expiry <= until,
        )
        if after is not None:
            stmt = stmt.where(CreditLedgerEntry.credit_expiry > after)
        count, credits = (await self.db.execute(stmt)).one()
        return ExpiryWindowModel(count=count, credits=credits or ZERO)

    async def get_expiry_stats(
        self, tenant_id: UUID, now: datetime | None = None
    ) -> ExpiryStatsModel:
        now = now or utc_now()
        return ExpiryStatsModel(
            expiring_within_7_days=await self._expiry_window(
                tenant_id, now, now + timedelta(days=7)
            ),
            expiring_within_30_days=await self._expiry_window(
                tenant_id, now, now + timedelta(days=30)
            ),
            expired_unprocessed=await self._expiry_window(tenant_id, None, now),
        )
