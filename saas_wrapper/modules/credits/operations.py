"""Balance-mutating credit operations.

Every mutation changes the ledger through a single conditional UPDATE and
writes exactly one transaction row per affected ledger in the same commit.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.api.credits.schemas import (
    AllocationResultModel,
    CreditMutationModel,
    CreditPackageModel,
    TransferResultModel,
)
from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import EntityType, TransactionType
from saas_wrapper.database.models.base import utc_now
from saas_wrapper.modules.credit_config.service import CreditConfigurationService
from saas_wrapper.modules.credits.constants import (
    ALLOCATION_OPERATION_PREFIX,
    CREDIT_ALLOCATED_EVENT,
    CREDIT_PACKAGES,
    DEFAULT_INITIAL_CREDITS,
    PURCHASE_SOURCE,
)
from saas_wrapper.modules.credits.core import CreditCoreService, validate_credit_amount
from saas_wrapper.modules.events.publisher import EventPublisher
from saas_wrapper.modules.events.service import InterAppEventService
from saas_wrapper.utils.settings.app import AppSettings


class CreditOperationsService(BaseService):
    """Purchases, consumption, transfers and application allocations."""

    def __init__(self, db: AsyncSession, publisher: EventPublisher | None = None):
        super().__init__(db)
        self.core = CreditCoreService(db)
        self.config = CreditConfigurationService(db)
        self.publisher = publisher

    async def add_credits(
        self,
        tenant_id: UUID,
        amount: Decimal,
        source: str,
        entity_id: UUID | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        initiated_by: UUID | None = None,
    ) -> CreditMutationModel:
        """Credit an entity's ledger, creating it on first grant."""
        amount = validate_credit_amount(amount)
        entity_id = await self.core.resolve_entity_id(tenant_id, entity_id)

        ledger = await self.core.get_ledger(tenant_id, entity_id)
        if ledger is None:
            await self.core.require_active_entity(tenant_id, entity_id)
        elif not ledger.is_active:
            raise WrapperException(
                MessageCode.LEDGER_NOT_FOUND,
                status.HTTP_404_NOT_FOUND,
                details={"entity_id": str(entity_id)},
            )

        try:
            if ledger is None:
                ledger = await self.core.create_ledger(
                    tenant_id, entity_id, 0, initiated_by
                )
            new_balance = await self.core.credit(ledger.id, amount, initiated_by)
            previous_balance = new_balance - amount
            transaction = self.core.record_transaction(
                tenant_id=tenant_id,
                entity_id=entity_id,
                transaction_type=TransactionType.PURCHASE,
                amount=amount,
                previous_balance=previous_balance,
                new_balance=new_balance,
                operation_code=source,
                description=description or f"Credits added from {source}",
                metadata=metadata,
                initiated_by=initiated_by,
            )
            await self.db.flush()
            transaction_id = transaction.id
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        self.logger.info(
            f"Added {amount} credits to entity {entity_id} from {source}, balance {new_balance}"
        )
        return CreditMutationModel(
            transaction_id=transaction_id,
            entity_id=entity_id,
            amount=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            operation_code=source,
        )

    async def purchase_credits(
        self,
        tenant_id: UUID,
        entity_id: UUID | None,
        amount: Decimal,
        metadata: dict[str, Any] | None = None,
        initiated_by: UUID | None = None,
    ) -> CreditMutationModel:
        return await self.add_credits(
            tenant_id=tenant_id,
            amount=amount,
            source=PURCHASE_SOURCE,
            entity_id=entity_id,
            description=f"Purchased {amount} credits",
            metadata=metadata,
            initiated_by=initiated_by,
        )

    async def initialize_tenant_credits(
        self,
        tenant_id: UUID,
        initial_credits: Decimal | int = DEFAULT_INITIAL_CREDITS,
        initiated_by: UUID | None = None,
    ) -> bool:
        """Grant the starting balance to the tenant's root organization."""
        root_id = await self.core.resolve_entity_id(tenant_id, None)
        return await self.core.ensure_ledger_record(
            tenant_id,
            EntityType.ORGANIZATION,
            root_id,
            initial_credits,
            initiated_by,
        )

    async def consume_credits(
        self,
        tenant_id: UUID,
        entity_id: UUID | None,
        amount: Decimal | None,
        operation_code: str,
        metadata: dict[str, Any] | None = None,
        initiated_by: UUID | None = None,
    ) -> CreditMutationModel:
        """Charge an operation against an entity's balance.

        ``amount`` is the caller's default cost; a tenant or global
        configuration for ``operation_code`` takes precedence over it.
        """
        if amount is not None:
            amount = validate_credit_amount(amount, allow_zero=True)
        entity_id = await self.core.resolve_entity_id(tenant_id, entity_id)
        cost = await self.config.resolve_operation_cost(
            operation_code, tenant_id, default=amount
        )

        previous_balance, new_balance = await self.core.debit(
            tenant_id, entity_id, cost, updated_by=initiated_by
        )
        try:
            transaction = self.core.record_transaction(
                tenant_id=tenant_id,
                entity_id=entity_id,
                transaction_type=TransactionType.CONSUMPTION,
                amount=-cost,
                previous_balance=previous_balance,
                new_balance=new_balance,
                operation_code=operation_code,
                description=f"Credits consumed for {operation_code}",
                metadata=metadata,
                initiated_by=initiated_by,
            )
            await self.db.flush()
            transaction_id = transaction.id
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        self.logger.info(
            f"Consumed {cost} credits for {operation_code} on entity {entity_id}, balance {new_balance}"
        )
        return CreditMutationModel(
            transaction_id=transaction_id,
            entity_id=entity_id,
            amount=-cost,
            previous_balance=previous_balance,
            new_balance=new_balance,
            operation_code=operation_code,
        )

    async def transfer_credits(
        self,
        tenant_id: UUID,
        from_entity_id: UUID,
        to_entity_id: UUID,
        amount: Decimal,
        metadata: dict[str, Any] | None = None,
        initiated_by: UUID | None = None,
    ) -> TransferResultModel:
        """Move credits between two entities of the same tenant in one commit."""
        amount = validate_credit_amount(amount)
        if from_entity_id == to_entity_id:
            raise WrapperException(
                MessageCode.INVALID_TRANSFER_TARGET,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                details={"reason": "source and destination are the same entity"},
            )
        if await self.core.get_active_entity(tenant_id, to_entity_id) is None:
            raise WrapperException(
                MessageCode.INVALID_TRANSFER_TARGET,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                details={
                    "reason": "destination entity not found or inactive",
                    "to_entity_id": str(to_entity_id),
                },
            )

        source_previous, source_balance = await self.core.debit(
            tenant_id, from_entity_id, amount, updated_by=initiated_by
        )
        transfer_metadata = {
            **(metadata or {}),
            "fromEntityId": str(from_entity_id),
            "toEntityId": str(to_entity_id),
        }
        try:
            destination = await self.core.get_ledger(tenant_id, to_entity_id)
            if destination is None:
                destination = await self.core.create_ledger(
                    tenant_id, to_entity_id, 0, initiated_by
                )
            elif not destination.is_active:
                raise WrapperException(
                    MessageCode.INVALID_TRANSFER_TARGET,
                    status.HTTP_422_UNPROCESSABLE_ENTITY,
                    details={"reason": "destination ledger is inactive"},
                )
            destination_balance = await self.core.credit(
                destination.id, amount, initiated_by
            )

            debit_row = self.core.record_transaction(
                tenant_id=tenant_id,
                entity_id=from_entity_id,
                transaction_type=TransactionType.TRANSFER,
                amount=-amount,
                previous_balance=source_previous,
                new_balance=source_balance,
                operation_code="transfer_out",
                description=f"Transfer to entity {to_entity_id}",
                metadata=transfer_metadata,
                initiated_by=initiated_by,
            )
            credit_row = self.core.record_transaction(
                tenant_id=tenant_id,
                entity_id=to_entity_id,
                transaction_type=TransactionType.TRANSFER,
                amount=amount,
                previous_balance=destination_balance - amount,
                new_balance=destination_balance,
                operation_code="transfer_in",
                description=f"Transfer from entity {from_entity_id}",
                metadata=transfer_metadata,
                initiated_by=initiated_by,
            )
            await self.db.flush()
            transaction_ids = [debit_row.id, credit_row.id]
            await self.db.commit()
        except (SQLAlchemyError, WrapperException):
            # Undo the source debit as well
            await self.db.rollback()
            raise

        self.logger.info(
            f"Transferred {amount} credits from {from_entity_id} to {to_entity_id}"
        )
        return TransferResultModel(
            from_entity_id=from_entity_id,
            to_entity_id=to_entity_id,
            amount=amount,
            source_balance=source_balance,
            destination_balance=destination_balance,
            transaction_ids=transaction_ids,
        )

    async def allocate_credits_to_application(
        self,
        tenant_id: UUID,
        source_entity_id: UUID | None,
        target_application: str,
        amount: Decimal,
        allocation_purpose: str | None = None,
        initiated_by: UUID | None = None,
    ) -> AllocationResultModel:
        """Debit the source for an application and notify that application.

        The notification is sent after commit and its failure does not undo
        the allocation.
        """
        amount = validate_credit_amount(amount)
        source_entity_id = await self.core.resolve_entity_id(tenant_id, source_entity_id)
        operation_code = f"{ALLOCATION_OPERATION_PREFIX}:{target_application}"

        previous_balance, new_balance = await self.core.debit(
            tenant_id, source_entity_id, amount, updated_by=initiated_by
        )
        allocated_at = utc_now()
        try:
            transaction = self.core.record_transaction(
                tenant_id=tenant_id,
                entity_id=source_entity_id,
                transaction_type=TransactionType.ALLOCATION,
                amount=-amount,
                previous_balance=previous_balance,
                new_balance=new_balance,
                operation_code=operation_code,
                description=f"Allocated {amount} credits to {target_application}",
                metadata={
                    "targetApplication": target_application,
                    "allocationPurpose": allocation_purpose,
                },
                initiated_by=initiated_by,
            )
            await self.db.flush()
            transaction_id = transaction.id
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        self.logger.info(
            f"Allocated {amount} credits from {source_entity_id} to {target_application}"
        )

        notified = False
        if self.publisher is not None:
            events = InterAppEventService(self.db, self.publisher)
            result = await events.publish_to_applications(
                event_type=CREDIT_ALLOCATED_EVENT,
                source_app=AppSettings().PLATFORM_APP_CODE,
                target_apps=[target_application],
                tenant_id=tenant_id,
                entity_id=source_entity_id,
                event_data={
                    "tenantId": str(tenant_id),
                    "entityId": str(source_entity_id),
                    "targetApplication": target_application,
                    "amount": str(amount),
                    "allocatedCredits": str(amount),
                    "allocationPurpose": allocation_purpose,
                    "allocationId": str(transaction_id),
                    "transactionId": str(transaction_id),
                    "previousEntityBalance": str(previous_balance),
                    "newEntityBalance": str(new_balance),
                    "availableCredits": str(new_balance),
                    "allocatedAt": allocated_at.isoformat(),
                },
                published_by=str(initiated_by) if initiated_by else "system",
            )
            notified = target_application in result.delivered
        else:
            self.logger.debug("No event publisher configured, skipping allocation notice")

        return AllocationResultModel(
            transaction_id=transaction_id,
            entity_id=source_entity_id,
            amount=-amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            operation_code=operation_code,
            target_application=target_application,
            allocation_purpose=allocation_purpose,
            notified=notified,
        )

    def get_available_packages(self) -> list[CreditPackageModel]:
        return [
            CreditPackageModel(**package.to_dict())
            for package in CREDIT_PACKAGES.values()
        ]
