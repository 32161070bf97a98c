"""Credit core: entity resolution and ledger primitives shared by credit services."""

from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import status
from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import (
    Application,
    ApplicationModule,
    CreditLedgerEntry,
    CreditTransaction,
    Entity,
    EntityType,
    MembershipStatus,
    OrganizationMembership,
    TransactionType,
)
from saas_wrapper.database.models.base import ZERO, fits_credit_precision, utc_now
from saas_wrapper.modules.credits.constants import INITIALIZATION_OPERATION
from saas_wrapper.utils.settings.credits import CreditSettings

DEFAULT_MODULE_ACTIONS = ("view", "create", "edit", "delete", "export", "import")
SYSTEM_APP_CODE = "system"


def validate_credit_amount(amount: Decimal | int, allow_zero: bool = False) -> Decimal:
    """Reject negative amounts, zero unless allowed, and fractions of a cent."""
    amount = Decimal(amount)
    if (
        not fits_credit_precision(amount)
        or amount < 0
        or (amount == 0 and not allow_zero)
    ):
        raise WrapperException(
            MessageCode.INVALID_AMOUNT,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"amount": str(amount)},
        )
    return amount


def qualify_actions(app_code: str, module_code: str, actions: list[str]) -> list[str]:
    """Turn bare action codes into app.module.action strings."""
    qualified = []
    for action in actions:
        if "." in action:
            qualified.append(action)
        else:
            qualified.append(f"{app_code}.{module_code}.{action}")
    return qualified


class CreditCoreService(BaseService):
    """Entity resolution, lazy ledger creation and atomic balance updates."""

    async def find_root_organization(self, tenant_id: UUID) -> UUID | None:
        """Resolve the tenant's root organization.

        Order: primary active membership on an active organization, then the
        default active root organization, then the most recently created
        active root organization. Returns None when the tenant has none.
        """
        primary = await self.db.execute(
            select(Entity.id)
            .join(OrganizationMembership, OrganizationMembership.entity_id == Entity.id)
            .where(
                OrganizationMembership.tenant_id == tenant_id,
                OrganizationMembership.is_primary.is_(True),
                OrganizationMembership.membership_status == MembershipStatus.ACTIVE,
                OrganizationMembership.entity_type == EntityType.ORGANIZATION,
                Entity.tenant_id == tenant_id,
                Entity.is_active.is_(True),
            )
            .order_by(OrganizationMembership.created_at.desc())
            .limit(1)
        )
        entity_id = primary.scalar_one_or_none()
        if entity_id:
            return entity_id

        root_filter = and_(
            Entity.tenant_id == tenant_id,
            Entity.entity_type == EntityType.ORGANIZATION,
            Entity.parent_entity_id.is_(None),
            Entity.is_active.is_(True),
        )

        default = await self.db.execute(
            select(Entity.id)
            .where(root_filter, Entity.is_default.is_(True))
            .order_by(Entity.created_at.desc())
            .limit(1)
        )
        entity_id = default.scalar_one_or_none()
        if entity_id:
            return entity_id

        latest = await self.db.execute(
            select(Entity.id)
            .where(root_filter)
            .order_by(Entity.created_at.desc())
            .limit(1)
        )
        entity_id = latest.scalar_one_or_none()
        if entity_id is None:
            self.logger.warning(f"No root organization found for tenant {tenant_id}")
        return entity_id

    async def resolve_entity_id(self, tenant_id: UUID, entity_id: UUID | None) -> UUID:
        if entity_id:
            return entity_id
        root_id = await self.find_root_organization(tenant_id)
        if root_id is None:
            raise WrapperException(
                MessageCode.ROOT_ORGANIZATION_NOT_FOUND,
                status.HTTP_404_NOT_FOUND,
                details={"tenant_id": str(tenant_id)},
            )
        return root_id

    async def get_active_entity(
        self,
        tenant_id: UUID,
        entity_id: UUID,
        entity_type: EntityType | str | None = None,
    ) -> Entity | None:
        stmt = select(Entity).where(
            Entity.id == entity_id,
            Entity.tenant_id == tenant_id,
            Entity.is_active.is_(True),
        )
        if entity_type:
            stmt = stmt.where(Entity.entity_type == entity_type)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def require_active_entity(self, tenant_id: UUID, entity_id: UUID) -> Entity:
        entity = await self.get_active_entity(tenant_id, entity_id)
        if entity is None:
            raise WrapperException(
                MessageCode.ENTITY_NOT_FOUND,
                status.HTTP_404_NOT_FOUND,
                details={"entity_id": str(entity_id)},
            )
        return entity

    async def get_ledger(
        self, tenant_id: UUID, entity_id: UUID
    ) -> CreditLedgerEntry | None:
        result = await self.db.execute(
            select(CreditLedgerEntry)
            .where(
                CreditLedgerEntry.tenant_id == tenant_id,
                CreditLedgerEntry.entity_id == entity_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def ensure_ledger_record(
        self,
        tenant_id: UUID,
        entity_type: EntityType | str = EntityType.ORGANIZATION,
        entity_id: UUID | None = None,
        initial_credits: Decimal | int = 0,
        initiated_by: UUID | None = None,
    ) -> bool:
        """Create the ledger row for an entity if it does not exist yet.

        Returns True when a row was created. A missing or inactive entity and
        an existing ledger both return False.
        """
        if entity_id is None:
            entity_id = await self.find_root_organization(tenant_id)
            if entity_id is None:
                return False

        entity = await self.get_active_entity(tenant_id, entity_id, entity_type)
        if entity is None:
            self.logger.warning(
                f"Cannot create ledger: {entity_type} {entity_id} not found or inactive"
            )
            return False

        if await self.get_ledger(tenant_id, entity_id) is not None:
            return False

        await self.create_ledger(tenant_id, entity_id, initial_credits, initiated_by)
        await self.db.commit()
        self.logger.info(
            f"Created credit ledger for {entity_type} {entity_id} with {initial_credits} credits"
        )
        return True

    async def create_ledger(
        self,
        tenant_id: UUID,
        entity_id: UUID,
        initial_credits: Decimal | int = 0,
        initiated_by: UUID | None = None,
    ) -> CreditLedgerEntry:
        """Insert a ledger row without committing."""
        initial = Decimal(initial_credits)
        ledger = CreditLedgerEntry(
            tenant_id=tenant_id,
            entity_id=entity_id,
            available_credits=initial,
            total_credits=initial,
            is_active=True,
            last_updated_by=initiated_by,
        )
        self.db.add(ledger)
        if initial > 0:
            self.record_transaction(
                tenant_id=tenant_id,
                entity_id=entity_id,
                transaction_type=TransactionType.PURCHASE,
                amount=initial,
                previous_balance=ZERO,
                new_balance=initial,
                operation_code=INITIALIZATION_OPERATION,
                description="Initial credit balance",
                initiated_by=initiated_by,
            )
        await self.db.flush()
        return ledger

    async def deactivate_ledger(self, tenant_id: UUID, entity_id: UUID) -> bool:
        result = await self.db.execute(
            update(CreditLedgerEntry)
            .where(
                CreditLedgerEntry.tenant_id == tenant_id,
                CreditLedgerEntry.entity_id == entity_id,
                CreditLedgerEntry.is_active.is_(True),
            )
            .values(is_active=False, last_updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        deactivated = result.rowcount > 0
        if deactivated:
            self.logger.info(f"Deactivated credit ledger for entity {entity_id}")
        return deactivated

    def record_transaction(
        self,
        tenant_id: UUID,
        entity_id: UUID,
        transaction_type: TransactionType,
        amount: Decimal,
        previous_balance: Decimal,
        new_balance: Decimal,
        operation_code: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        initiated_by: UUID | None = None,
    ) -> CreditTransaction:
        transaction = CreditTransaction(
            tenant_id=tenant_id,
            entity_id=entity_id,
            transaction_type=transaction_type,
            amount=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            operation_code=operation_code,
            description=description,
            metadata_json=metadata or {},
            initiated_by=initiated_by,
        )
        self.db.add(transaction)
        return transaction

    async def debit(
        self,
        tenant_id: UUID,
        entity_id: UUID,
        amount: Decimal,
        updated_by: UUID | None = None,
        reduce_total: bool = False,
    ) -> tuple[Decimal, Decimal]:
        """Atomically subtract ``amount`` from the entity's available credits.

        The check and the decrement are one conditional UPDATE. When the
        snapshot said the balance was sufficient but the UPDATE matched no
        row, the row changed concurrently: re-read and retry, then give up
        with LEDGER_CONFLICT. Returns (previous_balance, new_balance).
        Nothing is committed here.
        """
        amount = validate_credit_amount(amount, allow_zero=True)
        retries = CreditSettings().LEDGER_CONFLICT_RETRIES
        attempt = 0
        while True:
            ledger = await self.get_ledger(tenant_id, entity_id)
            if ledger is None or not ledger.is_active:
                raise WrapperException(
                    MessageCode.LEDGER_NOT_FOUND,
                    status.HTTP_404_NOT_FOUND,
                    details={"entity_id": str(entity_id)},
                )
            if ledger.available_credits < amount:
                raise WrapperException(
                    MessageCode.INSUFFICIENT_CREDITS,
                    status.HTTP_402_PAYMENT_REQUIRED,
                    details={
                        "available_credits": str(ledger.available_credits),
                        "required_credits": str(amount),
                    },
                )

            values: dict[str, Any] = {
                "available_credits": CreditLedgerEntry.available_credits - amount,
                "last_updated_at": utc_now(),
                "last_updated_by": updated_by,
            }
            if reduce_total:
                values["total_credits"] = CreditLedgerEntry.total_credits - amount

            result = await self.db.execute(
                update(CreditLedgerEntry)
                .where(
                    CreditLedgerEntry.id == ledger.id,
                    CreditLedgerEntry.is_active.is_(True),
                    CreditLedgerEntry.available_credits >= amount,
                )
                .values(**values)
                .returning(CreditLedgerEntry.available_credits)
                .execution_options(synchronize_session=False)
            )
            new_balance = result.scalar_one_or_none()
            if new_balance is not None:
                return new_balance + amount, new_balance

            if attempt >= retries:
                self.logger.warning(
                    f"Ledger conflict for entity {entity_id} after {attempt + 1} attempts"
                )
                raise WrapperException(
                    MessageCode.LEDGER_CONFLICT,
                    status.HTTP_409_CONFLICT,
                    details={"entity_id": str(entity_id)},
                )
            attempt += 1
            self.logger.warning(
                f"Ledger for entity {entity_id} changed during debit, retrying"
            )

    async def credit(
        self,
        ledger_id: UUID,
        amount: Decimal,
        updated_by: UUID | None = None,
    ) -> Decimal:
        """Add ``amount`` to available and total credits. Returns the new balance."""
        amount = validate_credit_amount(amount)
        result = await self.db.execute(
            update(CreditLedgerEntry)
            .where(CreditLedgerEntry.id == ledger_id)
            .values(
                available_credits=CreditLedgerEntry.available_credits + amount,
                total_credits=CreditLedgerEntry.total_credits + amount,
                last_updated_at=utc_now(),
                last_updated_by=updated_by,
            )
            .returning(CreditLedgerEntry.available_credits)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one()

    async def resolve_module_permissions(
        self, module_code: str, app_code: str | None = None
    ) -> list[str]:
        """Fully qualified permissions for a module. Never raises, never empty."""
        try:
            stmt = (
                select(ApplicationModule.permissions, Application.app_code)
                .join(Application, Application.id == ApplicationModule.app_id)
                .where(ApplicationModule.module_code == module_code)
            )
            if app_code:
                stmt = stmt.where(Application.app_code == app_code)
            row = (await self.db.execute(stmt.limit(1))).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to resolve permissions for module {module_code}: {e}")
            row = None

        if row is None:
            owner = app_code or SYSTEM_APP_CODE
            return qualify_actions(owner, module_code, list(DEFAULT_MODULE_ACTIONS))

        permissions, owner = row
        actions = [p for p in (permissions or []) if p]
        if not actions:
            actions = list(DEFAULT_MODULE_ACTIONS)
        return qualify_actions(owner, module_code, actions)
