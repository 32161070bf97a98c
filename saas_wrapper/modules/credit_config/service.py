"""Operation cost configuration: global defaults, tenant overrides and templates."""

from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import status
from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.api.credit_config.schemas import (
    BulkConfigUpdate,
    BulkUpdateItemResult,
    BulkUpdateResultModel,
    ConfigurationTemplateModel,
    CreateTemplateRequest,
    OperationConfigInput,
    OperationConfigModel,
    ResetResultModel,
    TemplateApplyResultModel,
    TemplateOperationConfig,
)
from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import (
    ConfigChangeType,
    ConfigurationChangeLog,
    CreditConfiguration,
    CreditConfigurationTemplate,
)
from saas_wrapper.database.models.base import as_utc, fits_credit_precision, utc_now
from saas_wrapper.utils.settings.credits import CreditSettings


def config_values(config: CreditConfiguration) -> dict[str, Any]:
    return {
        "operation_code": config.operation_code,
        "operation_name": config.operation_name,
        "module_code": config.module_code,
        "app_code": config.app_code,
        "credit_cost": str(config.credit_cost),
        "unit": config.unit,
        "is_active": config.is_active,
    }


def to_config_model(config: CreditConfiguration) -> OperationConfigModel:
    return OperationConfigModel(
        id=config.id,
        operation_code=config.operation_code,
        operation_name=config.operation_name,
        module_code=config.module_code,
        app_code=config.app_code,
        credit_cost=config.credit_cost,
        unit=config.unit,
        is_active=config.is_active,
        is_global=config.is_global,
        tenant_id=config.tenant_id,
        updated_at=as_utc(config.updated_at),
        config_source="global" if config.is_global else "tenant",
    )


class CreditConfigurationService(BaseService):
    async def _find_config(
        self, operation_code: str, tenant_id: UUID | None
    ) -> CreditConfiguration | None:
        stmt = select(CreditConfiguration).where(
            CreditConfiguration.operation_code == operation_code
        )
        if tenant_id is None:
            stmt = stmt.where(
                CreditConfiguration.is_global.is_(True),
                CreditConfiguration.tenant_id.is_(None),
            )
        else:
            stmt = stmt.where(
                CreditConfiguration.is_global.is_(False),
                CreditConfiguration.tenant_id == tenant_id,
            )
        result = await self.db.execute(
            stmt.order_by(CreditConfiguration.updated_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_global_operation_configs(self) -> list[OperationConfigModel]:
        result = await self.db.execute(
            select(CreditConfiguration)
            .where(CreditConfiguration.is_global.is_(True))
            .order_by(CreditConfiguration.operation_code)
        )
        return [to_config_model(c) for c in result.scalars().all()]

    async def get_tenant_operation_configs(
        self, tenant_id: UUID
    ) -> list[OperationConfigModel]:
        result = await self.db.execute(
            select(CreditConfiguration)
            .where(
                CreditConfiguration.is_global.is_(False),
                CreditConfiguration.tenant_id == tenant_id,
            )
            .order_by(CreditConfiguration.operation_code)
        )
        return [to_config_model(c) for c in result.scalars().all()]

    async def get_tenant_configurations(
        self, tenant_id: UUID
    ) -> list[OperationConfigModel]:
        """Effective configuration: tenant rows shadow global rows by operation code."""
        effective = {c.operation_code: c for c in await self.get_global_operation_configs()}
        for config in await self.get_tenant_operation_configs(tenant_id):
            effective[config.operation_code] = config
        return [effective[code] for code in sorted(effective)]

    async def get_operation_config(
        self, operation_code: str, tenant_id: UUID | None = None
    ) -> OperationConfigModel | None:
        if tenant_id is not None:
            tenant_config = await self._find_config(operation_code, tenant_id)
            if tenant_config is not None and tenant_config.is_active:
                return to_config_model(tenant_config)

        global_config = await self._find_config(operation_code, None)
        if global_config is not None and global_config.is_active:
            return to_config_model(global_config)
        return None

    async def resolve_operation_cost(
        self,
        operation_code: str,
        tenant_id: UUID | None,
        default: Decimal | None = None,
    ) -> Decimal:
        """Cost lookup: tenant override, then global, then caller default, then platform default."""
        config = await self.get_operation_config(operation_code, tenant_id)
        if config is not None:
            return config.credit_cost
        if default is not None:
            return Decimal(default)
        return CreditSettings().DEFAULT_OPERATION_COST

    async def _upsert(
        self,
        operation_code: str,
        config: OperationConfigInput | BulkConfigUpdate,
        updated_by: UUID | None,
        tenant_id: UUID | None,
    ) -> tuple[CreditConfiguration, dict | None]:
        existing = await self._find_config(operation_code, tenant_id)
        old_values = config_values(existing) if existing else None

        if existing is None:
            existing = CreditConfiguration(
                tenant_id=tenant_id,
                is_global=tenant_id is None,
                operation_code=operation_code,
            )
            self.db.add(existing)

        existing.credit_cost = config.credit_cost
        existing.operation_name = config.operation_name or existing.operation_name
        existing.module_code = config.module_code or existing.module_code
        existing.app_code = config.app_code or existing.app_code
        existing.unit = config.unit
        existing.is_active = config.is_active
        existing.updated_by = updated_by
        existing.updated_at = utc_now()
        return existing, old_values

    def _validate_cost(self, credit_cost: Decimal) -> None:
        if credit_cost < 0 or not fits_credit_precision(credit_cost):
            raise WrapperException(
                MessageCode.INVALID_AMOUNT,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                details={"credit_cost": str(credit_cost)},
            )

    async def _set_operation_config(
        self,
        operation_code: str,
        config: OperationConfigInput,
        updated_by: UUID | None,
        tenant_id: UUID | None,
    ) -> OperationConfigModel:
        self._validate_cost(config.credit_cost)
        try:
            row, old_values = await self._upsert(
                operation_code, config, updated_by, tenant_id
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        model = to_config_model(row)
        scope = f"tenant {tenant_id}" if tenant_id else "global"
        self.logger.info(
            f"Set {scope} cost for {operation_code} to {config.credit_cost}"
        )
        await self.log_configuration_change(
            tenant_id=tenant_id,
            operation_code=operation_code,
            change_type=ConfigChangeType.UPDATE if old_values else ConfigChangeType.CREATE,
            old_values=old_values,
            new_values=config_values(row),
            changed_by=updated_by,
        )
        return model

    async def set_global_operation_config(
        self,
        operation_code: str,
        config: OperationConfigInput,
        updated_by: UUID | None = None,
    ) -> OperationConfigModel:
        return await self._set_operation_config(operation_code, config, updated_by, None)

    async def set_tenant_operation_config(
        self,
        tenant_id: UUID,
        operation_code: str,
        config: OperationConfigInput,
        updated_by: UUID | None = None,
    ) -> OperationConfigModel:
        return await self._set_operation_config(
            operation_code, config, updated_by, tenant_id
        )

    async def bulk_update_tenant_configurations(
        self,
        tenant_id: UUID,
        updates: list[BulkConfigUpdate],
        updated_by: UUID | None = None,
    ) -> BulkUpdateResultModel:
        """Upsert many tenant costs at once. Invalid items are reported, not raised."""
        results: list[BulkUpdateItemResult] = []
        written: list[tuple[CreditConfiguration, dict | None]] = []

        try:
            for update in updates:
                if not update.operation_code:
                    results.append(
                        BulkUpdateItemResult(
                            operation_code="",
                            success=False,
                            error="operation_code is required",
                        )
                    )
                    continue
                if update.credit_cost < 0:
                    results.append(
                        BulkUpdateItemResult(
                            operation_code=update.operation_code,
                            success=False,
                            error="credit_cost must be >= 0",
                        )
                    )
                    continue
                if not fits_credit_precision(update.credit_cost):
                    results.append(
                        BulkUpdateItemResult(
                            operation_code=update.operation_code,
                            success=False,
                            error="credit_cost must have at most 2 decimal places",
                        )
                    )
                    continue

                row, old_values = await self._upsert(
                    update.operation_code, update, updated_by, tenant_id
                )
                written.append((row, old_values))
                results.append(
                    BulkUpdateItemResult(operation_code=update.operation_code, success=True)
                )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        configs = iter(written)
        for item in results:
            if item.success:
                row, old_values = next(configs)
                item.config = to_config_model(row)
                await self.log_configuration_change(
                    tenant_id=tenant_id,
                    operation_code=row.operation_code,
                    change_type=(
                        ConfigChangeType.UPDATE if old_values else ConfigChangeType.CREATE
                    ),
                    old_values=old_values,
                    new_values=config_values(row),
                    changed_by=updated_by,
                )

        succeeded = len(written)
        self.logger.info(
            f"Bulk configuration update for tenant {tenant_id}: "
            f"{succeeded} updated, {len(results) - succeeded} failed"
        )
        return BulkUpdateResultModel(
            updated=succeeded,
            failed=len(results) - succeeded,
            results=results,
        )

    async def reset_tenant_configuration(
        self,
        tenant_id: UUID,
        operation_code: str | None = None,
        updated_by: UUID | None = None,
    ) -> ResetResultModel:
        """Delete tenant overrides so lookups fall through to global defaults."""
        filters = [
            CreditConfiguration.tenant_id == tenant_id,
            CreditConfiguration.is_global.is_(False),
        ]
        if operation_code:
            filters.append(CreditConfiguration.operation_code == operation_code)

        existing = (
            await self.db.execute(select(CreditConfiguration).where(*filters))
        ).scalars().all()
        old_values = {c.operation_code: config_values(c) for c in existing}

        try:
            await self.db.execute(
                delete(CreditConfiguration)
                .where(*filters)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        for config in existing:
            self.db.expunge(config)

        self.logger.info(
            f"Reset {len(old_values)} tenant configurations for tenant {tenant_id}"
        )
        await self.log_configuration_change(
            tenant_id=tenant_id,
            operation_code=operation_code,
            change_type=ConfigChangeType.DELETE,
            old_values=old_values,
            new_values=None,
            changed_by=updated_by,
        )
        return ResetResultModel(
            tenant_id=tenant_id,
            operation_code=operation_code,
            deleted=len(old_values),
        )

    async def create_configuration_template(
        self, request: CreateTemplateRequest
    ) -> ConfigurationTemplateModel:
        template = CreditConfigurationTemplate(
            template_code=request.template_code,
            template_name=request.template_name,
            description=request.description,
            operation_configurations={
                code: config.model_dump(mode="json", exclude_none=True)
                for code, config in request.operation_configurations.items()
            },
            is_active=True,
            usage_count=0,
        )
        self.db.add(template)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        self.logger.info(f"Created configuration template {request.template_code}")
        return ConfigurationTemplateModel.model_validate(template)

    async def get_configuration_templates(self) -> list[ConfigurationTemplateModel]:
        result = await self.db.execute(
            select(CreditConfigurationTemplate)
            .where(CreditConfigurationTemplate.is_active.is_(True))
            .order_by(CreditConfigurationTemplate.template_name)
        )
        return [
            ConfigurationTemplateModel.model_validate(t) for t in result.scalars().all()
        ]

    async def apply_configuration_template(
        self,
        tenant_id: UUID,
        template_id: UUID,
        updated_by: UUID | None = None,
    ) -> TemplateApplyResultModel:
        """Write the template's operation costs for the tenant.

        Only operation codes present in the template are touched; other tenant
        overrides stay as they are.
        """
        result = await self.db.execute(
            select(CreditConfigurationTemplate).where(
                CreditConfigurationTemplate.id == template_id,
                CreditConfigurationTemplate.is_active.is_(True),
            )
        )
        template = result.scalar_one_or_none()
        if template is None:
            raise WrapperException(
                MessageCode.TEMPLATE_NOT_FOUND,
                status.HTTP_404_NOT_FOUND,
                details={"template_id": str(template_id)},
            )

        try:
            operations = {
                code: TemplateOperationConfig.model_validate(raw)
                for code, raw in (template.operation_configurations or {}).items()
            }
        except ValidationError as e:
            raise WrapperException(
                MessageCode.INVALID_INPUT,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                details={"template_id": str(template_id), "error": str(e)},
            ) from e

        template_code = template.template_code
        try:
            for operation_code, config in operations.items():
                await self._upsert(
                    operation_code,
                    OperationConfigInput(
                        credit_cost=config.credit_cost,
                        operation_name=config.operation_name,
                        module_code=config.module_code,
                        app_code=config.app_code,
                    ),
                    updated_by,
                    tenant_id,
                )
            template.usage_count = (template.usage_count or 0) + 1
            template.last_used_at = utc_now()
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        applied = sorted(operations)
        self.logger.info(
            f"Applied template {template_code} to tenant {tenant_id}: {len(applied)} operations"
        )
        await self.log_configuration_change(
            tenant_id=tenant_id,
            operation_code=None,
            change_type=ConfigChangeType.TEMPLATE,
            old_values=None,
            new_values={
                "template_id": str(template_id),
                "template_code": template_code,
                "operations": applied,
            },
            changed_by=updated_by,
        )
        return TemplateApplyResultModel(
            template_id=template_id,
            tenant_id=tenant_id,
            applied_operations=applied,
        )

    async def log_configuration_change(
        self,
        tenant_id: UUID | None,
        operation_code: str | None,
        change_type: ConfigChangeType,
        old_values: dict | None,
        new_values: dict | None,
        changed_by: UUID | None,
    ) -> None:
        """Audit a configuration write. Failures are logged, never raised."""
        self.db.add(
            ConfigurationChangeLog(
                config_type="operation",
                tenant_id=tenant_id,
                operation_code=operation_code,
                change_type=change_type,
                old_values=old_values,
                new_values=new_values,
                changed_by=changed_by,
            )
        )
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error(f"Failed to log configuration change: {e}")
