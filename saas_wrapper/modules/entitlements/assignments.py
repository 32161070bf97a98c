"""Tenant application assignments. Every mutation is followed by an entitlement sync."""

from datetime import datetime
from uuid import UUID

from fastapi import status
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from saas_wrapper.api.applications.schemas import (
    AssignmentModel,
    AssignmentResultModel,
    BulkAssignmentItem,
    BulkAssignmentItemResult,
    BulkAssignmentResultModel,
    PlanChangeResultModel,
)
from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import MessageCode
from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import Application, TenantApplicationAssignment
from saas_wrapper.database.models.base import as_utc, utc_now
from saas_wrapper.modules.entitlements.permissions import module_permissions_adapter
from saas_wrapper.modules.entitlements.plans import ALL_MODULES, PLAN_APPLICATIONS
from saas_wrapper.modules.entitlements.sync import EntitlementSyncService
from saas_wrapper.modules.events.publisher import EventPublisher


class SyncReason:
    APPLICATION_ASSIGNED = "application_assigned"
    MODULE_TOGGLED = "module_toggled"
    PERMISSIONS_UPDATED = "permissions_updated"
    BULK_ASSIGNMENT = "bulk_assignment"
    APPLICATION_REMOVED = "application_removed"
    PLAN_CHANGED = "plan_changed"


def to_assignment_model(
    assignment: TenantApplicationAssignment, application: Application
) -> AssignmentModel:
    return AssignmentModel(
        app_code=application.app_code,
        app_name=application.app_name,
        is_enabled=assignment.is_enabled,
        enabled_modules=list(assignment.enabled_modules or []),
        custom_permissions=dict(assignment.custom_permissions or {}),
        subscription_tier=assignment.subscription_tier,
        max_users=assignment.max_users,
        expires_at=as_utc(assignment.expires_at),
    )


class ApplicationAssignmentService(BaseService):
    def __init__(self, db: AsyncSession, publisher: EventPublisher):
        super().__init__(db)
        self.sync_service = EntitlementSyncService(db, publisher)

    async def _get_application(self, app_code: str) -> Application:
        result = await self.db.execute(
            select(Application)
            .where(Application.app_code == app_code)
            .options(selectinload(Application.modules))
            .execution_options(populate_existing=True)
        )
        application = result.scalar_one_or_none()
        if application is None:
            raise WrapperException(
                MessageCode.APPLICATION_NOT_FOUND,
                status.HTTP_404_NOT_FOUND,
                details={"app_code": app_code},
            )
        return application

    async def _find_assignment(
        self, tenant_id: UUID, app_id: UUID
    ) -> TenantApplicationAssignment | None:
        result = await self.db.execute(
            select(TenantApplicationAssignment)
            .where(
                TenantApplicationAssignment.tenant_id == tenant_id,
                TenantApplicationAssignment.app_id == app_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require_assignment(
        self, tenant_id: UUID, app_code: str
    ) -> tuple[TenantApplicationAssignment, Application]:
        application = await self._get_application(app_code)
        assignment = await self._find_assignment(tenant_id, application.id)
        if assignment is None:
            raise WrapperException(
                MessageCode.ASSIGNMENT_NOT_FOUND,
                status.HTTP_404_NOT_FOUND,
                details={"app_code": app_code},
            )
        return assignment, application

    def _resolve_modules(
        self, application: Application, requested: list[str] | tuple[str, ...] | str | None
    ) -> list[str]:
        catalog = [m.module_code for m in application.modules]
        if requested is None or requested == ALL_MODULES:
            return catalog
        unknown = [m for m in requested if m not in catalog]
        if unknown:
            raise WrapperException(
                MessageCode.INVALID_INPUT,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                details={"app_code": application.app_code, "unknown_modules": unknown},
            )
        return list(dict.fromkeys(requested))

    def _validate_permissions(self, custom_permissions: dict | None) -> dict[str, list[str]]:
        try:
            return module_permissions_adapter.validate_python(custom_permissions or {})
        except ValidationError as e:
            raise WrapperException(
                MessageCode.INVALID_INPUT,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                details={"custom_permissions": str(e)},
            ) from e

    async def _upsert_assignment(
        self,
        tenant_id: UUID,
        application: Application,
        enabled_modules: list[str],
        custom_permissions: dict[str, list[str]] | None = None,
        subscription_tier: str | None = None,
        max_users: int | None = None,
        expires_at: datetime | None = None,
    ) -> TenantApplicationAssignment:
        assignment = await self._find_assignment(tenant_id, application.id)
        if assignment is None:
            assignment = TenantApplicationAssignment(
                tenant_id=tenant_id,
                app_id=application.id,
                custom_permissions={},
            )
            self.db.add(assignment)

        assignment.is_enabled = True
        assignment.enabled_modules = list(enabled_modules)
        if custom_permissions is not None:
            assignment.custom_permissions = dict(custom_permissions)
        if subscription_tier is not None:
            assignment.subscription_tier = subscription_tier
        if max_users is not None:
            assignment.max_users = max_users
        if expires_at is not None:
            assignment.expires_at = expires_at
        assignment.updated_at = utc_now()
        return assignment

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def list_assignments(self, tenant_id: UUID) -> list[AssignmentModel]:
        result = await self.db.execute(
            select(TenantApplicationAssignment, Application)
            .join(Application, Application.id == TenantApplicationAssignment.app_id)
            .where(TenantApplicationAssignment.tenant_id == tenant_id)
            .order_by(Application.app_code)
            .execution_options(populate_existing=True)
        )
        return [to_assignment_model(a, app) for a, app in result.all()]

    async def assign_application(
        self,
        tenant_id: UUID,
        app_code: str,
        enabled_modules: list[str] | None = None,
        custom_permissions: dict[str, list[str]] | None = None,
        subscription_tier: str | None = None,
        max_users: int | None = None,
        expires_at: datetime | None = None,
        assigned_by: str = "system",
    ) -> AssignmentResultModel:
        """Enable an application for a tenant. Omitted modules means all modules."""
        application = await self._get_application(app_code)
        modules = self._resolve_modules(application, enabled_modules)
        permissions = (
            self._validate_permissions(custom_permissions)
            if custom_permissions is not None
            else None
        )

        assignment = await self._upsert_assignment(
            tenant_id,
            application,
            modules,
            permissions,
            subscription_tier,
            max_users,
            expires_at,
        )
        await self._commit()
        model = to_assignment_model(assignment, application)
        self.logger.info(f"Assigned {app_code} to tenant {tenant_id} with {len(modules)} modules")

        sync = await self.sync_service.sync_tenant_entitlements(
            tenant_id, SyncReason.APPLICATION_ASSIGNED, published_by=assigned_by
        )
        return AssignmentResultModel(assignment=model, sync=sync)

    async def toggle_module(
        self,
        tenant_id: UUID,
        app_code: str,
        module_code: str,
        enabled: bool,
        changed_by: str = "system",
    ) -> AssignmentResultModel:
        assignment, application = await self._require_assignment(tenant_id, app_code)
        self._resolve_modules(application, [module_code])

        modules = list(assignment.enabled_modules or [])
        if enabled and module_code not in modules:
            modules.append(module_code)
        elif not enabled:
            modules = [m for m in modules if m != module_code]
        assignment.enabled_modules = modules
        assignment.updated_at = utc_now()
        await self._commit()
        model = to_assignment_model(assignment, application)
        self.logger.info(
            f"{'Enabled' if enabled else 'Disabled'} {app_code}.{module_code} for tenant {tenant_id}"
        )

        sync = await self.sync_service.sync_tenant_entitlements(
            tenant_id, SyncReason.MODULE_TOGGLED, published_by=changed_by
        )
        return AssignmentResultModel(assignment=model, sync=sync)

    async def update_custom_permissions(
        self,
        tenant_id: UUID,
        app_code: str,
        custom_permissions: dict[str, list[str]],
        changed_by: str = "system",
    ) -> AssignmentResultModel:
        """Replace the per-module permission overrides of an assignment.

        An empty action list for a module falls back to the module defaults.
        """
        assignment, application = await self._require_assignment(tenant_id, app_code)
        permissions = self._validate_permissions(custom_permissions)
        self._resolve_modules(application, list(permissions))

        assignment.custom_permissions = permissions
        assignment.updated_at = utc_now()
        await self._commit()
        model = to_assignment_model(assignment, application)

        sync = await self.sync_service.sync_tenant_entitlements(
            tenant_id, SyncReason.PERMISSIONS_UPDATED, published_by=changed_by
        )
        return AssignmentResultModel(assignment=model, sync=sync)

    async def bulk_assign_applications(
        self,
        tenant_id: UUID,
        assignments: list[BulkAssignmentItem],
        assigned_by: str = "system",
    ) -> BulkAssignmentResultModel:
        """Assign several applications with one sync at the end.

        Items that fail validation are reported; the rest are applied.
        """
        results: list[BulkAssignmentItemResult] = []
        for item in assignments:
            try:
                application = await self._get_application(item.app_code)
                modules = self._resolve_modules(application, item.enabled_modules)
                permissions = (
                    self._validate_permissions(item.custom_permissions)
                    if item.custom_permissions is not None
                    else None
                )
            except WrapperException as e:
                results.append(
                    BulkAssignmentItemResult(
                        app_code=item.app_code,
                        success=False,
                        error=e.message_code.value,
                    )
                )
                continue

            await self._upsert_assignment(
                tenant_id,
                application,
                modules,
                permissions,
                item.subscription_tier,
                item.max_users,
                item.expires_at,
            )
            results.append(BulkAssignmentItemResult(app_code=item.app_code, success=True))

        await self._commit()
        self.logger.info(
            f"Bulk assigned {sum(r.success for r in results)}/{len(results)} applications to tenant {tenant_id}"
        )

        sync = await self.sync_service.sync_tenant_entitlements(
            tenant_id, SyncReason.BULK_ASSIGNMENT, published_by=assigned_by
        )
        return BulkAssignmentResultModel(results=results, sync=sync)

    async def remove_application(
        self, tenant_id: UUID, app_code: str, removed_by: str = "system"
    ) -> AssignmentResultModel:
        assignment, _ = await self._require_assignment(tenant_id, app_code)
        await self.db.delete(assignment)
        await self._commit()
        self.logger.info(f"Removed {app_code} from tenant {tenant_id}")

        sync = await self.sync_service.sync_tenant_entitlements(
            tenant_id, SyncReason.APPLICATION_REMOVED, published_by=removed_by
        )
        return AssignmentResultModel(assignment=None, sync=sync)

    async def change_plan(
        self, tenant_id: UUID, plan_id: str, changed_by: str = "system"
    ) -> PlanChangeResultModel:
        """Align the tenant's assignments with a plan's application set.

        Plan applications are enabled with the plan's modules; other assigned
        applications are disabled, not deleted.
        """
        plan = PLAN_APPLICATIONS.get(plan_id)
        if plan is None:
            raise WrapperException(
                MessageCode.INVALID_INPUT,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                details={"plan_id": plan_id, "available_plans": sorted(PLAN_APPLICATIONS)},
            )

        enabled: list[str] = []
        plan_app_ids: set[UUID] = set()
        for app_code in plan.applications:
            result = await self.db.execute(
                select(Application)
                .where(Application.app_code == app_code)
                .options(selectinload(Application.modules))
                .execution_options(populate_existing=True)
            )
            application = result.scalar_one_or_none()
            if application is None:
                self.logger.warning(f"Plan {plan_id} lists unknown application {app_code}")
                continue

            catalog = {m.module_code for m in application.modules}
            plan_modules = plan.modules_for(app_code)
            if plan_modules == ALL_MODULES:
                modules = sorted(catalog)
            else:
                modules = [m for m in plan_modules if m in catalog]

            await self._upsert_assignment(
                tenant_id, application, modules, subscription_tier=plan_id
            )
            enabled.append(app_code)
            plan_app_ids.add(application.id)

        disabled: list[str] = []
        result = await self.db.execute(
            select(TenantApplicationAssignment, Application)
            .join(Application, Application.id == TenantApplicationAssignment.app_id)
            .where(
                TenantApplicationAssignment.tenant_id == tenant_id,
                TenantApplicationAssignment.is_enabled.is_(True),
            )
        )
        for assignment, application in result.all():
            if application.id not in plan_app_ids:
                assignment.is_enabled = False
                assignment.updated_at = utc_now()
                disabled.append(application.app_code)

        await self._commit()
        self.logger.info(
            f"Changed plan for tenant {tenant_id} to {plan_id}: "
            f"enabled {enabled}, disabled {disabled}"
        )

        sync = await self.sync_service.sync_tenant_entitlements(
            tenant_id, SyncReason.PLAN_CHANGED, plan_id=plan_id, published_by=changed_by
        )
        return PlanChangeResultModel(
            plan_id=plan_id,
            enabled_app_codes=enabled,
            disabled_app_codes=sorted(disabled),
            sync=sync,
        )

    async def sync(
        self,
        tenant_id: UUID,
        reason: str,
        plan_id: str | None = None,
        published_by: str = "system",
    ):
        return await self.sync_service.sync_tenant_entitlements(
            tenant_id, reason, plan_id=plan_id, published_by=published_by
        )
