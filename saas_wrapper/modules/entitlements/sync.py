"""Recompute Organization-Admin permissions and notify downstream applications."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from saas_wrapper.api.applications.schemas import SyncResultModel
from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import (
    ORGANIZATION_ADMIN_ROLE_NAME,
    Application,
    ApplicationStatus,
    CustomRole,
    TenantApplicationAssignment,
)
from saas_wrapper.database.models.base import as_utc, utc_now
from saas_wrapper.modules.entitlements.permissions import (
    AssignmentSnapshot,
    PermissionMap,
    build_permission_map,
    module_permissions_adapter,
)
from saas_wrapper.modules.events.publisher import EventPublisher
from saas_wrapper.modules.events.service import InterAppEventService
from saas_wrapper.utils.settings.app import AppSettings

TENANT_APPLICATIONS_UPDATED = "tenant.applications.updated"


class EntitlementSyncService(BaseService):
    def __init__(self, db: AsyncSession, publisher: EventPublisher):
        super().__init__(db)
        self.publisher = publisher
        self.platform_app_code = AppSettings().PLATFORM_APP_CODE

    async def load_enabled_assignments(
        self, tenant_id: UUID
    ) -> tuple[list[AssignmentSnapshot], list[dict]]:
        result = await self.db.execute(
            select(TenantApplicationAssignment)
            .where(
                TenantApplicationAssignment.tenant_id == tenant_id,
                TenantApplicationAssignment.is_enabled.is_(True),
                or_(
                    TenantApplicationAssignment.expires_at.is_(None),
                    TenantApplicationAssignment.expires_at > utc_now(),
                ),
            )
            .options(
                selectinload(TenantApplicationAssignment.application).selectinload(
                    Application.modules
                )
            )
            .execution_options(populate_existing=True)
        )

        snapshots = []
        details = []
        assignments = sorted(
            result.scalars().all(), key=lambda a: a.application.app_code
        )
        for assignment in assignments:
            application = assignment.application
            snapshots.append(
                AssignmentSnapshot(
                    app_code=application.app_code,
                    app_name=application.app_name,
                    enabled_modules=list(assignment.enabled_modules or []),
                    custom_permissions=module_permissions_adapter.validate_python(
                        assignment.custom_permissions or {}
                    ),
                    module_defaults={
                        m.module_code: m.permissions for m in application.modules
                    },
                )
            )
            details.append(
                {
                    "subscriptionTier": assignment.subscription_tier,
                    "maxUsers": assignment.max_users,
                    "expiresAt": (
                        as_utc(assignment.expires_at).isoformat()
                        if assignment.expires_at
                        else None
                    ),
                }
            )
        return snapshots, details

    async def update_admin_roles(
        self, tenant_id: UUID, permission_map: PermissionMap
    ) -> int:
        result = await self.db.execute(
            select(CustomRole).where(
                CustomRole.tenant_id == tenant_id,
                CustomRole.role_name == ORGANIZATION_ADMIN_ROLE_NAME,
            )
        )
        roles = result.scalars().all()
        if not roles:
            self.logger.warning(
                f"No {ORGANIZATION_ADMIN_ROLE_NAME} role for tenant {tenant_id}, skipping role update"
            )
            return 0

        for role in roles:
            role.permissions = {app: dict(modules) for app, modules in permission_map.items()}
            role.updated_at = utc_now()
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return len(roles)

    async def get_target_applications(self) -> list[str]:
        result = await self.db.execute(
            select(Application.app_code)
            .where(
                Application.status == ApplicationStatus.ACTIVE,
                Application.app_code != self.platform_app_code,
            )
            .order_by(Application.app_code)
        )
        return list(result.scalars().all())

    async def sync_tenant_entitlements(
        self,
        tenant_id: UUID,
        reason: str,
        plan_id: str | None = None,
        published_by: str = "system",
    ) -> SyncResultModel:
        """Rebuild the tenant's admin permissions and broadcast the new entitlements.

        A tenant without an Organization-Admin role still gets the broadcast.
        Delivery failures are reported in the result and never raised.
        """
        snapshots, details = await self.load_enabled_assignments(tenant_id)
        permission_map = build_permission_map(snapshots)
        roles_updated = await self.update_admin_roles(tenant_id, permission_map)

        enabled_app_codes = [s.app_code for s in snapshots]
        applications = [
            {
                "appCode": snapshot.app_code,
                "appName": snapshot.app_name,
                "enabledModules": list(permission_map[snapshot.app_code]),
                "permissions": permission_map[snapshot.app_code],
                **extra,
            }
            for snapshot, extra in zip(snapshots, details)
        ]
        event_data = {
            "tenantId": str(tenant_id),
            "reason": reason,
            "planId": plan_id,
            "applications": applications,
            "enabledAppCodes": enabled_app_codes,
            "emittedAt": datetime.now(timezone.utc).isoformat(),
        }

        targets = await self.get_target_applications()
        events = InterAppEventService(self.db, self.publisher)
        fan_out_result = await events.publish_to_applications(
            event_type=TENANT_APPLICATIONS_UPDATED,
            source_app=self.platform_app_code,
            target_apps=targets,
            tenant_id=tenant_id,
            event_data=event_data,
            published_by=published_by,
        )

        self.logger.info(
            f"Synced entitlements for tenant {tenant_id} ({reason}): "
            f"{len(enabled_app_codes)} apps, {roles_updated} admin roles, "
            f"{len(fan_out_result.delivered)}/{len(targets)} targets notified"
        )
        return SyncResultModel(
            tenant_id=tenant_id,
            reason=reason,
            plan_id=plan_id,
            roles_updated=roles_updated,
            permissions=permission_map,
            enabled_app_codes=enabled_app_codes,
            delivered=fan_out_result.delivered,
            failed=fan_out_result.failed,
        )
