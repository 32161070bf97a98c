"""Tenant application assignments and entitlement sync."""

from uuid import UUID

from fastapi import APIRouter

from saas_wrapper.api.applications.schemas import (
    AssignApplicationRequest,
    AssignmentListResponse,
    AssignmentResponse,
    BulkAssignmentResponse,
    BulkAssignRequest,
    ChangePlanRequest,
    CustomPermissionsRequest,
    PlanChangeResponse,
    SyncRequest,
    SyncResponse,
    ToggleModuleRequest,
)
from saas_wrapper.api.core.dependencies import ActorDep, ApplicationAssignmentServiceDep
from saas_wrapper.api.core.messages import APIResponse, MessageCode

router = APIRouter(
    prefix="/tenants/{tenant_id}/applications",
    tags=["applications"],
)


def _actor(actor_id: UUID | None) -> str:
    return str(actor_id) if actor_id else "system"


@router.get("", response_model=AssignmentListResponse)
async def list_assignments(
    tenant_id: UUID,
    assignments: ApplicationAssignmentServiceDep,
) -> AssignmentListResponse:
    data = await assignments.list_assignments(tenant_id)
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=data)


@router.put("/{app_code}", response_model=AssignmentResponse)
async def assign_application(
    tenant_id: UUID,
    app_code: str,
    request: AssignApplicationRequest,
    assignments: ApplicationAssignmentServiceDep,
    actor_id: ActorDep,
) -> AssignmentResponse:
    """Enable an application for the tenant and resync admin permissions."""
    data = await assignments.assign_application(
        tenant_id,
        app_code,
        enabled_modules=request.enabled_modules,
        custom_permissions=request.custom_permissions,
        subscription_tier=request.subscription_tier,
        max_users=request.max_users,
        expires_at=request.expires_at,
        assigned_by=_actor(actor_id),
    )
    return APIResponse.success(message_code=MessageCode.APPLICATION_ASSIGNED, data=data)


@router.patch("/{app_code}/modules/{module_code}", response_model=AssignmentResponse)
async def toggle_module(
    tenant_id: UUID,
    app_code: str,
    module_code: str,
    request: ToggleModuleRequest,
    assignments: ApplicationAssignmentServiceDep,
    actor_id: ActorDep,
) -> AssignmentResponse:
    data = await assignments.toggle_module(
        tenant_id, app_code, module_code, request.enabled, changed_by=_actor(actor_id)
    )
    return APIResponse.success(message_code=MessageCode.UPDATED, data=data)


@router.put("/{app_code}/permissions", response_model=AssignmentResponse)
async def update_custom_permissions(
    tenant_id: UUID,
    app_code: str,
    request: CustomPermissionsRequest,
    assignments: ApplicationAssignmentServiceDep,
    actor_id: ActorDep,
) -> AssignmentResponse:
    data = await assignments.update_custom_permissions(
        tenant_id, app_code, request.custom_permissions, changed_by=_actor(actor_id)
    )
    return APIResponse.success(message_code=MessageCode.UPDATED, data=data)


@router.post("/bulk", response_model=BulkAssignmentResponse)
async def bulk_assign_applications(
    tenant_id: UUID,
    request: BulkAssignRequest,
    assignments: ApplicationAssignmentServiceDep,
    actor_id: ActorDep,
) -> BulkAssignmentResponse:
    data = await assignments.bulk_assign_applications(
        tenant_id, request.assignments, assigned_by=_actor(actor_id)
    )
    return APIResponse.success(message_code=MessageCode.APPLICATION_ASSIGNED, data=data)


@router.delete("/{app_code}", response_model=AssignmentResponse)
async def remove_application(
    tenant_id: UUID,
    app_code: str,
    assignments: ApplicationAssignmentServiceDep,
    actor_id: ActorDep,
) -> AssignmentResponse:
    data = await assignments.remove_application(
        tenant_id, app_code, removed_by=_actor(actor_id)
    )
    return APIResponse.success(message_code=MessageCode.APPLICATION_REMOVED, data=data)


@router.post("/plan", response_model=PlanChangeResponse)
async def change_plan(
    tenant_id: UUID,
    request: ChangePlanRequest,
    assignments: ApplicationAssignmentServiceDep,
    actor_id: ActorDep,
) -> PlanChangeResponse:
    data = await assignments.change_plan(
        tenant_id, request.plan_id, changed_by=_actor(actor_id)
    )
    return APIResponse.success(message_code=MessageCode.PLAN_CHANGED, data=data)


@router.post("/sync", response_model=SyncResponse)
async def sync_entitlements(
    tenant_id: UUID,
    request: SyncRequest,
    assignments: ApplicationAssignmentServiceDep,
    actor_id: ActorDep,
) -> SyncResponse:
    """Rebuild admin permissions and rebroadcast them without changing assignments."""
    data = await assignments.sync(
        tenant_id, request.reason, plan_id=request.plan_id, published_by=_actor(actor_id)
    )
    return APIResponse.success(message_code=MessageCode.ENTITLEMENTS_SYNCED, data=data)
