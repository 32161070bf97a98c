"""Credit configuration router: global and per-tenant operation costs."""

from uuid import UUID

from fastapi import APIRouter

from saas_wrapper.api.core.dependencies import ActorDep, CreditConfigurationServiceDep
from saas_wrapper.api.core.messages import APIResponse, MessageCode
from saas_wrapper.api.credit_config.schemas import (
    BulkConfigUpdate,
    BulkUpdateResponse,
    CreateTemplateRequest,
    OperationConfigInput,
    OperationConfigListResponse,
    OperationConfigResponse,
    ResetResponse,
    TemplateApplyResponse,
    TemplateListResponse,
    TemplateResponse,
    TenantConfigurationsModel,
    TenantConfigurationsResponse,
)

router = APIRouter(prefix="/credit-config", tags=["credit-config"])


@router.get("/global", response_model=OperationConfigListResponse)
async def get_global_configurations(
    configs: CreditConfigurationServiceDep,
) -> OperationConfigListResponse:
    data = await configs.get_global_operation_configs()
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=data)


@router.put("/global/operations/{operation_code}", response_model=OperationConfigResponse)
async def set_global_configuration(
    operation_code: str,
    request: OperationConfigInput,
    configs: CreditConfigurationServiceDep,
    actor_id: ActorDep,
) -> OperationConfigResponse:
    """Create or replace the platform-wide cost of an operation."""
    data = await configs.set_global_operation_config(operation_code, request, actor_id)
    return APIResponse.success(message_code=MessageCode.CONFIGURATION_UPDATED, data=data)


@router.get("/templates", response_model=TemplateListResponse)
async def get_templates(
    configs: CreditConfigurationServiceDep,
) -> TemplateListResponse:
    data = await configs.get_configuration_templates()
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=data)


@router.post("/templates", response_model=TemplateResponse)
async def create_template(
    request: CreateTemplateRequest,
    configs: CreditConfigurationServiceDep,
) -> TemplateResponse:
    data = await configs.create_configuration_template(request)
    return APIResponse.success(message_code=MessageCode.TEMPLATE_CREATED, data=data)


@router.get("/tenants/{tenant_id}", response_model=TenantConfigurationsResponse)
async def get_tenant_configurations(
    tenant_id: UUID,
    configs: CreditConfigurationServiceDep,
) -> TenantConfigurationsResponse:
    """Effective costs for a tenant, each tagged with where it came from."""
    configurations = await configs.get_tenant_configurations(tenant_id)
    return APIResponse.success(
        message_code=MessageCode.SUCCESS,
        data=TenantConfigurationsModel(tenant_id=tenant_id, configurations=configurations),
    )


@router.put(
    "/tenants/{tenant_id}/operations/{operation_code}",
    response_model=OperationConfigResponse,
)
async def set_tenant_configuration(
    tenant_id: UUID,
    operation_code: str,
    request: OperationConfigInput,
    configs: CreditConfigurationServiceDep,
    actor_id: ActorDep,
) -> OperationConfigResponse:
    data = await configs.set_tenant_operation_config(
        tenant_id, operation_code, request, actor_id
    )
    return APIResponse.success(message_code=MessageCode.CONFIGURATION_UPDATED, data=data)


@router.post("/tenants/{tenant_id}/bulk", response_model=BulkUpdateResponse)
async def bulk_update_tenant_configurations(
    tenant_id: UUID,
    request: list[BulkConfigUpdate],
    configs: CreditConfigurationServiceDep,
    actor_id: ActorDep,
) -> BulkUpdateResponse:
    data = await configs.bulk_update_tenant_configurations(tenant_id, request, actor_id)
    return APIResponse.success(message_code=MessageCode.CONFIGURATION_UPDATED, data=data)


@router.post(
    "/tenants/{tenant_id}/templates/{template_id}/apply",
    response_model=TemplateApplyResponse,
)
async def apply_template(
    tenant_id: UUID,
    template_id: UUID,
    configs: CreditConfigurationServiceDep,
    actor_id: ActorDep,
) -> TemplateApplyResponse:
    data = await configs.apply_configuration_template(tenant_id, template_id, actor_id)
    return APIResponse.success(message_code=MessageCode.TEMPLATE_APPLIED, data=data)


@router.delete("/tenants/{tenant_id}", response_model=ResetResponse)
async def reset_tenant_configuration(
    tenant_id: UUID,
    configs: CreditConfigurationServiceDep,
    actor_id: ActorDep,
    operation_code: str | None = None,
) -> ResetResponse:
    """Drop tenant overrides, all of them or a single operation's."""
    data = await configs.reset_tenant_configuration(tenant_id, operation_code, actor_id)
    return APIResponse.success(message_code=MessageCode.CONFIGURATION_RESET, data=data)
