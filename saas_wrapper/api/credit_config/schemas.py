"""Credit configuration API schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from saas_wrapper.api.core.messages import APIResponse


class OperationConfigInput(BaseModel):
    credit_cost: Decimal = Field(ge=0, decimal_places=2)
    operation_name: str | None = None
    module_code: str | None = None
    app_code: str | None = None
    unit: str = "operation"
    is_active: bool = True


class BulkConfigUpdate(BaseModel):
    operation_code: str
    credit_cost: Decimal
    operation_name: str | None = None
    module_code: str | None = None
    app_code: str | None = None
    unit: str = "operation"
    is_active: bool = True


class OperationConfigModel(BaseModel):
    id: UUID
    operation_code: str
    operation_name: str | None
    module_code: str | None
    app_code: str | None
    credit_cost: Decimal
    unit: str
    is_active: bool
    is_global: bool
    tenant_id: UUID | None
    updated_at: datetime | None = None
    config_source: Literal["tenant", "global"]


class BulkUpdateItemResult(BaseModel):
    operation_code: str
    success: bool
    error: str | None = None
    config: OperationConfigModel | None = None


class BulkUpdateResultModel(BaseModel):
    updated: int
    failed: int
    results: list[BulkUpdateItemResult]


class ResetResultModel(BaseModel):
    tenant_id: UUID
    operation_code: str | None
    deleted: int


class TemplateOperationConfig(BaseModel):
    credit_cost: Decimal = Field(ge=0, decimal_places=2)
    module_code: str | None = None
    app_code: str | None = None
    operation_name: str | None = None


class CreateTemplateRequest(BaseModel):
    template_code: str
    template_name: str
    description: str | None = None
    operation_configurations: dict[str, TemplateOperationConfig]


class ConfigurationTemplateModel(BaseModel):
    id: UUID
    template_code: str
    template_name: str
    description: str | None
    operation_configurations: dict[str, TemplateOperationConfig]
    is_active: bool
    usage_count: int
    last_used_at: datetime | None

    model_config = {"from_attributes": True}


class TemplateApplyResultModel(BaseModel):
    template_id: UUID
    tenant_id: UUID
    applied_operations: list[str]


class TenantConfigurationsModel(BaseModel):
    tenant_id: UUID
    configurations: list[OperationConfigModel]


OperationConfigResponse = APIResponse[OperationConfigModel]
OperationConfigListResponse = APIResponse[list[OperationConfigModel]]
TenantConfigurationsResponse = APIResponse[TenantConfigurationsModel]
BulkUpdateResponse = APIResponse[BulkUpdateResultModel]
ResetResponse = APIResponse[ResetResultModel]
TemplateResponse = APIResponse[ConfigurationTemplateModel]
TemplateListResponse = APIResponse[list[ConfigurationTemplateModel]]
TemplateApplyResponse = APIResponse[TemplateApplyResultModel]
