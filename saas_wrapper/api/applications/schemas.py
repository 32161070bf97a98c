"""Tenant application assignment schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from saas_wrapper.api.core.messages import APIResponse


class AssignmentModel(BaseModel):
    app_code: str
    app_name: str
    is_enabled: bool
    enabled_modules: list[str]
    custom_permissions: dict[str, list[str]]
    subscription_tier: str | None = None
    max_users: int | None = None
    expires_at: datetime | None = None


class SyncResultModel(BaseModel):
    tenant_id: UUID
    reason: str
    plan_id: str | None = None
    roles_updated: int
    permissions: dict[str, dict[str, list[str]]]
    enabled_app_codes: list[str]
    delivered: list[str]
    failed: dict[str, str]


class AssignmentResultModel(BaseModel):
    assignment: AssignmentModel | None
    sync: SyncResultModel


class BulkAssignmentItemResult(BaseModel):
    app_code: str
    success: bool
    error: str | None = None


class BulkAssignmentResultModel(BaseModel):
    results: list[BulkAssignmentItemResult]
    sync: SyncResultModel


class PlanChangeResultModel(BaseModel):
    plan_id: str
    enabled_app_codes: list[str]
    disabled_app_codes: list[str]
    sync: SyncResultModel


# Requests


class AssignApplicationRequest(BaseModel):
    enabled_modules: list[str] | None = None
    custom_permissions: dict[str, list[str]] | None = None
    subscription_tier: str | None = None
    max_users: int | None = None
    expires_at: datetime | None = None


class BulkAssignmentItem(AssignApplicationRequest):
    app_code: str


class BulkAssignRequest(BaseModel):
    assignments: list[BulkAssignmentItem]


class ToggleModuleRequest(BaseModel):
    enabled: bool


class CustomPermissionsRequest(BaseModel):
    custom_permissions: dict[str, list[str]]


class ChangePlanRequest(BaseModel):
    plan_id: str


class SyncRequest(BaseModel):
    reason: str = "manual_sync"
    plan_id: str | None = None


AssignmentListResponse = APIResponse[list[AssignmentModel]]
AssignmentResponse = APIResponse[AssignmentResultModel]
BulkAssignmentResponse = APIResponse[BulkAssignmentResultModel]
PlanChangeResponse = APIResponse[PlanChangeResultModel]
SyncResponse = APIResponse[SyncResultModel]
