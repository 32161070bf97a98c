"""Application entitlements and Organization-Admin permission sync."""

from saas_wrapper.modules.entitlements.assignments import ApplicationAssignmentService
from saas_wrapper.modules.entitlements.sync import (
    TENANT_APPLICATIONS_UPDATED,
    EntitlementSyncService,
)

__all__ = [
    "ApplicationAssignmentService",
    "EntitlementSyncService",
    "TENANT_APPLICATIONS_UPDATED",
]
