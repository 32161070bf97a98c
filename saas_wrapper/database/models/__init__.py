"""Database models for the SaaS wrapper platform."""

from .applications import (
    Application,
    ApplicationModule,
    ApplicationStatus,
    TenantApplicationAssignment,
)
from .base import Base
from .configuration import (
    ConfigChangeType,
    ConfigurationChangeLog,
    CreditConfiguration,
    CreditConfigurationTemplate,
)
from .entities import Entity, EntityType, MembershipStatus, OrganizationMembership
from .events import EventStatus, EventTrackingRecord
from .ledger import CreditLedgerEntry, CreditTransaction, TransactionType
from .purchases import CreditPurchase, PurchaseStatus
from .roles import ORGANIZATION_ADMIN_ROLE_NAME, CustomRole

# Export all models and enums
__all__ = [
    # Base
    "Base",
    # Enums
    "ApplicationStatus",
    "ConfigChangeType",
    "EntityType",
    "EventStatus",
    "MembershipStatus",
    "PurchaseStatus",
    "TransactionType",
    # Constants
    "ORGANIZATION_ADMIN_ROLE_NAME",
    # Models
    "Application",
    "ApplicationModule",
    "TenantApplicationAssignment",
    "ConfigurationChangeLog",
    "CreditConfiguration",
    "CreditConfigurationTemplate",
    "Entity",
    "OrganizationMembership",
    "EventTrackingRecord",
    "CreditLedgerEntry",
    "CreditTransaction",
    "CreditPurchase",
    "CustomRole",
]
