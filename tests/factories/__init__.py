"""Test factories for SaaS Wrapper models."""

from .base import AsyncSQLAlchemyModelFactory
from .entities import EntityFactory, OrganizationMembershipFactory
from .ledger import CreditLedgerFactory, CreditPurchaseFactory, CreditTransactionFactory
from .configuration import CreditConfigurationFactory, CreditConfigurationTemplateFactory
from .applications import (
    ApplicationFactory,
    ApplicationModuleFactory,
    TenantApplicationAssignmentFactory,
)
from .roles import CustomRoleFactory

__all__ = [
    "AsyncSQLAlchemyModelFactory",
    "EntityFactory",
    "OrganizationMembershipFactory",
    "CreditLedgerFactory",
    "CreditPurchaseFactory",
    "CreditTransactionFactory",
    "CreditConfigurationFactory",
    "CreditConfigurationTemplateFactory",
    "ApplicationFactory",
    "ApplicationModuleFactory",
    "TenantApplicationAssignmentFactory",
    "CustomRoleFactory",
]
