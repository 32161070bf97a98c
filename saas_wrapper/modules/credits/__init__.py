"""Credit ledger services."""

from saas_wrapper.modules.credits.balance import CreditBalanceService
from saas_wrapper.modules.credits.core import CreditCoreService
from saas_wrapper.modules.credits.expiry import CreditExpiryService
from saas_wrapper.modules.credits.operations import CreditOperationsService
from saas_wrapper.modules.credits.purchases import CreditPurchaseService

__all__ = [
    "CreditBalanceService",
    "CreditCoreService",
    "CreditExpiryService",
    "CreditOperationsService",
    "CreditPurchaseService",
]
