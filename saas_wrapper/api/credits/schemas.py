"""Credits API schemas (combined models/requests)."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from saas_wrapper.api.core.messages import APIResponse, Paginated


class BalanceAlertModel(BaseModel):
    type: str
    severity: str
    message: str


class CreditBalanceModel(BaseModel):
    tenant_id: UUID
    entity_id: UUID | None
    available_credits: Decimal
    total_credits: Decimal
    period_type: str | None = None
    credit_expiry: datetime | None = None
    last_updated_at: datetime | None = None
    status: str
    alerts: list[BalanceAlertModel] = []


class CreditTransactionModel(BaseModel):
    id: UUID
    entity_id: UUID
    transaction_type: str
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    operation_code: str | None
    description: str | None
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias="metadata_json"
    )
    initiated_by: UUID | None
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class UsagePeriodModel(BaseModel):
    start_date: datetime
    end_date: datetime


class UsageSummaryModel(BaseModel):
    period: UsagePeriodModel
    total_consumed: Decimal
    total_purchased: Decimal
    total_refunded: Decimal
    total_allocated: Decimal
    total_expired: Decimal
    net_credits: Decimal
    transaction_count: int
    by_transaction_type: dict[str, Decimal]
    by_operation: dict[str, Decimal]


class CreditStatsModel(BaseModel):
    total_available: Decimal
    total_credits: Decimal
    entity_count: int
    usage: UsageSummaryModel
    transaction_count: int
    transaction_volume: Decimal


class CreditMutationModel(BaseModel):
    transaction_id: UUID
    entity_id: UUID
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    operation_code: str | None = None


class TransferResultModel(BaseModel):
    from_entity_id: UUID
    to_entity_id: UUID
    amount: Decimal
    source_balance: Decimal
    destination_balance: Decimal
    transaction_ids: list[UUID]


class AllocationResultModel(CreditMutationModel):
    target_application: str
    allocation_purpose: str | None = None
    notified: bool


class ExpiredCreditsModel(BaseModel):
    tenant_id: UUID
    entity_id: UUID
    transaction_id: UUID
    expired_credits: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    expired_at: datetime


class ExpiryRunModel(BaseModel):
    processed_count: int
    error_count: int
    total_expired: Decimal
    expired: list[ExpiredCreditsModel]
    processed_at: datetime


class ExpiringCreditsModel(BaseModel):
    entity_id: UUID
    available_credits: Decimal
    total_credits: Decimal
    credit_expiry: datetime
    days_until_expiry: int


class ExpiryWindowModel(BaseModel):
    count: int
    credits: Decimal


class ExpiryStatsModel(BaseModel):
    expiring_within_7_days: ExpiryWindowModel
    expiring_within_30_days: ExpiryWindowModel
    expired_unprocessed: ExpiryWindowModel


class CreditPackageModel(BaseModel):
    id: str
    name: str
    credits: Decimal
    price: Decimal
    currency: str
    description: str
    features: list[str]
    recommended: bool


class CheckoutModel(BaseModel):
    purchase_id: UUID
    checkout_session_id: str
    checkout_url: str | None
    credit_amount: Decimal
    total_amount: Decimal
    currency: str
    status: str


class PurchaseModel(BaseModel):
    id: UUID
    tenant_id: UUID
    entity_id: UUID
    package_id: str | None
    credit_amount: Decimal
    total_amount: Decimal
    currency: str
    status: str
    checkout_session_id: str | None
    payment_reference: str | None
    refund_reference: str | None
    paid_at: datetime | None
    refunded_at: datetime | None

    model_config = {"from_attributes": True}


# Requests


class PurchaseCreditsRequest(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    entity_id: UUID | None = None
    metadata: dict[str, Any] = {}


class ConsumeCreditsRequest(BaseModel):
    operation_code: str
    amount: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    entity_id: UUID | None = None
    metadata: dict[str, Any] = {}


class TransferCreditsRequest(BaseModel):
    from_entity_id: UUID
    to_entity_id: UUID
    amount: Decimal = Field(gt=0, decimal_places=2)
    metadata: dict[str, Any] = {}


class AllocateCreditsRequest(BaseModel):
    source_entity_id: UUID | None = None
    target_application: str
    amount: Decimal = Field(gt=0, decimal_places=2)
    allocation_purpose: str | None = None


class CheckoutRequest(BaseModel):
    package_id: str | None = None
    credit_amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    entity_id: UUID | None = None


# Response type aliases
CreditBalanceResponse = APIResponse[CreditBalanceModel]
TransactionHistoryResponse = APIResponse[Paginated[CreditTransactionModel]]
UsageSummaryResponse = APIResponse[UsageSummaryModel]
CreditStatsResponse = APIResponse[CreditStatsModel]
CreditMutationResponse = APIResponse[CreditMutationModel]
TransferResponse = APIResponse[TransferResultModel]
AllocationResponse = APIResponse[AllocationResultModel]
CreditPackagesResponse = APIResponse[list[CreditPackageModel]]
CheckoutResponse = APIResponse[CheckoutModel]
PurchaseResponse = APIResponse[PurchaseModel]
ExpiryRunResponse = APIResponse[ExpiryRunModel]
ExpiringCreditsResponse = APIResponse[list[ExpiringCreditsModel]]
ExpiryStatsResponse = APIResponse[ExpiryStatsModel]
