"""Credits domain router."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from saas_wrapper.api.core.dependencies import (
    ActorDep,
    CreditBalanceServiceDep,
    CreditExpiryServiceDep,
    CreditOperationsServiceDep,
    CreditPurchaseServiceDep,
)
from saas_wrapper.api.core.exceptions.base import WrapperException
from saas_wrapper.api.core.messages import APIResponse, MessageCode
from saas_wrapper.api.credits.schemas import (
    AllocateCreditsRequest,
    AllocationResponse,
    CheckoutRequest,
    CheckoutResponse,
    ConsumeCreditsRequest,
    CreditBalanceResponse,
    CreditMutationResponse,
    CreditPackagesResponse,
    CreditStatsResponse,
    ExpiringCreditsResponse,
    ExpiryRunResponse,
    ExpiryStatsResponse,
    PurchaseCreditsRequest,
    PurchaseResponse,
    TransactionHistoryResponse,
    TransferCreditsRequest,
    TransferResponse,
    UsageSummaryResponse,
)
from saas_wrapper.database.models import TransactionType

router = APIRouter(
    prefix="/tenants/{tenant_id}/credits",
    tags=["credits"],
)

packages_router = APIRouter(prefix="/credits", tags=["credits"])


@packages_router.get("/packages", response_model=CreditPackagesResponse)
async def get_credit_packages(
    operations: CreditOperationsServiceDep,
) -> CreditPackagesResponse:
    """List the purchasable credit packages."""
    return APIResponse.success(
        message_code=MessageCode.SUCCESS, data=operations.get_available_packages()
    )


@router.get("/balance", response_model=CreditBalanceResponse)
async def get_balance(
    tenant_id: UUID,
    balances: CreditBalanceServiceDep,
) -> CreditBalanceResponse:
    """Balance of the tenant's root organization."""
    balance = await balances.get_current_balance(tenant_id)
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=balance)


@router.get("/balance/{entity_id}", response_model=CreditBalanceResponse)
async def get_entity_balance(
    tenant_id: UUID,
    entity_id: UUID,
    balances: CreditBalanceServiceDep,
) -> CreditBalanceResponse:
    balance = await balances.get_entity_balance(tenant_id, entity_id)
    if balance is None:
        raise WrapperException(
            MessageCode.LEDGER_NOT_FOUND,
            status.HTTP_404_NOT_FOUND,
            details={"entity_id": str(entity_id)},
        )
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=balance)


@router.get("/transactions", response_model=TransactionHistoryResponse)
async def get_transactions(
    tenant_id: UUID,
    balances: CreditBalanceServiceDep,
    entity_id: UUID | None = None,
    transaction_type: TransactionType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
) -> TransactionHistoryResponse:
    """Transaction log, newest first."""
    history = await balances.get_transaction_history(
        tenant_id,
        entity_id=entity_id,
        transaction_type=transaction_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=history)


@router.get("/usage", response_model=UsageSummaryResponse)
async def get_usage_summary(
    tenant_id: UUID,
    balances: CreditBalanceServiceDep,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    entity_id: UUID | None = None,
) -> UsageSummaryResponse:
    """Usage aggregates for a period, the current month by default."""
    summary = await balances.get_usage_summary(
        tenant_id, start_date=start_date, end_date=end_date, entity_id=entity_id
    )
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=summary)


@router.get("/stats", response_model=CreditStatsResponse)
async def get_credit_stats(
    tenant_id: UUID,
    balances: CreditBalanceServiceDep,
) -> CreditStatsResponse:
    stats = await balances.get_credit_stats(tenant_id)
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=stats)


@router.post("/purchase", response_model=CreditMutationResponse)
async def purchase_credits(
    tenant_id: UUID,
    request: PurchaseCreditsRequest,
    operations: CreditOperationsServiceDep,
    actor_id: ActorDep,
) -> CreditMutationResponse:
    """Grant purchased credits directly, bypassing checkout."""
    result = await operations.purchase_credits(
        tenant_id=tenant_id,
        entity_id=request.entity_id,
        amount=request.amount,
        metadata=request.metadata,
        initiated_by=actor_id,
    )
    return APIResponse.success(message_code=MessageCode.CREDITS_PURCHASED, data=result)


@router.post("/consume", response_model=CreditMutationResponse)
async def consume_credits(
    tenant_id: UUID,
    request: ConsumeCreditsRequest,
    operations: CreditOperationsServiceDep,
    actor_id: ActorDep,
) -> CreditMutationResponse:
    result = await operations.consume_credits(
        tenant_id=tenant_id,
        entity_id=request.entity_id,
        amount=request.amount,
        operation_code=request.operation_code,
        metadata=request.metadata,
        initiated_by=actor_id,
    )
    return APIResponse.success(message_code=MessageCode.CREDITS_CONSUMED, data=result)


@router.post("/transfer", response_model=TransferResponse)
async def transfer_credits(
    tenant_id: UUID,
    request: TransferCreditsRequest,
    operations: CreditOperationsServiceDep,
    actor_id: ActorDep,
) -> TransferResponse:
    result = await operations.transfer_credits(
        tenant_id=tenant_id,
        from_entity_id=request.from_entity_id,
        to_entity_id=request.to_entity_id,
        amount=request.amount,
        metadata=request.metadata,
        initiated_by=actor_id,
    )
    return APIResponse.success(
        message_code=MessageCode.CREDITS_TRANSFERRED, data=result
    )


@router.post("/allocate", response_model=AllocationResponse)
async def allocate_credits(
    tenant_id: UUID,
    request: AllocateCreditsRequest,
    operations: CreditOperationsServiceDep,
    actor_id: ActorDep,
) -> AllocationResponse:
    result = await operations.allocate_credits_to_application(
        tenant_id=tenant_id,
        source_entity_id=request.source_entity_id,
        target_application=request.target_application,
        amount=request.amount,
        allocation_purpose=request.allocation_purpose,
        initiated_by=actor_id,
    )
    return APIResponse.success(message_code=MessageCode.CREDITS_ALLOCATED, data=result)


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    tenant_id: UUID,
    request: CheckoutRequest,
    purchases: CreditPurchaseServiceDep,
    actor_id: ActorDep,
) -> CheckoutResponse:
    """Start a paid purchase; credits land once the payment completes."""
    checkout = await purchases.create_checkout(
        tenant_id,
        requested_by=actor_id,
        package_id=request.package_id,
        credit_amount=request.credit_amount,
        entity_id=request.entity_id,
    )
    return APIResponse.success(message_code=MessageCode.CHECKOUT_CREATED, data=checkout)


@router.post("/purchases/{purchase_id}/refund", response_model=PurchaseResponse)
async def refund_purchase(
    tenant_id: UUID,
    purchase_id: UUID,
    purchases: CreditPurchaseServiceDep,
    actor_id: ActorDep,
) -> PurchaseResponse:
    purchase = await purchases.refund_purchase(
        purchase_id, requested_by=actor_id, tenant_id=tenant_id
    )
    return APIResponse.success(message_code=MessageCode.PURCHASE_REFUNDED, data=purchase)


@router.get("/expiring", response_model=ExpiringCreditsResponse)
async def get_expiring_credits(
    tenant_id: UUID,
    expiry: CreditExpiryServiceDep,
    days: int = Query(default=7, ge=1, le=365),
    entity_id: UUID | None = None,
) -> ExpiringCreditsResponse:
    """Ledgers whose unused credits expire within the next ``days`` days."""
    expiring = await expiry.get_expiring_credits(
        tenant_id, days_ahead=days, entity_id=entity_id
    )
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=expiring)


@router.get("/expiry/stats", response_model=ExpiryStatsResponse)
async def get_expiry_stats(
    tenant_id: UUID,
    expiry: CreditExpiryServiceDep,
) -> ExpiryStatsResponse:
    stats = await expiry.get_expiry_stats(tenant_id)
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=stats)


@router.post("/expiry/process", response_model=ExpiryRunResponse)
async def process_expired_credits(
    tenant_id: UUID,
    expiry: CreditExpiryServiceDep,
) -> ExpiryRunResponse:
    """Expire unused credits on the tenant's ledgers that are past their expiry."""
    run = await expiry.process_expired_credits(tenant_id=tenant_id)
    return APIResponse.success(message_code=MessageCode.CREDITS_EXPIRED, data=run)
