"""Centralized message codes and default messages for API responses."""

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel


class MessageCode(str, Enum):
    """Centralized message codes for API responses."""

    # Success codes
    SUCCESS = "SUCCESS"
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"

    # Credit ledger
    CREDITS_PURCHASED = "CREDITS_PURCHASED"
    CREDITS_CONSUMED = "CREDITS_CONSUMED"
    CREDITS_TRANSFERRED = "CREDITS_TRANSFERRED"
    CREDITS_ALLOCATED = "CREDITS_ALLOCATED"
    CREDITS_EXPIRED = "CREDITS_EXPIRED"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_TRANSFER_TARGET = "INVALID_TRANSFER_TARGET"
    LEDGER_NOT_FOUND = "LEDGER_NOT_FOUND"
    LEDGER_CONFLICT = "LEDGER_CONFLICT"

    # Entity directory
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    ROOT_ORGANIZATION_NOT_FOUND = "ROOT_ORGANIZATION_NOT_FOUND"

    # Purchases
    CHECKOUT_CREATED = "CHECKOUT_CREATED"
    PURCHASE_COMPLETED = "PURCHASE_COMPLETED"
    PURCHASE_REFUNDED = "PURCHASE_REFUNDED"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    PURCHASE_NOT_FOUND = "PURCHASE_NOT_FOUND"
    PURCHASE_STATE_CONFLICT = "PURCHASE_STATE_CONFLICT"
    PAYMENT_EVENT_IGNORED = "PAYMENT_EVENT_IGNORED"
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"

    # Credit configuration
    CONFIGURATION_UPDATED = "CONFIGURATION_UPDATED"
    CONFIGURATION_RESET = "CONFIGURATION_RESET"
    TEMPLATE_CREATED = "TEMPLATE_CREATED"
    TEMPLATE_APPLIED = "TEMPLATE_APPLIED"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"

    # Applications and entitlements
    APPLICATION_ASSIGNED = "APPLICATION_ASSIGNED"
    APPLICATION_REMOVED = "APPLICATION_REMOVED"
    APPLICATION_NOT_FOUND = "APPLICATION_NOT_FOUND"
    ASSIGNMENT_NOT_FOUND = "ASSIGNMENT_NOT_FOUND"
    ENTITLEMENTS_SYNCED = "ENTITLEMENTS_SYNCED"
    PLAN_CHANGED = "PLAN_CHANGED"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"


# Default messages for each message code
DEFAULT_MESSAGES = {
    # Success messages
    MessageCode.SUCCESS: "Operation completed successfully",
    MessageCode.CREATED: "Resource created successfully",
    MessageCode.UPDATED: "Resource updated successfully",
    MessageCode.DELETED: "Resource deleted successfully",
    # Credit ledger
    MessageCode.CREDITS_PURCHASED: "Credits added successfully",
    MessageCode.CREDITS_CONSUMED: "Credits consumed successfully",
    MessageCode.CREDITS_TRANSFERRED: "Credits transferred successfully",
    MessageCode.CREDITS_ALLOCATED: "Credits allocated successfully",
    MessageCode.CREDITS_EXPIRED: "Expired credits processed",
    MessageCode.INSUFFICIENT_CREDITS: "Insufficient credits",
    MessageCode.INVALID_AMOUNT: "Amount must be greater than zero",
    MessageCode.INVALID_TRANSFER_TARGET: "Invalid transfer destination",
    MessageCode.LEDGER_NOT_FOUND: "No credit record found",
    MessageCode.LEDGER_CONFLICT: "Credit balance changed concurrently, please retry",
    # Entity directory
    MessageCode.ENTITY_NOT_FOUND: "Entity not found or inactive",
    MessageCode.ROOT_ORGANIZATION_NOT_FOUND: "No root organization found for tenant",
    # Purchases
    MessageCode.CHECKOUT_CREATED: "Checkout session created",
    MessageCode.PURCHASE_COMPLETED: "Purchase completed",
    MessageCode.PURCHASE_REFUNDED: "Purchase refunded",
    MessageCode.PACKAGE_NOT_FOUND: "Credit package not found",
    MessageCode.PURCHASE_NOT_FOUND: "Purchase not found",
    MessageCode.PURCHASE_STATE_CONFLICT: "Purchase is not in a valid state for this operation",
    MessageCode.PAYMENT_EVENT_IGNORED: "Payment event ignored",
    MessageCode.PAYMENT_GATEWAY_ERROR: "Payment provider error",
    # Credit configuration
    MessageCode.CONFIGURATION_UPDATED: "Configuration updated successfully",
    MessageCode.CONFIGURATION_RESET: "Configuration reset to global defaults",
    MessageCode.TEMPLATE_CREATED: "Configuration template created",
    MessageCode.TEMPLATE_APPLIED: "Configuration template applied",
    MessageCode.TEMPLATE_NOT_FOUND: "Configuration template not found",
    # Applications and entitlements
    MessageCode.APPLICATION_ASSIGNED: "Application assigned successfully",
    MessageCode.APPLICATION_REMOVED: "Application removed successfully",
    MessageCode.APPLICATION_NOT_FOUND: "Application not found",
    MessageCode.ASSIGNMENT_NOT_FOUND: "Application is not assigned to tenant",
    MessageCode.ENTITLEMENTS_SYNCED: "Tenant entitlements synchronized",
    MessageCode.PLAN_CHANGED: "Plan changed successfully",
    # Validation errors
    MessageCode.VALIDATION_ERROR: "Validation failed",
    MessageCode.INVALID_INPUT: "Invalid input provided",
    # Generic errors
    MessageCode.INTERNAL_ERROR: "Internal server error",
    MessageCode.INTERNAL_SERVER_ERROR: "Internal server error",
    MessageCode.RESOURCE_NOT_FOUND: "Resource not found",
    MessageCode.BAD_REQUEST: "Bad request",
    MessageCode.NOT_FOUND: "Resource not found",
}

T = TypeVar("T")


class PaginationInfo(BaseModel):
    """Common pagination information."""

    total: int
    limit: int
    offset: int
    has_more: bool


class Paginated(BaseModel, Generic[T]):
    """Generic paginated response wrapper."""

    items: list[T]
    pagination: PaginationInfo


class APIResponse(BaseModel, Generic[T]):
    """Base API response model with consistent structure and proper typing."""

    message_code: MessageCode
    message: str
    data: T | None = None

    @classmethod
    def success(
        cls,
        message_code: MessageCode = MessageCode.SUCCESS,
        message: str | None = None,
        data: T | None = None,
    ) -> "APIResponse[T]":
        """Create a success response."""
        return cls(
            message_code=message_code,
            message=message or DEFAULT_MESSAGES.get(message_code, "Success"),
            data=data,
        )


def get_default_message(message_code: MessageCode) -> str:
    """Get default message for a message code."""
    return DEFAULT_MESSAGES.get(message_code, "Operation completed")
