"""Credit package catalog and ledger constants."""

from dataclasses import dataclass
from decimal import Decimal


class BalanceStatus:
    ACTIVE = "active"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    NO_CREDITS = "no_credits"
    INACTIVE = "inactive"


INITIALIZATION_OPERATION = "initialization"
PURCHASE_SOURCE = "purchase"
REFUND_OPERATION = "refund"
ALLOCATION_OPERATION_PREFIX = "application_allocation"
CREDIT_ALLOCATED_EVENT = "credit.allocated"
EXPIRY_OPERATION = "credit_expiry"

DEFAULT_INITIAL_CREDITS = Decimal("1000")


@dataclass(frozen=True)
class CreditPackage:
    """A purchasable bundle of credits."""

    id: str
    name: str
    credits: Decimal
    price: Decimal
    currency: str
    description: str
    features: tuple[str, ...]
    recommended: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "credits": self.credits,
            "price": self.price,
            "currency": self.currency,
            "description": self.description,
            "features": list(self.features),
            "recommended": self.recommended,
        }


CREDIT_PACKAGES: dict[str, CreditPackage] = {
    "starter": CreditPackage(
        id="starter",
        name="Starter Package",
        credits=Decimal("1000"),
        price=Decimal("49"),
        currency="USD",
        description="Perfect for small businesses getting started",
        features=(
            "1,000 credits",
            "Basic operations support",
            "Email support",
            "1 month validity",
        ),
    ),
    "professional": CreditPackage(
        id="professional",
        name="Professional Package",
        credits=Decimal("5000"),
        price=Decimal("199"),
        currency="USD",
        description="Ideal for growing businesses with regular operations",
        features=(
            "5,000 credits",
            "Advanced operations support",
            "Priority email support",
            "3 months validity",
            "Basic reporting",
        ),
        recommended=True,
    ),
    "enterprise": CreditPackage(
        id="enterprise",
        name="Enterprise Package",
        credits=Decimal("15000"),
        price=Decimal("499"),
        currency="USD",
        description="For large organizations with high-volume operations",
        features=(
            "15,000 credits",
            "Full operations support",
            "Phone & email support",
            "6 months validity",
            "Advanced reporting",
            "Custom integrations",
        ),
    ),
}
