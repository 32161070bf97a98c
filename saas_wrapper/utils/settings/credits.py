"""Credit ledger settings configuration."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class CreditSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Cost charged when neither tenant, global nor caller supplies one
    DEFAULT_OPERATION_COST: Decimal = Decimal("1.00")
    CREDIT_UNIT_PRICE: Decimal = Decimal("0.001")

    LOW_BALANCE_THRESHOLD: Decimal = Decimal("100")
    CRITICAL_BALANCE_THRESHOLD: Decimal = Decimal("10")
    EXPIRY_WARNING_DAYS: int = 30

    LEDGER_CONFLICT_RETRIES: int = 1

    EVENT_PUBLISHER_BACKEND: str = "redis"  # "redis" | "memory"
    PAYMENT_GATEWAY_BACKEND: str = "stripe"  # "stripe" | "mock"


__all__ = ["CreditSettings"]
