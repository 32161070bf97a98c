"""Declarative base and shared column types."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Credit amounts are stored with two decimal places
CREDIT_DECIMAL_PLACES = 2
CreditAmount = Numeric(18, CREDIT_DECIMAL_PLACES, asdecimal=True)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes returned by backends without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


ZERO = Decimal("0.00")


def fits_credit_precision(amount: Decimal) -> bool:
    """True when the amount is finite and has no digits past the cent."""
    return (
        amount.is_finite()
        and amount.normalize().as_tuple().exponent >= -CREDIT_DECIMAL_PLACES
    )


class Base(DeclarativeBase):
    pass
