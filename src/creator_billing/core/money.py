"""Currency and timestamp helpers shared by the webhook handlers."""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

# Fraction of each gross payment retained by the platform.
PLATFORM_FEE_RATE = Decimal("0.05")

MINOR_UNITS_PER_MAJOR = Decimal(100)


def to_decimal(value: Any) -> Optional[Decimal]:
    try:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, Decimal):
            return value
        if isinstance(value, (int, float)):
            return Decimal(str(value))
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def minor_to_major(amount_minor: Any) -> Decimal:
    """Convert provider minor units (cents) into major units (dollars)."""
    amount = to_decimal(amount_minor)
    if amount is None:
        return Decimal("0")
    return amount / MINOR_UNITS_PER_MAJOR


def artist_share(gross: Decimal) -> Decimal:
    """Portion of a gross payment credited to the artist.

    The result is exact; no per-payment rounding is applied so that repeated
    application never drifts from the closed-form total.
    """
    return gross * (Decimal(1) - PLATFORM_FEE_RATE)


def format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(Decimal('0.01')):,}"


def from_epoch(value: Any) -> Optional[datetime]:
    """Epoch seconds to an aware UTC datetime; ``None`` for missing or bad input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
