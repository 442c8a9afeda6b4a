"""
Fee Calculator - grosses up a hauler payout so platform and Stripe fees are covered.

All amounts are integer cents. The only rounding points are the platform fee
(half-up) and the final gross-up division (always up), so the hauler is never
shorted by rounding.
"""
import math
from dataclasses import asdict, dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Optional, Union

import livestockway.core.config as config
from livestockway.services.errors import InvalidAmount

Number = Union[int, float, Decimal, str]


@dataclass(frozen=True)
class ShipperCharge:
    base_amount_cents: int
    platform_fee_cents: int
    stripe_fee_cents: int
    total_charged_cents: int

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def _to_decimal(value: Number, name: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmount(f"{name} must be numeric, got bool")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidAmount(f"{name} must be finite, got {value}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"{name} must be numeric, got {value!r}")
    if not result.is_finite():
        raise InvalidAmount(f"{name} must be finite, got {value}")
    return result


def _to_cents(value: Number, name: str) -> int:
    amount = _to_decimal(value, name)
    if amount != amount.to_integral_value():
        raise InvalidAmount(f"{name} must be a whole number of cents, got {value}")
    if amount < 0:
        raise InvalidAmount(f"{name} cannot be negative, got {value}")
    return int(amount)


def calculate_shipper_charge(
    base_amount_cents: Number,
    *,
    platform_fee_percent: Optional[Number] = None,
    processing_rate: Optional[Number] = None,
    processing_fixed_cents: Optional[Number] = None,
) -> ShipperCharge:
    """
    Calculate the total amount a shipper must pay so that:
     - the hauler receives exactly ``base_amount_cents``
     - the platform keeps ``platform_fee_percent`` of the base
     - Stripe's percentage-plus-fixed processing fee is covered

    Args:
        base_amount_cents: Hauler payout in cents
        platform_fee_percent: Platform commission percent (default from config)
        processing_rate: Stripe percentage as a fraction, e.g. 0.029
        processing_fixed_cents: Stripe flat fee per charge in cents

    Returns:
        ShipperCharge with every component in cents

    Raises:
        InvalidAmount: If any input is non-finite, negative or out of range
    """
    base = _to_cents(base_amount_cents, "base_amount_cents")
    percent = _to_decimal(
        config.STRIPE_PLATFORM_FEE_PERCENT if platform_fee_percent is None else platform_fee_percent,
        "platform_fee_percent",
    )
    rate = _to_decimal(
        config.STRIPE_PROCESSING_RATE if processing_rate is None else processing_rate,
        "processing_rate",
    )
    fixed = _to_cents(
        config.STRIPE_PROCESSING_FIXED_CENTS if processing_fixed_cents is None else processing_fixed_cents,
        "processing_fixed_cents",
    )

    if percent < 0:
        raise InvalidAmount(f"platform_fee_percent cannot be negative, got {percent}")
    if rate < 0 or rate >= 1:
        raise InvalidAmount(f"processing_rate must be in [0, 1), got {rate}")

    platform_fee = int(
        (Decimal(base) * percent / Decimal(100)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    )
    subtotal = base + platform_fee

    # total = (subtotal + fixed) / (1 - rate), rounded up
    total = int(
        (Decimal(subtotal + fixed) / (Decimal(1) - rate)).to_integral_value(rounding=ROUND_CEILING)
    )
    stripe_fee = total - subtotal

    return ShipperCharge(
        base_amount_cents=base,
        platform_fee_cents=platform_fee,
        stripe_fee_cents=stripe_fee,
        total_charged_cents=total,
    )
