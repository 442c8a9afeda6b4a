from decimal import Decimal

import pytest

from livestockway.services.errors import InvalidAmount
from livestockway.services.fee_calculator import calculate_shipper_charge


def test_default_fees_for_one_hundred_dollars():
    charge = calculate_shipper_charge(10000)

    assert charge.base_amount_cents == 10000
    assert charge.platform_fee_cents == 300
    assert charge.total_charged_cents == 10639
    assert charge.stripe_fee_cents == 339
    assert charge.total_charged_cents == charge.base_amount_cents + charge.platform_fee_cents + charge.stripe_fee_cents


def test_zero_base_still_covers_fixed_fee():
    charge = calculate_shipper_charge(0)

    assert charge.platform_fee_cents == 0
    assert charge.total_charged_cents == 31
    assert charge.stripe_fee_cents == 31


def test_platform_fee_rounds_half_up():
    assert calculate_shipper_charge(50).platform_fee_cents == 2
    assert calculate_shipper_charge(150).platform_fee_cents == 5
    assert calculate_shipper_charge(149).platform_fee_cents == 4


def test_explicit_rates_override_config():
    charge = calculate_shipper_charge(
        10000, platform_fee_percent=0, processing_rate=0, processing_fixed_cents=0
    )
    assert charge.total_charged_cents == 10000
    assert charge.stripe_fee_cents == 0


@pytest.mark.parametrize("base", [1, 99, 1234, 10000, 250000, 9999999])
def test_gross_up_covers_stripe_fee(base):
    charge = calculate_shipper_charge(base)
    subtotal = charge.base_amount_cents + charge.platform_fee_cents

    assert charge.total_charged_cents - charge.platform_fee_cents - charge.stripe_fee_cents == base

    # What Stripe keeps back from the gross charge
    net = Decimal(charge.total_charged_cents) * (1 - Decimal("0.029")) - 30
    assert net >= subtotal
    # Rounding up never overshoots by a whole cent
    assert Decimal(charge.total_charged_cents - 1) * (1 - Decimal("0.029")) - 30 < subtotal


def test_whole_number_floats_are_accepted():
    assert calculate_shipper_charge(10000.0).total_charged_cents == 10639


@pytest.mark.parametrize(
    "value",
    [-1, 1.5, True, float("nan"), float("inf"), "abc", None],
)
def test_rejects_invalid_base_amounts(value):
    with pytest.raises(InvalidAmount):
        calculate_shipper_charge(value)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"processing_rate": 1},
        {"processing_rate": -0.1},
        {"platform_fee_percent": -1},
        {"processing_fixed_cents": -30},
        {"processing_rate": float("nan")},
    ],
)
def test_rejects_out_of_range_rates(kwargs):
    with pytest.raises(InvalidAmount):
        calculate_shipper_charge(10000, **kwargs)


def test_invalid_amount_is_a_value_error():
    assert issubclass(InvalidAmount, ValueError)
