"""Tests for the commission calculator"""

import pytest

from sessionhub.exceptions import InvalidAmount
from sessionhub.services.commission import CommissionCalculator, calculate_commission_breakdown
from tests.conftest import make_settings


@pytest.fixture
def calculator():
    return CommissionCalculator(make_settings())


def test_standard_breakdown(calculator):
    breakdown = calculator.calculate(10000)

    assert breakdown.to_dict() == {
        "base_amount": 10000,
        "provider_commission": 1000,
        "requester_fee": 500,
        # (10000 + 500) * 2.9% = 304.5, rounded half-up, plus 30 fixed
        "processing_fee": 335,
        "total_amount": 10835,
        "provider_payout": 9000,
        "platform_revenue": 1500,
    }


def test_each_step_rounds_half_up(calculator):
    breakdown = calculator.calculate(5)

    assert breakdown.provider_commission == 1  # 0.5 rounds up
    assert breakdown.requester_fee == 0  # 0.25 rounds down
    assert breakdown.processing_fee == 30
    assert breakdown.total_amount == 35


def test_smallest_amount_still_pays_fixed_fee(calculator):
    breakdown = calculator.calculate(1)

    assert breakdown.provider_commission == 0
    assert breakdown.processing_fee == 30
    assert breakdown.total_amount == 31
    assert breakdown.provider_payout == 1


@pytest.mark.parametrize("base", [1, 7, 99, 333, 1999, 12345, 99999, 1_000_001])
def test_breakdown_totals_are_consistent(calculator, base):
    breakdown = calculator.calculate(base)

    assert breakdown.total_amount == base + breakdown.requester_fee + breakdown.processing_fee
    assert breakdown.platform_revenue == breakdown.provider_commission + breakdown.requester_fee
    assert breakdown.provider_payout == base - breakdown.provider_commission


def test_same_input_same_output(calculator):
    assert calculator.calculate(4321) == calculator.calculate(4321)


@pytest.mark.parametrize("base", [0, -1, -10000, 10.5, "100", None, True])
def test_invalid_amounts_rejected(calculator, base):
    with pytest.raises(InvalidAmount):
        calculator.calculate(base)


def test_configured_percentages():
    settings = make_settings(
        provider_commission_percent=20,
        requester_fee_percent=0,
        processing_fee_percent=0,
        processing_fee_fixed_cents=0,
    )
    breakdown = calculate_commission_breakdown(1000, settings)

    assert breakdown.provider_commission == 200
    assert breakdown.total_amount == 1000
    assert breakdown.provider_payout == 800
    assert breakdown.platform_revenue == 200


def test_metadata_values_are_strings(calculator):
    metadata = calculator.calculate(10000).to_metadata()

    assert metadata["total_amount"] == "10835"
    assert all(isinstance(value, str) for value in metadata.values())
