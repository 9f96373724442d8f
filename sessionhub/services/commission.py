"""Commission breakdown for booking payments"""

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sessionhub.config import Settings, settings as default_settings
from sessionhub.exceptions import InvalidAmount

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class CommissionBreakdown:
    """Monetary breakdown of one booking payment, all in minor currency units"""
    base_amount: int
    provider_commission: int
    requester_fee: int
    processing_fee: int
    total_amount: int
    provider_payout: int
    platform_revenue: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    def to_metadata(self) -> dict[str, str]:
        """String values for payment processor metadata"""
        return {key: str(value) for key, value in asdict(self).items()}


class CommissionCalculator:
    """
    Computes what the requester pays and how it is split.

    Every step rounds half-up to a whole minor unit before the next step
    uses it, so the same base amount always yields the same breakdown:

        provider_commission = round(base * commission%)
        requester_fee       = round(base * fee%)
        processing_fee      = round((base + requester_fee) * processing%) + fixed
        total_amount        = base + requester_fee + processing_fee
        provider_payout     = base - provider_commission
        platform_revenue    = provider_commission + requester_fee
    """

    def __init__(self, settings: Settings | None = None):
        settings = settings or default_settings
        self.commission_percent = Decimal(str(settings.provider_commission_percent))
        self.fee_percent = Decimal(str(settings.requester_fee_percent))
        self.processing_percent = Decimal(str(settings.processing_fee_percent))
        self.processing_fixed = int(settings.processing_fee_fixed_cents)

    @staticmethod
    def _round_to_int(value: Decimal) -> int:
        return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def _percent_of(self, amount: int, percent: Decimal) -> int:
        return self._round_to_int(Decimal(amount) * percent / HUNDRED)

    def calculate(self, base_amount: Any) -> CommissionBreakdown:
        # bool is an int subclass; True is not an amount
        if isinstance(base_amount, bool) or not isinstance(base_amount, int) or base_amount <= 0:
            raise InvalidAmount(base_amount)

        provider_commission = self._percent_of(base_amount, self.commission_percent)
        requester_fee = self._percent_of(base_amount, self.fee_percent)
        processing_variable = self._percent_of(base_amount + requester_fee, self.processing_percent)
        processing_fee = processing_variable + self.processing_fixed

        return CommissionBreakdown(
            base_amount=base_amount,
            provider_commission=provider_commission,
            requester_fee=requester_fee,
            processing_fee=processing_fee,
            total_amount=base_amount + requester_fee + processing_fee,
            provider_payout=base_amount - provider_commission,
            platform_revenue=provider_commission + requester_fee,
        )

    def describe(self) -> str:
        return (
            f"{self.commission_percent}% provider commission + {self.fee_percent}% requester fee "
            f"+ {self.processing_percent}% / {self.processing_fixed} processing"
        )


def calculate_commission_breakdown(base_amount: Any, settings: Settings | None = None) -> CommissionBreakdown:
    """Convenience wrapper around CommissionCalculator.calculate"""
    return CommissionCalculator(settings).calculate(base_amount)
