"""
Trading fee schedule.

A percentage of the trade value clamped to [minimum, maximum]. An all-zero
schedule models commission-free trading.
"""
from dataclasses import dataclass
from decimal import Decimal

from microinvest.core.config import settings
from microinvest.models.base import ZERO, as_decimal, to_money


@dataclass(frozen=True)
class FeeSchedule:
    rate: Decimal
    minimum: Decimal = ZERO
    maximum: Decimal = ZERO

    @classmethod
    def from_settings(cls) -> "FeeSchedule":
        return cls(
            rate=settings.FEE_RATE,
            minimum=settings.FEE_MINIMUM,
            maximum=settings.FEE_MAXIMUM,
        )

    @classmethod
    def zero(cls) -> "FeeSchedule":
        return cls(rate=ZERO, minimum=ZERO, maximum=ZERO)

    def calculate(self, amount) -> Decimal:
        amount = as_decimal(amount)
        if self.rate <= ZERO or amount <= ZERO:
            return ZERO
        fee = amount * self.rate
        if fee < self.minimum:
            fee = self.minimum
        if self.maximum > ZERO and fee > self.maximum:
            fee = self.maximum
        return to_money(fee)
