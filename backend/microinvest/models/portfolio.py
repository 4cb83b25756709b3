from decimal import Decimal
from typing import Iterable

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, Text

from microinvest.core.database import Base
from microinvest.core.exceptions import InsufficientFundsError, ValidationError
from microinvest.models.base import IdMixin, TimestampMixin, ZERO, as_decimal, to_money


class Portfolio(Base, IdMixin, TimestampMixin):
    """
    A user's simulated brokerage account.

    Cash moves only through add_cash/subtract_cash so that
    0 <= cash_balance <= total_value holds after every mutation.
    """
    __tablename__ = "portfolios"

    user_id = Column(Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"),
                     nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    total_value = Column(Numeric(14, 2), nullable=False, default=ZERO)
    cash_balance = Column(Numeric(14, 2), nullable=False, default=ZERO)
    is_default = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs):
        kwargs.setdefault("total_value", ZERO)
        kwargs.setdefault("cash_balance", ZERO)
        kwargs.setdefault("is_default", False)
        kwargs.setdefault("active", True)
        super().__init__(**kwargs)

    @property
    def invested_amount(self) -> Decimal:
        return self.total_value - self.cash_balance

    def has_sufficient_cash(self, amount) -> bool:
        return self.cash_balance >= as_decimal(amount)

    def add_cash(self, amount) -> None:
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Amount must be positive", {"amount": str(amount)})
        self.cash_balance = to_money(self.cash_balance + amount)
        self.total_value = to_money(self.total_value + amount)

    def subtract_cash(self, amount) -> None:
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Amount must be positive", {"amount": str(amount)})
        if not self.has_sufficient_cash(amount):
            raise InsufficientFundsError(amount, self.cash_balance)
        self.cash_balance = to_money(self.cash_balance - amount)
        self.total_value = to_money(self.total_value - amount)

    def apply_cash_flow(self, signed_amount) -> None:
        """Credit positive amounts, debit negative ones."""
        signed_amount = to_money(signed_amount)
        if signed_amount > ZERO:
            self.add_cash(signed_amount)
        elif signed_amount < ZERO:
            self.subtract_cash(-signed_amount)

    def recalculate_value(self, positions: Iterable) -> Decimal:
        held = sum((p.current_value for p in positions if p.active), ZERO)
        self.total_value = to_money(self.cash_balance + held)
        return self.total_value

    def validate_state(self) -> None:
        if self.cash_balance < ZERO:
            raise ValidationError("Cash balance cannot be negative",
                                  {"portfolio_id": self.id, "cash_balance": str(self.cash_balance)})
        if self.total_value < ZERO:
            raise ValidationError("Total value cannot be negative",
                                  {"portfolio_id": self.id, "total_value": str(self.total_value)})
        if self.cash_balance > self.total_value:
            raise ValidationError("Cash balance cannot exceed total value",
                                  {"portfolio_id": self.id})

    def __repr__(self):
        return f"<Portfolio {self.id} {self.name} cash={self.cash_balance}>"
