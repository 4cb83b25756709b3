from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text

from microinvest.core.database import Base
from microinvest.core.exceptions import InvalidStateTransitionError
from microinvest.models.base import IdMixin, TimestampMixin, ZERO, to_money
from microinvest.models.enums import TransactionStatus, TransactionType


class Transaction(Base, IdMixin, TimestampMixin):
    """
    Ledger record of a cash or share movement.

    Records are created PENDING and settle on settlement_date; amounts are
    fixed at creation.
    """
    __tablename__ = "transactions"

    portfolio_id = Column(Integer, ForeignKey("portfolios.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), index=True)
    security_id = Column(Integer, ForeignKey("securities.id"))
    symbol = Column(String(20))

    transaction_type = Column(Enum(TransactionType, native_enum=False, length=20), nullable=False)
    status = Column(Enum(TransactionStatus, native_enum=False, length=20), nullable=False,
                    default=TransactionStatus.PENDING, index=True)

    quantity = Column(Numeric(14, 4))
    price_per_share = Column(Numeric(14, 4))
    total_amount = Column(Numeric(14, 2), nullable=False)
    fees = Column(Numeric(14, 2), nullable=False, default=ZERO)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=ZERO)
    net_amount = Column(Numeric(14, 2), nullable=False)

    transaction_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    settlement_date = Column(DateTime)
    settled_at = Column(DateTime)
    notes = Column(Text)

    def __init__(self, settlement_days: int = 2, **kwargs):
        kwargs.setdefault("status", TransactionStatus.PENDING)
        kwargs.setdefault("fees", ZERO)
        kwargs.setdefault("tax_amount", ZERO)
        kwargs.setdefault("transaction_date", datetime.utcnow())
        super().__init__(**kwargs)
        if self.settlement_date is None:
            self.settlement_date = self.transaction_date + timedelta(days=settlement_days)
        if self.net_amount is None:
            self.net_amount = self.calculate_net_amount()

    def calculate_net_amount(self) -> Decimal:
        fees = self.fees or ZERO
        tax = self.tax_amount or ZERO
        if self.transaction_type is TransactionType.BUY:
            return to_money(self.total_amount + fees + tax)
        if self.transaction_type is TransactionType.SELL:
            return to_money(self.total_amount - fees - tax)
        return to_money(self.total_amount)

    @property
    def cash_adjustment(self) -> Decimal:
        """Signed effect of this record on the portfolio's cash balance."""
        if self.transaction_type.is_negative_cash_flow:
            return -self.net_amount
        if self.transaction_type.is_positive_cash_flow:
            return self.net_amount
        return ZERO

    def is_settled(self, now: datetime) -> bool:
        return self.settlement_date is not None and self.settlement_date <= now

    def _finish(self, target: TransactionStatus) -> None:
        if self.status is not TransactionStatus.PENDING:
            raise InvalidStateTransitionError("Transaction", self.status, target)
        self.status = target

    def mark_completed(self, now: datetime) -> None:
        self._finish(TransactionStatus.COMPLETED)
        self.settled_at = now

    def mark_failed(self, reason: str) -> None:
        self._finish(TransactionStatus.FAILED)
        self.notes = reason

    def mark_cancelled(self) -> None:
        self._finish(TransactionStatus.CANCELED)

    def __repr__(self):
        return f"<Transaction {self.id} {self.transaction_type.value} {self.net_amount} {self.status.value}>"
