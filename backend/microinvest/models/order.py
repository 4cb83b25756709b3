from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text

from microinvest.core.database import Base
from microinvest.core.exceptions import InvalidStateTransitionError, ValidationError
from microinvest.models.base import IdMixin, TimestampMixin, ZERO, as_decimal, to_money, to_price
from microinvest.models.enums import OrderSide, OrderStatus, OrderType

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PARTIALLY_FILLED,
        OrderStatus.FILLED,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
        OrderStatus.EXPIRED,
        OrderStatus.FAILED,
    }),
    OrderStatus.PARTIALLY_FILLED: frozenset({
        OrderStatus.PARTIALLY_FILLED,
        OrderStatus.FILLED,
        OrderStatus.CANCELLED,
        OrderStatus.EXPIRED,
        OrderStatus.FAILED,
    }),
    OrderStatus.FILLED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


class Order(Base, IdMixin, TimestampMixin):
    """
    Instruction to buy or sell a security within a portfolio.

    Status changes go through transition_to; an order in a final state
    is never modified again.
    """
    __tablename__ = "orders"

    portfolio_id = Column(Integer, ForeignKey("portfolios.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    security_id = Column(Integer, ForeignKey("securities.id"), nullable=False)
    symbol = Column(String(20), nullable=False)

    side = Column(Enum(OrderSide, native_enum=False, length=10), nullable=False)
    order_type = Column(Enum(OrderType, native_enum=False, length=30), nullable=False,
                        default=OrderType.MARKET)
    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False,
                    default=OrderStatus.PENDING, index=True)

    quantity = Column(Numeric(14, 4), nullable=False)
    limit_price = Column(Numeric(14, 4))
    estimated_total = Column(Numeric(14, 2))
    filled_quantity = Column(Numeric(14, 4), nullable=False, default=ZERO)
    average_fill_price = Column(Numeric(14, 4))
    total_fees = Column(Numeric(14, 2), nullable=False, default=ZERO)

    placed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    executed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    expiry_date = Column(DateTime)
    notes = Column(Text)
    reason = Column(String(500))

    def __init__(self, **kwargs):
        kwargs.setdefault("order_type", OrderType.MARKET)
        kwargs.setdefault("status", OrderStatus.PENDING)
        kwargs.setdefault("filled_quantity", ZERO)
        kwargs.setdefault("total_fees", ZERO)
        kwargs.setdefault("placed_at", datetime.utcnow())
        super().__init__(**kwargs)

    @property
    def remaining_quantity(self) -> Decimal:
        return self.quantity - self.filled_quantity

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_date is not None and self.expiry_date <= now

    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in ORDER_TRANSITIONS[self.status]

    def transition_to(self, target: OrderStatus) -> None:
        if not self.can_transition_to(target):
            raise InvalidStateTransitionError("Order", self.status, target)
        self.status = target

    def limit_satisfied(self, price) -> bool:
        """Whether a limit-style order may fill at this price."""
        if not self.order_type.is_limit_order:
            return True
        price = as_decimal(price)
        if self.side.is_buy:
            return price <= self.limit_price
        return price >= self.limit_price

    def record_fill(self, quantity, price, fees, now: datetime) -> None:
        quantity, price, fees = as_decimal(quantity), as_decimal(price), as_decimal(fees)
        if quantity <= ZERO or quantity > self.remaining_quantity:
            raise ValidationError(
                "Fill quantity must be positive and no more than the remaining quantity",
                {"quantity": str(quantity), "remaining": str(self.remaining_quantity)},
            )
        target = (OrderStatus.FILLED if quantity == self.remaining_quantity
                  else OrderStatus.PARTIALLY_FILLED)
        self.transition_to(target)

        previous_notional = self.filled_quantity * (self.average_fill_price or ZERO)
        self.filled_quantity = self.filled_quantity + quantity
        self.average_fill_price = to_price((previous_notional + quantity * price) / self.filled_quantity)
        self.total_fees = to_money(self.total_fees + fees)
        self.executed_at = now

    def cancel(self, now: datetime, reason: Optional[str] = None) -> None:
        self.transition_to(OrderStatus.CANCELLED)
        self.cancelled_at = now
        self.reason = reason or "Cancelled by user"

    def reject(self, reason: str) -> None:
        self.transition_to(OrderStatus.REJECTED)
        self.reason = reason

    def fail(self, reason: str) -> None:
        self.transition_to(OrderStatus.FAILED)
        self.reason = reason

    def expire(self, now: datetime) -> None:
        self.transition_to(OrderStatus.EXPIRED)
        self.cancelled_at = now
        self.reason = "Order expired"

    def __repr__(self):
        return f"<Order {self.id} {self.side.value} {self.quantity} {self.symbol} {self.status.value}>"
