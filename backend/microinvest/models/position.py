from decimal import Decimal

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, UniqueConstraint

from microinvest.core.database import Base
from microinvest.core.exceptions import InsufficientQuantityError, ValidationError
from microinvest.models.base import IdMixin, TimestampMixin, ZERO, as_decimal, to_money, to_price


class Position(Base, IdMixin, TimestampMixin):
    """
    Holding of one security inside one portfolio.

    Cost basis uses the weighted-average method. A position that is sold
    down to zero stays in the table as an inactive placeholder and is
    reactivated by the next buy.
    """
    __tablename__ = "positions"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "security_id", name="uq_position_portfolio_security"),
    )

    portfolio_id = Column(Integer, ForeignKey("portfolios.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    security_id = Column(Integer, ForeignKey("securities.id"), nullable=False)
    symbol = Column(String(20), nullable=False)

    quantity = Column(Numeric(14, 4), nullable=False, default=ZERO)
    avg_cost_per_share = Column(Numeric(14, 4), nullable=False, default=ZERO)
    current_value = Column(Numeric(14, 2), nullable=False, default=ZERO)
    unrealized_gain_loss = Column(Numeric(14, 2), nullable=False, default=ZERO)
    realized_gain_loss = Column(Numeric(14, 2), nullable=False, default=ZERO)
    day_change = Column(Numeric(14, 2), nullable=False, default=ZERO)
    day_change_percent = Column(Numeric(8, 4), nullable=False, default=ZERO)
    active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs):
        kwargs.setdefault("quantity", ZERO)
        kwargs.setdefault("avg_cost_per_share", ZERO)
        kwargs.setdefault("current_value", ZERO)
        kwargs.setdefault("unrealized_gain_loss", ZERO)
        kwargs.setdefault("realized_gain_loss", ZERO)
        kwargs.setdefault("day_change", ZERO)
        kwargs.setdefault("day_change_percent", ZERO)
        kwargs.setdefault("active", True)
        super().__init__(**kwargs)

    @property
    def cost_basis(self) -> Decimal:
        return to_money(self.quantity * self.avg_cost_per_share)

    @property
    def gain_loss_percentage(self) -> Decimal:
        basis = self.cost_basis
        if basis == ZERO:
            return ZERO
        return to_money(self.unrealized_gain_loss / basis * 100)

    def weight_in_portfolio(self, portfolio_total) -> Decimal:
        portfolio_total = as_decimal(portfolio_total)
        if portfolio_total <= ZERO:
            return ZERO
        return to_money(self.current_value / portfolio_total * 100)

    def update_market_value(self, price) -> None:
        price = as_decimal(price)
        self.current_value = to_money(self.quantity * price)
        self.unrealized_gain_loss = to_money(self.current_value - self.quantity * self.avg_cost_per_share)

    def update_day_change(self, current_price, previous_close) -> None:
        """Value change of the holding since the previous close. Zero when either price is unknown."""
        if current_price is None or previous_close is None or self.quantity <= ZERO:
            self.day_change = ZERO
            self.day_change_percent = ZERO
            return
        previous_value = self.quantity * as_decimal(previous_close)
        change = self.quantity * as_decimal(current_price) - previous_value
        self.day_change = to_money(change)
        if previous_value > ZERO:
            self.day_change_percent = to_price(change / previous_value * 100)
        else:
            self.day_change_percent = ZERO

    def apply_buy(self, quantity, price) -> None:
        quantity, price = as_decimal(quantity), as_decimal(price)
        if quantity <= ZERO:
            raise ValidationError("Quantity must be positive", {"quantity": str(quantity)})
        if price < ZERO:
            raise ValidationError("Price cannot be negative", {"price": str(price)})

        new_quantity = self.quantity + quantity
        total_cost = self.quantity * self.avg_cost_per_share + quantity * price
        self.avg_cost_per_share = to_price(total_cost / new_quantity)
        self.quantity = new_quantity
        self.active = True
        self.update_market_value(price)

    def apply_sell(self, quantity, price) -> Decimal:
        """Reduce the holding and return the realized gain of this sale."""
        quantity, price = as_decimal(quantity), as_decimal(price)
        if quantity <= ZERO:
            raise ValidationError("Quantity must be positive", {"quantity": str(quantity)})
        if quantity > self.quantity:
            raise InsufficientQuantityError(self.symbol, quantity, self.quantity)

        realized = to_money(quantity * (price - self.avg_cost_per_share))
        self.realized_gain_loss = to_money(self.realized_gain_loss + realized)
        self.quantity = self.quantity - quantity
        if self.quantity == ZERO:
            self.close()
        else:
            self.update_market_value(price)
        return realized

    def apply_share_distribution(self, quantity) -> None:
        """Add shares received at zero cost (split or stock dividend)."""
        quantity = as_decimal(quantity)
        if quantity <= ZERO:
            raise ValidationError("Quantity must be positive", {"quantity": str(quantity)})
        new_quantity = self.quantity + quantity
        self.avg_cost_per_share = to_price(self.quantity * self.avg_cost_per_share / new_quantity)
        self.quantity = new_quantity
        self.active = True

    def close(self) -> None:
        self.quantity = ZERO
        self.current_value = ZERO
        self.unrealized_gain_loss = ZERO
        self.day_change = ZERO
        self.day_change_percent = ZERO
        self.active = False

    def __repr__(self):
        return f"<Position {self.symbol} qty={self.quantity} avg={self.avg_cost_per_share}>"
