from sqlalchemy import Boolean, Column, DateTime, Enum, Numeric, String

from microinvest.core.database import Base
from microinvest.models.base import IdMixin, TimestampMixin
from microinvest.models.enums import Exchange, SecurityType


class Security(Base, IdMixin, TimestampMixin):
    """
    Tradable instrument reference data with its last known quote.
    """
    __tablename__ = "securities"

    symbol = Column(String(20), unique=True, nullable=False, index=True)
    company_name = Column(String(255))
    security_type = Column(Enum(SecurityType, native_enum=False, length=20),
                           nullable=False, default=SecurityType.STOCK)
    sector = Column(String(100))
    exchange = Column(Enum(Exchange, native_enum=False, length=20), default=Exchange.OTHER)
    currency = Column(String(3), nullable=False, default="USD")

    current_price = Column(Numeric(14, 4))
    previous_close = Column(Numeric(14, 4))
    price_updated_at = Column(DateTime)
    active = Column(Boolean, nullable=False, default=True)

    def __init__(self, **kwargs):
        if "symbol" in kwargs and kwargs["symbol"]:
            kwargs["symbol"] = kwargs["symbol"].strip().upper()
        kwargs.setdefault("security_type", SecurityType.STOCK)
        kwargs.setdefault("currency", "USD")
        kwargs.setdefault("active", True)
        super().__init__(**kwargs)

    def __repr__(self):
        return f"<Security {self.symbol}>"
