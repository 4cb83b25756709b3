from sqlalchemy import Column, Date, Enum, ForeignKey, Integer, Numeric

from microinvest.core.database import Base
from microinvest.models.base import IdMixin, TimestampMixin
from microinvest.models.enums import DividendFrequency


class Dividend(Base, IdMixin, TimestampMixin):
    """Declared cash dividend for a security."""
    __tablename__ = "dividends"

    security_id = Column(Integer, ForeignKey("securities.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    amount_per_share = Column(Numeric(14, 4), nullable=False)
    ex_date = Column(Date, nullable=False)
    pay_date = Column(Date, nullable=False)
    frequency = Column(Enum(DividendFrequency, native_enum=False, length=20),
                       default=DividendFrequency.QUARTERLY)
