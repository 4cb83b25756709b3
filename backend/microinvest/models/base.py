from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declarative_mixin

MONEY = Decimal("0.01")
PRICE = Decimal("0.0001")
ZERO = Decimal("0")


def as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value) -> Decimal:
    return as_decimal(value).quantize(MONEY, rounding=ROUND_HALF_UP)


def to_price(value) -> Decimal:
    return as_decimal(value).quantize(PRICE, rounding=ROUND_HALF_UP)


@declarative_mixin
class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


@declarative_mixin
class IdMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
