"""
Dividends API Router.
"""
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_fees, get_quotes, require_admin
from microinvest.api.transactions import TransactionSchema
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.models.enums import DividendFrequency
from microinvest.services.dividend_service import DividendService
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import QuoteProvider

router = APIRouter()

# ---------- Pydantic Schemas ----------

class DividendCreate(BaseModel):
    symbol: str
    amount_per_share: Decimal = Field(gt=0)
    ex_date: date
    pay_date: date
    frequency: DividendFrequency = DividendFrequency.QUARTERLY


class DividendUpdate(BaseModel):
    amount_per_share: Optional[Decimal] = Field(default=None, gt=0)
    ex_date: Optional[date] = None
    pay_date: Optional[date] = None
    frequency: Optional[DividendFrequency] = None


class DividendPayment(BaseModel):
    portfolio_id: int


class DividendSchema(BaseModel):
    id: int
    security_id: int
    amount_per_share: Decimal
    ex_date: date
    pay_date: date
    frequency: Optional[DividendFrequency]

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("/upcoming", response_model=list[DividendSchema])
async def upcoming(
    days: int = Query(default=30, ge=1, le=365),
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await DividendService(db, quotes).list_upcoming(days=days)


@router.get("/security/{symbol}", response_model=list[DividendSchema])
async def for_security(
    symbol: str,
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await DividendService(db, quotes).list_for_security(symbol)


@router.post("", response_model=DividendSchema, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
async def create_dividend(
    payload: DividendCreate,
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await DividendService(db, quotes).create_dividend(
        payload.symbol, payload.amount_per_share, payload.ex_date, payload.pay_date, payload.frequency
    )


@router.patch("/{dividend_id}", response_model=DividendSchema, dependencies=[Depends(require_admin)])
async def update_dividend(
    dividend_id: int,
    payload: DividendUpdate,
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await DividendService(db, quotes).update_dividend(
        dividend_id, payload.amount_per_share, payload.ex_date, payload.pay_date, payload.frequency
    )


@router.delete("/{dividend_id}", status_code=status.HTTP_204_NO_CONTENT,
               dependencies=[Depends(require_admin)])
async def delete_dividend(
    dividend_id: int,
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
) -> None:
    await DividendService(db, quotes).delete_dividend(dividend_id)


@router.post("/{dividend_id}/pay", response_model=TransactionSchema)
async def pay_dividend(
    dividend_id: int,
    payload: DividendPayment,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
    fees: FeeSchedule = Depends(get_fees),
):
    """Credit the dividend on the portfolio's holding."""
    return await DividendService(db, quotes, fees).pay_dividend(payload.portfolio_id, dividend_id, username)
