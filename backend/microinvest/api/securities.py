"""
Securities API Router: reference data and quotes.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_quotes
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.models.enums import Exchange, SecurityType
from microinvest.services.market_data import QuoteProvider
from microinvest.services.security_service import SecurityService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class SecuritySchema(BaseModel):
    id: int
    symbol: str
    company_name: Optional[str]
    security_type: SecurityType
    sector: Optional[str]
    exchange: Optional[Exchange]
    currency: str
    current_price: Optional[Decimal]
    previous_close: Optional[Decimal]
    price_updated_at: Optional[datetime]
    active: bool

    class Config:
        from_attributes = True


class QuoteSchema(BaseModel):
    symbol: str
    price: Decimal
    timestamp: datetime
    previous_close: Optional[Decimal]

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("", response_model=list[SecuritySchema])
async def list_securities(
    search: Optional[str] = None,
    limit: int = Query(default=100, le=500),
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await SecurityService(db, quotes).list_securities(search=search, limit=limit)


@router.get("/{symbol}", response_model=SecuritySchema)
async def get_security(
    symbol: str,
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    """Look up a security, creating it from provider reference data if new."""
    security = await SecurityService(db, quotes).get_or_create(symbol)
    await db.commit()
    return security


@router.get("/{symbol}/quote", response_model=QuoteSchema)
async def get_quote(
    symbol: str,
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await SecurityService(db, quotes).get_quote(symbol)
