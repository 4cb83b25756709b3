"""
Orders API Router.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_fees, get_quotes
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.models.enums import OrderSide, OrderStatus, OrderType
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import QuoteProvider
from microinvest.services.order_service import OrderService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class OrderCreate(BaseModel):
    portfolio_id: int
    symbol: str
    side: Optional[OrderSide] = None
    quantity: Decimal
    order_type: OrderType = OrderType.MARKET
    limit_price: Optional[Decimal] = None
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None


class OrderExecute(BaseModel):
    execution_price: Optional[Decimal] = None
    quantity: Optional[Decimal] = None


class OrderCancel(BaseModel):
    reason: Optional[str] = None


class OrderSchema(BaseModel):
    id: int
    portfolio_id: int
    symbol: str
    side: OrderSide
    order_type: OrderType
    status: OrderStatus
    quantity: Decimal
    limit_price: Optional[Decimal]
    estimated_total: Optional[Decimal]
    filled_quantity: Decimal
    average_fill_price: Optional[Decimal]
    total_fees: Decimal
    placed_at: datetime
    executed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    expiry_date: Optional[datetime]
    notes: Optional[str]
    reason: Optional[str]

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.post("", response_model=OrderSchema, status_code=status.HTTP_201_CREATED)
async def place_order(
    payload: OrderCreate,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
    fees: FeeSchedule = Depends(get_fees),
):
    """Submit an order. MARKET orders are executed immediately."""
    return await OrderService(db, quotes, fees).place_order(
        username,
        payload.portfolio_id,
        payload.symbol,
        payload.side,
        payload.quantity,
        order_type=payload.order_type,
        limit_price=payload.limit_price,
        expiry_date=payload.expiry_date,
        notes=payload.notes,
    )


@router.get("", response_model=list[OrderSchema])
async def list_orders(
    portfolio_id: int,
    status: Optional[OrderStatus] = None,
    side: Optional[OrderSide] = None,
    symbol: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(default=50, le=200),
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    """Orders for a portfolio, newest first."""
    return await OrderService(db, quotes).list_orders(
        portfolio_id, username, status=status, side=side, symbol=symbol,
        start=start, end=end, limit=limit,
    )


@router.get("/active", response_model=list[OrderSchema])
async def active_orders(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await OrderService(db, quotes).get_active_orders(portfolio_id, username)


@router.get("/stats")
async def order_stats(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
) -> dict:
    return await OrderService(db, quotes).get_order_stats(portfolio_id, username)


@router.get("/{order_id}", response_model=OrderSchema)
async def get_order(
    order_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await OrderService(db, quotes).get_order(order_id, username)


@router.post("/{order_id}/execute", response_model=OrderSchema)
async def execute_order(
    order_id: int,
    payload: OrderExecute,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
    fees: FeeSchedule = Depends(get_fees),
):
    """Fill an active order, optionally partially or at an explicit price."""
    return await OrderService(db, quotes, fees).execute_order(
        order_id, username, payload.execution_price, payload.quantity
    )


@router.post("/{order_id}/cancel", response_model=OrderSchema)
async def cancel_order(
    order_id: int,
    payload: OrderCancel,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
):
    return await OrderService(db, quotes).cancel_order(order_id, username, payload.reason)
