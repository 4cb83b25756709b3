"""
Portfolios API Router.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_fees
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.services.fees import FeeSchedule
from microinvest.services.portfolio_service import PortfolioService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class PortfolioCreate(BaseModel):
    name: str
    description: Optional[str] = None
    initial_cash: Decimal = Field(default=Decimal("0"), ge=0)


class PortfolioUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class CashRequest(BaseModel):
    amount: Decimal = Field(gt=0)


class PortfolioSchema(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str]
    total_value: Decimal
    cash_balance: Decimal
    invested_amount: Decimal
    is_default: bool
    active: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("", response_model=list[PortfolioSchema])
async def list_portfolios(
    include_inactive: bool = False,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await PortfolioService(db).list_portfolios(username, include_inactive)


@router.post("", response_model=PortfolioSchema, status_code=status.HTTP_201_CREATED)
async def create_portfolio(
    payload: PortfolioCreate,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    fees: FeeSchedule = Depends(get_fees),
):
    return await PortfolioService(db, fees=fees).create_portfolio(
        username, payload.name, payload.description, payload.initial_cash
    )


@router.get("/{portfolio_id}", response_model=PortfolioSchema)
async def get_portfolio(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await PortfolioService(db).get_portfolio(portfolio_id, username)


@router.patch("/{portfolio_id}", response_model=PortfolioSchema)
async def update_portfolio(
    portfolio_id: int,
    payload: PortfolioUpdate,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await PortfolioService(db).update_portfolio(
        portfolio_id, username, payload.name, payload.description
    )


@router.get("/{portfolio_id}/summary")
async def get_summary(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Cash, holdings value, P&L and allocation weights."""
    return await PortfolioService(db).get_summary(portfolio_id, username)


@router.post("/{portfolio_id}/deposit", response_model=PortfolioSchema)
async def deposit(
    portfolio_id: int,
    payload: CashRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    fees: FeeSchedule = Depends(get_fees),
):
    return await PortfolioService(db, fees=fees).deposit(portfolio_id, username, payload.amount)


@router.post("/{portfolio_id}/withdraw", response_model=PortfolioSchema)
async def withdraw(
    portfolio_id: int,
    payload: CashRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    fees: FeeSchedule = Depends(get_fees),
):
    return await PortfolioService(db, fees=fees).withdraw(portfolio_id, username, payload.amount)


@router.post("/{portfolio_id}/recalculate", response_model=PortfolioSchema)
async def recalculate(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await PortfolioService(db).recalculate(portfolio_id, username)


@router.delete("/{portfolio_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_portfolio(
    portfolio_id: int,
    force: bool = Query(default=False, description="Delete even if positions are held"),
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
) -> None:
    await PortfolioService(db).delete_portfolio(portfolio_id, username, force=force)


@router.post("/{portfolio_id}/deactivate", response_model=PortfolioSchema)
async def deactivate(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    """Close the portfolio to new trading while keeping its history."""
    return await PortfolioService(db).deactivate_portfolio(portfolio_id, username)
