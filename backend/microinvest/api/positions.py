"""
Positions API Router.
"""
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_fees, get_quotes
from microinvest.core.database import get_db
from microinvest.core.exceptions import ValidationError
from microinvest.core.security import get_current_username
from microinvest.models.enums import TransactionType
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import QuoteProvider
from microinvest.services.portfolio_service import PortfolioService
from microinvest.services.position_service import PositionService
from microinvest.services.security_service import SecurityService

router = APIRouter()

DISTRIBUTION_TYPES = (TransactionType.STOCK_SPLIT, TransactionType.STOCK_DIVIDEND)

# ---------- Pydantic Schemas ----------

class PositionSchema(BaseModel):
    id: int
    portfolio_id: int
    security_id: int
    symbol: str
    quantity: Decimal
    avg_cost_per_share: Decimal
    cost_basis: Decimal
    current_value: Decimal
    unrealized_gain_loss: Decimal
    realized_gain_loss: Decimal
    gain_loss_percentage: Decimal
    day_change: Decimal
    day_change_percent: Decimal
    active: bool

    class Config:
        from_attributes = True


class ShareDistribution(BaseModel):
    quantity: Decimal = Field(gt=0)
    transaction_type: TransactionType = TransactionType.STOCK_SPLIT


# ---------- Endpoints ----------

@router.get("/{portfolio_id}/positions", response_model=list[PositionSchema])
async def list_positions(
    portfolio_id: int,
    include_inactive: bool = False,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await PositionService(db).list_positions(portfolio_id, username, include_inactive)


@router.get("/{portfolio_id}/positions/{symbol}", response_model=PositionSchema)
async def get_position(
    portfolio_id: int,
    symbol: str,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await PositionService(db).get_position(portfolio_id, username, symbol)


@router.post("/{portfolio_id}/positions/{symbol}/distributions", response_model=PositionSchema)
async def receive_shares(
    portfolio_id: int,
    symbol: str,
    payload: ShareDistribution,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
    fees: FeeSchedule = Depends(get_fees),
):
    """Book split or stock-dividend shares at zero cost."""
    if payload.transaction_type not in DISTRIBUTION_TYPES:
        raise ValidationError("Distribution must be a stock split or stock dividend",
                              {"transaction_type": payload.transaction_type.value})
    security = await SecurityService(db, quotes).get_or_create(symbol)
    return await PortfolioService(db, fees=fees).receive_shares(
        portfolio_id, username, security, payload.quantity, payload.transaction_type
    )


@router.post("/{portfolio_id}/day-changes", response_model=list[PositionSchema])
async def update_day_changes(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    """Recompute day change for the portfolio's active positions from stored prices."""
    return await PositionService(db).update_portfolio_day_changes(portfolio_id, username)
