"""
Transactions API Router.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_fees
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.models.enums import TransactionStatus, TransactionType
from microinvest.services.fees import FeeSchedule
from microinvest.services.transaction_service import TransactionService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class TransactionSchema(BaseModel):
    id: int
    portfolio_id: int
    order_id: Optional[int]
    symbol: Optional[str]
    transaction_type: TransactionType
    status: TransactionStatus
    quantity: Optional[Decimal]
    price_per_share: Optional[Decimal]
    total_amount: Decimal
    fees: Decimal
    tax_amount: Decimal
    net_amount: Decimal
    transaction_date: datetime
    settlement_date: Optional[datetime]
    settled_at: Optional[datetime]
    notes: Optional[str]

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("", response_model=list[TransactionSchema])
async def list_transactions(
    portfolio_id: int,
    transaction_type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(default=100, le=500),
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await TransactionService(db).list_transactions(
        portfolio_id, username, transaction_type=transaction_type, status=status,
        start=start, end=end, limit=limit,
    )


@router.get("/unsettled", response_model=list[TransactionSchema])
async def unsettled(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await TransactionService(db).get_unsettled(portfolio_id, username)


@router.get("/stats")
async def transaction_stats(
    portfolio_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await TransactionService(db).get_stats(portfolio_id, username)


@router.get("/{transaction_id}", response_model=TransactionSchema)
async def get_transaction(
    transaction_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await TransactionService(db).get_transaction(transaction_id, username)


@router.post("/{transaction_id}/cancel", response_model=TransactionSchema)
async def cancel_transaction(
    transaction_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    fees: FeeSchedule = Depends(get_fees),
):
    """Cancel a pending cash transaction and reverse it."""
    return await TransactionService(db, fees=fees).cancel_transaction(transaction_id, username)
