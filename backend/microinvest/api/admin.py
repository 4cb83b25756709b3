"""
Admin API Router.

Account moderation, order rejection, observability and manual runs of
the scheduled sweeps.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import get_fees, get_quotes, require_admin
from microinvest.api.orders import OrderSchema
from microinvest.api.users import AccountSchema
from microinvest.core.database import get_db
from microinvest.core.metrics import metrics
from microinvest.models.enums import AccountStatus
from microinvest.services.account_service import AccountService
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import QuoteProvider
from microinvest.services.order_service import OrderService
from microinvest.services.position_service import PositionService
from microinvest.services.session_service import SessionService
from microinvest.services.transaction_service import TransactionService

router = APIRouter(dependencies=[Depends(require_admin)])


# ---------- Pydantic Schemas ----------

class MetricsSummary(BaseModel):
    """Summary of metrics over a time period."""
    period_hours: int
    total_events: int
    by_category: dict
    by_event: dict
    orders_placed: int
    orders_filled: int
    orders_failed: int


class MetricEventResponse(BaseModel):
    timestamp: str
    category: str
    event_type: str
    symbol: Optional[str]
    portfolio_id: Optional[int]
    value: float
    metadata: dict


class RejectRequest(BaseModel):
    reason: str


# ---------- Endpoints ----------

@router.get("/metrics/summary", response_model=MetricsSummary)
async def metrics_summary(
    hours: int = Query(default=24, ge=1, le=168, description="Hours of history to include"),
) -> MetricsSummary:
    return MetricsSummary(**metrics.get_summary(hours=hours))


@router.get("/metrics/events", response_model=List[MetricEventResponse])
async def recent_events(
    category: Optional[str] = Query(default=None, description="Filter by category"),
    limit: int = Query(default=100, ge=1, le=1000),
) -> List[MetricEventResponse]:
    return [MetricEventResponse(**event.to_dict()) for event in metrics.get_recent(category, limit)]


@router.get("/accounts", response_model=List[AccountSchema])
async def list_accounts(
    account_status: Optional[AccountStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=100, le=1000),
    db: AsyncSession = Depends(get_db),
):
    return await AccountService(db).list_accounts(account_status, limit)


@router.post("/accounts/{username}/suspend", response_model=AccountSchema)
async def suspend_account(username: str, db: AsyncSession = Depends(get_db)):
    return await AccountService(db).suspend(username)


@router.post("/accounts/{username}/activate", response_model=AccountSchema)
async def activate_account(username: str, db: AsyncSession = Depends(get_db)):
    return await AccountService(db).activate(username)


@router.post("/orders/{order_id}/reject", response_model=OrderSchema)
async def reject_order(order_id: int, payload: RejectRequest, db: AsyncSession = Depends(get_db)):
    return await OrderService(db).reject_order(order_id, payload.reason)


@router.post("/sweeps/expire-orders")
async def run_order_expiry(db: AsyncSession = Depends(get_db)) -> Dict[str, int]:
    return await OrderService(db).expire_orders()


@router.post("/sweeps/limit-orders")
async def run_limit_orders(
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
    fees: FeeSchedule = Depends(get_fees),
) -> Dict[str, int]:
    return await OrderService(db, quotes, fees).process_pending_limit_orders()


@router.post("/sweeps/settlement")
async def run_settlement(db: AsyncSession = Depends(get_db)) -> Dict[str, int]:
    return await TransactionService(db).settle_transactions()


@router.post("/sweeps/sessions")
async def run_session_cleanup(db: AsyncSession = Depends(get_db)) -> Dict[str, int]:
    return {"deactivated": await SessionService(db).cleanup_expired()}


@router.post("/sweeps/revaluation")
async def run_revaluation(
    db: AsyncSession = Depends(get_db),
    quotes: QuoteProvider = Depends(get_quotes),
) -> Dict[str, Any]:
    return await PositionService(db).revalue_all(quotes)


@router.post("/sweeps/day-changes")
async def run_day_changes(db: AsyncSession = Depends(get_db)) -> Dict[str, int]:
    return await PositionService(db).update_day_changes()
