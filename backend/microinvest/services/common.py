"""
Lookups shared by the services: user resolution, portfolio ownership and
the account balance mirror.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from microinvest.models.base import ZERO, to_money
from microinvest.models.portfolio import Portfolio
from microinvest.models.position import Position
from microinvest.models.user import UserAccount

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC, the form every DateTime column stores. Aware values are converted."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow(now: Optional[datetime] = None) -> datetime:
    return as_utc(now) if now is not None else datetime.utcnow()


async def get_user(session: AsyncSession, username: str) -> UserAccount:
    result = await session.execute(select(UserAccount).where(UserAccount.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User", username)
    return user


async def get_portfolio(session: AsyncSession, portfolio_id: int) -> Portfolio:
    portfolio = await session.get(Portfolio, portfolio_id)
    if portfolio is None:
        raise NotFoundError("Portfolio", portfolio_id)
    return portfolio


async def get_owned_portfolio(
    session: AsyncSession,
    portfolio_id: int,
    username: str,
    require_active: bool = False,
) -> Portfolio:
    """Load a portfolio and check the caller may act on it."""
    user = await get_user(session, username)
    portfolio = await get_portfolio(session, portfolio_id)
    if portfolio.user_id != user.id and not user.is_admin:
        logger.warning(f"User {username} denied access to portfolio {portfolio_id}")
        raise PermissionDeniedError("You do not have access to this portfolio",
                                    {"portfolio_id": portfolio_id})
    if require_active and not portfolio.active:
        raise ValidationError("Portfolio is not active", {"portfolio_id": portfolio_id})
    return portfolio


async def refresh_account_mirror(session: AsyncSession, portfolio: Portfolio) -> Optional[UserAccount]:
    """
    Copy the default portfolio's cash, invested amount and P&L onto its
    owner's account. Does not commit. Other portfolios are ignored.
    """
    if not portfolio.is_default:
        return None
    user = await session.get(UserAccount, portfolio.user_id)
    await session.flush()
    result = await session.execute(select(Position).where(Position.portfolio_id == portfolio.id))
    returns = sum((p.realized_gain_loss + p.unrealized_gain_loss for p in result.scalars()), ZERO)
    user.virtual_balance = portfolio.cash_balance
    user.total_invested = to_money(portfolio.invested_amount)
    user.total_returns = to_money(returns)
    return user
