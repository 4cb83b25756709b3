"""
Portfolio management: creation, cash movements, valuation and deletion.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.exceptions import AlreadyExistsError, ValidationError
from microinvest.models.base import ZERO, as_decimal, to_money, to_price
from microinvest.models.enums import AuditEventType, TransactionType
from microinvest.models.portfolio import Portfolio
from microinvest.models.position import Position
from microinvest.models.security import Security
from microinvest.models.user import UserAccount
from microinvest.services.achievement_service import AchievementService
from microinvest.services.audit_service import AuditService
from microinvest.services.common import get_owned_portfolio, get_user, refresh_account_mirror
from microinvest.services.fees import FeeSchedule
from microinvest.services.position_service import PositionService
from microinvest.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)


class PortfolioService:
    def __init__(self, session: AsyncSession, fees: Optional[FeeSchedule] = None):
        self.session = session
        self.transactions = TransactionService(session, fees=fees)
        self.positions = PositionService(session)
        self.audit = AuditService(session)
        self.achievements = AchievementService(session)

    async def _name_taken(self, user_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Portfolio.id).where(Portfolio.user_id == user_id, Portfolio.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Portfolio.id != exclude_id)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def open_portfolio(
        self,
        user: UserAccount,
        name: str,
        description: Optional[str] = None,
        initial_cash=ZERO,
        is_default: bool = False,
    ) -> Portfolio:
        """Create and fund a portfolio. Does not commit."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Portfolio name is required")
        if await self._name_taken(user.id, name):
            raise AlreadyExistsError(f"Portfolio '{name}' already exists", {"name": name})

        portfolio = Portfolio(user_id=user.id, name=name, description=description, is_default=is_default)
        self.session.add(portfolio)
        await self.session.flush()

        initial_cash = to_money(initial_cash)
        if initial_cash > ZERO:
            self.transactions.record_cash_event(
                portfolio, TransactionType.DEPOSIT, initial_cash, notes="Initial funding"
            )
        logger.info(f"Opened portfolio {portfolio.id} '{name}' for {user.username} with {initial_cash}")
        return portfolio

    async def create_portfolio(
        self,
        username: str,
        name: str,
        description: Optional[str] = None,
        initial_cash=ZERO,
    ) -> Portfolio:
        user = await get_user(self.session, username)
        if not user.can_trade:
            raise ValidationError("Account is not active", {"status": user.status.value})
        portfolio = await self.open_portfolio(user, name, description, initial_cash)
        self.audit.record(AuditEventType.DATA_CHANGE, "Create portfolio", user_id=user.id,
                          resource_id=portfolio.id)
        await self.session.commit()
        return portfolio

    async def get_portfolio(self, portfolio_id: int, username: str) -> Portfolio:
        return await get_owned_portfolio(self.session, portfolio_id, username)

    async def list_portfolios(self, username: str, include_inactive: bool = False) -> List[Portfolio]:
        user = await get_user(self.session, username)
        stmt = select(Portfolio).where(Portfolio.user_id == user.id)
        if not include_inactive:
            stmt = stmt.where(Portfolio.active.is_(True))
        result = await self.session.execute(stmt.order_by(Portfolio.id))
        return list(result.scalars().all())

    async def get_default_portfolio(self, user: UserAccount) -> Optional[Portfolio]:
        result = await self.session.execute(
            select(Portfolio)
            .where(Portfolio.user_id == user.id, Portfolio.active.is_(True))
            .order_by(Portfolio.is_default.desc(), Portfolio.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def update_portfolio(
        self,
        portfolio_id: int,
        username: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Portfolio:
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username)
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Portfolio name is required")
            if await self._name_taken(portfolio.user_id, name, exclude_id=portfolio.id):
                raise AlreadyExistsError(f"Portfolio '{name}' already exists", {"name": name})
            portfolio.name = name
        if description is not None:
            portfolio.description = description
        await self.session.commit()
        return portfolio

    async def deposit(self, portfolio_id: int, username: str, amount, now: Optional[datetime] = None) -> Portfolio:
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username, require_active=True)
        self.transactions.record_cash_event(portfolio, TransactionType.DEPOSIT, amount, now=now)
        await refresh_account_mirror(self.session, portfolio)
        self.audit.record(AuditEventType.DATA_CHANGE, "Deposit", user_id=portfolio.user_id,
                          resource_id=portfolio.id, details={"amount": str(amount)})
        user = await self.session.get(UserAccount, portfolio.user_id)
        await self.achievements.evaluate(user, ["portfolio_value"])
        await self.session.commit()
        logger.info(f"Deposited {amount} into portfolio {portfolio_id}")
        return portfolio

    async def withdraw(self, portfolio_id: int, username: str, amount, now: Optional[datetime] = None) -> Portfolio:
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username, require_active=True)
        self.transactions.record_cash_event(portfolio, TransactionType.WITHDRAWAL, amount, now=now)
        await refresh_account_mirror(self.session, portfolio)
        self.audit.record(AuditEventType.DATA_CHANGE, "Withdrawal", user_id=portfolio.user_id,
                          resource_id=portfolio.id, details={"amount": str(amount)})
        await self.session.commit()
        logger.info(f"Withdrew {amount} from portfolio {portfolio_id}")
        return portfolio

    async def recalculate(self, portfolio_id: int, username: str) -> Portfolio:
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username)
        positions = await self.positions.list_for_portfolio(portfolio.id)
        portfolio.recalculate_value(positions)
        portfolio.validate_state()
        await refresh_account_mirror(self.session, portfolio)
        await self.session.commit()
        return portfolio

    async def get_summary(self, portfolio_id: int, username: str) -> Dict[str, Any]:
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username)
        positions = await self.positions.list_for_portfolio(portfolio.id, include_inactive=True)
        active = [p for p in positions if p.active]
        holdings_value = sum((p.current_value for p in active), ZERO)
        day_change = sum((p.day_change for p in active), ZERO)
        previous_value = holdings_value - day_change
        day_change_percent = to_price(day_change / previous_value * 100) if previous_value > ZERO else ZERO
        return {
            "portfolio_id": portfolio.id,
            "name": portfolio.name,
            "cash_balance": portfolio.cash_balance,
            "total_value": portfolio.total_value,
            "invested_amount": portfolio.invested_amount,
            "holdings_value": to_money(holdings_value),
            "position_count": len(active),
            "unrealized_gain_loss": to_money(sum((p.unrealized_gain_loss for p in active), ZERO)),
            "realized_gain_loss": to_money(sum((p.realized_gain_loss for p in positions), ZERO)),
            "day_change": to_money(day_change),
            "day_change_percent": day_change_percent,
            "allocations": {
                p.symbol: p.weight_in_portfolio(portfolio.total_value) for p in active
            },
        }

    async def deactivate_portfolio(self, portfolio_id: int, username: str) -> Portfolio:
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username)
        portfolio.active = False
        await self.session.commit()
        logger.info(f"Deactivated portfolio {portfolio_id}")
        return portfolio

    async def delete_portfolio(self, portfolio_id: int, username: str, force: bool = False) -> None:
        """
        Delete a portfolio and its positions. Portfolios still holding
        shares are only deleted with force=True.
        """
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username)
        positions = await self.positions.list_for_portfolio(portfolio.id)
        if positions and not force:
            raise ValidationError("Cannot delete portfolio with existing positions",
                                  {"portfolio_id": portfolio_id, "positions": len(positions)})

        await self.session.execute(delete(Position).where(Position.portfolio_id == portfolio.id))
        await self.session.delete(portfolio)
        self.audit.record(AuditEventType.DATA_CHANGE, "Delete portfolio", user_id=portfolio.user_id,
                          resource_id=portfolio_id)
        await self.session.commit()
        logger.info(f"Deleted portfolio {portfolio_id}")

    async def receive_shares(
        self,
        portfolio_id: int,
        username: str,
        security: Security,
        quantity,
        transaction_type: TransactionType = TransactionType.STOCK_SPLIT,
    ) -> Position:
        """Book shares received at zero cost from a split or stock dividend."""
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username, require_active=True)
        quantity = as_decimal(quantity)
        if quantity <= ZERO:
            raise ValidationError("Quantity must be positive", {"quantity": str(quantity)})
        await self.transactions.record_share_distribution(portfolio, security, transaction_type, quantity)
        position = await self.positions.find(portfolio.id, security.id)
        await refresh_account_mirror(self.session, portfolio)
        await self.session.commit()
        return position
