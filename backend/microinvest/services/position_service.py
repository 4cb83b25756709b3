"""
Position bookkeeping and periodic revaluation.
"""

import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.exceptions import (
    ExternalServiceError,
    InsufficientQuantityError,
    NotFoundError,
    ValidationError,
)
from microinvest.core.metrics import metrics
from microinvest.models.enums import TransactionType
from microinvest.models.portfolio import Portfolio
from microinvest.models.position import Position
from microinvest.models.security import Security
from microinvest.services.common import get_owned_portfolio, refresh_account_mirror
from microinvest.services.market_data import QuoteProvider, get_default_provider
from microinvest.services.security_service import SecurityService, normalize_symbol

logger = logging.getLogger(__name__)


class PositionService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, portfolio_id: int, security_id: int) -> Optional[Position]:
        result = await self.session.execute(
            select(Position).where(
                Position.portfolio_id == portfolio_id,
                Position.security_id == security_id,
            )
        )
        return result.scalar_one_or_none()

    async def held_quantity(self, portfolio_id: int, security_id: int) -> Decimal:
        position = await self.find(portfolio_id, security_id)
        return position.quantity if position else Decimal("0")

    async def list_for_portfolio(self, portfolio_id: int, include_inactive: bool = False) -> List[Position]:
        stmt = select(Position).where(Position.portfolio_id == portfolio_id)
        if not include_inactive:
            stmt = stmt.where(Position.active.is_(True))
        result = await self.session.execute(stmt.order_by(Position.symbol))
        return list(result.scalars().all())

    async def list_positions(
        self,
        portfolio_id: int,
        username: str,
        include_inactive: bool = False,
    ) -> List[Position]:
        await get_owned_portfolio(self.session, portfolio_id, username)
        return await self.list_for_portfolio(portfolio_id, include_inactive)

    async def get_position(self, portfolio_id: int, username: str, symbol: str) -> Position:
        await get_owned_portfolio(self.session, portfolio_id, username)
        symbol = normalize_symbol(symbol)
        result = await self.session.execute(
            select(Position).where(Position.portfolio_id == portfolio_id, Position.symbol == symbol)
        )
        position = result.scalar_one_or_none()
        if position is None:
            raise NotFoundError("Position", symbol)
        return position

    async def apply_trade(
        self,
        portfolio: Portfolio,
        security: Security,
        transaction_type: TransactionType,
        quantity: Decimal,
        price: Decimal,
    ) -> Position:
        """
        Apply a share movement to the portfolio's position in a security.

        Sells are checked against the held quantity before anything changes.
        """
        position = await self.find(portfolio.id, security.id)

        if transaction_type.decreases_position:
            if position is None:
                raise InsufficientQuantityError(security.symbol, quantity, Decimal("0"))
            position.apply_sell(quantity, price)
            position.update_day_change(security.current_price, security.previous_close)
            return position

        if not transaction_type.increases_position:
            raise ValidationError(f"{transaction_type.value} does not change a position")

        if position is None:
            position = Position(
                portfolio_id=portfolio.id,
                security_id=security.id,
                symbol=security.symbol,
            )
            self.session.add(position)
            await self.session.flush()

        if transaction_type in (TransactionType.STOCK_SPLIT, TransactionType.STOCK_DIVIDEND):
            position.apply_share_distribution(quantity)
            if security.current_price is not None:
                position.update_market_value(security.current_price)
        else:
            position.apply_buy(quantity, price)
        position.update_day_change(security.current_price, security.previous_close)
        return position

    async def revalue_all(self, quotes: Optional[QuoteProvider] = None) -> Dict[str, Any]:
        """
        Mark every active position to the latest quote and refresh
        portfolio totals. Symbols whose quote fails keep their last value.
        """
        start_time = time.time()
        securities = SecurityService(self.session, quotes or get_default_provider())

        result = await self.session.execute(select(Position).where(Position.active.is_(True)))
        positions = list(result.scalars().all())

        prices: Dict[int, Decimal] = {}
        previous_closes: Dict[int, Optional[Decimal]] = {}
        failed_symbols: List[str] = []
        for security_id in {p.security_id for p in positions}:
            security = await self.session.get(Security, security_id)
            try:
                quote = await securities.refresh_price(security)
                prices[security_id] = quote.price
                previous_closes[security_id] = security.previous_close
            except ExternalServiceError as e:
                logger.warning(f"Revaluation skipped {security.symbol}: {e}")
                failed_symbols.append(security.symbol)

        portfolio_ids = set()
        for position in positions:
            price = prices.get(position.security_id)
            if price is None:
                continue
            position.update_market_value(price)
            position.update_day_change(price, previous_closes[position.security_id])
            portfolio_ids.add(position.portfolio_id)

        for portfolio_id in portfolio_ids:
            portfolio = await self.session.get(Portfolio, portfolio_id)
            held = [p for p in positions if p.portfolio_id == portfolio_id]
            portfolio.recalculate_value(held)
            portfolio.validate_state()
            await refresh_account_mirror(self.session, portfolio)

        await self.session.commit()

        duration_ms = (time.time() - start_time) * 1000
        metrics.batch_processed(
            "position_revaluation",
            count=len(positions),
            success=len(prices),
            failed=len(failed_symbols),
            duration_ms=duration_ms,
        )
        return {
            "positions": len(positions),
            "portfolios": len(portfolio_ids),
            "priced_symbols": len(prices),
            "failed_symbols": failed_symbols,
        }

    async def _refresh_day_changes(self, positions: List[Position]) -> int:
        """Recompute day change from each security's stored price and previous close."""
        updated = 0
        for position in positions:
            security = await self.session.get(Security, position.security_id)
            position.update_day_change(security.current_price, security.previous_close)
            updated += 1
        return updated

    async def update_day_changes(self) -> Dict[str, int]:
        """Refresh day change on every active position without fetching quotes."""
        start_time = time.time()
        result = await self.session.execute(select(Position).where(Position.active.is_(True)))
        positions = list(result.scalars().all())
        updated = await self._refresh_day_changes(positions)
        await self.session.commit()
        metrics.batch_processed("day_change", count=len(positions), success=updated, failed=0,
                                duration_ms=(time.time() - start_time) * 1000)
        logger.info(f"Updated day change on {updated} positions")
        return {"positions": len(positions), "updated": updated}

    async def update_portfolio_day_changes(self, portfolio_id: int, username: str) -> List[Position]:
        await get_owned_portfolio(self.session, portfolio_id, username)
        positions = await self.list_for_portfolio(portfolio_id)
        await self._refresh_day_changes(positions)
        await self.session.commit()
        return positions
