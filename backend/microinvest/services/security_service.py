"""
Security reference data and quotes.

Securities are created the first time a symbol is referenced, using the
quote provider's reference data.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.exceptions import NotFoundError, ValidationError
from microinvest.models.enums import Exchange, SecurityType
from microinvest.models.security import Security
from microinvest.services.market_data import Quote, QuoteProvider, get_default_provider

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: Optional[str]) -> str:
    if not symbol or not symbol.strip():
        raise ValidationError("Symbol is required")
    symbol = symbol.strip().upper()
    if len(symbol) > 20:
        raise ValidationError("Symbol is too long", {"symbol": symbol})
    return symbol


class SecurityService:
    def __init__(self, session: AsyncSession, quotes: Optional[QuoteProvider] = None):
        self.session = session
        self.quotes = quotes or get_default_provider()

    async def get(self, security_id: int) -> Security:
        security = await self.session.get(Security, security_id)
        if security is None:
            raise NotFoundError("Security", security_id)
        return security

    async def get_by_symbol(self, symbol: str) -> Optional[Security]:
        result = await self.session.execute(
            select(Security).where(Security.symbol == normalize_symbol(symbol))
        )
        return result.scalar_one_or_none()

    async def require_by_symbol(self, symbol: str) -> Security:
        security = await self.get_by_symbol(symbol)
        if security is None:
            raise NotFoundError("Security", symbol)
        return security

    async def get_or_create(self, symbol: str) -> Security:
        """Find a security by symbol, creating it from provider reference data."""
        symbol = normalize_symbol(symbol)
        security = await self.get_by_symbol(symbol)
        if security is not None:
            return security

        info = await asyncio.to_thread(self.quotes.get_security_info, symbol)
        security = Security(
            symbol=symbol,
            company_name=info.company_name,
            security_type=_enum_or_default(SecurityType, info.security_type, SecurityType.OTHER),
            sector=info.sector,
            exchange=_enum_or_default(Exchange, info.exchange, Exchange.OTHER),
            currency=info.currency or "USD",
        )
        self.session.add(security)
        await self.session.flush()
        logger.info(f"Created security {symbol} ({security.company_name})")
        return security

    async def get_quote(self, symbol: str) -> Quote:
        return await asyncio.to_thread(self.quotes.get_quote, normalize_symbol(symbol))

    async def refresh_price(self, security: Security) -> Quote:
        """Fetch a quote and store it on the security."""
        quote = await self.get_quote(security.symbol)
        security.current_price = quote.price
        if quote.previous_close is not None:
            security.previous_close = quote.previous_close
        security.price_updated_at = quote.timestamp or datetime.utcnow()
        return quote

    async def list_securities(
        self,
        search: Optional[str] = None,
        active_only: bool = True,
        limit: int = 100,
    ) -> List[Security]:
        stmt = select(Security)
        if active_only:
            stmt = stmt.where(Security.active.is_(True))
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Security.symbol.ilike(pattern), Security.company_name.ilike(pattern)))
        stmt = stmt.order_by(Security.symbol).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


def _enum_or_default(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default
