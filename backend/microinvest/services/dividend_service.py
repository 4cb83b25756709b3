import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.exceptions import AlreadyExistsError, NotFoundError, ValidationError
from microinvest.models.base import ZERO, as_decimal, to_money
from microinvest.models.dividend import Dividend
from microinvest.models.enums import AuditEventType, DividendFrequency, TransactionType
from microinvest.models.transaction import Transaction
from microinvest.services.audit_service import AuditService
from microinvest.services.common import get_owned_portfolio, refresh_account_mirror
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import QuoteProvider
from microinvest.services.position_service import PositionService
from microinvest.services.security_service import SecurityService
from microinvest.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)


def _payment_note(dividend: Dividend) -> str:
    return f"Dividend #{dividend.id}"


class DividendService:
    def __init__(self, session: AsyncSession, quotes: Optional[QuoteProvider] = None,
                 fees: Optional[FeeSchedule] = None):
        self.session = session
        self.securities = SecurityService(session, quotes)
        self.positions = PositionService(session)
        self.transactions = TransactionService(session, fees=fees)
        self.audit = AuditService(session)

    @staticmethod
    def _validate(amount_per_share, ex_date: date, pay_date: date) -> None:
        if amount_per_share is None or as_decimal(amount_per_share) <= ZERO:
            raise ValidationError("Dividend amount must be positive",
                                  {"amount_per_share": str(amount_per_share)})
        if pay_date < ex_date:
            raise ValidationError("Pay date cannot precede the ex-dividend date")

    async def create_dividend(
        self,
        symbol: str,
        amount_per_share,
        ex_date: date,
        pay_date: date,
        frequency: DividendFrequency = DividendFrequency.QUARTERLY,
    ) -> Dividend:
        self._validate(amount_per_share, ex_date, pay_date)
        security = await self.securities.get_or_create(symbol)
        dividend = Dividend(
            security_id=security.id,
            amount_per_share=as_decimal(amount_per_share),
            ex_date=ex_date,
            pay_date=pay_date,
            frequency=frequency,
        )
        self.session.add(dividend)
        await self.session.commit()
        logger.info(f"Declared dividend {dividend.id} for {security.symbol}: {amount_per_share}/share")
        return dividend

    async def get_dividend(self, dividend_id: int) -> Dividend:
        dividend = await self.session.get(Dividend, dividend_id)
        if dividend is None:
            raise NotFoundError("Dividend", dividend_id)
        return dividend

    async def list_for_security(self, symbol: str) -> List[Dividend]:
        security = await self.securities.require_by_symbol(symbol)
        result = await self.session.execute(
            select(Dividend).where(Dividend.security_id == security.id).order_by(Dividend.ex_date.desc())
        )
        return list(result.scalars().all())

    async def list_upcoming(self, today: Optional[date] = None, days: int = 30) -> List[Dividend]:
        today = today or date.today()
        result = await self.session.execute(
            select(Dividend)
            .where(Dividend.pay_date >= today, Dividend.pay_date <= today + timedelta(days=days))
            .order_by(Dividend.pay_date)
        )
        return list(result.scalars().all())

    async def update_dividend(
        self,
        dividend_id: int,
        amount_per_share=None,
        ex_date: Optional[date] = None,
        pay_date: Optional[date] = None,
        frequency: Optional[DividendFrequency] = None,
    ) -> Dividend:
        dividend = await self.get_dividend(dividend_id)
        new_amount = as_decimal(amount_per_share) if amount_per_share is not None else dividend.amount_per_share
        new_ex = ex_date or dividend.ex_date
        new_pay = pay_date or dividend.pay_date
        self._validate(new_amount, new_ex, new_pay)
        dividend.amount_per_share = new_amount
        dividend.ex_date = new_ex
        dividend.pay_date = new_pay
        if frequency is not None:
            dividend.frequency = frequency
        await self.session.commit()
        return dividend

    async def delete_dividend(self, dividend_id: int) -> None:
        dividend = await self.get_dividend(dividend_id)
        await self.session.delete(dividend)
        await self.session.commit()

    async def pay_dividend(self, portfolio_id: int, dividend_id: int, username: str) -> Transaction:
        """Credit a dividend on the portfolio's current holding. Pays once per portfolio."""
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username, require_active=True)
        dividend = await self.get_dividend(dividend_id)
        security = await self.securities.get(dividend.security_id)

        position = await self.positions.find(portfolio.id, security.id)
        if position is None or position.quantity <= ZERO:
            raise ValidationError(f"Portfolio holds no shares of {security.symbol}",
                                  {"symbol": security.symbol})

        note = _payment_note(dividend)
        existing = await self.session.execute(
            select(Transaction.id).where(
                Transaction.portfolio_id == portfolio.id,
                Transaction.transaction_type == TransactionType.DIVIDEND,
                Transaction.notes == note,
            )
        )
        if existing.first() is not None:
            raise AlreadyExistsError("Dividend already paid to this portfolio",
                                     {"dividend_id": dividend_id})

        amount = to_money(position.quantity * dividend.amount_per_share)
        transaction = self.transactions.record_cash_event(
            portfolio,
            TransactionType.DIVIDEND,
            amount,
            security=security,
            quantity=position.quantity,
            notes=note,
        )
        await refresh_account_mirror(self.session, portfolio)
        self.audit.record(AuditEventType.DATA_CHANGE, "Dividend paid", user_id=portfolio.user_id,
                          resource_id=portfolio.id, details={"dividend_id": dividend_id, "amount": str(amount)})
        await self.session.commit()
        logger.info(f"Paid dividend {dividend_id} to portfolio {portfolio_id}: {amount}")
        return transaction
