"""
Transaction ledger: booking, settlement and reporting.

Cash and position effects are applied when a transaction is booked.
Settlement only moves the record from PENDING to COMPLETED once its
settlement date has passed.
"""

import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.config import settings
from microinvest.core.exceptions import (
    InsufficientFundsError,
    InsufficientQuantityError,
    InvalidStateTransitionError,
    MicroInvestError,
    NotFoundError,
    ValidationError,
)
from microinvest.core.metrics import metrics
from microinvest.models.base import ZERO, to_money
from microinvest.models.enums import TransactionStatus, TransactionType
from microinvest.models.order import Order
from microinvest.models.portfolio import Portfolio
from microinvest.models.security import Security
from microinvest.models.transaction import Transaction
from microinvest.services.common import as_utc, get_owned_portfolio, refresh_account_mirror, utcnow
from microinvest.services.fees import FeeSchedule
from microinvest.services.position_service import PositionService

logger = logging.getLogger(__name__)

CASH_EVENT_TYPES = (
    TransactionType.DEPOSIT,
    TransactionType.WITHDRAWAL,
    TransactionType.DIVIDEND,
    TransactionType.INTEREST,
    TransactionType.FEE,
    TransactionType.TAX,
)


class TransactionService:
    def __init__(
        self,
        session: AsyncSession,
        fees: Optional[FeeSchedule] = None,
        settlement_days: Optional[int] = None,
    ):
        self.session = session
        self.fees = fees or FeeSchedule.from_settings()
        self.settlement_days = settings.SETTLEMENT_DAYS if settlement_days is None else settlement_days
        self.positions = PositionService(session)

    # =========================================================================
    # Booking (no commit; part of the caller's unit of work)
    # =========================================================================

    async def record_trade(
        self,
        portfolio: Portfolio,
        security: Security,
        transaction_type: TransactionType,
        quantity: Decimal,
        price: Decimal,
        order: Optional[Order] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """
        Book a BUY or SELL and apply it to the position and cash balance.

        Funds and holdings are checked before anything is modified, so a
        failed booking leaves the portfolio untouched.
        """
        if transaction_type not in (TransactionType.BUY, TransactionType.SELL):
            raise ValidationError(f"{transaction_type.value} is not a trade")
        if quantity <= ZERO:
            raise ValidationError("Quantity must be positive", {"quantity": str(quantity)})
        if price <= ZERO:
            raise ValidationError("Price must be positive", {"price": str(price)})

        total = to_money(quantity * price)
        transaction = Transaction(
            settlement_days=self.settlement_days,
            portfolio_id=portfolio.id,
            order_id=order.id if order else None,
            security_id=security.id,
            symbol=security.symbol,
            transaction_type=transaction_type,
            quantity=quantity,
            price_per_share=price,
            total_amount=total,
            fees=self.fees.calculate(total),
            transaction_date=utcnow(now),
        )

        if transaction_type is TransactionType.BUY:
            if not portfolio.has_sufficient_cash(transaction.net_amount):
                raise InsufficientFundsError(transaction.net_amount, portfolio.cash_balance)
        else:
            held = await self.positions.held_quantity(portfolio.id, security.id)
            if quantity > held:
                raise InsufficientQuantityError(security.symbol, quantity, held)
            if transaction.net_amount < ZERO:
                raise ValidationError("Sale proceeds do not cover fees",
                                      {"net_amount": str(transaction.net_amount)})

        await self.positions.apply_trade(portfolio, security, transaction_type, quantity, price)
        portfolio.apply_cash_flow(transaction.cash_adjustment)
        portfolio.validate_state()

        self.session.add(transaction)
        logger.info(
            f"Booked {transaction_type.value} {quantity} {security.symbol} @ {price} "
            f"net={transaction.net_amount} portfolio={portfolio.id}"
        )
        return transaction

    def record_cash_event(
        self,
        portfolio: Portfolio,
        transaction_type: TransactionType,
        amount,
        security: Optional[Security] = None,
        quantity: Optional[Decimal] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        if transaction_type not in CASH_EVENT_TYPES:
            raise ValidationError(f"{transaction_type.value} is not a cash event")
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Amount must be positive", {"amount": str(amount)})

        transaction = Transaction(
            settlement_days=self.settlement_days,
            portfolio_id=portfolio.id,
            security_id=security.id if security else None,
            symbol=security.symbol if security else None,
            transaction_type=transaction_type,
            quantity=quantity,
            total_amount=amount,
            transaction_date=utcnow(now),
            notes=notes,
        )
        portfolio.apply_cash_flow(transaction.cash_adjustment)
        portfolio.validate_state()
        self.session.add(transaction)
        metrics.cash_movement(portfolio.id, transaction_type.value.lower(), float(amount))
        return transaction

    async def record_share_distribution(
        self,
        portfolio: Portfolio,
        security: Security,
        transaction_type: TransactionType,
        quantity: Decimal,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """Book shares received at zero cost (split or stock dividend)."""
        if transaction_type not in (TransactionType.STOCK_SPLIT, TransactionType.STOCK_DIVIDEND):
            raise ValidationError(f"{transaction_type.value} is not a share distribution")
        await self.positions.apply_trade(portfolio, security, transaction_type, quantity, ZERO)
        transaction = Transaction(
            settlement_days=self.settlement_days,
            portfolio_id=portfolio.id,
            security_id=security.id,
            symbol=security.symbol,
            transaction_type=transaction_type,
            quantity=quantity,
            price_per_share=ZERO,
            total_amount=ZERO,
            transaction_date=utcnow(now),
            notes=notes,
        )
        self.session.add(transaction)
        return transaction

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def settle_transactions(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Complete every PENDING transaction whose settlement date has passed.
        A record that cannot be settled is marked FAILED; the rest continue.
        """
        start_time = time.time()
        now = utcnow(now)
        result = await self.session.execute(
            select(Transaction)
            .where(
                Transaction.status == TransactionStatus.PENDING,
                Transaction.settlement_date <= now,
            )
            .order_by(Transaction.settlement_date, Transaction.id)
        )
        due = list(result.scalars().all())

        settled = failed = 0
        for transaction in due:
            try:
                portfolio = await self.session.get(Portfolio, transaction.portfolio_id)
                if portfolio is None:
                    raise ValidationError("Portfolio no longer exists")
                transaction.mark_completed(now)
                settled += 1
            except MicroInvestError as e:
                logger.error(f"Settlement failed for transaction {transaction.id}: {e.message}")
                transaction.mark_failed(e.message)
                failed += 1

        await self.session.commit()

        duration_ms = (time.time() - start_time) * 1000
        metrics.batch_processed("settlement", count=len(due), success=settled,
                                failed=failed, duration_ms=duration_ms)
        logger.info(f"Settlement sweep: {settled} settled, {failed} failed")
        return {"due": len(due), "settled": settled, "failed": failed}

    async def cancel_transaction(self, transaction_id: int, username: str) -> Transaction:
        """Cancel a pending cash event and reverse its cash effect."""
        transaction = await self._get(transaction_id)
        portfolio = await get_owned_portfolio(self.session, transaction.portfolio_id, username)
        if transaction.transaction_type.affects_position:
            raise ValidationError("Trade transactions cannot be cancelled; cancel the order instead",
                                  {"transaction_id": transaction_id})
        if transaction.status.is_final:
            raise InvalidStateTransitionError("Transaction", transaction.status, TransactionStatus.CANCELED)
        reversal = -transaction.cash_adjustment
        if reversal < ZERO and not portfolio.has_sufficient_cash(-reversal):
            raise InsufficientFundsError(-reversal, portfolio.cash_balance)

        transaction.mark_cancelled()
        portfolio.apply_cash_flow(reversal)
        portfolio.validate_state()
        await refresh_account_mirror(self.session, portfolio)
        await self.session.commit()
        logger.info(f"Cancelled transaction {transaction_id}")
        return transaction

    # =========================================================================
    # Queries
    # =========================================================================

    async def _get(self, transaction_id: int) -> Transaction:
        transaction = await self.session.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    async def get_transaction(self, transaction_id: int, username: str) -> Transaction:
        transaction = await self._get(transaction_id)
        await get_owned_portfolio(self.session, transaction.portfolio_id, username)
        return transaction

    async def list_transactions(
        self,
        portfolio_id: int,
        username: str,
        transaction_type: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Transaction]:
        start, end = as_utc(start), as_utc(end)
        await get_owned_portfolio(self.session, portfolio_id, username)
        stmt = select(Transaction).where(Transaction.portfolio_id == portfolio_id)
        if transaction_type:
            stmt = stmt.where(Transaction.transaction_type == transaction_type)
        if status:
            stmt = stmt.where(Transaction.status == status)
        if start:
            stmt = stmt.where(Transaction.transaction_date >= start)
        if end:
            stmt = stmt.where(Transaction.transaction_date <= end)
        stmt = stmt.order_by(Transaction.transaction_date.desc(), Transaction.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_order(self, order_id: int) -> List[Transaction]:
        result = await self.session.execute(
            select(Transaction).where(Transaction.order_id == order_id).order_by(Transaction.id)
        )
        return list(result.scalars().all())

    async def get_unsettled(self, portfolio_id: int, username: str) -> List[Transaction]:
        return await self.list_transactions(portfolio_id, username, status=TransactionStatus.PENDING)

    async def get_stats(self, portfolio_id: int, username: str) -> Dict[str, Any]:
        await get_owned_portfolio(self.session, portfolio_id, username)
        result = await self.session.execute(
            select(
                Transaction.transaction_type,
                func.count(Transaction.id),
                func.coalesce(func.sum(Transaction.total_amount), 0),
                func.coalesce(func.sum(Transaction.fees), 0),
            )
            .where(
                Transaction.portfolio_id == portfolio_id,
                Transaction.status.in_([TransactionStatus.PENDING, TransactionStatus.COMPLETED]),
            )
            .group_by(Transaction.transaction_type)
        )
        by_type: Dict[str, int] = {}
        totals: Dict[TransactionType, Decimal] = {}
        fees_paid = ZERO
        for tx_type, count, total, fees in result.all():
            by_type[tx_type.value] = count
            totals[tx_type] = to_money(total)
            fees_paid += to_money(fees)

        return {
            "portfolio_id": portfolio_id,
            "total_transactions": sum(by_type.values()),
            "by_type": by_type,
            "total_bought": totals.get(TransactionType.BUY, ZERO),
            "total_sold": totals.get(TransactionType.SELL, ZERO),
            "total_deposited": totals.get(TransactionType.DEPOSIT, ZERO),
            "total_withdrawn": totals.get(TransactionType.WITHDRAWAL, ZERO),
            "dividend_income": totals.get(TransactionType.DIVIDEND, ZERO),
            "fees_paid": to_money(fees_paid),
        }
