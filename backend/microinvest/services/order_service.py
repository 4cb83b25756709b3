"""
Order lifecycle service.

Orders are validated and priced on submission. MARKET orders execute
immediately against the quote provider; limit-style orders wait until a
quote satisfies their limit. Each fill books one Transaction, updates the
Position and moves Portfolio cash.
"""

import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.exceptions import (
    ExternalServiceError,
    InsufficientFundsError,
    InsufficientQuantityError,
    InvalidStateTransitionError,
    MicroInvestError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from microinvest.core.metrics import metrics
from microinvest.models.base import ZERO, as_decimal, to_money
from microinvest.models.enums import (
    AuditEventType,
    OrderSide,
    OrderStatus,
    OrderType,
    TransactionType,
)
from microinvest.models.order import Order
from microinvest.models.portfolio import Portfolio
from microinvest.models.security import Security
from microinvest.models.user import UserAccount
from microinvest.services.achievement_service import AchievementService
from microinvest.services.audit_service import AuditService
from microinvest.services.common import (
    as_utc,
    get_owned_portfolio,
    get_portfolio,
    get_user,
    refresh_account_mirror,
    utcnow,
)
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import QuoteProvider, get_default_provider
from microinvest.services.position_service import PositionService
from microinvest.services.security_service import SecurityService, normalize_symbol
from microinvest.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (OrderStatus.PENDING, OrderStatus.PARTIALLY_FILLED)
LIMIT_TYPES = (OrderType.LIMIT, OrderType.STOP_LIMIT)


class OrderService:
    def __init__(
        self,
        session: AsyncSession,
        quotes: Optional[QuoteProvider] = None,
        fees: Optional[FeeSchedule] = None,
    ):
        self.session = session
        self.quotes = quotes or get_default_provider()
        self.fees = fees or FeeSchedule.from_settings()
        self.securities = SecurityService(session, self.quotes)
        self.positions = PositionService(session)
        self.transactions = TransactionService(session, fees=self.fees)
        self.achievements = AchievementService(session)
        self.audit = AuditService(session)

    # =========================================================================
    # Submission
    # =========================================================================

    @staticmethod
    def validate_request(
        side: Optional[OrderSide],
        order_type: OrderType,
        quantity,
        limit_price=None,
        expiry_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Checks that need no database access."""
        expiry_date = as_utc(expiry_date)
        if side is None:
            raise ValidationError("Order side is required")
        if quantity is None or as_decimal(quantity) <= ZERO:
            raise ValidationError("Quantity must be positive", {"quantity": str(quantity)})
        if order_type.requires_price:
            if limit_price is None or as_decimal(limit_price) <= ZERO:
                raise ValidationError(
                    f"{order_type.value} orders require a positive limit price",
                    {"order_type": order_type.value},
                )
        elif order_type.is_market_order and limit_price is not None:
            raise ValidationError(
                f"{order_type.value} orders cannot carry a limit price",
                {"order_type": order_type.value},
            )
        if limit_price is not None and as_decimal(limit_price) <= ZERO:
            raise ValidationError("Limit price must be positive", {"limit_price": str(limit_price)})
        if expiry_date is not None and expiry_date <= utcnow(now):
            raise ValidationError("Expiry date must be in the future",
                                  {"expiry_date": expiry_date.isoformat()})

    async def place_order(
        self,
        username: str,
        portfolio_id: int,
        symbol: str,
        side: Optional[OrderSide],
        quantity,
        order_type: OrderType = OrderType.MARKET,
        limit_price=None,
        expiry_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Validate and submit an order.

        Every validation failure raises before anything is persisted. A
        MARKET order is executed at once; if no quote can be obtained it is
        stored as FAILED with the reason.
        """
        now = utcnow(now)
        symbol = normalize_symbol(symbol)
        expiry_date = as_utc(expiry_date)
        self.validate_request(side, order_type, quantity, limit_price, expiry_date, now)
        quantity = as_decimal(quantity)
        limit_price = as_decimal(limit_price) if limit_price is not None else None

        user = await get_user(self.session, username)
        if not user.can_trade:
            raise PermissionDeniedError("Account is not allowed to trade",
                                        {"status": user.status.value})
        portfolio = await get_owned_portfolio(self.session, portfolio_id, username, require_active=True)
        security = await self.securities.get_or_create(symbol)

        quote_error: Optional[ExternalServiceError] = None
        price = limit_price
        if not order_type.requires_price:
            try:
                price = (await self.securities.refresh_price(security)).price
            except ExternalServiceError as e:
                if order_type is not OrderType.MARKET:
                    raise
                quote_error = e

        estimated_total = to_money(quantity * price) if price is not None else None
        if quote_error is None:
            await self._check_capacity(portfolio, security, side, quantity, estimated_total)

        order = Order(
            portfolio_id=portfolio.id,
            security_id=security.id,
            symbol=security.symbol,
            side=side,
            order_type=order_type,
            quantity=quantity,
            limit_price=limit_price,
            estimated_total=estimated_total,
            placed_at=now,
            expiry_date=expiry_date,
            notes=notes,
        )
        self.session.add(order)
        await self.session.flush()

        self.audit.record(
            AuditEventType.PLACE_ORDER,
            f"Place {side.value} {order_type.value} order",
            user_id=user.id,
            resource_id=order.id,
            details={"symbol": symbol, "quantity": str(quantity),
                     "limit_price": str(limit_price) if limit_price is not None else None},
        )
        metrics.order_placed(portfolio.id, symbol, side.value, order_type.value, float(quantity))
        logger.info(f"Placed order {order.id}: {side.value} {quantity} {symbol} {order_type.value}")

        if order_type is OrderType.MARKET:
            if quote_error is not None:
                self._fail(order, f"Quote unavailable: {quote_error.message}")
            else:
                await self._execute(order, portfolio, security, user, price, None, now)

        await self.session.commit()
        return order

    async def _check_capacity(
        self,
        portfolio: Portfolio,
        security: Security,
        side: OrderSide,
        quantity: Decimal,
        estimated_total: Decimal,
    ) -> None:
        if side.is_buy:
            required = to_money(estimated_total + self.fees.calculate(estimated_total))
            if not portfolio.has_sufficient_cash(required):
                raise InsufficientFundsError(required, portfolio.cash_balance)
        else:
            held = await self.positions.held_quantity(portfolio.id, security.id)
            if quantity > held:
                raise InsufficientQuantityError(security.symbol, quantity, held)

    # =========================================================================
    # Execution
    # =========================================================================

    def _fail(self, order: Order, reason: str) -> None:
        order.fail(reason)
        metrics.order_closed(order.portfolio_id, order.symbol, order.status.value, reason)
        logger.warning(f"Order {order.id} failed: {reason}")

    async def _execute(
        self,
        order: Order,
        portfolio: Portfolio,
        security: Security,
        user: UserAccount,
        price: Decimal,
        quantity: Optional[Decimal],
        now: datetime,
    ) -> bool:
        """
        Fill an active order at price. Returns False when a limit is not
        satisfied. Insufficient cash or shares at fill time fail the order.
        """
        fill_quantity = order.remaining_quantity if quantity is None else as_decimal(quantity)
        if fill_quantity <= ZERO or fill_quantity > order.remaining_quantity:
            raise ValidationError(
                "Fill quantity must be positive and no more than the remaining quantity",
                {"quantity": str(fill_quantity), "remaining": str(order.remaining_quantity)},
            )
        if not order.limit_satisfied(price):
            logger.debug(f"Order {order.id} limit {order.limit_price} not met at {price}")
            return False

        tx_type = TransactionType.BUY if order.side.is_buy else TransactionType.SELL
        try:
            transaction = await self.transactions.record_trade(
                portfolio, security, tx_type, fill_quantity, price, order=order, now=now
            )
        except (InsufficientFundsError, InsufficientQuantityError) as e:
            self._fail(order, e.message)
            return False

        order.record_fill(fill_quantity, price, transaction.fees, now)
        await refresh_account_mirror(self.session, portfolio)
        metrics.order_filled(portfolio.id, order.symbol, order.side.value,
                             float(fill_quantity), float(price), float(transaction.fees))
        await self.achievements.check_trading_achievements(user)
        return True

    async def execute_order(
        self,
        order_id: int,
        username: Optional[str] = None,
        execution_price=None,
        quantity=None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Fill an active order, optionally partially and at an explicit price.
        The price defaults to the current quote.
        """
        now = utcnow(now)
        order = await self._get(order_id)
        if username is not None:
            await get_owned_portfolio(self.session, order.portfolio_id, username)
        if not order.status.is_active:
            raise InvalidStateTransitionError("Order", order.status, OrderStatus.FILLED)

        portfolio = await get_portfolio(self.session, order.portfolio_id)
        security = await self.securities.get(order.security_id)
        user = await self.session.get(UserAccount, portfolio.user_id)

        if execution_price is None:
            price = (await self.securities.refresh_price(security)).price
        else:
            price = as_decimal(execution_price)
            if price <= ZERO:
                raise ValidationError("Execution price must be positive", {"price": str(price)})

        await self._execute(order, portfolio, security, user, price,
                            as_decimal(quantity) if quantity is not None else None, now)
        await self.session.commit()
        return order

    # =========================================================================
    # Cancellation, rejection, expiry
    # =========================================================================

    async def cancel_order(
        self,
        order_id: int,
        username: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        order = await self._get(order_id)
        portfolio = await get_owned_portfolio(self.session, order.portfolio_id, username)
        order.cancel(utcnow(now), reason)
        self.audit.record(AuditEventType.CANCEL_ORDER, "Cancel order", user_id=portfolio.user_id,
                          resource_id=order.id, details={"reason": order.reason})
        metrics.order_closed(order.portfolio_id, order.symbol, order.status.value, order.reason)
        await self.session.commit()
        logger.info(f"Cancelled order {order_id}")
        return order

    async def reject_order(self, order_id: int, reason: str) -> Order:
        """Administrative rejection of a pending order."""
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")
        order = await self._get(order_id)
        order.reject(reason.strip())
        metrics.order_closed(order.portfolio_id, order.symbol, order.status.value, order.reason)
        await self.session.commit()
        logger.info(f"Rejected order {order_id}: {reason}")
        return order

    async def expire_orders(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Mark active orders past their expiry date EXPIRED."""
        start_time = time.time()
        now = utcnow(now)
        result = await self.session.execute(
            select(Order).where(
                Order.status.in_(ACTIVE_STATUSES),
                Order.expiry_date.is_not(None),
                Order.expiry_date <= now,
            )
        )
        due = list(result.scalars().all())

        expired = failed = 0
        for order in due:
            try:
                order.expire(now)
                metrics.order_closed(order.portfolio_id, order.symbol, order.status.value, order.reason)
                expired += 1
            except MicroInvestError as e:
                logger.error(f"Failed to expire order {order.id}: {e.message}")
                failed += 1

        await self.session.commit()
        duration_ms = (time.time() - start_time) * 1000
        metrics.batch_processed("order_expiry", count=len(due), success=expired,
                                failed=failed, duration_ms=duration_ms)
        logger.info(f"Expired {expired} orders")
        return {"due": len(due), "expired": expired, "failed": failed}

    async def process_pending_limit_orders(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Try every active limit-style order against a fresh quote."""
        start_time = time.time()
        now = utcnow(now)
        result = await self.session.execute(
            select(Order)
            .where(Order.status.in_(ACTIVE_STATUSES), Order.order_type.in_(LIMIT_TYPES))
            .order_by(Order.placed_at, Order.id)
        )
        orders = list(result.scalars().all())

        filled = waiting = failed = 0
        prices: Dict[int, Decimal] = {}
        for order in orders:
            if order.is_expired(now):
                continue
            try:
                security = await self.securities.get(order.security_id)
                if order.security_id not in prices:
                    prices[order.security_id] = (await self.securities.refresh_price(security)).price
                portfolio = await get_portfolio(self.session, order.portfolio_id)
                user = await self.session.get(UserAccount, portfolio.user_id)
                if await self._execute(order, portfolio, security, user,
                                       prices[order.security_id], None, now):
                    filled += 1
                elif order.status is OrderStatus.FAILED:
                    failed += 1
                else:
                    waiting += 1
            except MicroInvestError as e:
                logger.warning(f"Limit order {order.id} skipped: {e.message}")
                failed += 1

        await self.session.commit()
        duration_ms = (time.time() - start_time) * 1000
        metrics.batch_processed("limit_orders", count=len(orders), success=filled,
                                failed=failed, duration_ms=duration_ms)
        return {"checked": len(orders), "filled": filled, "waiting": waiting, "failed": failed}

    # =========================================================================
    # Queries
    # =========================================================================

    async def _get(self, order_id: int) -> Order:
        order = await self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    async def get_order(self, order_id: int, username: str) -> Order:
        order = await self._get(order_id)
        await get_owned_portfolio(self.session, order.portfolio_id, username)
        return order

    async def list_orders(
        self,
        portfolio_id: int,
        username: str,
        status: Optional[OrderStatus] = None,
        side: Optional[OrderSide] = None,
        symbol: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Order]:
        start, end = as_utc(start), as_utc(end)
        await get_owned_portfolio(self.session, portfolio_id, username)
        stmt = select(Order).where(Order.portfolio_id == portfolio_id)
        if status:
            stmt = stmt.where(Order.status == status)
        if side:
            stmt = stmt.where(Order.side == side)
        if symbol:
            stmt = stmt.where(Order.symbol == normalize_symbol(symbol))
        if start:
            stmt = stmt.where(Order.placed_at >= start)
        if end:
            stmt = stmt.where(Order.placed_at <= end)
        stmt = stmt.order_by(Order.placed_at.desc(), Order.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_active_orders(self, portfolio_id: int, username: str) -> List[Order]:
        await get_owned_portfolio(self.session, portfolio_id, username)
        result = await self.session.execute(
            select(Order)
            .where(Order.portfolio_id == portfolio_id, Order.status.in_(ACTIVE_STATUSES))
            .order_by(Order.placed_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    async def get_order_stats(self, portfolio_id: int, username: str) -> Dict[str, Any]:
        await get_owned_portfolio(self.session, portfolio_id, username)
        status_rows = await self.session.execute(
            select(Order.status, func.count(Order.id))
            .where(Order.portfolio_id == portfolio_id)
            .group_by(Order.status)
        )
        by_status = {status.value: count for status, count in status_rows.all()}
        side_rows = await self.session.execute(
            select(Order.side, func.count(Order.id))
            .where(Order.portfolio_id == portfolio_id)
            .group_by(Order.side)
        )
        by_side = {side.value: count for side, count in side_rows.all()}

        return {
            "portfolio_id": portfolio_id,
            "total_orders": sum(by_status.values()),
            "filled_orders": by_status.get(OrderStatus.FILLED.value, 0),
            "pending_orders": (by_status.get(OrderStatus.PENDING.value, 0)
                               + by_status.get(OrderStatus.PARTIALLY_FILLED.value, 0)),
            "cancelled_orders": by_status.get(OrderStatus.CANCELLED.value, 0),
            "buy_orders": by_side.get(OrderSide.BUY.value, 0),
            "sell_orders": by_side.get(OrderSide.SELL.value, 0),
            "by_status": by_status,
        }
