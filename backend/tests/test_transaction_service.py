from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from microinvest.core.exceptions import (
    InsufficientFundsError,
    InvalidStateTransitionError,
    PermissionDeniedError,
    ValidationError,
)
from microinvest.models.enums import OrderSide, TransactionStatus, TransactionType
from microinvest.services.order_service import OrderService
from microinvest.services.portfolio_service import PortfolioService
from microinvest.services.transaction_service import TransactionService


@pytest.fixture
def ledger(session, fees):
    return TransactionService(session, fees=fees)


async def only(ledger, portfolio, transaction_type):
    txs = await ledger.list_transactions(portfolio.id, "alice", transaction_type=transaction_type)
    assert len(txs) == 1
    return txs[0]


class TestSettlement:

    async def test_registration_funding_is_pending(self, ledger, portfolio):
        funding = await only(ledger, portfolio, TransactionType.DEPOSIT)
        assert funding.status is TransactionStatus.PENDING
        assert funding.notes == "Initial funding"
        assert funding.net_amount == Decimal("1000.00")

    async def test_settles_only_due_records(self, ledger, portfolio):
        funding = await only(ledger, portfolio, TransactionType.DEPOSIT)

        early = await ledger.settle_transactions(now=funding.transaction_date + timedelta(days=1))
        assert early == {"due": 0, "settled": 0, "failed": 0}

        settled_at = funding.transaction_date + timedelta(days=2)
        result = await ledger.settle_transactions(now=settled_at)
        assert result == {"due": 1, "settled": 1, "failed": 0}
        assert funding.status is TransactionStatus.COMPLETED
        assert funding.settled_at == settled_at

    async def test_settlement_does_not_move_cash(self, ledger, portfolio):
        await ledger.settle_transactions(now=datetime.utcnow() + timedelta(days=3))
        assert portfolio.cash_balance == Decimal("1000.00")

    async def test_unsettled_listing(self, ledger, portfolio):
        assert len(await ledger.get_unsettled(portfolio.id, "alice")) == 1
        await ledger.settle_transactions(now=datetime.utcnow() + timedelta(days=3))
        assert await ledger.get_unsettled(portfolio.id, "alice") == []


class TestCancellation:

    async def test_cancel_deposit_reverses_cash(self, session, ledger, fees, portfolio):
        await PortfolioService(session, fees=fees).deposit(portfolio.id, "alice", Decimal("200"))
        deposits = await ledger.list_transactions(portfolio.id, "alice", transaction_type=TransactionType.DEPOSIT)
        latest = next(t for t in deposits if t.notes != "Initial funding")
        assert latest.total_amount == Decimal("200.00")

        cancelled = await ledger.cancel_transaction(latest.id, "alice")
        assert cancelled.status is TransactionStatus.CANCELED
        assert portfolio.cash_balance == Decimal("1000.00")

    async def test_cancel_withdrawal_restores_cash(self, session, ledger, fees, portfolio):
        await PortfolioService(session, fees=fees).withdraw(portfolio.id, "alice", Decimal("300"))
        withdrawal = await only(ledger, portfolio, TransactionType.WITHDRAWAL)
        assert portfolio.cash_balance == Decimal("700.00")

        await ledger.cancel_transaction(withdrawal.id, "alice")
        assert portfolio.cash_balance == Decimal("1000.00")

    async def test_cannot_cancel_deposit_already_spent(self, session, ledger, quotes, fees, portfolio):
        funding = await only(ledger, portfolio, TransactionType.DEPOSIT)
        await OrderService(session, quotes=quotes, fees=fees).place_order(
            "alice", portfolio.id, "SEC1", OrderSide.BUY, Decimal("5")
        )
        with pytest.raises(InsufficientFundsError):
            await ledger.cancel_transaction(funding.id, "alice")
        assert funding.status is TransactionStatus.PENDING

    async def test_trades_cannot_be_cancelled(self, session, ledger, quotes, fees, portfolio):
        await OrderService(session, quotes=quotes, fees=fees).place_order(
            "alice", portfolio.id, "SEC1", OrderSide.BUY, Decimal("1")
        )
        trade = await only(ledger, portfolio, TransactionType.BUY)
        with pytest.raises(ValidationError):
            await ledger.cancel_transaction(trade.id, "alice")

    async def test_settled_records_are_final(self, ledger, portfolio):
        funding = await only(ledger, portfolio, TransactionType.DEPOSIT)
        await ledger.settle_transactions(now=funding.transaction_date + timedelta(days=2))
        with pytest.raises(InvalidStateTransitionError):
            await ledger.cancel_transaction(funding.id, "alice")

    async def test_other_user_cannot_cancel(self, ledger, portfolio, bob):
        funding = await only(ledger, portfolio, TransactionType.DEPOSIT)
        with pytest.raises(PermissionDeniedError):
            await ledger.cancel_transaction(funding.id, "bob")


class TestBooking:

    def test_cash_event_type_checked(self, ledger, portfolio):
        with pytest.raises(ValidationError):
            ledger.record_cash_event(portfolio, TransactionType.BUY, Decimal("10"))

    def test_withdrawal_cannot_overdraw(self, ledger, portfolio):
        with pytest.raises(InsufficientFundsError):
            ledger.record_cash_event(portfolio, TransactionType.WITHDRAWAL, Decimal("1000.01"))
        assert portfolio.cash_balance == Decimal("1000.00")

    async def test_stats(self, session, ledger, quotes, fees, portfolio):
        orders = OrderService(session, quotes=quotes, fees=fees)
        await orders.place_order("alice", portfolio.id, "SEC1", OrderSide.BUY, Decimal("5"))
        await orders.place_order("alice", portfolio.id, "SEC1", OrderSide.SELL, Decimal("2"))

        stats = await ledger.get_stats(portfolio.id, "alice")
        assert stats["total_transactions"] == 3
        assert stats["by_type"] == {"DEPOSIT": 1, "BUY": 1, "SELL": 1}
        assert stats["total_deposited"] == Decimal("1000.00")
        assert stats["total_bought"] == Decimal("500.00")
        assert stats["total_sold"] == Decimal("200.00")
        assert stats["fees_paid"] == Decimal("0.00")
