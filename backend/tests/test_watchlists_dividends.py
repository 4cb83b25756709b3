from datetime import date
from decimal import Decimal

import pytest

from microinvest.core.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from microinvest.models.enums import OrderSide, TransactionType
from microinvest.services.dividend_service import DividendService
from microinvest.services.order_service import OrderService
from microinvest.services.watchlist_service import WatchlistService


# ============================================================
# WATCHLISTS
# ============================================================

class TestWatchlists:

    @pytest.fixture
    def watchlists(self, session, quotes):
        return WatchlistService(session, quotes, max_per_user=2)

    async def test_first_watchlist_becomes_default(self, watchlists, alice):
        first = await watchlists.create_watchlist("alice", "Tech")
        second = await watchlists.create_watchlist("alice", "Energy")
        assert first.is_default
        assert not second.is_default

    async def test_explicit_default_moves_flag(self, watchlists, alice):
        first = await watchlists.create_watchlist("alice", "Tech")
        second = await watchlists.create_watchlist("alice", "Energy", is_default=True)
        assert second.is_default
        assert not first.is_default
        assert (await watchlists.get_default_watchlist("alice")).id == second.id

    async def test_limit_per_user(self, watchlists, alice):
        await watchlists.create_watchlist("alice", "One")
        await watchlists.create_watchlist("alice", "Two")
        with pytest.raises(ValidationError) as exc_info:
            await watchlists.create_watchlist("alice", "Three")
        assert exc_info.value.details == {"limit": 2}

    async def test_duplicate_name(self, watchlists, alice):
        await watchlists.create_watchlist("alice", "Tech")
        with pytest.raises(AlreadyExistsError):
            await watchlists.create_watchlist("alice", "Tech")

    async def test_add_and_remove_symbols(self, watchlists, alice):
        watchlist = await watchlists.create_watchlist("alice", "Tech")
        await watchlists.add_symbol(watchlist.id, "alice", "msft")
        await watchlists.add_symbol(watchlist.id, "alice", "AAPL")
        assert watchlist.symbols == ["AAPL", "MSFT"]

        with pytest.raises(AlreadyExistsError):
            await watchlists.add_symbol(watchlist.id, "alice", "MSFT")

        await watchlists.remove_symbol(watchlist.id, "alice", "MSFT")
        assert watchlist.symbols == ["AAPL"]
        with pytest.raises(NotFoundError):
            await watchlists.remove_symbol(watchlist.id, "alice", "MSFT")

    async def test_deleting_default_promotes_next(self, watchlists, alice):
        first = await watchlists.create_watchlist("alice", "Tech")
        second = await watchlists.create_watchlist("alice", "Energy")
        await watchlists.delete_watchlist(first.id, "alice")
        assert second.is_default
        assert [w.id for w in await watchlists.list_watchlists("alice")] == [second.id]

    async def test_ownership(self, watchlists, alice, bob):
        watchlist = await watchlists.create_watchlist("alice", "Tech")
        with pytest.raises(PermissionDeniedError):
            await watchlists.add_symbol(watchlist.id, "bob", "AAPL")


# ============================================================
# DIVIDENDS
# ============================================================

class TestDividends:

    @pytest.fixture
    def dividends(self, session, quotes, fees):
        return DividendService(session, quotes, fees)

    @pytest.fixture
    async def holding(self, session, quotes, fees, portfolio):
        await OrderService(session, quotes=quotes, fees=fees).place_order(
            "alice", portfolio.id, "SEC1", OrderSide.BUY, Decimal("5")
        )
        return portfolio

    async def test_pay_credits_cash(self, dividends, holding):
        dividend = await dividends.create_dividend("SEC1", Decimal("0.50"), date(2026, 6, 1), date(2026, 6, 15))
        tx = await dividends.pay_dividend(holding.id, dividend.id, "alice")

        assert tx.transaction_type is TransactionType.DIVIDEND
        assert tx.net_amount == Decimal("2.50")
        assert tx.quantity == Decimal("5")
        assert holding.cash_balance == Decimal("502.50")

    async def test_pays_once_per_portfolio(self, dividends, holding):
        dividend = await dividends.create_dividend("SEC1", Decimal("1"), date(2026, 6, 1), date(2026, 6, 15))
        await dividends.pay_dividend(holding.id, dividend.id, "alice")
        with pytest.raises(AlreadyExistsError):
            await dividends.pay_dividend(holding.id, dividend.id, "alice")
        assert holding.cash_balance == Decimal("505.00")

    async def test_requires_holding(self, dividends, portfolio):
        dividend = await dividends.create_dividend("AAPL", Decimal("0.25"), date(2026, 6, 1), date(2026, 6, 15))
        with pytest.raises(ValidationError):
            await dividends.pay_dividend(portfolio.id, dividend.id, "alice")

    @pytest.mark.parametrize("amount,ex_date,pay_date", [
        ("0", date(2026, 6, 1), date(2026, 6, 15)),
        ("0.5", date(2026, 6, 15), date(2026, 6, 1)),
    ])
    async def test_invalid_declaration(self, dividends, quotes, amount, ex_date, pay_date):
        with pytest.raises(ValidationError):
            await dividends.create_dividend("SEC1", Decimal(amount), ex_date, pay_date)

    async def test_upcoming_window(self, dividends, quotes):
        soon = await dividends.create_dividend("SEC1", Decimal("1"), date(2026, 6, 1), date(2026, 6, 10))
        await dividends.create_dividend("SEC1", Decimal("1"), date(2026, 9, 1), date(2026, 9, 10))

        upcoming = await dividends.list_upcoming(today=date(2026, 6, 1), days=30)
        assert [d.id for d in upcoming] == [soon.id]
        assert len(await dividends.list_for_security("sec1")) == 2

    async def test_update_validates_dates(self, dividends, quotes):
        dividend = await dividends.create_dividend("SEC1", Decimal("1"), date(2026, 6, 1), date(2026, 6, 10))
        with pytest.raises(ValidationError):
            await dividends.update_dividend(dividend.id, pay_date=date(2026, 5, 1))
        updated = await dividends.update_dividend(dividend.id, amount_per_share=Decimal("1.25"))
        assert updated.amount_per_share == Decimal("1.25")
