"""
Tests for entity domain methods: position cost basis, the portfolio cash
ledger, the order state machine and transaction amounts.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from microinvest.core.exceptions import (
    InsufficientFundsError,
    InsufficientQuantityError,
    InvalidStateTransitionError,
    ValidationError,
)
from microinvest.models import ORDER_TRANSITIONS, Order, Portfolio, Position, Transaction
from microinvest.models.enums import (
    OrderSide,
    OrderStatus,
    OrderType,
    TransactionStatus,
    TransactionType,
)

NOW = datetime(2026, 1, 5, 15, 30)


def make_position(quantity="0", avg="0"):
    return Position(symbol="SEC1", quantity=Decimal(quantity), avg_cost_per_share=Decimal(avg))


def make_portfolio(cash="1000"):
    return Portfolio(name="Test", cash_balance=Decimal(cash), total_value=Decimal(cash))


def make_order(status=OrderStatus.PENDING, **kwargs):
    kwargs.setdefault("side", OrderSide.BUY)
    kwargs.setdefault("symbol", "SEC1")
    kwargs.setdefault("quantity", Decimal("10"))
    return Order(status=status, **kwargs)


# ============================================================
# POSITION
# ============================================================

class TestPositionCostBasis:

    def test_first_buy_sets_average(self):
        position = make_position()
        position.apply_buy(Decimal("5"), Decimal("100"))
        assert position.quantity == Decimal("5")
        assert position.avg_cost_per_share == Decimal("100")
        assert position.current_value == Decimal("500")
        assert position.active

    def test_weighted_average_on_second_buy(self):
        position = make_position("10", "100")
        position.apply_buy(Decimal("10"), Decimal("110"))
        assert position.quantity == Decimal("20")
        assert position.avg_cost_per_share == Decimal("105")

    @pytest.mark.parametrize("q1,avg1,q2,p2", [
        ("3", "10", "7", "20"),
        ("1", "250.5", "0.5", "100"),
        ("100", "1", "1", "1000"),
    ])
    def test_average_between_old_average_and_price(self, q1, avg1, q2, p2):
        position = make_position(q1, avg1)
        position.apply_buy(Decimal(q2), Decimal(p2))
        low, high = sorted([Decimal(avg1), Decimal(p2)])
        assert position.quantity == Decimal(q1) + Decimal(q2)
        assert low <= position.avg_cost_per_share <= high

    def test_average_rounded_to_four_places(self):
        position = make_position("3", "10")
        position.apply_buy(Decimal("1"), Decimal("11"))
        assert position.avg_cost_per_share == Decimal("10.2500")
        position.apply_buy(Decimal("2"), Decimal("10"))
        assert position.avg_cost_per_share == Decimal("10.1667")

    def test_sell_keeps_average_and_books_gain(self):
        position = make_position("5", "100")
        realized = position.apply_sell(Decimal("2"), Decimal("120"))
        assert position.quantity == Decimal("3")
        assert position.avg_cost_per_share == Decimal("100")
        assert realized == Decimal("40.00")
        assert position.realized_gain_loss == Decimal("40.00")

    def test_oversell_leaves_position_untouched(self):
        position = make_position("3", "100")
        with pytest.raises(InsufficientQuantityError):
            position.apply_sell(Decimal("4"), Decimal("120"))
        assert position.quantity == Decimal("3")
        assert position.realized_gain_loss == Decimal("0")

    def test_selling_everything_retains_inactive_position(self):
        position = make_position("2", "50")
        position.apply_sell(Decimal("2"), Decimal("40"))
        assert position.quantity == Decimal("0")
        assert not position.active
        assert position.current_value == Decimal("0")
        assert position.avg_cost_per_share == Decimal("50")
        assert position.realized_gain_loss == Decimal("-20.00")

    def test_buy_reactivates_closed_position(self):
        position = make_position("1", "50")
        position.apply_sell(Decimal("1"), Decimal("50"))
        position.apply_buy(Decimal("2"), Decimal("60"))
        assert position.active
        assert position.quantity == Decimal("2")

    def test_share_distribution_dilutes_average(self):
        position = make_position("10", "100")
        position.apply_share_distribution(Decimal("10"))
        assert position.quantity == Decimal("20")
        assert position.avg_cost_per_share == Decimal("50")
        assert position.cost_basis == Decimal("1000.00")

    def test_market_value_and_percentages(self):
        position = make_position("4", "25")
        position.update_market_value(Decimal("30"))
        assert position.current_value == Decimal("120.00")
        assert position.unrealized_gain_loss == Decimal("20.00")
        assert position.gain_loss_percentage == Decimal("20.00")
        assert position.weight_in_portfolio(Decimal("480")) == Decimal("25.00")
        assert position.weight_in_portfolio(Decimal("0")) == Decimal("0")

    def test_day_change_against_previous_close(self):
        position = make_position("10", "90")
        position.update_day_change(Decimal("110"), Decimal("100"))
        assert position.day_change == Decimal("100.00")
        assert position.day_change_percent == Decimal("10.0000")

        position.update_day_change(Decimal("97"), Decimal("100"))
        assert position.day_change == Decimal("-30.00")
        assert position.day_change_percent == Decimal("-3.0000")

    @pytest.mark.parametrize("current,previous", [(None, "100"), ("100", None), (None, None)])
    def test_day_change_zero_without_prices(self, current, previous):
        position = make_position("10", "90")
        position.update_day_change(current and Decimal(current), previous and Decimal(previous))
        assert position.day_change == Decimal("0")
        assert position.day_change_percent == Decimal("0")

    def test_closing_clears_day_change(self):
        position = make_position("2", "50")
        position.update_day_change(Decimal("55"), Decimal("50"))
        position.apply_sell(Decimal("2"), Decimal("55"))
        assert not position.active
        assert position.day_change == Decimal("0")


# ============================================================
# PORTFOLIO
# ============================================================

class TestPortfolioLedger:

    def test_add_then_subtract_restores_balances(self):
        portfolio = make_portfolio("1000")
        portfolio.add_cash(Decimal("250.55"))
        portfolio.subtract_cash(Decimal("250.55"))
        assert portfolio.cash_balance == Decimal("1000")
        assert portfolio.total_value == Decimal("1000")

    def test_overdraw_is_a_no_op(self):
        portfolio = make_portfolio("100")
        with pytest.raises(InsufficientFundsError) as exc_info:
            portfolio.subtract_cash(Decimal("100.01"))
        assert exc_info.value.code == "INSUFFICIENT_FUNDS"
        assert portfolio.cash_balance == Decimal("100")
        assert portfolio.total_value == Decimal("100")

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amounts_rejected(self, amount):
        portfolio = make_portfolio()
        with pytest.raises(ValidationError):
            portfolio.add_cash(Decimal(amount))
        with pytest.raises(ValidationError):
            portfolio.subtract_cash(Decimal(amount))

    def test_apply_cash_flow_dispatches_on_sign(self):
        portfolio = make_portfolio("100")
        portfolio.apply_cash_flow(Decimal("50"))
        portfolio.apply_cash_flow(Decimal("-30"))
        portfolio.apply_cash_flow(Decimal("0"))
        assert portfolio.cash_balance == Decimal("120")

    def test_recalculate_counts_active_positions_only(self):
        portfolio = make_portfolio("500")
        held = make_position("5", "100")
        held.update_market_value(Decimal("110"))
        closed = make_position()
        closed.current_value = Decimal("999")
        closed.active = False
        assert portfolio.recalculate_value([held, closed]) == Decimal("1050.00")
        assert portfolio.invested_amount == Decimal("550.00")

    def test_validate_state(self):
        portfolio = make_portfolio("100")
        portfolio.validate_state()
        portfolio.total_value = Decimal("50")
        with pytest.raises(ValidationError):
            portfolio.validate_state()


# ============================================================
# ORDER STATE MACHINE
# ============================================================

class TestOrderTransitions:

    def test_table_covers_every_status(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize("status", [s for s in OrderStatus if s.is_final])
    def test_final_states_have_no_exits(self, status):
        assert ORDER_TRANSITIONS[status] == frozenset()
        order = make_order(status=status)
        for target in OrderStatus:
            with pytest.raises(InvalidStateTransitionError):
                order.transition_to(target)
            assert order.status is status

    def test_pending_cannot_stay_pending(self):
        order = make_order()
        assert not order.can_transition_to(OrderStatus.PENDING)
        assert order.can_transition_to(OrderStatus.REJECTED)

    def test_partially_filled_cannot_be_rejected(self):
        order = make_order(status=OrderStatus.PARTIALLY_FILLED)
        with pytest.raises(InvalidStateTransitionError):
            order.reject("late")

    def test_partial_fills_accumulate(self):
        order = make_order(quantity=Decimal("10"))
        order.record_fill(Decimal("4"), Decimal("100"), Decimal("1"), NOW)
        assert order.status is OrderStatus.PARTIALLY_FILLED
        assert order.remaining_quantity == Decimal("6")

        order.record_fill(Decimal("6"), Decimal("110"), Decimal("2"), NOW)
        assert order.status is OrderStatus.FILLED
        assert order.filled_quantity == Decimal("10")
        assert order.average_fill_price == Decimal("106")
        assert order.total_fees == Decimal("3.00")
        assert order.executed_at == NOW

    def test_overfill_rejected(self):
        order = make_order(quantity=Decimal("2"))
        with pytest.raises(ValidationError):
            order.record_fill(Decimal("3"), Decimal("100"), Decimal("0"), NOW)
        assert order.status is OrderStatus.PENDING

    def test_cancel_sets_reason_and_time(self):
        order = make_order()
        order.cancel(NOW)
        assert order.status is OrderStatus.CANCELLED
        assert order.cancelled_at == NOW
        assert order.reason == "Cancelled by user"

    def test_expire(self):
        order = make_order(expiry_date=NOW - timedelta(minutes=1))
        assert order.is_expired(NOW)
        order.expire(NOW)
        assert order.status is OrderStatus.EXPIRED
        assert order.reason == "Order expired"

    def test_limit_condition(self):
        buy = make_order(order_type=OrderType.LIMIT, limit_price=Decimal("100"))
        assert buy.limit_satisfied(Decimal("99.99"))
        assert buy.limit_satisfied(Decimal("100"))
        assert not buy.limit_satisfied(Decimal("100.01"))

        sell = make_order(side=OrderSide.SELL, order_type=OrderType.LIMIT, limit_price=Decimal("100"))
        assert sell.limit_satisfied(Decimal("100.01"))
        assert not sell.limit_satisfied(Decimal("99"))

        market = make_order()
        assert market.limit_satisfied(Decimal("1000000"))


# ============================================================
# TRANSACTION
# ============================================================

class TestTransactionAmounts:

    def test_buy_net_includes_costs(self):
        tx = Transaction(transaction_type=TransactionType.BUY, total_amount=Decimal("500"),
                         fees=Decimal("2.50"), tax_amount=Decimal("1"), transaction_date=NOW)
        assert tx.net_amount == Decimal("503.50")
        assert tx.cash_adjustment == Decimal("-503.50")

    def test_sell_net_excludes_costs(self):
        tx = Transaction(transaction_type=TransactionType.SELL, total_amount=Decimal("240"),
                         fees=Decimal("1.20"), transaction_date=NOW)
        assert tx.net_amount == Decimal("238.80")
        assert tx.cash_adjustment == Decimal("238.80")

    def test_split_has_no_cash_effect(self):
        tx = Transaction(transaction_type=TransactionType.STOCK_SPLIT, total_amount=Decimal("0"),
                         transaction_date=NOW)
        assert tx.cash_adjustment == Decimal("0")

    def test_settlement_date_defaults_to_t_plus_two(self):
        tx = Transaction(transaction_type=TransactionType.DEPOSIT, total_amount=Decimal("10"),
                         transaction_date=NOW)
        assert tx.status is TransactionStatus.PENDING
        assert tx.settlement_date == NOW + timedelta(days=2)
        assert not tx.is_settled(NOW + timedelta(days=1))
        assert tx.is_settled(NOW + timedelta(days=2))

    def test_custom_settlement_days(self):
        tx = Transaction(settlement_days=0, transaction_type=TransactionType.DEPOSIT,
                         total_amount=Decimal("10"), transaction_date=NOW)
        assert tx.settlement_date == NOW

    def test_final_transactions_cannot_change(self):
        tx = Transaction(transaction_type=TransactionType.DEPOSIT, total_amount=Decimal("10"),
                         transaction_date=NOW)
        tx.mark_completed(NOW)
        assert tx.settled_at == NOW
        with pytest.raises(InvalidStateTransitionError):
            tx.mark_cancelled()
        assert tx.status is TransactionStatus.COMPLETED
