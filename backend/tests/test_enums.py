"""
Tests for enumeration predicates.
"""
import pytest

from microinvest.models.enums import (
    AccountStatus,
    OrderSide,
    OrderStatus,
    OrderType,
    TransactionStatus,
    TransactionType,
)


class TestOrderEnums:

    def test_side_predicates(self):
        assert OrderSide.BUY.is_buy and not OrderSide.BUY.is_sell
        assert OrderSide.SELL.is_sell and not OrderSide.SELL.is_buy

    @pytest.mark.parametrize("order_type", [OrderType.LIMIT, OrderType.STOP_LIMIT])
    def test_limit_types_require_price(self, order_type):
        assert order_type.requires_price
        assert order_type.is_limit_order
        assert not order_type.is_market_order

    @pytest.mark.parametrize("order_type", [OrderType.MARKET, OrderType.STOP_LOSS])
    def test_market_types(self, order_type):
        assert order_type.is_market_order
        assert not order_type.requires_price

    def test_stop_orders(self):
        stops = {t for t in OrderType if t.is_stop_order}
        assert stops == {OrderType.STOP_LOSS, OrderType.STOP_LIMIT, OrderType.TRAILING_STOP}

    def test_active_statuses(self):
        active = {s for s in OrderStatus if s.is_active}
        assert active == {OrderStatus.PENDING, OrderStatus.PARTIALLY_FILLED}
        for status in OrderStatus:
            assert status.is_final != status.is_active


class TestTransactionEnums:

    def test_position_effects(self):
        assert TransactionType.BUY.increases_position
        assert TransactionType.STOCK_SPLIT.increases_position
        assert TransactionType.SELL.decreases_position
        assert not TransactionType.DEPOSIT.affects_position
        assert TransactionType.TRANSFER_OUT.affects_position

    def test_cash_flow_direction(self):
        assert TransactionType.SELL.is_positive_cash_flow
        assert TransactionType.DIVIDEND.is_positive_cash_flow
        assert TransactionType.BUY.is_negative_cash_flow
        assert TransactionType.WITHDRAWAL.is_negative_cash_flow
        assert not TransactionType.STOCK_SPLIT.affects_cash_balance

    def test_no_type_flows_both_ways(self):
        for tx_type in TransactionType:
            assert not (tx_type.is_positive_cash_flow and tx_type.is_negative_cash_flow)

    def test_final_statuses(self):
        assert not TransactionStatus.PENDING.is_final
        assert TransactionStatus.COMPLETED.is_final
        assert TransactionStatus.FAILED.is_final
        assert TransactionStatus.CANCELED.is_final


def test_only_active_accounts_trade():
    assert AccountStatus.ACTIVE.can_trade
    assert not AccountStatus.SUSPENDED.can_trade
    assert not AccountStatus.DEACTIVATED.can_trade
