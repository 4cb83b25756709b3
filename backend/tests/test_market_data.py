"""
Quote providers: the in-memory table and the yfinance adapter with the
network patched out.
"""
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from microinvest.core.config import settings
from microinvest.core.exceptions import ExternalServiceError
from microinvest.services.market_data import (
    StaticQuoteProvider,
    YFinanceQuoteProvider,
    get_quote_provider,
)
from microinvest.services.market_data.base import SecurityInfo

TICKER = "microinvest.services.market_data.yfinance_provider.yf.Ticker"


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "QUOTE_MAX_RETRIES", 2)
    monkeypatch.setattr(settings, "QUOTE_RETRY_BACKOFF_SEC", 0.0)


def make_history(closes):
    index = pd.date_range(end="2026-06-05", periods=len(closes), freq="D")
    return pd.DataFrame({"Close": closes}, index=index)


# ============================================================
# STATIC PROVIDER
# ============================================================

class TestStaticQuoteProvider:

    def test_quote_and_previous_close(self):
        provider = StaticQuoteProvider({"sec1": "100"})
        provider.set_price("SEC1", "101.5")
        quote = provider.get_quote("sec1")
        assert quote.symbol == "SEC1"
        assert quote.price == Decimal("101.5")
        assert quote.previous_close == Decimal("100")

    def test_unknown_symbol_raises(self):
        with pytest.raises(ExternalServiceError):
            StaticQuoteProvider().get_quote("NOPE")

    def test_removed_symbol_raises(self):
        provider = StaticQuoteProvider({"SEC1": "1"})
        provider.remove("sec1")
        with pytest.raises(ExternalServiceError):
            provider.get_quote("SEC1")

    def test_security_info(self):
        provider = StaticQuoteProvider()
        assert provider.get_security_info("abc").company_name == "ABC"
        provider.set_info(SecurityInfo(symbol="ABC", company_name="Alphabet Soup", sector="Food"))
        assert provider.get_security_info("ABC").sector == "Food"


class TestProviderFactory:

    def test_static(self):
        assert isinstance(get_quote_provider("static"), StaticQuoteProvider)

    def test_yfinance(self):
        assert isinstance(get_quote_provider("yfinance"), YFinanceQuoteProvider)

    def test_unknown(self):
        with pytest.raises(ValueError):
            get_quote_provider("bloomberg")


# ============================================================
# YFINANCE PROVIDER
# ============================================================

class TestYFinanceQuoteProvider:

    def test_last_two_closes(self, no_backoff):
        ticker = MagicMock()
        ticker.history.return_value = make_history([98.5, 99.0, 101.23457])
        with patch(TICKER, return_value=ticker):
            quote = YFinanceQuoteProvider().get_quote("aapl")

        assert quote.symbol == "AAPL"
        assert quote.price == Decimal("101.2346")
        assert quote.previous_close == Decimal("99.0")
        assert quote.timestamp == datetime(2026, 6, 5)

    def test_retries_then_succeeds(self, no_backoff):
        ticker = MagicMock()
        ticker.history.side_effect = [RuntimeError("timeout"), make_history([10.0])]
        with patch(TICKER, return_value=ticker):
            quote = YFinanceQuoteProvider().get_quote("SEC1")

        assert quote.price == Decimal("10.0")
        assert quote.previous_close is None
        assert ticker.history.call_count == 2

    def test_empty_history_raises(self, no_backoff):
        ticker = MagicMock()
        ticker.history.return_value = pd.DataFrame()
        with patch(TICKER, return_value=ticker):
            with pytest.raises(ExternalServiceError):
                YFinanceQuoteProvider().get_quote("SEC1")
        assert ticker.history.call_count == 2

    def test_non_finite_price_raises(self, no_backoff):
        ticker = MagicMock()
        ticker.history.return_value = make_history([float("inf")])
        with patch(TICKER, return_value=ticker):
            with pytest.raises(ExternalServiceError):
                YFinanceQuoteProvider().get_quote("SEC1")

    def test_security_info_mapping(self):
        ticker = MagicMock()
        ticker.get_info.return_value = {
            "longName": "Apple Inc.",
            "quoteType": "EQUITY",
            "sector": "Technology",
            "exchange": "NMS",
            "currency": "USD",
        }
        with patch(TICKER, return_value=ticker):
            info = YFinanceQuoteProvider().get_security_info("aapl")

        assert info.company_name == "Apple Inc."
        assert info.security_type == "STOCK"
        assert info.exchange == "NASDAQ"

    def test_security_info_falls_back_on_error(self):
        ticker = MagicMock()
        ticker.get_info.side_effect = RuntimeError("rate limited")
        with patch(TICKER, return_value=ticker):
            info = YFinanceQuoteProvider().get_security_info("XYZ")

        assert info.symbol == "XYZ"
        assert info.company_name is None
        assert info.security_type == "OTHER"
