import logging
import math
import time
from decimal import Decimal
from typing import Any, Optional

import pandas as pd
import yfinance as yf

from microinvest.core.config import settings
from microinvest.core.exceptions import ExternalServiceError
from microinvest.services.market_data.base import Quote, QuoteProvider, SecurityInfo

logger = logging.getLogger(__name__)

_QUOTE_TYPES = {
    "EQUITY": "STOCK",
    "ETF": "ETF",
    "MUTUALFUND": "MUTUAL_FUND",
    "CRYPTOCURRENCY": "CRYPTO",
}

_EXCHANGES = {
    "NYQ": "NYSE",
    "NMS": "NASDAQ",
    "NGM": "NASDAQ",
    "NCM": "NASDAQ",
    "ASE": "AMEX",
    "PNK": "OTC",
}


class YFinanceQuoteProvider(QuoteProvider):
    """yfinance-backed quotes. Uses the last two daily closes."""

    name = "yfinance"

    def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        hist = self._fetch_history_with_retry(symbol)
        if hist is None or hist.empty:
            raise ExternalServiceError("yfinance", f"No price data for {symbol}")

        closes = hist["Close"].dropna()
        if closes.empty:
            raise ExternalServiceError("yfinance", f"No closing price for {symbol}")

        last_ts = closes.index[-1]
        previous_close = _to_decimal(closes.iloc[-2]) if len(closes) > 1 else None
        return Quote(
            symbol=symbol,
            price=_to_decimal(closes.iloc[-1]),
            timestamp=pd.Timestamp(last_ts).to_pydatetime().replace(tzinfo=None),
            previous_close=previous_close,
        )

    def get_security_info(self, symbol: str) -> SecurityInfo:
        symbol = symbol.upper()
        try:
            info = yf.Ticker(symbol).get_info() or {}
        except Exception as exc:
            logger.warning("yfinance info fetch failed for %s: %s", symbol, exc)
            info = {}

        return SecurityInfo(
            symbol=symbol,
            company_name=info.get("longName") or info.get("shortName"),
            security_type=_QUOTE_TYPES.get(info.get("quoteType", ""), "OTHER"),
            sector=info.get("sector"),
            exchange=_EXCHANGES.get(info.get("exchange", ""), "OTHER"),
            currency=info.get("currency") or "USD",
        )

    def _fetch_history_with_retry(self, symbol: str) -> Optional[pd.DataFrame]:
        max_retries = max(1, settings.QUOTE_MAX_RETRIES)
        backoff = max(0.0, settings.QUOTE_RETRY_BACKOFF_SEC)
        ticker = yf.Ticker(symbol)

        for attempt in range(1, max_retries + 1):
            try:
                hist = ticker.history(period="5d")
                if hist is not None and not hist.empty:
                    return hist
                logger.warning(
                    "yfinance returned empty history for %s (attempt %s/%s)",
                    symbol,
                    attempt,
                    max_retries,
                )
            except Exception as exc:
                logger.warning(
                    "yfinance quote fetch failed for %s (attempt %s/%s): %s",
                    symbol,
                    attempt,
                    max_retries,
                    exc,
                )

            if attempt < max_retries and backoff:
                sleep_for = backoff * (2 ** (attempt - 1))
                time.sleep(sleep_for)

        return None


def _to_decimal(value: Any) -> Decimal:
    result = float(value)
    if not math.isfinite(result):
        raise ExternalServiceError("yfinance", f"Non-finite price {value!r}")
    return Decimal(str(round(result, 4)))
