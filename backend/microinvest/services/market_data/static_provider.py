import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from microinvest.core.exceptions import ExternalServiceError
from microinvest.services.market_data.base import Quote, QuoteProvider, SecurityInfo

logger = logging.getLogger(__name__)


class StaticQuoteProvider(QuoteProvider):
    """
    In-memory price table for simulation and tests.
    Unknown symbols raise ExternalServiceError, like an upstream outage would.
    """

    name = "static"

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self._prices: Dict[str, Decimal] = {}
        self._previous: Dict[str, Decimal] = {}
        self._info: Dict[str, SecurityInfo] = {}
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price) -> None:
        symbol = symbol.upper()
        if symbol in self._prices:
            self._previous[symbol] = self._prices[symbol]
        self._prices[symbol] = Decimal(str(price))

    def remove(self, symbol: str) -> None:
        self._prices.pop(symbol.upper(), None)

    def set_info(self, info: SecurityInfo) -> None:
        self._info[info.symbol.upper()] = info

    def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        price = self._prices.get(symbol)
        if price is None:
            raise ExternalServiceError("static", f"No price for {symbol}")
        return Quote(
            symbol=symbol,
            price=price,
            timestamp=datetime.utcnow(),
            previous_close=self._previous.get(symbol),
        )

    def get_security_info(self, symbol: str) -> SecurityInfo:
        symbol = symbol.upper()
        return self._info.get(symbol, SecurityInfo(symbol=symbol, company_name=symbol))
