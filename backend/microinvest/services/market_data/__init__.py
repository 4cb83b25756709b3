from typing import Dict, Optional, Type

from microinvest.core.config import settings
from microinvest.services.market_data.base import Quote, QuoteProvider, SecurityInfo
from microinvest.services.market_data.static_provider import StaticQuoteProvider
from microinvest.services.market_data.yfinance_provider import YFinanceQuoteProvider

PROVIDERS: Dict[str, Type[QuoteProvider]] = {
    "yfinance": YFinanceQuoteProvider,
    "static": StaticQuoteProvider,
}

_provider: Optional[QuoteProvider] = None


def get_quote_provider(name: Optional[str] = None) -> QuoteProvider:
    """Factory to get provider instance."""
    provider_class = PROVIDERS.get(name or settings.QUOTE_PROVIDER)
    if not provider_class:
        raise ValueError(f"Unknown quote provider: {name}")
    return provider_class()


def get_default_provider() -> QuoteProvider:
    """Process-wide provider shared by the API and the sweeps."""
    global _provider
    if _provider is None:
        _provider = get_quote_provider()
    return _provider


def set_default_provider(provider: Optional[QuoteProvider]) -> None:
    global _provider
    _provider = provider


__all__ = [
    "Quote",
    "QuoteProvider",
    "SecurityInfo",
    "StaticQuoteProvider",
    "YFinanceQuoteProvider",
    "PROVIDERS",
    "get_quote_provider",
    "get_default_provider",
    "set_default_provider",
]
