from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: Decimal
    timestamp: datetime
    previous_close: Optional[Decimal] = None


@dataclass(frozen=True)
class SecurityInfo:
    symbol: str
    company_name: Optional[str] = None
    security_type: str = "STOCK"
    sector: Optional[str] = None
    exchange: Optional[str] = None
    currency: str = "USD"


class QuoteProvider(ABC):
    """Abstract base class for price oracles."""

    name = "base"

    @abstractmethod
    def get_quote(self, symbol: str) -> Quote:
        """
        Latest price for a symbol.
        Raises ExternalServiceError when no price can be obtained.
        """
        pass

    @abstractmethod
    def get_security_info(self, symbol: str) -> SecurityInfo:
        """Reference data used when a security is first seen."""
        pass
