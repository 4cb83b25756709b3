# Base
from microinvest.models.base import TimestampMixin, IdMixin

# Accounts
from microinvest.models.user import UserAccount, UserProfile, UserSession

# Reference data
from microinvest.models.security import Security
from microinvest.models.dividend import Dividend

# Portfolio & trading
from microinvest.models.portfolio import Portfolio
from microinvest.models.position import Position
from microinvest.models.order import Order, ORDER_TRANSITIONS
from microinvest.models.transaction import Transaction
from microinvest.models.watchlist import Watchlist, watchlist_securities

# Engagement
from microinvest.models.learning import EducationalContent, UserProgress
from microinvest.models.achievement import Achievement
from microinvest.models.audit_log import AuditLog

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "UserAccount",
    "UserProfile",
    "UserSession",
    "Security",
    "Dividend",
    "Portfolio",
    "Position",
    "Order",
    "ORDER_TRANSITIONS",
    "Transaction",
    "Watchlist",
    "watchlist_securities",
    "EducationalContent",
    "UserProgress",
    "Achievement",
    "AuditLog",
]
