"""
Domain enumerations and their classification predicates.
"""
import enum


class OrderSide(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def is_buy(self) -> bool:
        return self is OrderSide.BUY

    @property
    def is_sell(self) -> bool:
        return self is OrderSide.SELL


class OrderType(str, enum.Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "STOP_LOSS"
    STOP_LIMIT = "STOP_LIMIT"
    TRAILING_STOP = "TRAILING_STOP"
    GOOD_TILL_CANCELLED = "GOOD_TILL_CANCELLED"
    FILL_OR_KILL = "FILL_OR_KILL"
    IMMEDIATE_OR_CANCEL = "IMMEDIATE_OR_CANCEL"

    @property
    def requires_price(self) -> bool:
        return self in (OrderType.LIMIT, OrderType.STOP_LIMIT)

    @property
    def is_stop_order(self) -> bool:
        return self in (OrderType.STOP_LOSS, OrderType.STOP_LIMIT, OrderType.TRAILING_STOP)

    @property
    def is_market_order(self) -> bool:
        return self in (OrderType.MARKET, OrderType.STOP_LOSS)

    @property
    def is_limit_order(self) -> bool:
        return self in (OrderType.LIMIT, OrderType.STOP_LIMIT)


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"

    @property
    def is_active(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.PARTIALLY_FILLED)

    @property
    def is_final(self) -> bool:
        return not self.is_active


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    INTEREST = "INTEREST"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    FEE = "FEE"
    TAX = "TAX"
    STOCK_SPLIT = "STOCK_SPLIT"
    STOCK_DIVIDEND = "STOCK_DIVIDEND"
    SPIN_OFF = "SPIN_OFF"
    MERGER = "MERGER"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"

    @property
    def increases_position(self) -> bool:
        return self in (
            TransactionType.BUY,
            TransactionType.STOCK_SPLIT,
            TransactionType.STOCK_DIVIDEND,
            TransactionType.TRANSFER_IN,
        )

    @property
    def decreases_position(self) -> bool:
        return self in (TransactionType.SELL, TransactionType.TRANSFER_OUT)

    @property
    def affects_position(self) -> bool:
        return self.increases_position or self.decreases_position

    @property
    def is_positive_cash_flow(self) -> bool:
        return self in (
            TransactionType.SELL,
            TransactionType.DIVIDEND,
            TransactionType.INTEREST,
            TransactionType.DEPOSIT,
        )

    @property
    def is_negative_cash_flow(self) -> bool:
        return self in (
            TransactionType.BUY,
            TransactionType.WITHDRAWAL,
            TransactionType.FEE,
            TransactionType.TAX,
        )

    @property
    def affects_cash_balance(self) -> bool:
        return self.is_positive_cash_flow or self.is_negative_cash_flow


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"

    @property
    def is_final(self) -> bool:
        return self is not TransactionStatus.PENDING


class AccountStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    DEACTIVATED = "DEACTIVATED"

    @property
    def can_trade(self) -> bool:
        return self is AccountStatus.ACTIVE


class RiskTolerance(str, enum.Enum):
    CONSERVATIVE = "CONSERVATIVE"
    MODERATE = "MODERATE"
    AGGRESSIVE = "AGGRESSIVE"


class ExperienceLevel(str, enum.Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


class SessionType(str, enum.Enum):
    WEB = "WEB"
    MOBILE = "MOBILE"
    API = "API"


class SecurityType(str, enum.Enum):
    STOCK = "STOCK"
    ETF = "ETF"
    MUTUAL_FUND = "MUTUAL_FUND"
    BOND = "BOND"
    CRYPTO = "CRYPTO"
    OTHER = "OTHER"


class Exchange(str, enum.Enum):
    NYSE = "NYSE"
    NASDAQ = "NASDAQ"
    AMEX = "AMEX"
    OTC = "OTC"
    OTHER = "OTHER"


class DividendFrequency(str, enum.Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    SEMI_ANNUAL = "SEMI_ANNUAL"
    ANNUAL = "ANNUAL"
    SPECIAL = "SPECIAL"


class ContentType(str, enum.Enum):
    ARTICLE = "ARTICLE"
    VIDEO = "VIDEO"
    QUIZ = "QUIZ"
    COURSE = "COURSE"
    INTERACTIVE = "INTERACTIVE"


class DifficultyLevel(str, enum.Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


class ProgressStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class AchievementType(str, enum.Enum):
    TRADING = "TRADING"
    LEARNING = "LEARNING"
    PORTFOLIO_OVER_500 = "PORTFOLIO_OVER_500"
    PORTFOLIO_OVER_1000 = "PORTFOLIO_OVER_1000"
    PORTFOLIO_OVER_5000 = "PORTFOLIO_OVER_5000"
    WATCHLIST_CREATED = "WATCHLIST_CREATED"
    STREAK = "STREAK"
    DIVERSIFIED_PORTFOLIO = "DIVERSIFIED_PORTFOLIO"


class AchievementTier(str, enum.Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class AuditEventType(str, enum.Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    PLACE_ORDER = "PLACE_ORDER"
    CANCEL_ORDER = "CANCEL_ORDER"
    UPDATE_PROFILE = "UPDATE_PROFILE"
    SECURITY_QUESTION_UPDATE = "SECURITY_QUESTION_UPDATE"
    PASSWORD_RESET = "PASSWORD_RESET"
    PORTFOLIO_VIEW = "PORTFOLIO_VIEW"
    ALERT_CREATED = "ALERT_CREATED"
    DATA_CHANGE = "DATA_CHANGE"
    SECURITY_ALERT = "SECURITY_ALERT"


class AuditEventCategory(str, enum.Enum):
    AUTHENTICATION = "AUTHENTICATION"
    TRADING = "TRADING"
    ACCOUNT_MANAGEMENT = "ACCOUNT_MANAGEMENT"
    SECURITY = "SECURITY"
    SYSTEM = "SYSTEM"
    USER_BEHAVIOR = "USER_BEHAVIOR"
    PORTFOLIO_MANAGEMENT = "PORTFOLIO_MANAGEMENT"
    DATA_MANAGEMENT = "DATA_MANAGEMENT"
