from datetime import datetime, timedelta

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text

from microinvest.core.database import Base
from microinvest.models.base import IdMixin, TimestampMixin, ZERO
from microinvest.models.enums import AccountStatus, ExperienceLevel, RiskTolerance, SessionType


class UserAccount(Base, IdMixin, TimestampMixin):
    """
    A registered investor. Balances mirror the default portfolio and are
    refreshed by AccountService.sync_balances.
    """
    __tablename__ = "user_accounts"

    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    status = Column(Enum(AccountStatus, native_enum=False, length=20), nullable=False,
                    default=AccountStatus.ACTIVE)
    is_admin = Column(Boolean, nullable=False, default=False)

    virtual_balance = Column(Numeric(14, 2), nullable=False, default=ZERO)
    total_invested = Column(Numeric(14, 2), nullable=False, default=ZERO)
    total_returns = Column(Numeric(14, 2), nullable=False, default=ZERO)

    risk_tolerance = Column(Enum(RiskTolerance, native_enum=False, length=20),
                            default=RiskTolerance.MODERATE)
    experience_level = Column(Enum(ExperienceLevel, native_enum=False, length=20),
                              default=ExperienceLevel.BEGINNER)
    last_login_at = Column(DateTime)

    def __init__(self, **kwargs):
        kwargs.setdefault("status", AccountStatus.ACTIVE)
        kwargs.setdefault("is_admin", False)
        kwargs.setdefault("virtual_balance", ZERO)
        kwargs.setdefault("total_invested", ZERO)
        kwargs.setdefault("total_returns", ZERO)
        kwargs.setdefault("risk_tolerance", RiskTolerance.MODERATE)
        kwargs.setdefault("experience_level", ExperienceLevel.BEGINNER)
        super().__init__(**kwargs)

    @property
    def can_trade(self) -> bool:
        return self.status.can_trade

    def __repr__(self):
        return f"<UserAccount {self.username} {self.status.value}>"


class UserProfile(Base, IdMixin, TimestampMixin):
    __tablename__ = "user_profiles"

    user_id = Column(Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"),
                     unique=True, nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone_number = Column(String(30))
    date_of_birth = Column(Date)
    investment_goal = Column(String(255))
    bio = Column(Text)


class UserSession(Base, IdMixin):
    """Login session tracked for activity and cleanup."""
    __tablename__ = "user_sessions"

    user_id = Column(Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"),
                     nullable=False, index=True)
    session_token = Column(String(128), unique=True, nullable=False, index=True)
    session_type = Column(Enum(SessionType, native_enum=False, length=20),
                          nullable=False, default=SessionType.WEB)
    ip_address = Column(String(64))
    user_agent = Column(String(512))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    def is_valid(self, now: datetime, inactivity: timedelta) -> bool:
        return (
            self.active
            and self.expires_at > now
            and self.last_activity_at + inactivity > now
        )
