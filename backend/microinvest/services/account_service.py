"""
User accounts and profiles.

Registration opens a default portfolio funded with DEFAULT_STARTING_CASH.
Account balances mirror that portfolio and are refreshed whenever its
cash or holdings change; sync_balances forces a refresh.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.config import settings
from microinvest.core.exceptions import AlreadyExistsError, InvalidStateTransitionError, ValidationError
from microinvest.models.base import ZERO, to_money
from microinvest.models.enums import AccountStatus, AuditEventType, ExperienceLevel, RiskTolerance
from microinvest.models.user import UserAccount, UserProfile
from microinvest.services.audit_service import AuditService
from microinvest.services.common import get_user, refresh_account_mirror, utcnow
from microinvest.services.fees import FeeSchedule
from microinvest.services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# target status -> statuses it may be entered from
ACCOUNT_TRANSITIONS = {
    AccountStatus.ACTIVE: (AccountStatus.SUSPENDED, AccountStatus.DEACTIVATED),
    AccountStatus.SUSPENDED: (AccountStatus.ACTIVE,),
    AccountStatus.DEACTIVATED: (AccountStatus.ACTIVE, AccountStatus.SUSPENDED),
}

PROFILE_FIELDS = ("first_name", "last_name", "phone_number", "date_of_birth", "investment_goal", "bio")


class AccountService:
    def __init__(self, session: AsyncSession, fees: Optional[FeeSchedule] = None):
        self.session = session
        self.portfolios = PortfolioService(session, fees=fees)
        self.audit = AuditService(session)

    async def register(
        self,
        username: str,
        email: str,
        risk_tolerance: Optional[RiskTolerance] = None,
        experience_level: Optional[ExperienceLevel] = None,
        starting_cash=None,
        is_admin: bool = False,
    ) -> UserAccount:
        username = (username or "").strip()
        email = (email or "").strip().lower()
        if not USERNAME_RE.match(username):
            raise ValidationError("Username must be 3-50 letters, digits, '.', '_' or '-'",
                                  {"username": username})
        if not EMAIL_RE.match(email):
            raise ValidationError("Invalid email address", {"email": email})

        existing = await self.session.execute(
            select(UserAccount).where(or_(UserAccount.username == username, UserAccount.email == email))
        )
        clash = existing.scalars().first()
        if clash is not None:
            field = "username" if clash.username == username else "email"
            raise AlreadyExistsError(f"An account with this {field} already exists", {"field": field})

        user = UserAccount(
            username=username,
            email=email,
            risk_tolerance=risk_tolerance or RiskTolerance.MODERATE,
            experience_level=experience_level or ExperienceLevel.BEGINNER,
            is_admin=is_admin,
        )
        self.session.add(user)
        await self.session.flush()

        cash = settings.DEFAULT_STARTING_CASH if starting_cash is None else to_money(starting_cash)
        portfolio = await self.portfolios.open_portfolio(
            user, settings.DEFAULT_PORTFOLIO_NAME, initial_cash=cash, is_default=True
        )
        await refresh_account_mirror(self.session, portfolio)

        self.audit.record(AuditEventType.DATA_CHANGE, "Register account", user_id=user.id,
                          resource_id=user.id)
        await self.session.commit()
        logger.info(f"Registered {username} with starting cash {cash}")
        return user

    async def get_by_username(self, username: str) -> UserAccount:
        return await get_user(self.session, username)

    async def list_accounts(self, status: Optional[AccountStatus] = None, limit: int = 100) -> List[UserAccount]:
        stmt = select(UserAccount)
        if status:
            stmt = stmt.where(UserAccount.status == status)
        result = await self.session.execute(stmt.order_by(UserAccount.id).limit(limit))
        return list(result.scalars().all())

    async def update_account(
        self,
        username: str,
        email: Optional[str] = None,
        risk_tolerance: Optional[RiskTolerance] = None,
        experience_level: Optional[ExperienceLevel] = None,
    ) -> UserAccount:
        user = await get_user(self.session, username)
        if email is not None:
            email = email.strip().lower()
            if not EMAIL_RE.match(email):
                raise ValidationError("Invalid email address", {"email": email})
            result = await self.session.execute(
                select(UserAccount.id).where(UserAccount.email == email, UserAccount.id != user.id)
            )
            if result.first() is not None:
                raise AlreadyExistsError("An account with this email already exists", {"field": "email"})
            user.email = email
        if risk_tolerance is not None:
            user.risk_tolerance = risk_tolerance
        if experience_level is not None:
            user.experience_level = experience_level
        self.audit.record(AuditEventType.UPDATE_PROFILE, "Update account", user_id=user.id)
        await self.session.commit()
        return user

    async def _set_status(self, username: str, target: AccountStatus) -> UserAccount:
        user = await get_user(self.session, username)
        if user.status not in ACCOUNT_TRANSITIONS[target]:
            raise InvalidStateTransitionError("Account", user.status, target)
        previous = user.status
        user.status = target
        self.audit.record(AuditEventType.DATA_CHANGE, f"Account {target.value.lower()}",
                          user_id=user.id, details={"from": previous.value, "to": target.value})
        await self.session.commit()
        logger.info(f"Account {username}: {previous.value} -> {target.value}")
        return user

    async def activate(self, username: str) -> UserAccount:
        return await self._set_status(username, AccountStatus.ACTIVE)

    async def suspend(self, username: str) -> UserAccount:
        return await self._set_status(username, AccountStatus.SUSPENDED)

    async def deactivate(self, username: str) -> UserAccount:
        return await self._set_status(username, AccountStatus.DEACTIVATED)

    async def record_login(self, username: str, ip_address: Optional[str] = None,
                           now: Optional[datetime] = None) -> UserAccount:
        user = await get_user(self.session, username)
        user.last_login_at = utcnow(now)
        self.audit.record(AuditEventType.LOGIN, "Login", user_id=user.id, ip_address=ip_address)
        await self.session.commit()
        return user

    async def sync_balances(self, username: str) -> UserAccount:
        """Mirror the default portfolio into the account's balance fields."""
        user = await get_user(self.session, username)
        portfolio = await self.portfolios.get_default_portfolio(user)
        if portfolio is None:
            user.virtual_balance = ZERO
            user.total_invested = ZERO
            user.total_returns = ZERO
        else:
            await refresh_account_mirror(self.session, portfolio)
        await self.session.commit()
        return user

    # =========================================================================
    # Profile
    # =========================================================================

    async def get_profile(self, username: str) -> Optional[UserProfile]:
        user = await get_user(self.session, username)
        result = await self.session.execute(select(UserProfile).where(UserProfile.user_id == user.id))
        return result.scalar_one_or_none()

    async def update_profile(self, username: str, **fields: Any) -> UserProfile:
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError("Unknown profile fields", {"fields": sorted(unknown)})

        user = await get_user(self.session, username)
        result = await self.session.execute(select(UserProfile).where(UserProfile.user_id == user.id))
        profile = result.scalar_one_or_none()
        if profile is None:
            profile = UserProfile(user_id=user.id)
            self.session.add(profile)

        for key, value in fields.items():
            if value is not None:
                setattr(profile, key, value)

        self.audit.record(AuditEventType.UPDATE_PROFILE, "Update profile", user_id=user.id,
                          details={"fields": sorted(k for k, v in fields.items() if v is not None)})
        await self.session.commit()
        return profile

    async def get_overview(self, username: str) -> Dict[str, Any]:
        user = await get_user(self.session, username)
        portfolios = await self.portfolios.list_portfolios(username)
        return {
            "username": user.username,
            "status": user.status.value,
            "portfolio_count": len(portfolios),
            "total_value": to_money(sum((p.total_value for p in portfolios), ZERO)),
            "cash_balance": to_money(sum((p.cash_balance for p in portfolios), ZERO)),
        }


async def bootstrap_admin(session: AsyncSession) -> Optional[UserAccount]:
    """
    Ensure the configured administrator account exists. Runs once at
    startup; does nothing when ADMIN_USERNAME is unset.
    """
    if not settings.ADMIN_USERNAME:
        return None

    result = await session.execute(
        select(UserAccount).where(UserAccount.username == settings.ADMIN_USERNAME)
    )
    admin = result.scalar_one_or_none()
    if admin is not None:
        if not admin.is_admin:
            admin.is_admin = True
            await session.commit()
            logger.info(f"Granted admin rights to {admin.username}")
        return admin

    email = settings.ADMIN_EMAIL or f"{settings.ADMIN_USERNAME}@localhost.localdomain"
    admin = await AccountService(session).register(settings.ADMIN_USERNAME, email, is_admin=True)
    logger.info(f"Created admin account {admin.username}")
    return admin
