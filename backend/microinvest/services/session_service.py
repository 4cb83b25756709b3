import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.config import settings
from microinvest.core.exceptions import AuthenticationError, NotFoundError
from microinvest.models.enums import AuditEventType, SessionType
from microinvest.models.user import UserSession
from microinvest.services.audit_service import AuditService
from microinvest.services.common import get_user, utcnow

logger = logging.getLogger(__name__)


class SessionService:
    """Tracks user sessions for activity timeouts and forced logout."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)
        self.ttl = timedelta(hours=settings.SESSION_TTL_HOURS)
        self.inactivity = timedelta(hours=settings.SESSION_INACTIVITY_HOURS)

    async def create_session(
        self,
        username: str,
        session_type: SessionType = SessionType.WEB,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UserSession:
        now = utcnow(now)
        user = await get_user(self.session, username)
        if not user.status.can_trade:
            raise AuthenticationError("Account is not active")
        user_session = UserSession(
            user_id=user.id,
            session_token=secrets.token_urlsafe(32),
            session_type=session_type,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
            last_activity_at=now,
            expires_at=now + self.ttl,
            active=True,
        )
        self.session.add(user_session)
        user.last_login_at = now
        self.audit.record(AuditEventType.LOGIN, "Session created", user_id=user.id,
                          ip_address=ip_address, user_agent=user_agent)
        await self.session.commit()
        return user_session

    async def _get(self, token: str) -> UserSession:
        result = await self.session.execute(select(UserSession).where(UserSession.session_token == token))
        user_session = result.scalar_one_or_none()
        if user_session is None:
            raise NotFoundError("Session", token[:8])
        return user_session

    async def is_valid(self, token: str, now: Optional[datetime] = None) -> bool:
        try:
            user_session = await self._get(token)
        except NotFoundError:
            return False
        return user_session.is_valid(utcnow(now), self.inactivity)

    async def touch(self, token: str, now: Optional[datetime] = None) -> UserSession:
        now = utcnow(now)
        user_session = await self._get(token)
        if not user_session.is_valid(now, self.inactivity):
            raise AuthenticationError("Session expired")
        user_session.last_activity_at = now
        await self.session.commit()
        return user_session

    async def logout(self, token: str) -> None:
        user_session = await self._get(token)
        user_session.active = False
        self.audit.record(AuditEventType.LOGOUT, "Logout", user_id=user_session.user_id)
        await self.session.commit()

    async def logout_all(self, username: str) -> int:
        user = await get_user(self.session, username)
        result = await self.session.execute(
            update(UserSession)
            .where(UserSession.user_id == user.id, UserSession.active.is_(True))
            .values(active=False)
        )
        self.audit.record(AuditEventType.LOGOUT, "Logout all sessions", user_id=user.id,
                          details={"sessions": result.rowcount})
        await self.session.commit()
        return result.rowcount

    async def list_active(self, username: str, now: Optional[datetime] = None) -> List[UserSession]:
        now = utcnow(now)
        user = await get_user(self.session, username)
        result = await self.session.execute(
            select(UserSession)
            .where(
                UserSession.user_id == user.id,
                UserSession.active.is_(True),
                UserSession.expires_at > now,
            )
            .order_by(UserSession.last_activity_at.desc())
        )
        return list(result.scalars().all())

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Deactivate sessions past expiry or idle beyond the inactivity window."""
        now = utcnow(now)
        result = await self.session.execute(
            update(UserSession)
            .where(
                UserSession.active.is_(True),
                or_(
                    UserSession.expires_at <= now,
                    UserSession.last_activity_at <= now - self.inactivity,
                ),
            )
            .values(active=False)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        logger.info(f"Deactivated {result.rowcount} expired sessions")
        return result.rowcount
