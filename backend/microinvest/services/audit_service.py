"""
Audit trail service.

Entries are appended inside the caller's unit of work so an audit record
commits or rolls back together with the change it describes.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.models.audit_log import AuditLog
from microinvest.models.enums import AuditEventCategory, AuditEventType
from microinvest.services.common import as_utc, get_user, utcnow

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: Dict[AuditEventType, AuditEventCategory] = {
    AuditEventType.LOGIN: AuditEventCategory.AUTHENTICATION,
    AuditEventType.LOGOUT: AuditEventCategory.AUTHENTICATION,
    AuditEventType.PLACE_ORDER: AuditEventCategory.TRADING,
    AuditEventType.CANCEL_ORDER: AuditEventCategory.TRADING,
    AuditEventType.UPDATE_PROFILE: AuditEventCategory.ACCOUNT_MANAGEMENT,
    AuditEventType.SECURITY_QUESTION_UPDATE: AuditEventCategory.SECURITY,
    AuditEventType.PASSWORD_RESET: AuditEventCategory.SECURITY,
    AuditEventType.PORTFOLIO_VIEW: AuditEventCategory.USER_BEHAVIOR,
    AuditEventType.ALERT_CREATED: AuditEventCategory.USER_BEHAVIOR,
    AuditEventType.DATA_CHANGE: AuditEventCategory.DATA_MANAGEMENT,
    AuditEventType.SECURITY_ALERT: AuditEventCategory.SECURITY,
}

SECURITY_CATEGORIES = (AuditEventCategory.SECURITY, AuditEventCategory.AUTHENTICATION)


class AuditService:
    def __init__(self, session: AsyncSession):
        self.session = session

    def record(
        self,
        event_type: AuditEventType,
        action: str,
        user_id: Optional[int] = None,
        category: Optional[AuditEventCategory] = None,
        resource_id: Any = None,
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            event_type=event_type,
            category=category or DEFAULT_CATEGORIES.get(event_type, AuditEventCategory.SYSTEM),
            action=action,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details or {},
            success=success,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=datetime.utcnow(),
        )
        self.session.add(entry)
        logger.debug(f"Audit {event_type.value}: {action} user={user_id} success={success}")
        return entry

    async def get_user_activity(
        self,
        username: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        start, end = as_utc(start), as_utc(end)
        user = await get_user(self.session, username)
        stmt = select(AuditLog).where(AuditLog.user_id == user.id)
        if start:
            stmt = stmt.where(AuditLog.created_at >= start)
        if end:
            stmt = stmt.where(AuditLog.created_at <= end)
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_security_events(self, hours: int = 24, now: Optional[datetime] = None) -> List[AuditLog]:
        since = utcnow(now) - timedelta(hours=hours)
        stmt = (
            select(AuditLog)
            .where(AuditLog.category.in_(SECURITY_CATEGORIES), AuditLog.created_at >= since)
            .order_by(AuditLog.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_failed_operations(self, hours: int = 24, now: Optional[datetime] = None) -> List[AuditLog]:
        since = utcnow(now) - timedelta(hours=hours)
        stmt = (
            select(AuditLog)
            .where(AuditLog.success.is_(False), AuditLog.created_at >= since)
            .order_by(AuditLog.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_recent_activity(self, limit: int = 50) -> List[AuditLog]:
        stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
