"""
Audit API Router.
"""
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import require_admin
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.models.enums import AuditEventCategory, AuditEventType
from microinvest.services.audit_service import AuditService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class AuditLogSchema(BaseModel):
    id: int
    user_id: Optional[int]
    event_type: AuditEventType
    category: AuditEventCategory
    action: str
    resource_id: Optional[str]
    details: Optional[dict[str, Any]]
    ip_address: Optional[str]
    success: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("/me", response_model=list[AuditLogSchema])
async def my_activity(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(default=100, le=500),
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).get_user_activity(username, start, end, limit)


@router.get("/security", response_model=list[AuditLogSchema], dependencies=[Depends(require_admin)])
async def security_events(
    hours: int = Query(default=24, ge=1, le=720),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).get_security_events(hours)


@router.get("/failures", response_model=list[AuditLogSchema], dependencies=[Depends(require_admin)])
async def failed_operations(
    hours: int = Query(default=24, ge=1, le=720),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).get_failed_operations(hours)


@router.get("/recent", response_model=list[AuditLogSchema], dependencies=[Depends(require_admin)])
async def recent_activity(
    limit: int = Query(default=50, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).get_recent_activity(limit)
