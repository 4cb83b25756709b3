from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, Integer, String

from microinvest.core.database import Base
from microinvest.models.base import IdMixin
from microinvest.models.enums import AuditEventCategory, AuditEventType


class AuditLog(Base, IdMixin):
    """Append-only record of user and system actions."""
    __tablename__ = "audit_logs"

    user_id = Column(Integer, ForeignKey("user_accounts.id", ondelete="SET NULL"), index=True)
    event_type = Column(Enum(AuditEventType, native_enum=False, length=30), nullable=False)
    category = Column(Enum(AuditEventCategory, native_enum=False, length=30), nullable=False)
    action = Column(String(255), nullable=False)
    resource_id = Column(String(100))
    details = Column(JSON)
    ip_address = Column(String(64))
    user_agent = Column(String(512))
    success = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
