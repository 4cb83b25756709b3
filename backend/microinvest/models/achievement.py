from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint

from microinvest.core.database import Base
from microinvest.models.base import IdMixin
from microinvest.models.enums import AchievementTier, AchievementType


class Achievement(Base, IdMixin):
    __tablename__ = "achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "name", "achievement_type", name="uq_achievement_user_name_type"),
    )

    user_id = Column(Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"),
                     nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    achievement_type = Column(Enum(AchievementType, native_enum=False, length=30), nullable=False)
    tier = Column(Enum(AchievementTier, native_enum=False, length=20),
                  nullable=False, default=AchievementTier.BRONZE)
    points = Column(Integer, nullable=False, default=0)
    threshold = Column(Numeric(14, 2))
    earned_at = Column(DateTime, nullable=False, default=datetime.utcnow)
