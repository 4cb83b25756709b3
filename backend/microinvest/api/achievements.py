"""
Achievements API Router.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.models.enums import AchievementTier, AchievementType
from microinvest.services.achievement_service import AchievementService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class AchievementSchema(BaseModel):
    id: int
    name: str
    description: Optional[str]
    achievement_type: AchievementType
    tier: AchievementTier
    points: int
    threshold: Optional[Decimal]
    earned_at: datetime

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("", response_model=list[AchievementSchema])
async def list_achievements(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await AchievementService(db).list_achievements(username)


@router.get("/stats")
async def achievement_stats(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await AchievementService(db).get_user_stats(username)


@router.post("/check", response_model=list[AchievementSchema])
async def check_achievements(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    """Evaluate every rule and return the newly awarded achievements."""
    return await AchievementService(db).check_all(username)
