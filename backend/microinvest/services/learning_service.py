"""
Educational content catalogue and per-user learning progress.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.core.exceptions import NotFoundError, ValidationError
from microinvest.models.enums import ContentType, DifficultyLevel, ProgressStatus
from microinvest.models.learning import EducationalContent, UserProgress
from microinvest.models.user import UserAccount
from microinvest.services.achievement_service import AchievementService
from microinvest.services.common import get_user, utcnow

logger = logging.getLogger(__name__)

CONTENT_FIELDS = (
    "title", "description", "category", "content_type", "difficulty", "url",
    "duration_minutes", "author", "tags", "featured",
)


class LearningService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.achievements = AchievementService(session)

    # =========================================================================
    # Content
    # =========================================================================

    async def create_content(self, title: str, **fields: Any) -> EducationalContent:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        unknown = set(fields) - set(CONTENT_FIELDS)
        if unknown:
            raise ValidationError("Unknown content fields", {"fields": sorted(unknown)})
        content = EducationalContent(title=title.strip(), **fields)
        self.session.add(content)
        await self.session.commit()
        logger.info(f"Created content {content.id}: {content.title}")
        return content

    async def _get_content(self, content_id: int, include_inactive: bool = False) -> EducationalContent:
        content = await self.session.get(EducationalContent, content_id)
        if content is None or (not content.active and not include_inactive):
            raise NotFoundError("EducationalContent", content_id)
        return content

    async def get_content(self, content_id: int, count_view: bool = False) -> EducationalContent:
        content = await self._get_content(content_id)
        if count_view:
            content.view_count = (content.view_count or 0) + 1
            await self.session.commit()
        return content

    async def update_content(self, content_id: int, **fields: Any) -> EducationalContent:
        unknown = set(fields) - set(CONTENT_FIELDS)
        if unknown:
            raise ValidationError("Unknown content fields", {"fields": sorted(unknown)})
        if "title" in fields and (not fields["title"] or not fields["title"].strip()):
            raise ValidationError("Title is required")
        content = await self._get_content(content_id)
        for key, value in fields.items():
            if value is not None:
                setattr(content, key, value)
        await self.session.commit()
        return content

    async def delete_content(self, content_id: int) -> None:
        content = await self._get_content(content_id)
        content.active = False
        await self.session.commit()
        logger.info(f"Deactivated content {content_id}")

    async def list_content(
        self,
        category: Optional[str] = None,
        difficulty: Optional[DifficultyLevel] = None,
        content_type: Optional[ContentType] = None,
        featured_only: bool = False,
        search: Optional[str] = None,
        limit: int = 50,
    ) -> List[EducationalContent]:
        stmt = select(EducationalContent).where(EducationalContent.active.is_(True))
        if category:
            stmt = stmt.where(EducationalContent.category == category)
        if difficulty:
            stmt = stmt.where(EducationalContent.difficulty == difficulty)
        if content_type:
            stmt = stmt.where(EducationalContent.content_type == content_type)
        if featured_only:
            stmt = stmt.where(EducationalContent.featured.is_(True))
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(
                EducationalContent.title.ilike(pattern),
                EducationalContent.description.ilike(pattern),
                EducationalContent.tags.ilike(pattern),
            ))
        stmt = stmt.order_by(EducationalContent.featured.desc(), EducationalContent.id).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_popular(self, limit: int = 10) -> List[EducationalContent]:
        result = await self.session.execute(
            select(EducationalContent)
            .where(EducationalContent.active.is_(True))
            .order_by(EducationalContent.view_count.desc(), EducationalContent.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Progress
    # =========================================================================

    async def _progress_for(self, user: UserAccount, content: EducationalContent) -> UserProgress:
        result = await self.session.execute(
            select(UserProgress).where(
                UserProgress.user_id == user.id,
                UserProgress.content_id == content.id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is None:
            progress = UserProgress(user_id=user.id, content_id=content.id)
            self.session.add(progress)
        return progress

    async def start_content(self, username: str, content_id: int,
                            now: Optional[datetime] = None) -> UserProgress:
        user = await get_user(self.session, username)
        content = await self._get_content(content_id)
        progress = await self._progress_for(user, content)
        progress.start(utcnow(now))
        await self.session.commit()
        return progress

    async def update_progress(self, username: str, content_id: int, percentage: int,
                              now: Optional[datetime] = None) -> UserProgress:
        if not 0 <= percentage <= 100:
            raise ValidationError("Completion must be between 0 and 100",
                                  {"completion_percentage": percentage})
        user = await get_user(self.session, username)
        content = await self._get_content(content_id)
        progress = await self._progress_for(user, content)
        progress.update_completion(percentage, utcnow(now))
        if progress.status is ProgressStatus.COMPLETED:
            await self.achievements.check_learning_achievements(user)
        await self.session.commit()
        return progress

    async def complete_content(self, username: str, content_id: int,
                               now: Optional[datetime] = None) -> UserProgress:
        user = await get_user(self.session, username)
        content = await self._get_content(content_id)
        progress = await self._progress_for(user, content)
        progress.mark_completed(utcnow(now))
        await self.achievements.check_learning_achievements(user)
        await self.session.commit()
        logger.info(f"{username} completed content {content_id}")
        return progress

    async def rate_content(self, username: str, content_id: int, rating: int) -> UserProgress:
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", {"rating": rating})
        user = await get_user(self.session, username)
        content = await self._get_content(content_id)
        progress = await self._progress_for(user, content)
        progress.rate(rating)
        await self.session.commit()
        return progress

    async def list_progress(self, username: str, status: Optional[ProgressStatus] = None) -> List[UserProgress]:
        user = await get_user(self.session, username)
        stmt = select(UserProgress).where(UserProgress.user_id == user.id)
        if status:
            stmt = stmt.where(UserProgress.status == status)
        result = await self.session.execute(stmt.order_by(UserProgress.id))
        return list(result.scalars().all())

    async def get_stats(self, username: str) -> Dict[str, Any]:
        user = await get_user(self.session, username)
        rows = await self.session.execute(
            select(UserProgress.status, func.count(UserProgress.id))
            .where(UserProgress.user_id == user.id)
            .group_by(UserProgress.status)
        )
        by_status = {status.value: count for status, count in rows.all()}
        rating = await self.session.execute(
            select(func.avg(UserProgress.rating))
            .where(UserProgress.user_id == user.id, UserProgress.rating.is_not(None))
        )
        average = rating.scalar_one()
        return {
            "username": username,
            "completed": by_status.get(ProgressStatus.COMPLETED.value, 0),
            "in_progress": by_status.get(ProgressStatus.IN_PROGRESS.value, 0),
            "average_rating": round(float(average), 2) if average is not None else None,
        }
