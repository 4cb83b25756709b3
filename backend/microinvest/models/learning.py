from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint

from microinvest.core.database import Base
from microinvest.core.exceptions import ValidationError
from microinvest.models.base import IdMixin, TimestampMixin
from microinvest.models.enums import ContentType, DifficultyLevel, ProgressStatus


class EducationalContent(Base, IdMixin, TimestampMixin):
    __tablename__ = "educational_content"

    title = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100), index=True)
    content_type = Column(Enum(ContentType, native_enum=False, length=20),
                          nullable=False, default=ContentType.ARTICLE)
    difficulty = Column(Enum(DifficultyLevel, native_enum=False, length=20),
                        nullable=False, default=DifficultyLevel.BEGINNER)
    url = Column(String(500))
    duration_minutes = Column(Integer)
    author = Column(String(100))
    tags = Column(String(500))  # comma separated
    featured = Column(Boolean, nullable=False, default=False)
    view_count = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    def __init__(self, **kwargs):
        kwargs.setdefault("content_type", ContentType.ARTICLE)
        kwargs.setdefault("difficulty", DifficultyLevel.BEGINNER)
        kwargs.setdefault("featured", False)
        kwargs.setdefault("view_count", 0)
        kwargs.setdefault("active", True)
        super().__init__(**kwargs)


class UserProgress(Base, IdMixin, TimestampMixin):
    """Per-user progress through one piece of content."""
    __tablename__ = "user_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "content_id", name="uq_progress_user_content"),
    )

    user_id = Column(Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"),
                     nullable=False, index=True)
    content_id = Column(Integer, ForeignKey("educational_content.id", ondelete="CASCADE"),
                        nullable=False)
    status = Column(Enum(ProgressStatus, native_enum=False, length=20),
                    nullable=False, default=ProgressStatus.NOT_STARTED)
    completion_percentage = Column(Integer, nullable=False, default=0)
    rating = Column(Integer)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    last_accessed_at = Column(DateTime)

    def __init__(self, **kwargs):
        kwargs.setdefault("status", ProgressStatus.NOT_STARTED)
        kwargs.setdefault("completion_percentage", 0)
        super().__init__(**kwargs)

    def start(self, now: datetime) -> None:
        if self.status is ProgressStatus.NOT_STARTED:
            self.status = ProgressStatus.IN_PROGRESS
            self.started_at = now
        self.last_accessed_at = now

    def update_completion(self, percentage: int, now: datetime) -> None:
        if not 0 <= percentage <= 100:
            raise ValidationError("Completion must be between 0 and 100",
                                  {"completion_percentage": percentage})
        self.start(now)
        self.completion_percentage = percentage
        if percentage == 100:
            self.mark_completed(now)

    def mark_completed(self, now: datetime) -> None:
        if self.started_at is None:
            self.started_at = now
        self.status = ProgressStatus.COMPLETED
        self.completion_percentage = 100
        self.finished_at = now
        self.last_accessed_at = now

    def rate(self, rating: int) -> None:
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", {"rating": rating})
        self.rating = rating
